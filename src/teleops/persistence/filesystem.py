"""File-based persistence helpers for reconciliation run outputs."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..config import settings


class FileStorage:
    """Thin wrapper around the data root for storing JSON and CSV outputs."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"
        self.output_root.mkdir(parents=True, exist_ok=True)

    @property
    def upload_root(self) -> Path:
        return self.root / "uploads"

    def make_run_directory(self, prefix: str = "reconciliation") -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = self.output_root / f"{prefix}_{timestamp}"
        path.mkdir(parents=True, exist_ok=False)
        return path

    def resolve_upload(self, name: str | Path) -> Path:
        """Locate an uploaded file, refusing paths outside the uploads folder."""
        base = self.upload_root.resolve()
        candidate = (base / name).resolve()
        if candidate != base and base not in candidate.parents:
            raise ValueError(f"Upload path '{name}' is outside the uploads directory")
        if not candidate.is_file():
            raise FileNotFoundError(f"Uploaded file not found: {name}")
        return candidate

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=indent)

    def write_csv(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(content)

"""Application configuration and settings management."""

import json
from pathlib import Path
from typing import Annotated, Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_SUCCESS_KEYWORDS: tuple[str, ...] = (
    "exitos",
    "successful",
    "success",
    "answered",
    "contacted",
    "contactado",
    "contestado",
)

DEFAULT_FAILURE_KEYWORDS: tuple[str, ...] = (
    "no exitos",
    "sin exito",
    "unsuccessful",
    "not answered",
    "no contesta",
    "no contestado",
    "sin respuesta",
    "no contactado",
    "not contacted",
)


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TELEOPS_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Teleops Reconciliation API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for run outputs and uploads.")
    frontend_allowed_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Reconciliation defaults, copied into every EngineConfig unless overridden
    similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    min_phone_length: int = Field(default=8, ge=1)
    up_to_date_days: int = Field(default=15, ge=0, description="Days since last successful call still considered up to date.")
    pending_days: int = Field(default=30, ge=0, description="Days since last successful call before a beneficiary turns urgent.")
    success_keywords: Annotated[tuple[str, ...], NoDecode] = Field(default=DEFAULT_SUCCESS_KEYWORDS)
    failure_keywords: Annotated[tuple[str, ...], NoDecode] = Field(default=DEFAULT_FAILURE_KEYWORDS)
    unassigned_label: str = Field(default="unassigned", description="Operator id used for calls with no resolvable operator.")

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    beneficiaries_table: str = "beneficiaries"
    assignments_table: str = "assignments"
    calls_table: str = "call_events"
    operators_table: str = "operators"

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", "success_keywords", "failure_keywords", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            # Try comma-separated
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            # Single value
            if value.strip():
                return (value.strip(),)
        # Return empty tuple if value is None or empty
        return tuple()


settings = Settings()

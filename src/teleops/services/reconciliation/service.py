"""High-level orchestration for reconciliation requests."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Sequence

from ...data.collections_repository import RawCollections, load_collections, load_rows_from_file
from ...models.results import EngineResult
from ...persistence.filesystem import FileStorage
from ...schemas.reconciliation import (
    EngineOverrides,
    ReconciliationRequest,
    ReconciliationRunResponse,
    StoreReconciliationRequest,
)
from ..engine import EngineConfig, run_reconciliation
from ..outputs.formatter import (
    beneficiary_status_to_csv,
    engine_result_to_json,
    engine_result_to_response,
    operator_metrics_to_csv,
    orphan_assignments_to_csv,
    unassigned_to_csv,
)

_LABEL_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def build_engine_config(overrides: Optional[EngineOverrides]) -> EngineConfig:
    """Settings-backed config with request overrides applied; raises ``ValueError`` when invalid."""
    if overrides is None:
        return EngineConfig.from_settings()
    values = overrides.model_dump(exclude_none=True)
    for key in ("success_keywords", "failure_keywords"):
        if key in values:
            values[key] = tuple(values[key])
    return EngineConfig.from_settings(**values)


def _run_prefix(run_label: Optional[str]) -> str:
    if not run_label:
        return "reconciliation"
    slug = _LABEL_CHARS.sub("-", run_label.strip()).strip("-").lower()
    return f"reconciliation_{slug}" if slug else "reconciliation"


def persist_run(result: EngineResult, run_label: Optional[str] = None, storage: Optional[FileStorage] = None) -> str:
    """Write summary JSON and CSV exports for a run; returns the run directory name."""
    storage = storage or FileStorage()
    run_dir = storage.make_run_directory(prefix=_run_prefix(run_label))
    response = engine_result_to_response(result, run_id=run_dir.name)
    storage.write_json(run_dir / "summary.json", engine_result_to_json(response))
    storage.write_csv(run_dir / "operator_metrics.csv", operator_metrics_to_csv(result.metrics.per_operator))
    storage.write_csv(
        run_dir / "unassigned.csv",
        unassigned_to_csv(result.reconciliation.unassigned, result.beneficiary_statuses),
    )
    storage.write_csv(
        run_dir / "orphan_assignments.csv",
        orphan_assignments_to_csv(result.reconciliation.orphan_assignments),
    )
    storage.write_csv(run_dir / "beneficiary_status.csv", beneficiary_status_to_csv(result.beneficiary_statuses))
    logging.info(f"Saved reconciliation outputs to {run_dir}")
    return run_dir.name


def _respond(result: EngineResult, *, persist: bool, run_label: Optional[str]) -> ReconciliationRunResponse:
    run_id = None
    if persist:
        try:
            run_id = persist_run(result, run_label)
        except OSError as exc:
            # The computed result is still returned to the caller
            logging.warning(f"Failed to save reconciliation outputs: {exc}")
    return engine_result_to_response(result, run_id=run_id)


def process_reconciliation_request(payload: ReconciliationRequest) -> ReconciliationRunResponse:
    config = build_engine_config(payload.config)
    result = run_reconciliation(
        payload.beneficiaries,
        payload.assignments,
        payload.calls,
        payload.operators,
        config=config,
        now=payload.now,
    )
    return _respond(result, persist=payload.persist, run_label=payload.run_label)


def _with_uploads(collections: RawCollections, payload: StoreReconciliationRequest) -> RawCollections:
    beneficiaries: Sequence[Any] = collections.beneficiaries
    calls: Sequence[Any] = collections.calls
    if payload.beneficiaries_file or payload.calls_file:
        storage = FileStorage()
        if payload.beneficiaries_file and not beneficiaries:
            beneficiaries = tuple(load_rows_from_file(storage.resolve_upload(payload.beneficiaries_file)))
            logging.info(f"Using {len(beneficiaries)} beneficiaries from upload '{payload.beneficiaries_file}'")
        if payload.calls_file and not calls:
            calls = tuple(load_rows_from_file(storage.resolve_upload(payload.calls_file)))
            logging.info(f"Using {len(calls)} call events from upload '{payload.calls_file}'")
    return RawCollections(
        beneficiaries=tuple(beneficiaries),
        assignments=collections.assignments,
        calls=tuple(calls),
        operators=collections.operators,
    )


def process_store_request(payload: StoreReconciliationRequest) -> ReconciliationRunResponse:
    """Run the engine over the collections held in the document store.

    Uploaded files named in the request stand in for an empty beneficiaries or
    call-events table.
    """
    config = build_engine_config(payload.config)
    collections = _with_uploads(load_collections(), payload)
    if collections.is_empty:
        logging.warning("No collections available; the run will produce an empty result")
    result = run_reconciliation(
        collections.beneficiaries,
        collections.assignments,
        collections.calls,
        collections.operators,
        config=config,
        now=payload.now,
    )
    return _respond(result, persist=payload.persist, run_label=payload.run_label)

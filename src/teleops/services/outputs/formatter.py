"""Utilities to serialize reconciliation results into JSON/CSV artifacts."""

from __future__ import annotations

import csv
import io
from dataclasses import asdict
from typing import Iterable, Sequence

from ...models.results import (
    BeneficiaryStatusEntry,
    EngineResult,
    OperatorMetrics,
    OrphanAssignment,
    ReconciliationResult,
)
from ...schemas.reconciliation import ReconciliationRunResponse


def _reconciliation_payload(reconciliation: ReconciliationResult) -> dict:
    # asdict cannot copy the read-only mapping view
    return {
        "mapping": dict(reconciliation.mapping),
        "unassigned": list(reconciliation.unassigned),
        "orphan_assignments": [asdict(orphan) for orphan in reconciliation.orphan_assignments],
        "ambiguous_matches": [asdict(match) for match in reconciliation.ambiguous_matches],
        "assigned_count": reconciliation.assigned_count,
    }


def engine_result_to_response(result: EngineResult, run_id: str | None = None) -> ReconciliationRunResponse:
    payload = {
        "generated_at": result.generated_at,
        "reconciliation": _reconciliation_payload(result.reconciliation),
        "metrics": asdict(result.metrics),
        "beneficiary_statuses": [asdict(entry) for entry in result.beneficiary_statuses],
        "diagnostics": asdict(result.diagnostics),
        "run_id": run_id,
    }
    return ReconciliationRunResponse.model_validate(payload)


def engine_result_to_json(result: EngineResult | ReconciliationRunResponse) -> dict:
    response = result if isinstance(result, ReconciliationRunResponse) else engine_result_to_response(result)
    return response.model_dump(mode="json")


def _write_rows(fieldnames: list[str], rows: Iterable[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def operator_metrics_to_csv(rows: Sequence[OperatorMetrics]) -> str:
    fieldnames = [
        "operator_id",
        "display_name",
        "total_calls",
        "successful_calls",
        "failed_calls",
        "success_rate",
        "average_duration_seconds",
        "total_duration_seconds",
        "distinct_beneficiaries",
    ]
    return _write_rows(fieldnames, ({name: getattr(row, name) for name in fieldnames} for row in rows))


def unassigned_to_csv(unassigned: Sequence[str], statuses: Sequence[BeneficiaryStatusEntry] = ()) -> str:
    """One row per unassigned beneficiary id, with name and follow-up status when known."""
    by_id = {entry.beneficiary_id: entry for entry in statuses}
    rows = []
    for beneficiary_id in unassigned:
        entry = by_id.get(beneficiary_id)
        rows.append(
            {
                "beneficiary_id": beneficiary_id,
                "name": entry.name if entry else "",
                "status": entry.status.value if entry else "",
                "call_count": entry.call_count if entry else 0,
            }
        )
    return _write_rows(["beneficiary_id", "name", "status", "call_count"], rows)


def orphan_assignments_to_csv(orphans: Sequence[OrphanAssignment]) -> str:
    return _write_rows(
        ["position", "beneficiary_name", "phones", "operator_id"],
        (
            {
                "position": orphan.position,
                "beneficiary_name": orphan.beneficiary_name,
                "phones": " ".join(orphan.phones),
                "operator_id": orphan.operator_id,
            }
            for orphan in orphans
        ),
    )


def beneficiary_status_to_csv(entries: Sequence[BeneficiaryStatusEntry]) -> str:
    return _write_rows(
        [
            "beneficiary_id",
            "name",
            "operator_id",
            "status",
            "last_successful_call",
            "days_since_last_success",
            "call_count",
        ],
        (
            {
                "beneficiary_id": entry.beneficiary_id,
                "name": entry.name,
                "operator_id": entry.operator_id or "",
                "status": entry.status.value,
                "last_successful_call": entry.last_successful_call.isoformat() if entry.last_successful_call else "",
                "days_since_last_success": "" if entry.days_since_last_success is None else entry.days_since_last_success,
                "call_count": entry.call_count,
            }
            for entry in entries
        ),
    )

"""Single entry point that runs reconciliation and metrics over raw collections."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from ..config import DEFAULT_FAILURE_KEYWORDS, DEFAULT_SUCCESS_KEYWORDS, Settings, settings
from ..models.domain import BeneficiaryRecord, CallEventRecord, OperatorRecord
from ..models.results import EngineResult
from .metrics.aggregator import BeneficiaryLookup, aggregate
from .metrics.status import BeneficiaryActivity, StatusThresholds, build_beneficiary_statuses
from .reconciliation.diagnostics import Diagnostics
from .reconciliation.records import parse_beneficiary, parse_call, parse_operator, parse_timestamp
from .reconciliation.reconciler import OperatorDirectory, build_assignment_index, reconcile


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Tunables for one engine invocation."""

    similarity_threshold: float = 0.8
    min_phone_length: int = 8
    up_to_date_days: int = 15
    pending_days: int = 30
    success_keywords: tuple[str, ...] = DEFAULT_SUCCESS_KEYWORDS
    failure_keywords: tuple[str, ...] = DEFAULT_FAILURE_KEYWORDS
    unassigned_label: str = "unassigned"

    def __post_init__(self) -> None:
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        if self.min_phone_length < 1:
            raise ValueError("min_phone_length must be >= 1")
        if self.up_to_date_days < 0:
            raise ValueError("up_to_date_days must be >= 0")
        if self.pending_days < self.up_to_date_days:
            raise ValueError("pending_days must be >= up_to_date_days")
        if not self.unassigned_label.strip():
            raise ValueError("unassigned_label must not be blank")
        object.__setattr__(self, "success_keywords", tuple(self.success_keywords))
        object.__setattr__(self, "failure_keywords", tuple(self.failure_keywords))

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None, **overrides: Any) -> "EngineConfig":
        source = source or settings
        config = cls(
            similarity_threshold=source.similarity_threshold,
            min_phone_length=source.min_phone_length,
            up_to_date_days=source.up_to_date_days,
            pending_days=source.pending_days,
            success_keywords=source.success_keywords,
            failure_keywords=source.failure_keywords,
            unassigned_label=source.unassigned_label,
        )
        return config.with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Copy with every non-``None`` override applied (and re-validated)."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return replace(self, **changes)

    @property
    def status_thresholds(self) -> StatusThresholds:
        return StatusThresholds(up_to_date=self.up_to_date_days, pending=self.pending_days)


def _parse_operators(operators: Iterable[Any], diagnostics: Diagnostics) -> list[OperatorRecord]:
    parsed: list[OperatorRecord] = []
    for position, raw in enumerate(operators or (), start=1):
        record = parse_operator(raw, position, diagnostics)
        if record is not None:
            parsed.append(record)
    return parsed


def _parse_beneficiaries(
    beneficiaries: Iterable[Any],
    diagnostics: Diagnostics,
    *,
    min_phone_length: int,
) -> list[BeneficiaryRecord]:
    parsed: list[BeneficiaryRecord] = []
    seen: set[str] = set()
    for position, raw in enumerate(beneficiaries or (), start=1):
        record = parse_beneficiary(raw, position, diagnostics, min_phone_length=min_phone_length)
        if record is None:
            continue
        if record.beneficiary_id in seen:
            diagnostics.warn(f"Duplicate beneficiary id '{record.beneficiary_id}' at record #{position}; keeping the first")
            continue
        seen.add(record.beneficiary_id)
        parsed.append(record)
    return parsed


def _parse_calls(calls: Iterable[Any], diagnostics: Diagnostics, *, min_phone_length: int) -> list[CallEventRecord]:
    parsed: list[CallEventRecord] = []
    for position, raw in enumerate(calls or (), start=1):
        record = parse_call(raw, position, diagnostics, min_phone_length=min_phone_length)
        if record is not None:
            parsed.append(record)
    return parsed


def run_reconciliation(
    beneficiaries: Iterable[Any],
    assignments: Iterable[Any],
    calls: Iterable[Any],
    operators: Optional[Iterable[Any]] = None,
    *,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
) -> EngineResult:
    """Reconcile the three raw collections and compute call metrics.

    Inputs are loose mappings (or attribute objects) using any of the known
    field-name variants. The run never raises on bad data: problems are
    counted on the returned diagnostics instead.
    """
    config = config if config is not None else EngineConfig.from_settings()
    reference_time = parse_timestamp(now) if now is not None else None
    if reference_time is None:
        reference_time = datetime.now(timezone.utc).replace(tzinfo=None)

    diagnostics = Diagnostics()
    operator_records = _parse_operators(operators or (), diagnostics)
    beneficiary_records = _parse_beneficiaries(
        beneficiaries, diagnostics, min_phone_length=config.min_phone_length
    )

    directory = OperatorDirectory(operator_records, threshold=config.similarity_threshold)
    index = build_assignment_index(
        assignments,
        diagnostics,
        directory=directory,
        min_phone_length=config.min_phone_length,
    )
    reconciliation = reconcile(
        beneficiary_records,
        index,
        threshold=config.similarity_threshold,
        diagnostics=diagnostics,
    )

    call_records = _parse_calls(calls, diagnostics, min_phone_length=config.min_phone_length)
    activity = BeneficiaryActivity()
    metrics = aggregate(
        call_records,
        reconciliation,
        beneficiaries=BeneficiaryLookup(beneficiary_records, threshold=config.similarity_threshold),
        directory=directory,
        success_keywords=config.success_keywords,
        failure_keywords=config.failure_keywords,
        unassigned_label=config.unassigned_label,
        known_operator_ids=[operator.operator_id for operator in operator_records if operator.active],
        activity=activity,
        diagnostics=diagnostics,
    )
    statuses = build_beneficiary_statuses(
        beneficiary_records,
        reconciliation,
        activity,
        reference_time,
        config.status_thresholds,
    )

    summary = diagnostics.summary()
    skipped = summary.malformed_beneficiaries + summary.malformed_assignments + summary.malformed_calls
    if skipped or summary.orphan_assignments or summary.conflicting_matches:
        logging.warning(
            f"Reconciliation finished with data issues: {skipped} malformed records, "
            f"{summary.orphan_assignments} orphan assignments, "
            f"{summary.conflicting_matches} conflicting matches"
        )

    return EngineResult(
        reconciliation=reconciliation,
        metrics=metrics,
        beneficiary_statuses=statuses,
        diagnostics=summary,
        generated_at=reference_time,
    )

"""Derived, read-only structures produced by a reconciliation run."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class Outcome(str, Enum):
    SUCCESSFUL = "successful"
    FAILED = "failed"


class BeneficiaryStatus(str, Enum):
    UP_TO_DATE = "up_to_date"
    PENDING = "pending"
    URGENT = "urgent"


@dataclass(frozen=True, slots=True)
class AmbiguousMatch:
    """A beneficiary that more than one assignment entry could belong to."""

    beneficiary_id: str
    chosen_operator_id: str
    candidate_operator_ids: tuple[str, ...]
    conflicting: bool


@dataclass(frozen=True, slots=True)
class OrphanAssignment:
    """An assignment entry that matches no beneficiary in the registry."""

    position: int
    beneficiary_name: str
    phones: tuple[str, ...]
    operator_id: str


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    mapping: Mapping[str, str]
    unassigned: tuple[str, ...]
    orphan_assignments: tuple[OrphanAssignment, ...] = ()
    ambiguous_matches: tuple[AmbiguousMatch, ...] = ()

    def __post_init__(self) -> None:
        # read-only view over a private copy of the caller's dict
        object.__setattr__(self, "mapping", MappingProxyType(dict(self.mapping)))

    @property
    def assigned_count(self) -> int:
        return len(self.mapping)

    def operator_for(self, beneficiary_id: str) -> Optional[str]:
        return self.mapping.get(beneficiary_id)


@dataclass(frozen=True, slots=True)
class OperatorMetrics:
    operator_id: str
    display_name: str
    total_calls: int
    successful_calls: int
    failed_calls: int
    total_duration_seconds: int
    average_duration_seconds: float
    success_rate: float
    distinct_beneficiaries: int
    beneficiary_keys: tuple[str, ...] = ()
    is_unassigned: bool = False


@dataclass(frozen=True, slots=True)
class GlobalMetrics:
    total_calls: int
    successful_calls: int
    failed_calls: int
    total_duration_seconds: int
    average_duration_seconds: float
    success_rate: float
    distinct_beneficiaries: int
    unassigned_calls: int


@dataclass(frozen=True, slots=True)
class MetricsReport:
    per_operator: tuple[OperatorMetrics, ...]
    global_metrics: GlobalMetrics
    hourly_distribution: tuple[int, ...]
    totals_consistent: bool


@dataclass(frozen=True, slots=True)
class BeneficiaryStatusEntry:
    beneficiary_id: str
    name: str
    operator_id: Optional[str]
    status: BeneficiaryStatus
    last_successful_call: Optional[datetime]
    days_since_last_success: Optional[int]
    call_count: int


@dataclass(frozen=True, slots=True)
class DiagnosticsSummary:
    """Counts surfaced to operators for manual data cleanup."""

    malformed_beneficiaries: int = 0
    malformed_assignments: int = 0
    malformed_calls: int = 0
    beneficiaries_without_phone: int = 0
    unknown_operator_refs: int = 0
    orphan_assignments: int = 0
    ambiguous_matches: int = 0
    conflicting_matches: int = 0
    clamped_durations: int = 0
    unparsed_timestamps: int = 0
    unresolved_calls: int = 0
    warnings: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class EngineResult:
    reconciliation: ReconciliationResult
    metrics: MetricsReport
    beneficiary_statuses: tuple[BeneficiaryStatusEntry, ...]
    diagnostics: DiagnosticsSummary
    generated_at: datetime

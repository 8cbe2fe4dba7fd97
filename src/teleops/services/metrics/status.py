"""Recency-based follow-up status for beneficiaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from ...models.domain import BeneficiaryRecord
from ...models.results import BeneficiaryStatus, BeneficiaryStatusEntry, ReconciliationResult


@dataclass(frozen=True, slots=True)
class StatusThresholds:
    up_to_date: int = 15
    pending: int = 30

    def __post_init__(self) -> None:
        if self.up_to_date < 0:
            raise ValueError("up_to_date threshold must be >= 0")
        if self.pending < self.up_to_date:
            raise ValueError("pending threshold must be >= up_to_date threshold")


@dataclass(slots=True)
class BeneficiaryActivity:
    """Per-beneficiary call facts gathered while aggregating the call log."""

    last_success: dict[str, datetime] = field(default_factory=dict)
    call_counts: dict[str, int] = field(default_factory=dict)

    def record(self, beneficiary_id: str, occurred_at: Optional[datetime], successful: bool) -> None:
        self.call_counts[beneficiary_id] = self.call_counts.get(beneficiary_id, 0) + 1
        if not successful or occurred_at is None:
            return
        current = self.last_success.get(beneficiary_id)
        if current is None or occurred_at > current:
            self.last_success[beneficiary_id] = occurred_at


def days_between(earlier: datetime, later: datetime) -> int:
    return max((later - earlier).days, 0)


def classify_beneficiary_status(
    last_successful_call: Optional[datetime],
    now: datetime,
    thresholds: StatusThresholds = StatusThresholds(),
) -> BeneficiaryStatus:
    """Urgent without any successful call, otherwise by days since the last one."""
    if last_successful_call is None:
        return BeneficiaryStatus.URGENT
    elapsed = days_between(last_successful_call, now)
    if elapsed <= thresholds.up_to_date:
        return BeneficiaryStatus.UP_TO_DATE
    if elapsed <= thresholds.pending:
        return BeneficiaryStatus.PENDING
    return BeneficiaryStatus.URGENT


def build_beneficiary_statuses(
    beneficiaries: Sequence[BeneficiaryRecord],
    reconciliation: ReconciliationResult,
    activity: BeneficiaryActivity,
    now: datetime,
    thresholds: StatusThresholds = StatusThresholds(),
) -> tuple[BeneficiaryStatusEntry, ...]:
    entries: list[BeneficiaryStatusEntry] = []
    for beneficiary in beneficiaries:
        last_success = activity.last_success.get(beneficiary.beneficiary_id)
        entries.append(
            BeneficiaryStatusEntry(
                beneficiary_id=beneficiary.beneficiary_id,
                name=beneficiary.name,
                operator_id=reconciliation.mapping.get(beneficiary.beneficiary_id),
                status=classify_beneficiary_status(last_success, now, thresholds),
                last_successful_call=last_success,
                days_since_last_success=days_between(last_success, now) if last_success else None,
                call_count=activity.call_counts.get(beneficiary.beneficiary_id, 0),
            )
        )
    return tuple(entries)

"""Per-operator and global call statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from ...config import DEFAULT_FAILURE_KEYWORDS, DEFAULT_SUCCESS_KEYWORDS
from ...models.domain import BeneficiaryRecord, CallEventRecord
from ...models.results import GlobalMetrics, MetricsReport, OperatorMetrics, Outcome, ReconciliationResult
from ..reconciliation.diagnostics import Diagnostics
from ..reconciliation.matcher import DEFAULT_SIMILARITY_THRESHOLD, Identity, records_match
from ..reconciliation.normalizer import as_text, normalize_name
from ..reconciliation.reconciler import OperatorDirectory
from .status import BeneficiaryActivity

UNASSIGNED = "unassigned"


def classify_outcome(
    raw: Any,
    success_keywords: Iterable[str] = DEFAULT_SUCCESS_KEYWORDS,
    failure_keywords: Iterable[str] = DEFAULT_FAILURE_KEYWORDS,
) -> Outcome:
    """Binary outcome of a call from its free-text or structured result.

    Failure keywords are checked first so negated phrases such as
    "no exitoso" or "unsuccessful" never count as successes. Anything that
    matches no keyword is a failure.
    """
    if isinstance(raw, bool):
        return Outcome.SUCCESSFUL if raw else Outcome.FAILED
    text = normalize_name(as_text(raw))
    if not text:
        return Outcome.FAILED
    for keyword in failure_keywords:
        needle = normalize_name(keyword)
        if needle and needle in text:
            return Outcome.FAILED
    for keyword in success_keywords:
        needle = normalize_name(keyword)
        if needle and needle in text:
            return Outcome.SUCCESSFUL
    return Outcome.FAILED


class BeneficiaryLookup:
    """Resolves a call's free-text beneficiary identity to a registry id.

    Exact normalized name and phone hits are looked up directly; only
    identities that miss both fall back to the fuzzy scan. Results are cached
    per identity for the lifetime of one run.
    """

    def __init__(
        self,
        beneficiaries: Sequence[BeneficiaryRecord],
        *,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self.threshold = threshold
        self._beneficiaries = [(b.beneficiary_id, Identity.of(b)) for b in beneficiaries]
        self._by_name: dict[str, str] = {}
        self._by_phone: dict[str, str] = {}
        self._cache: dict[Identity, Optional[str]] = {}
        for beneficiary in beneficiaries:
            if beneficiary.normalized_name:
                self._by_name.setdefault(beneficiary.normalized_name, beneficiary.beneficiary_id)
            for phone in beneficiary.phones:
                self._by_phone.setdefault(phone, beneficiary.beneficiary_id)

    def find(self, identity: Identity) -> Optional[str]:
        if identity.is_empty:
            return None
        if identity in self._cache:
            return self._cache[identity]

        found = self._by_name.get(identity.name) if identity.name else None
        if found is None:
            for phone in sorted(identity.phones):
                found = self._by_phone.get(phone)
                if found is not None:
                    break
        if found is None:
            for beneficiary_id, candidate in self._beneficiaries:
                if records_match(identity, candidate, self.threshold):
                    found = beneficiary_id
                    break

        self._cache[identity] = found
        return found


def resolve_call_operator(
    call: CallEventRecord,
    reconciliation: ReconciliationResult,
    *,
    beneficiaries: Optional[BeneficiaryLookup] = None,
    directory: Optional[OperatorDirectory] = None,
    unassigned_label: str = UNASSIGNED,
) -> str:
    """Operator a call counts toward.

    An explicit operator on the call wins; otherwise the call's beneficiary is
    resolved through the reconciliation mapping; otherwise the call is
    unassigned.
    """
    if call.operator_ref:
        directory = directory if directory is not None else OperatorDirectory()
        return directory.resolve(call.operator_ref)[0]
    if beneficiaries is not None:
        beneficiary_id = beneficiaries.find(Identity.of(call))
        if beneficiary_id is not None:
            operator_id = reconciliation.mapping.get(beneficiary_id)
            if operator_id:
                return operator_id
    return unassigned_label


@dataclass(slots=True)
class _Tally:
    total: int = 0
    successful: int = 0
    failed: int = 0
    duration: int = 0
    beneficiaries: set[str] = field(default_factory=set)

    def add(self, outcome: Outcome, duration: int, beneficiary_key: Optional[str]) -> None:
        self.total += 1
        self.duration += duration
        if outcome is Outcome.SUCCESSFUL:
            self.successful += 1
        else:
            self.failed += 1
        if beneficiary_key:
            self.beneficiaries.add(beneficiary_key)


def _rate(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def _average(total: int, count: int) -> float:
    if not count:
        return 0.0
    return round(total / count, 1)


def _beneficiary_key(call: CallEventRecord, beneficiary_id: Optional[str]) -> Optional[str]:
    if beneficiary_id:
        return beneficiary_id
    if call.normalized_name:
        return call.normalized_name
    if call.phones:
        return min(call.phones)
    return None


def aggregate(
    calls: Sequence[CallEventRecord],
    reconciliation: ReconciliationResult,
    *,
    beneficiaries: Optional[BeneficiaryLookup] = None,
    directory: Optional[OperatorDirectory] = None,
    success_keywords: Iterable[str] = DEFAULT_SUCCESS_KEYWORDS,
    failure_keywords: Iterable[str] = DEFAULT_FAILURE_KEYWORDS,
    unassigned_label: str = UNASSIGNED,
    known_operator_ids: Iterable[str] = (),
    activity: Optional[BeneficiaryActivity] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> MetricsReport:
    """Roll the call log up per operator in a single pass.

    Global totals are tallied independently of the per-operator rows so the
    two can be cross-checked. Operators from ``known_operator_ids`` and from
    the reconciliation mapping get a row even when they placed no calls.
    """
    directory = directory if directory is not None else OperatorDirectory()
    success_keywords = tuple(success_keywords)
    failure_keywords = tuple(failure_keywords)

    tallies: dict[str, _Tally] = {}
    for operator_id in known_operator_ids:
        tallies.setdefault(operator_id, _Tally())
    for operator_id in reconciliation.mapping.values():
        if operator_id:
            tallies.setdefault(operator_id, _Tally())

    overall = _Tally()
    unassigned_calls = 0
    hourly = [0] * 24

    for call in calls:
        outcome = classify_outcome(call.outcome, success_keywords, failure_keywords)
        beneficiary_id = beneficiaries.find(Identity.of(call)) if beneficiaries is not None else None
        operator_id = resolve_call_operator(
            call,
            reconciliation,
            beneficiaries=beneficiaries,
            directory=directory,
            unassigned_label=unassigned_label,
        )
        key = _beneficiary_key(call, beneficiary_id)

        tallies.setdefault(operator_id, _Tally()).add(outcome, call.duration_seconds, key)
        overall.add(outcome, call.duration_seconds, key)

        if operator_id == unassigned_label:
            unassigned_calls += 1
            if diagnostics is not None:
                diagnostics.unresolved_calls += 1
        if call.hour is not None:
            hourly[call.hour] += 1
        if activity is not None and beneficiary_id is not None:
            activity.record(beneficiary_id, call.occurred_at, outcome is Outcome.SUCCESSFUL)

    rows = [
        OperatorMetrics(
            operator_id=operator_id,
            display_name=directory.display_name(operator_id),
            total_calls=tally.total,
            successful_calls=tally.successful,
            failed_calls=tally.failed,
            total_duration_seconds=tally.duration,
            average_duration_seconds=_average(tally.duration, tally.total),
            success_rate=_rate(tally.successful, tally.total),
            distinct_beneficiaries=len(tally.beneficiaries),
            beneficiary_keys=tuple(sorted(tally.beneficiaries)),
            is_unassigned=operator_id == unassigned_label,
        )
        for operator_id, tally in tallies.items()
    ]
    rows.sort(key=lambda row: (row.is_unassigned, -row.total_calls, row.display_name.lower()))

    global_metrics = GlobalMetrics(
        total_calls=overall.total,
        successful_calls=overall.successful,
        failed_calls=overall.failed,
        total_duration_seconds=overall.duration,
        average_duration_seconds=_average(overall.duration, overall.total),
        success_rate=_rate(overall.successful, overall.total),
        distinct_beneficiaries=len(overall.beneficiaries),
        unassigned_calls=unassigned_calls,
    )
    consistent = (
        sum(row.total_calls for row in rows) == global_metrics.total_calls
        and sum(row.successful_calls for row in rows) == global_metrics.successful_calls
        and sum(row.failed_calls for row in rows) == global_metrics.failed_calls
    )
    if not consistent:
        logging.error("Per-operator call totals do not add up to the global totals")

    logging.info(
        f"Aggregated {global_metrics.total_calls} calls across {len(rows)} operators "
        f"({global_metrics.success_rate}% successful, {unassigned_calls} unassigned)"
    )
    return MetricsReport(
        per_operator=tuple(rows),
        global_metrics=global_metrics,
        hourly_distribution=tuple(hourly),
        totals_consistent=consistent,
    )

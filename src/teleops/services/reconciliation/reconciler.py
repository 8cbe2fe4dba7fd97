"""Set-level reconciliation of the beneficiary registry against assignments."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from ...models.domain import BeneficiaryRecord, OperatorRecord
from ...models.results import AmbiguousMatch, OrphanAssignment, ReconciliationResult
from .diagnostics import Diagnostics
from .matcher import DEFAULT_SIMILARITY_THRESHOLD, Identity, records_match, similar_normalized
from .normalizer import DEFAULT_MIN_PHONE_LENGTH, normalize_name
from .records import parse_assignment


@dataclass(frozen=True, slots=True)
class AssignmentIndexEntry:
    position: int
    name: str
    display_name: str
    phones: frozenset[str]
    operator_ref: str
    operator_id: str

    @property
    def identity(self) -> Identity:
        return Identity(name=self.name, phones=self.phones)


class OperatorDirectory:
    """Canonicalises free-text operator references against the registry.

    Lookup order: exact id, normalized display name, email, then a fuzzy name
    match that must be unique. References the registry does not know are
    kept as their normalized text.
    """

    def __init__(
        self,
        operators: Iterable[OperatorRecord] = (),
        *,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self.threshold = threshold
        self._by_id: dict[str, OperatorRecord] = {}
        self._by_name: dict[str, OperatorRecord] = {}
        self._by_email: dict[str, OperatorRecord] = {}
        self._display_names: dict[str, str] = {}
        for operator in operators:
            self._by_id.setdefault(operator.operator_id, operator)
            if operator.normalized_name:
                self._by_name.setdefault(operator.normalized_name, operator)
            if operator.email:
                self._by_email.setdefault(operator.email, operator)
            self._display_names.setdefault(operator.operator_id, operator.display_name)

    def __len__(self) -> int:
        return len(self._by_id)

    def lookup(self, ref: Any) -> Optional[OperatorRecord]:
        text = str(ref).strip() if ref is not None else ""
        if not text:
            return None
        operator = self._by_id.get(text)
        if operator:
            return operator
        normalized = normalize_name(text)
        operator = self._by_name.get(normalized) or self._by_email.get(text.lower())
        if operator or not normalized:
            return operator
        candidates = [
            candidate
            for name, candidate in self._by_name.items()
            if similar_normalized(normalized, name, self.threshold)
        ]
        if len(candidates) == 1:
            return candidates[0]
        return None

    def resolve(self, ref: Any) -> tuple[str, bool]:
        """Return ``(operator_id, known)`` for a raw reference."""
        operator = self.lookup(ref)
        if operator:
            return operator.operator_id, True
        text = str(ref).strip()
        operator_id = normalize_name(text) or text
        self._display_names.setdefault(operator_id, text)
        return operator_id, False

    def display_name(self, operator_id: str) -> str:
        return self._display_names.get(operator_id, operator_id)


def build_assignment_index(
    assignments: Iterable[Any],
    diagnostics: Diagnostics,
    *,
    directory: Optional[OperatorDirectory] = None,
    min_phone_length: int = DEFAULT_MIN_PHONE_LENGTH,
) -> list[AssignmentIndexEntry]:
    """Normalize assignments and resolve who each one points at.

    Entries lacking either a beneficiary identity or an operator reference
    are dropped and counted as malformed.
    """
    directory = directory if directory is not None else OperatorDirectory()
    index: list[AssignmentIndexEntry] = []
    for position, raw in enumerate(assignments or (), start=1):
        record = parse_assignment(raw, position, min_phone_length=min_phone_length)
        if not record.normalized_name and not record.phones:
            diagnostics.record_malformed("assignments", position, "no beneficiary name or valid phone")
            continue
        if not record.operator_ref:
            diagnostics.record_malformed("assignments", position, "no operator reference")
            continue

        operator_id, known = directory.resolve(record.operator_ref)
        if not known and len(directory):
            diagnostics.unknown_operator_refs += 1
            diagnostics.warn(f"Assignment #{position} references unknown operator '{record.operator_ref}'")

        index.append(
            AssignmentIndexEntry(
                position=position,
                name=record.normalized_name,
                display_name=record.beneficiary_name,
                phones=record.phones,
                operator_ref=record.operator_ref,
                operator_id=operator_id,
            )
        )
    return index


def _phone_index(index: Sequence[AssignmentIndexEntry]) -> dict[str, list[int]]:
    lookup: dict[str, list[int]] = defaultdict(list)
    for offset, entry in enumerate(index):
        for phone in entry.phones:
            lookup[phone].append(offset)
    return lookup


def _matching_offsets(
    beneficiary: BeneficiaryRecord,
    index: Sequence[AssignmentIndexEntry],
    phone_lookup: dict[str, list[int]],
    threshold: float,
) -> list[int]:
    phone_hits: set[int] = set()
    for phone in beneficiary.phones:
        phone_hits.update(phone_lookup.get(phone, ()))
    return [
        offset
        for offset, entry in enumerate(index)
        if offset in phone_hits or similar_normalized(beneficiary.normalized_name, entry.name, threshold)
    ]


def _orphan(entry: AssignmentIndexEntry) -> OrphanAssignment:
    return OrphanAssignment(
        position=entry.position,
        beneficiary_name=entry.display_name,
        phones=tuple(sorted(entry.phones)),
        operator_id=entry.operator_id,
    )


def reconcile(
    beneficiaries: Sequence[BeneficiaryRecord],
    index: Sequence[AssignmentIndexEntry],
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    diagnostics: Optional[Diagnostics] = None,
) -> ReconciliationResult:
    """Map every beneficiary to the operator of its first matching assignment.

    When several assignment entries match one beneficiary the earliest entry
    in input order wins and the ambiguity is recorded on ``diagnostics``.
    Assignment entries matched by no beneficiary are reported as orphans.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    mapping: dict[str, str] = {}
    unassigned: list[str] = []
    ambiguous: list[AmbiguousMatch] = []
    matched_offsets: set[int] = set()
    phone_lookup = _phone_index(index)

    for beneficiary in beneficiaries:
        offsets = _matching_offsets(beneficiary, index, phone_lookup, threshold) if index else []
        if not offsets:
            unassigned.append(beneficiary.beneficiary_id)
            continue

        matched_offsets.update(offsets)
        chosen = index[offsets[0]]
        mapping[beneficiary.beneficiary_id] = chosen.operator_id

        if len(offsets) > 1:
            candidates = tuple(dict.fromkeys(index[offset].operator_id for offset in offsets))
            match = AmbiguousMatch(
                beneficiary_id=beneficiary.beneficiary_id,
                chosen_operator_id=chosen.operator_id,
                candidate_operator_ids=candidates,
                conflicting=len(candidates) > 1,
            )
            ambiguous.append(match)
            diagnostics.record_ambiguity(match)
            if match.conflicting:
                diagnostics.warn(
                    f"Beneficiary '{beneficiary.beneficiary_id}' matches assignments for "
                    f"{len(candidates)} operators; keeping '{chosen.operator_id}'"
                )

    orphans = [_orphan(entry) for offset, entry in enumerate(index) if offset not in matched_offsets]
    diagnostics.orphan_assignments += len(orphans)

    logging.info(
        f"Reconciled {len(beneficiaries)} beneficiaries against {len(index)} assignments: "
        f"{len(mapping)} assigned, {len(unassigned)} unassigned, "
        f"{len(orphans)} orphan assignments, {len(ambiguous)} ambiguous"
    )
    return ReconciliationResult(
        mapping=mapping,
        unassigned=tuple(unassigned),
        orphan_assignments=tuple(orphans),
        ambiguous_matches=tuple(ambiguous),
    )


def find_orphan_assignments(
    index: Sequence[AssignmentIndexEntry],
    beneficiaries: Sequence[BeneficiaryRecord],
    *,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[OrphanAssignment]:
    """Assignment entries that match no beneficiary in the registry."""
    identities = [Identity.of(beneficiary) for beneficiary in beneficiaries]
    return [
        _orphan(entry)
        for entry in index
        if not any(records_match(entry.identity, identity, threshold) for identity in identities)
    ]

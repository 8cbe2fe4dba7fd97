"""Per-run accumulator for data-quality findings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ...models.results import AmbiguousMatch, DiagnosticsSummary

MAX_WARNINGS = 50


@dataclass(slots=True)
class Diagnostics:
    """Mutable counters owned by a single reconciliation run.

    A fresh instance is created for every invocation of the engine and frozen
    into a :class:`DiagnosticsSummary` once the run completes.
    """

    malformed_beneficiaries: int = 0
    malformed_assignments: int = 0
    malformed_calls: int = 0
    beneficiaries_without_phone: int = 0
    unknown_operator_refs: int = 0
    orphan_assignments: int = 0
    clamped_durations: int = 0
    unparsed_timestamps: int = 0
    unresolved_calls: int = 0
    ambiguous: list[AmbiguousMatch] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suppressed_warnings: int = 0

    def warn(self, message: str) -> None:
        if len(self.warnings) < MAX_WARNINGS:
            self.warnings.append(message)
            logging.debug(message)
        else:
            self.suppressed_warnings += 1

    def record_malformed(self, kind: str, position: int, reason: str) -> None:
        attribute = f"malformed_{kind}"
        setattr(self, attribute, getattr(self, attribute) + 1)
        self.warn(f"Skipping {kind} record #{position}: {reason}")

    def record_ambiguity(self, match: AmbiguousMatch) -> None:
        self.ambiguous.append(match)

    def summary(self) -> DiagnosticsSummary:
        warnings = list(self.warnings)
        if self.suppressed_warnings:
            warnings.append(f"... {self.suppressed_warnings} more warnings suppressed")
        return DiagnosticsSummary(
            malformed_beneficiaries=self.malformed_beneficiaries,
            malformed_assignments=self.malformed_assignments,
            malformed_calls=self.malformed_calls,
            beneficiaries_without_phone=self.beneficiaries_without_phone,
            unknown_operator_refs=self.unknown_operator_refs,
            orphan_assignments=self.orphan_assignments,
            ambiguous_matches=len(self.ambiguous),
            conflicting_matches=sum(1 for match in self.ambiguous if match.conflicting),
            clamped_durations=self.clamped_durations,
            unparsed_timestamps=self.unparsed_timestamps,
            unresolved_calls=self.unresolved_calls,
            warnings=tuple(warnings),
        )

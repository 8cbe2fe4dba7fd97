"""Domain models for the call-center source records."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class BeneficiaryRecord:
    """A beneficiary from the registry, with its canonical identity fields."""

    beneficiary_id: str
    name: str
    normalized_name: str
    address: Optional[str]
    phones: frozenset[str]
    created_at: Optional[datetime]
    raw: dict = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True, slots=True)
class OperatorRecord:
    """A teleoperator that can own beneficiaries and place calls."""

    operator_id: str
    display_name: str
    normalized_name: str
    email: Optional[str]
    active: bool = True


@dataclass(frozen=True, slots=True)
class AssignmentRecord:
    """A declared operator/beneficiary pairing as received from upstream.

    The operator reference is whichever of the id, display name or free-text
    operator fields was populated first; nothing here is checked against the
    registry yet.
    """

    position: int
    beneficiary_name: str
    normalized_name: str
    phones: frozenset[str]
    operator_ref: Optional[str]
    raw: dict = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True, slots=True)
class CallEventRecord:
    """A single entry of the call log."""

    position: int
    occurred_at: Optional[datetime]
    outcome: object
    duration_seconds: int
    beneficiary_name: str
    normalized_name: str
    phones: frozenset[str]
    operator_ref: Optional[str]
    hour: Optional[int] = None
    raw: dict = field(default_factory=dict, compare=False, hash=False)

"""Pairwise identity comparison between normalized records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .normalizer import normalize_name

DEFAULT_SIMILARITY_THRESHOLD = 0.8


@dataclass(frozen=True, slots=True)
class Identity:
    """What two records are compared on: a normalized name and valid phones."""

    name: str
    phones: frozenset[str]

    @classmethod
    def of(cls, record: Any) -> "Identity":
        return cls(
            name=getattr(record, "normalized_name", "") or "",
            phones=getattr(record, "phones", frozenset()) or frozenset(),
        )

    @property
    def is_empty(self) -> bool:
        return not self.name and not self.phones


def token_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the whitespace-separated word sets of ``a`` and ``b``."""
    words_a = set(a.split())
    words_b = set(b.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def names_similar(a: Any, b: Any, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    """Decide whether two names refer to the same person.

    Inputs are normalized first, so raw and already-normalized names can be
    mixed. Exact match and containment short-circuit; otherwise the token-set
    similarity must reach ``threshold``.
    """
    return similar_normalized(normalize_name(a), normalize_name(b), threshold)


def similar_normalized(norm_a: str, norm_b: str, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    """Same decision as :func:`names_similar` for names that are already normalized."""
    if not norm_a or not norm_b:
        return False
    if norm_a == norm_b:
        return True
    if norm_a in norm_b or norm_b in norm_a:
        return True
    return token_similarity(norm_a, norm_b) >= threshold


def phones_match(a: Optional[Iterable[str]], b: Optional[Iterable[str]]) -> bool:
    """True when the two phone collections share at least one number."""
    if not a or not b:
        return False
    try:
        return not set(a).isdisjoint(b)
    except TypeError:
        return False


def records_match(a: Any, b: Any, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    """Name similarity or a shared phone is enough to call two records the same."""
    left = a if isinstance(a, Identity) else Identity.of(a)
    right = b if isinstance(b, Identity) else Identity.of(b)
    return similar_normalized(left.name, right.name, threshold) or phones_match(left.phones, right.phones)

"""Canonical forms for free-text names, phone numbers and aliased fields.

Every upstream producer spells the same field differently ("fono",
"telefono", "phone", "numero_cliente"...) and writes names with accents,
stray punctuation and inconsistent casing. Everything downstream of this
module works on the canonical values only.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any, Iterable, Mapping, Optional, Sequence

_NON_ALNUM = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")

DEFAULT_MIN_PHONE_LENGTH = 8


# Ordered candidate field names per record type and canonical field. The
# first non-empty candidate wins.
FIELD_ALIASES: dict[str, dict[str, tuple[str, ...]]] = {
    "beneficiary": {
        "id": ("id", "beneficiaryId", "beneficiary_id", "uid", "docId"),
        "name": ("nombre", "Nombre", "name", "fullName", "full_name", "beneficiario", "beneficiary"),
        "address": ("direccion", "Direccion", "Dirección", "address", "domicilio"),
        "phone": ("fono", "Fono", "telefono", "Telefono", "phone", "primaryPhone", "numero_cliente"),
        "sim": ("sim", "Sim", "SIM"),
        "app_sim": ("appSim", "App Sim", "app_sim", "AppSim"),
        "created_at": ("creationDate", "createdAt", "created_at", "fechaCreacion", "fecha_creacion"),
    },
    "operator": {
        "id": ("id", "operatorId", "operator_id", "uid"),
        "name": ("name", "nombre", "displayName", "display_name", "operatorName", "operator_name"),
        "email": ("email", "correo", "mail"),
        "active": ("active", "activo", "isActive", "is_active"),
    },
    "assignment": {
        "operator_id": ("operatorId", "operator_id", "operadoraId", "teleoperadoraId"),
        "operator_name": ("operatorName", "operator_name", "operadoraNombre", "teleoperadora"),
        "operator": ("operator", "operador", "operadora", "agente"),
        "name": ("beneficiary", "beneficiario", "nombre", "name", "beneficiaryName"),
        "phone": ("phone", "primaryPhone", "telefono", "fono", "numero_cliente"),
        "sim": ("sim", "Sim"),
        "app_sim": ("appSim", "App Sim", "app_sim"),
    },
    "call": {
        "occurred_at": ("fecha", "date", "timestamp", "fechaHora", "createdAt", "fecha_llamada"),
        "hour": ("hora", "hour", "time"),
        "outcome": ("resultado", "result", "categoria", "outcome", "status", "estado"),
        "duration": ("duracion", "duration", "durationSeconds", "duration_seconds", "segundos"),
        "name": ("beneficiario", "beneficiary", "nombre", "name", "cliente"),
        "phone": ("numero_cliente", "phone", "telefono", "fono", "numero"),
        "sim": ("sim", "Sim"),
        "operator_id": ("operatorId", "operator_id"),
        "operator": ("operador", "operator", "operadora", "teleoperadora", "agente", "operatorName"),
    },
}

PHONE_FIELDS = ("phone", "sim", "app_sim")


def normalize_name(raw: Any) -> str:
    """Return the comparable form of a free-text name.

    Lowercases, strips diacritics, removes punctuation, collapses whitespace
    runs and trims. Empty or non-string input yields ``""``.
    """
    if not isinstance(raw, str) or not raw:
        return ""
    decomposed = unicodedata.normalize("NFKD", raw.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_ALNUM.sub("", stripped)
    return _WHITESPACE.sub(" ", cleaned).strip()


def normalize_phone(raw: Any, min_length: int = DEFAULT_MIN_PHONE_LENGTH) -> Optional[str]:
    """Return the bare digit string of a phone number, or ``None`` if unusable.

    All-zero sentinels and numbers shorter than ``min_length`` digits are
    treated as invalid.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, float):
        if raw != raw or raw < 0:
            return None
        raw = str(int(raw)) if raw.is_integer() else str(raw)
    digits = _NON_DIGIT.sub("", str(raw))
    if not digits or set(digits) == {"0"}:
        return None
    if len(digits) < min_length:
        return None
    return digits


def get_field(record: Any, name: str) -> Any:
    """Read ``name`` from a mapping or attribute object, case-insensitively."""
    if isinstance(record, Mapping):
        if name in record:
            return record[name]
        lowered = name.lower()
        for key, value in record.items():
            if isinstance(key, str) and key.lower() == lowered:
                return value
        return None
    return getattr(record, name, None)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def resolve_alias(record: Any, candidates: Sequence[str]) -> Any:
    """Return the first non-empty value among ``candidates`` on ``record``."""
    if record is None:
        return None
    for candidate in candidates:
        value = get_field(record, candidate)
        if not _is_blank(value):
            return value.strip() if isinstance(value, str) else value
    return None


def resolve_field(record: Any, record_type: str, field: str) -> Any:
    """Resolve a canonical ``field`` of ``record_type`` through the alias table."""
    return resolve_alias(record, FIELD_ALIASES[record_type][field])


def extract_valid_phones(
    record: Any,
    record_type: str = "beneficiary",
    *,
    fields: Iterable[str] = PHONE_FIELDS,
    min_length: int = DEFAULT_MIN_PHONE_LENGTH,
) -> frozenset[str]:
    """Collect every valid, deduplicated phone found on ``record``."""
    aliases = FIELD_ALIASES[record_type]
    phones: set[str] = set()
    for field in fields:
        if field not in aliases:
            continue
        value = resolve_alias(record, aliases[field])
        phone = normalize_phone(value, min_length=min_length)
        if phone:
            phones.add(phone)
    return frozenset(phones)


def as_text(value: Any) -> str:
    """Render a scalar field as trimmed text; ``None`` becomes ``""``."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()

"""Coercion of loosely-shaped upstream rows into canonical domain records."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from ...models.domain import AssignmentRecord, BeneficiaryRecord, CallEventRecord, OperatorRecord
from .diagnostics import Diagnostics
from .normalizer import (
    DEFAULT_MIN_PHONE_LENGTH,
    as_text,
    extract_valid_phones,
    normalize_name,
    resolve_field,
)

_EXCEL_EPOCH = datetime(1899, 12, 30)
_CLOCK = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")
_DATE_LIKE = re.compile(r"^\d{1,4}[/-]\d{1,2}[/-]\d{1,4}")
_DATE_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d-%m-%Y %H:%M:%S",
    "%d-%m-%Y %H:%M",
    "%d-%m-%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)

# Status words that upstream exports sometimes leave in the operator column.
NON_OPERATOR_VALUES = frozenset(
    {
        "ocupado",
        "sin respuesta",
        "no contesta",
        "no identificado",
        "llamado exitoso",
        "sin asignar",
        "busy",
        "no answer",
        "unassigned",
    }
)

_FALSE_STRINGS = {"false", "0", "no", "n", "inactive", "inactivo", "inactiva"}


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_epoch(seconds: float) -> Optional[datetime]:
    if not math.isfinite(seconds):
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
    except (ValueError, OverflowError, OSError):
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse the timestamp shapes seen in uploads and store documents.

    Returns a naive UTC datetime, or ``None`` when the value is unusable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            return _from_epoch(seconds)
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        if value < 100_000:
            # spreadsheet serial day number
            return _EXCEL_EPOCH + timedelta(days=float(value))
        if value > 100_000_000_000:
            value = value / 1000.0
        return _from_epoch(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return _naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            pass
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    return None


def parse_duration(value: Any) -> Optional[int]:
    """Return a duration in whole seconds, or ``None`` if it cannot be read.

    Accepts numbers, numeric strings, ``mm:ss`` and ``hh:mm:ss``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return int(round(value))
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    text = str(value).strip()
    if not text:
        return None
    if ":" in text:
        parts = text.split(":")
        if len(parts) in (2, 3) and all(part.strip().isdigit() for part in parts):
            seconds = 0
            for part in parts:
                seconds = seconds * 60 + int(part)
            return seconds
        return None
    try:
        return int(round(float(text.replace(",", "."))))
    except (ValueError, OverflowError):
        return None


def parse_hour(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.hour
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        hour = int(value)
        return hour if 0 <= hour < 24 else None
    match = re.match(r"^\s*(\d{1,2})", str(value))
    if not match:
        return None
    hour = int(match.group(1))
    return hour if 0 <= hour < 24 else None


def parse_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if not text:
        return default
    return text not in _FALSE_STRINGS


def is_plausible_operator_name(value: Any) -> bool:
    """Reject values that ended up in an operator column but name nobody.

    Clock times, dates, bare numbers and outcome words are common artefacts of
    shifted spreadsheet columns.
    """
    text = as_text(value)
    if len(text) < 3:
        return False
    if text.isdigit() or _CLOCK.match(text) or _DATE_LIKE.match(text):
        return False
    return normalize_name(text) not in NON_OPERATOR_VALUES


def parse_beneficiary(
    raw: Any,
    position: int,
    diagnostics: Diagnostics,
    *,
    min_phone_length: int = DEFAULT_MIN_PHONE_LENGTH,
) -> Optional[BeneficiaryRecord]:
    name = as_text(resolve_field(raw, "beneficiary", "name"))
    normalized = normalize_name(name)
    if not normalized:
        diagnostics.record_malformed("beneficiaries", position, "missing name")
        return None

    beneficiary_id = as_text(resolve_field(raw, "beneficiary", "id")) or f"row-{position}"
    phones = extract_valid_phones(raw, "beneficiary", min_length=min_phone_length)
    if not phones:
        diagnostics.beneficiaries_without_phone += 1

    address = as_text(resolve_field(raw, "beneficiary", "address")) or None
    created_raw = resolve_field(raw, "beneficiary", "created_at")
    created_at = parse_timestamp(created_raw)
    if created_raw is not None and created_at is None:
        diagnostics.unparsed_timestamps += 1

    return BeneficiaryRecord(
        beneficiary_id=beneficiary_id,
        name=name,
        normalized_name=normalized,
        address=address,
        phones=phones,
        created_at=created_at,
        raw=dict(raw) if isinstance(raw, Mapping) else {},
    )


def parse_operator(raw: Any, position: int, diagnostics: Diagnostics) -> Optional[OperatorRecord]:
    operator_id = as_text(resolve_field(raw, "operator", "id"))
    display_name = as_text(resolve_field(raw, "operator", "name"))
    if not operator_id and not display_name:
        diagnostics.warn(f"Skipping operator record #{position}: missing id and name")
        return None
    return OperatorRecord(
        operator_id=operator_id or display_name,
        display_name=display_name or operator_id,
        normalized_name=normalize_name(display_name),
        email=(as_text(resolve_field(raw, "operator", "email")).lower() or None),
        active=parse_bool(resolve_field(raw, "operator", "active")),
    )


def _operator_reference(raw: Any, record_type: str, id_field: str, text_fields: tuple[str, ...]) -> Optional[str]:
    explicit = as_text(resolve_field(raw, record_type, id_field))
    if explicit:
        return explicit
    for field in text_fields:
        candidate = resolve_field(raw, record_type, field)
        if candidate is not None and is_plausible_operator_name(candidate):
            return as_text(candidate)
    return None


def parse_assignment(
    raw: Any,
    position: int,
    *,
    min_phone_length: int = DEFAULT_MIN_PHONE_LENGTH,
) -> AssignmentRecord:
    name = as_text(resolve_field(raw, "assignment", "name"))
    return AssignmentRecord(
        position=position,
        beneficiary_name=name,
        normalized_name=normalize_name(name),
        phones=extract_valid_phones(raw, "assignment", min_length=min_phone_length),
        operator_ref=_operator_reference(raw, "assignment", "operator_id", ("operator_name", "operator")),
        raw=dict(raw) if isinstance(raw, Mapping) else {},
    )


def parse_call(
    raw: Any,
    position: int,
    diagnostics: Diagnostics,
    *,
    min_phone_length: int = DEFAULT_MIN_PHONE_LENGTH,
) -> Optional[CallEventRecord]:
    name = as_text(resolve_field(raw, "call", "name"))
    normalized = normalize_name(name)
    phones = extract_valid_phones(raw, "call", fields=("phone", "sim"), min_length=min_phone_length)
    operator_ref = _operator_reference(raw, "call", "operator_id", ("operator",))
    if operator_ref and normalize_name(operator_ref) == normalized:
        # the beneficiary name was copied into the operator column
        operator_ref = None

    if not normalized and not phones and not operator_ref:
        diagnostics.record_malformed("calls", position, "no beneficiary or operator identifier")
        return None

    duration_raw = resolve_field(raw, "call", "duration")
    duration = parse_duration(duration_raw)
    if duration is None:
        if duration_raw is not None:
            diagnostics.clamped_durations += 1
        duration = 0
    elif duration < 0:
        diagnostics.clamped_durations += 1
        duration = 0

    occurred_raw = resolve_field(raw, "call", "occurred_at")
    occurred_at = parse_timestamp(occurred_raw)
    if occurred_raw is not None and occurred_at is None:
        diagnostics.unparsed_timestamps += 1

    hour_raw = resolve_field(raw, "call", "hour")
    hour = parse_hour(hour_raw)
    if hour is None and as_text(hour_raw):
        diagnostics.unparsed_timestamps += 1
    if hour is None and occurred_at is not None and occurred_at.time() != datetime.min.time():
        hour = occurred_at.hour

    return CallEventRecord(
        position=position,
        occurred_at=occurred_at,
        outcome=resolve_field(raw, "call", "outcome"),
        duration_seconds=duration,
        beneficiary_name=name,
        normalized_name=normalized,
        phones=phones,
        operator_ref=operator_ref,
        hour=hour,
        raw=dict(raw) if isinstance(raw, Mapping) else {},
    )

from datetime import datetime, timedelta

import pytest

from src.teleops.models.results import BeneficiaryStatus, Outcome, ReconciliationResult
from src.teleops.services.metrics.aggregator import (
    BeneficiaryLookup,
    aggregate,
    classify_outcome,
    resolve_call_operator,
)
from src.teleops.services.metrics.status import (
    BeneficiaryActivity,
    StatusThresholds,
    build_beneficiary_statuses,
    classify_beneficiary_status,
)
from src.teleops.services.reconciliation.diagnostics import Diagnostics
from src.teleops.services.reconciliation.matcher import Identity
from src.teleops.services.reconciliation.records import parse_beneficiary, parse_call

NOW = datetime(2024, 6, 30, 12, 0)


def _beneficiaries():
    diagnostics = Diagnostics()
    rows = [
        {"id": "b1", "nombre": "Juan Pérez", "fono": "987654321"},
        {"id": "b2", "nombre": "Rosa Muñoz", "fono": "223334444"},
    ]
    return [parse_beneficiary(row, position, diagnostics) for position, row in enumerate(rows, start=1)]


def _calls(*rows):
    diagnostics = Diagnostics()
    return [parse_call(row, position, diagnostics) for position, row in enumerate(rows, start=1)]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Llamado exitoso", Outcome.SUCCESSFUL),
        ("EXITOSO", Outcome.SUCCESSFUL),
        ("Answered", Outcome.SUCCESSFUL),
        ("Contactado", Outcome.SUCCESSFUL),
        ("No exitoso", Outcome.FAILED),
        ("Unsuccessful", Outcome.FAILED),
        ("No contesta", Outcome.FAILED),
        ("No contactado", Outcome.FAILED),
        ("Ocupado", Outcome.FAILED),
        ("", Outcome.FAILED),
        (None, Outcome.FAILED),
        (True, Outcome.SUCCESSFUL),
        (False, Outcome.FAILED),
    ],
)
def test_classify_outcome(raw, expected):
    assert classify_outcome(raw) is expected


def test_classify_outcome_with_custom_keywords():
    assert classify_outcome("Atendida", success_keywords=("atendida",), failure_keywords=()) is Outcome.SUCCESSFUL


@pytest.mark.parametrize(
    "days_ago, expected",
    [
        (10, BeneficiaryStatus.UP_TO_DATE),
        (15, BeneficiaryStatus.UP_TO_DATE),
        (20, BeneficiaryStatus.PENDING),
        (30, BeneficiaryStatus.PENDING),
        (40, BeneficiaryStatus.URGENT),
    ],
)
def test_classify_beneficiary_status(days_ago, expected):
    assert classify_beneficiary_status(NOW - timedelta(days=days_ago), NOW) is expected


def test_never_successfully_called_is_urgent():
    assert classify_beneficiary_status(None, NOW) is BeneficiaryStatus.URGENT


def test_status_thresholds_are_configurable_and_validated():
    thresholds = StatusThresholds(up_to_date=5, pending=10)
    assert classify_beneficiary_status(NOW - timedelta(days=7), NOW, thresholds) is BeneficiaryStatus.PENDING
    with pytest.raises(ValueError):
        StatusThresholds(up_to_date=20, pending=10)
    with pytest.raises(ValueError):
        StatusThresholds(up_to_date=-1)


def test_beneficiary_lookup_uses_name_phone_then_fuzzy_match():
    lookup = BeneficiaryLookup(_beneficiaries())

    assert lookup.find(Identity(name="juan perez", phones=frozenset())) == "b1"
    assert lookup.find(Identity(name="", phones=frozenset({"223334444"}))) == "b2"
    assert lookup.find(Identity(name="rosa munoz diaz", phones=frozenset())) == "b2"
    assert lookup.find(Identity(name="pedro soto", phones=frozenset())) is None
    assert lookup.find(Identity(name="", phones=frozenset())) is None


def test_resolve_call_operator_fallback_chain():
    reconciliation = ReconciliationResult(mapping={"b1": "op-1"}, unassigned=("b2",))
    lookup = BeneficiaryLookup(_beneficiaries())
    explicit, via_mapping, unassigned, unknown = _calls(
        {"beneficiario": "Rosa Muñoz", "operador": "Luis Vera"},
        {"beneficiario": "Juan Perez"},
        {"beneficiario": "Rosa Muñoz"},
        {"beneficiario": "Pedro Soto"},
    )

    assert resolve_call_operator(explicit, reconciliation, beneficiaries=lookup) == "luis vera"
    assert resolve_call_operator(via_mapping, reconciliation, beneficiaries=lookup) == "op-1"
    assert resolve_call_operator(unassigned, reconciliation, beneficiaries=lookup) == "unassigned"
    assert resolve_call_operator(unknown, reconciliation, beneficiaries=lookup) == "unassigned"
    assert resolve_call_operator(via_mapping, reconciliation) == "unassigned"


def test_aggregate_totals_add_up_and_rates_are_percentages():
    reconciliation = ReconciliationResult(mapping={"b1": "op-1"}, unassigned=("b2",))
    calls = _calls(
        {"beneficiario": "Juan Perez", "resultado": "Llamado exitoso", "duracion": 120, "hora": "10:05"},
        {"beneficiario": "Juan Perez", "resultado": "No contesta", "duracion": 30, "hora": "10:40"},
        {"beneficiario": "Rosa Muñoz", "resultado": "Exitoso", "duracion": 60, "hora": "15:00"},
        {"numero_cliente": "987654321", "resultado": "Sin respuesta", "duracion": 0},
    )
    diagnostics = Diagnostics()

    report = aggregate(
        calls,
        reconciliation,
        beneficiaries=BeneficiaryLookup(_beneficiaries()),
        known_operator_ids=["op-2"],
        diagnostics=diagnostics,
    )

    rows = {row.operator_id: row for row in report.per_operator}
    assert set(rows) == {"op-1", "op-2", "unassigned"}

    op1 = rows["op-1"]
    assert (op1.total_calls, op1.successful_calls, op1.failed_calls) == (3, 1, 2)
    assert op1.success_rate == pytest.approx(33.3)
    assert op1.average_duration_seconds == pytest.approx(50.0)
    assert op1.distinct_beneficiaries == 1
    assert op1.beneficiary_keys == ("b1",)

    assert rows["op-2"].total_calls == 0
    assert rows["op-2"].success_rate == 0.0
    assert rows["unassigned"].is_unassigned
    assert rows["unassigned"].beneficiary_keys == ("b2",)

    totals = report.global_metrics
    assert totals.total_calls == 4
    assert totals.successful_calls == 2
    assert totals.success_rate == pytest.approx(50.0)
    assert totals.distinct_beneficiaries == 2
    assert totals.unassigned_calls == 1
    assert sum(row.total_calls for row in report.per_operator) == totals.total_calls
    assert sum(row.successful_calls for row in report.per_operator) == totals.successful_calls
    assert sum(row.failed_calls for row in report.per_operator) == totals.failed_calls
    assert report.totals_consistent
    assert report.hourly_distribution[10] == 2
    assert report.hourly_distribution[15] == 1
    assert sum(report.hourly_distribution) == 3
    assert diagnostics.unresolved_calls == 1


def test_aggregate_without_calls_is_zeroed():
    report = aggregate([], ReconciliationResult(mapping={}, unassigned=()))

    assert report.per_operator == ()
    assert report.global_metrics.total_calls == 0
    assert report.global_metrics.success_rate == 0.0
    assert report.hourly_distribution == (0,) * 24
    assert report.totals_consistent


def test_build_beneficiary_statuses_uses_latest_successful_call():
    beneficiaries = _beneficiaries()
    reconciliation = ReconciliationResult(mapping={"b1": "op-1"}, unassigned=("b2",))
    activity = BeneficiaryActivity()
    activity.record("b1", NOW - timedelta(days=40), True)
    activity.record("b1", NOW - timedelta(days=10), True)
    activity.record("b1", NOW - timedelta(days=2), False)

    entries = build_beneficiary_statuses(beneficiaries, reconciliation, activity, NOW)

    juan, rosa = entries
    assert juan.status is BeneficiaryStatus.UP_TO_DATE
    assert juan.days_since_last_success == 10
    assert juan.call_count == 3
    assert juan.operator_id == "op-1"
    assert rosa.status is BeneficiaryStatus.URGENT
    assert rosa.last_successful_call is None
    assert rosa.operator_id is None
    assert rosa.call_count == 0

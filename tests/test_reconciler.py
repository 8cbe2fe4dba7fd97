import pytest

from src.teleops.services.reconciliation.diagnostics import Diagnostics
from src.teleops.services.reconciliation.records import parse_beneficiary, parse_operator
from src.teleops.services.reconciliation.reconciler import (
    OperatorDirectory,
    build_assignment_index,
    find_orphan_assignments,
    reconcile,
)


def _beneficiaries(*rows):
    diagnostics = Diagnostics()
    return [parse_beneficiary(row, position, diagnostics) for position, row in enumerate(rows, start=1)]


def _directory(*rows):
    diagnostics = Diagnostics()
    return OperatorDirectory([parse_operator(row, position, diagnostics) for position, row in enumerate(rows, start=1)])


JUAN = {"id": "b1", "nombre": "Juan Pérez", "fono": "9 8765 4321"}
ROSA = {"id": "b2", "nombre": "Rosa Muñoz", "fono": "223334444"}


def test_operator_directory_resolves_id_name_email_and_fuzzy_name():
    directory = _directory(
        {"id": "op-1", "nombre": "María González", "email": "maria@example.org"},
        {"id": "op-2", "nombre": "Luis Vera"},
    )

    assert directory.resolve("op-1") == ("op-1", True)
    assert directory.resolve("MARIA GONZALEZ") == ("op-1", True)
    assert directory.resolve("Maria@Example.org") == ("op-1", True)
    assert directory.resolve("Luis Vera Soto") == ("op-2", True)
    assert directory.resolve("Carla Díaz") == ("carla diaz", False)
    assert directory.display_name("carla diaz") == "Carla Díaz"


def test_build_assignment_index_resolves_operator_reference_in_order():
    diagnostics = Diagnostics()
    index = build_assignment_index(
        [
            {"beneficiario": "Juan Pérez", "operatorId": "op-1", "operatorName": "Someone Else"},
            {"beneficiario": "Rosa Muñoz", "operatorName": "Luis Vera", "operador": "Ana Rojas"},
            {"beneficiario": "Pedro Soto", "operador": "Ana Rojas"},
        ],
        diagnostics,
    )

    assert [entry.operator_ref for entry in index] == ["op-1", "Luis Vera", "Ana Rojas"]
    assert [entry.operator_id for entry in index] == ["op1", "luis vera", "ana rojas"]
    assert diagnostics.malformed_assignments == 0


def test_build_assignment_index_excludes_and_counts_malformed_entries():
    diagnostics = Diagnostics()
    index = build_assignment_index(
        [
            {"beneficiario": "Juan Pérez"},
            {"operador": "Ana Rojas"},
            {"beneficiario": "Rosa Muñoz", "operador": "Ocupado"},
            {"beneficiario": "Rosa Muñoz", "operador": "10:45"},
            {"beneficiario": "Pedro Soto", "operador": "Ana Rojas"},
        ],
        diagnostics,
    )

    assert len(index) == 1
    assert diagnostics.malformed_assignments == 4


def test_build_assignment_index_counts_unknown_operators_against_registry():
    diagnostics = Diagnostics()
    directory = _directory({"id": "op-1", "nombre": "María González"})
    index = build_assignment_index(
        [
            {"beneficiario": "Juan Pérez", "operador": "Maria Gonzalez"},
            {"beneficiario": "Rosa Muñoz", "operador": "Carla Díaz"},
        ],
        diagnostics,
        directory=directory,
    )

    assert [entry.operator_id for entry in index] == ["op-1", "carla diaz"]
    assert diagnostics.unknown_operator_refs == 1


def test_reconcile_with_empty_index_leaves_everyone_unassigned():
    beneficiaries = _beneficiaries(JUAN, ROSA)

    result = reconcile(beneficiaries, [])

    assert result.mapping == {}
    assert result.unassigned == ("b1", "b2")
    assert result.orphan_assignments == ()
    assert result.assigned_count == 0


def test_reconcile_maps_by_name_and_reports_orphans():
    diagnostics = Diagnostics()
    beneficiaries = _beneficiaries(JUAN, ROSA)
    index = build_assignment_index(
        [
            {"beneficiario": "juan perez", "operador": "María González"},
            {"beneficiario": "Pedro Soto", "operador": "María González"},
        ],
        diagnostics,
    )

    result = reconcile(beneficiaries, index, diagnostics=diagnostics)

    assert result.mapping == {"b1": "maria gonzalez"}
    assert result.operator_for("b2") is None
    assert result.unassigned == ("b2",)
    assert [orphan.beneficiary_name for orphan in result.orphan_assignments] == ["Pedro Soto"]
    assert result.orphan_assignments[0].position == 2
    assert diagnostics.orphan_assignments == 1

    with pytest.raises(TypeError):
        result.mapping["b2"] = "maria gonzalez"
    assert result.operator_for("b2") is None


def test_reconcile_matches_on_shared_phone():
    beneficiaries = _beneficiaries(JUAN)
    index = build_assignment_index([{"nombre": "J. Perez", "fono": "987654321", "operador": "Luis Vera"}], Diagnostics())

    result = reconcile(beneficiaries, index)

    assert result.mapping == {"b1": "luis vera"}


def test_reconcile_first_match_wins_and_ambiguity_is_surfaced():
    diagnostics = Diagnostics()
    beneficiaries = _beneficiaries(JUAN)
    index = build_assignment_index(
        [
            {"beneficiario": "Juan Perez", "operador": "Ana Rojas"},
            {"beneficiario": "Juan Pérez", "operador": "Luis Vera"},
            {"beneficiario": "JUAN PEREZ", "operador": "Ana Rojas"},
        ],
        diagnostics,
    )

    result = reconcile(beneficiaries, index, diagnostics=diagnostics)

    assert result.mapping == {"b1": "ana rojas"}
    assert len(result.ambiguous_matches) == 1
    match = result.ambiguous_matches[0]
    assert match.chosen_operator_id == "ana rojas"
    assert match.candidate_operator_ids == ("ana rojas", "luis vera")
    assert match.conflicting
    summary = diagnostics.summary()
    assert summary.ambiguous_matches == 1
    assert summary.conflicting_matches == 1
    assert summary.orphan_assignments == 0


def test_duplicate_assignments_to_same_operator_are_not_conflicting():
    diagnostics = Diagnostics()
    index = build_assignment_index(
        [
            {"beneficiario": "Juan Perez", "operador": "Ana Rojas"},
            {"fono": "987654321", "operador": "Ana Rojas"},
        ],
        diagnostics,
    )

    result = reconcile(_beneficiaries(JUAN), index, diagnostics=diagnostics)

    assert result.ambiguous_matches[0].conflicting is False
    assert diagnostics.summary().conflicting_matches == 0


def test_find_orphan_assignments():
    index = build_assignment_index(
        [
            {"beneficiario": "Juan Perez", "operador": "Ana Rojas"},
            {"beneficiario": "Pedro Soto", "operador": "Ana Rojas"},
        ],
        Diagnostics(),
    )

    orphans = find_orphan_assignments(index, _beneficiaries(JUAN, ROSA))

    assert [orphan.beneficiary_name for orphan in orphans] == ["Pedro Soto"]
    assert orphans[0].operator_id == "ana rojas"

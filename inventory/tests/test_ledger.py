import threading

import pytest

from inventory.choices import UnitType
from inventory.domain import Adjustment
from inventory.models import StockMovement
from inventory.services.base_service import NotFoundError, ValidationError
from inventory.services.ledger import InMemoryLedger
from inventory.services.ledger_service import DatabaseLedger
from inventory.services.results import InsufficientStock


# ==================== IN MEMORY ====================

def test_commit_is_all_or_nothing():
    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=5)
    ledger.add_unit(2, available_quantity=1)

    result = ledger.apply([Adjustment(1, -3), Adjustment(2, -2)], reference="T-1")

    assert result.error == InsufficientStock(unit=2, requested=2, available=1)
    assert ledger.get(1).available_quantity == 5
    assert ledger.movements == []


def test_demand_on_one_counter_accumulates():
    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=5)

    result = ledger.apply([Adjustment(1, -3), Adjustment(1, -3)])

    assert result.error == InsufficientStock(unit=1, requested=6, available=5)


def test_movements_are_recorded():
    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=5)

    result = ledger.adjust(1, 4, reference="INV-P-1", actor_id=3)

    assert result.quantity_of(1) == 9
    assert ledger.movements == [{
        "stock_unit_id": 1,
        "counter": "available_quantity",
        "quantity_before": 5,
        "quantity_after": 9,
        "reference": "INV-P-1",
        "actor_id": 3,
        "notes": "",
    }]


def test_unknown_unit_and_counter():
    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=5)

    with pytest.raises(KeyError):
        ledger.adjust(2, 1)
    with pytest.raises(KeyError):
        ledger.adjust(1, 1, counter="pump_quantity")


def test_accessory_counters():
    ledger = InMemoryLedger()
    snapshot = ledger.add_unit(1, available_quantity=2, unit_type=UnitType.ACCESSORY, pump_quantity=7)

    assert snapshot.is_accessory
    assert snapshot.counter("pump_quantity") == 7
    assert snapshot.counter("tag_quantity") == 0
    with pytest.raises(ValueError):
        ledger.add_unit(2, pump_quantity=1)


def test_concurrent_draws_never_oversell():
    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=5)
    start = threading.Barrier(20)
    outcomes = []

    def draw():
        start.wait()
        outcomes.append(ledger.adjust(1, -1).ok)

    threads = [threading.Thread(target=draw) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(True) == 5
    assert ledger.get(1).available_quantity == 0
    assert len(ledger.movements) == 5


def test_concurrent_cross_unit_commits_do_not_deadlock():
    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=100)
    ledger.add_unit(2, available_quantity=100)

    def shuffle(first, second):
        for _ in range(50):
            ledger.apply([Adjustment(first, -1), Adjustment(second, 1)])

    threads = [
        threading.Thread(target=shuffle, args=(1, 2)),
        threading.Thread(target=shuffle, args=(2, 1)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert not any(thread.is_alive() for thread in threads)
    assert ledger.get(1).available_quantity + ledger.get(2).available_quantity == 200


# ==================== DATABASE ====================

@pytest.mark.django_db
def test_database_commit_writes_movements(make_unit):
    unit = make_unit("BTL-50", available_quantity=5)

    result = DatabaseLedger().apply([Adjustment(unit.id, -3)], reference="DSP-1", notes="dispatch")

    assert result.ok
    unit.refresh_from_db()
    assert unit.available_quantity == 2
    movement = StockMovement.objects.get(stock_unit=unit)
    assert (movement.quantity_before, movement.quantity_after, movement.change) == (5, 2, -3)
    assert movement.reference == "DSP-1"


@pytest.mark.django_db
def test_database_deficit_changes_nothing(make_unit):
    glass = make_unit("BTL-50", available_quantity=5)
    accessory = make_unit("SET-G", available_quantity=5, unit_type=UnitType.ACCESSORY, pump_quantity=1)

    result = DatabaseLedger().apply([
        Adjustment(glass.id, -2),
        Adjustment(accessory.id, -2, "pump_quantity"),
    ])

    assert result.error == InsufficientStock(unit=accessory.id, requested=2, available=1, counter="pump_quantity")
    glass.refresh_from_db()
    assert glass.available_quantity == 5
    assert not StockMovement.objects.exists()


@pytest.mark.django_db
def test_database_unknown_unit_and_counter(make_unit):
    unit = make_unit("BTL-50", available_quantity=5)
    ledger = DatabaseLedger()

    with pytest.raises(NotFoundError):
        ledger.adjust(unit.id + 100, 1)
    with pytest.raises(ValidationError):
        ledger.adjust(unit.id, 1, counter="pump_quantity")


@pytest.mark.django_db
def test_database_reads_skip_inactive_units(make_unit):
    unit = make_unit("BTL-50", available_quantity=5)
    ledger = DatabaseLedger()

    assert ledger.get(unit.id).available_quantity == 5
    assert ledger.get("not-an-id") is None

    unit.is_active = False
    unit.save()
    assert ledger.get(unit.id) is None


@pytest.mark.django_db
def test_database_writes_skip_inactive_units(make_unit):
    unit = make_unit("BTL-50", available_quantity=5, is_active=False)

    with pytest.raises(NotFoundError):
        DatabaseLedger().apply([Adjustment(unit.id, -2)], reference="DSP-1")

    unit.refresh_from_db()
    assert unit.available_quantity == 5
    assert not StockMovement.objects.exists()

from decimal import Decimal

import pytest

from inventory.choices import UnitType
from inventory.domain import Document, DocumentLine
from inventory.models import StockUnit
from inventory.services.ledger import InMemoryLedger

ACCESSORY_COUNTERS = (
    "individual_items", "pump_quantity", "ring_quantity", "cover_quantity",
    "ribbon_quantity", "sticker_quantity", "tag_quantity",
)


@pytest.fixture
def ledger():
    """Glass bottle #1 with 20 units, accessory set #2 with 10 of everything."""
    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=20, name="50ml Bottle")
    ledger.add_unit(
        2, available_quantity=10, unit_type=UnitType.ACCESSORY, name="Gold Set",
        **{name: 10 for name in ACCESSORY_COUNTERS}
    )
    return ledger


@pytest.fixture
def purchase():
    return Document(
        kind="PURCHASE",
        id=1,
        number="INV-P-TEST-0001",
        supplier_name="Acme Glass",
        lines=[DocumentLine(stock_unit_id=1, quantity=10, unit_price=Decimal("2.50"))],
    )


@pytest.fixture
def composite_dispatch():
    return Document(
        kind="GLASS_WITH_ACCESSORIES",
        id=2,
        number="DSP-TEST-0001",
        recipient="Factory A",
        lines=[DocumentLine(stock_unit_id=1, quantity=4, unit_price=Decimal("1.00"), accessory_unit_id=2)],
    )


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(username="storekeeper", password="secret")


@pytest.fixture
def make_unit(db):
    def _make(code, available_quantity=0, unit_type=UnitType.INVENTORY, **counters):
        return StockUnit.objects.create(
            code=code,
            name=f"Unit {code}",
            unit_type=unit_type,
            available_quantity=available_quantity,
            **counters
        )
    return _make

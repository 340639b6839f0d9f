from datetime import datetime, timezone
from decimal import Decimal

import pytest

from inventory.choices import COMPOSITE_COUNTERS, DocumentKind, DocumentStatus, ProductType, QualityStatus
from inventory.domain import Document, DocumentLine, QualityCheck, ReworkDecision
from inventory.services.results import (
    DuplicateReversal, IllegalTransition, IncompatibleReversal, InsufficientStock,
    MissingField, ReturnExceedsOriginal,
)
from inventory.services.transition_service import (
    allowed_targets, apply_rework, create_quality_check, create_reversal, transition,
)

LEGAL_MOVES = {
    ("DRAFT", "SUBMITTED"),
    ("SUBMITTED", "APPROVED"),
    ("SUBMITTED", "REJECTED"),
    ("APPROVED", "COMPLETED"),
}

ACTOR = 7


def _complete(document, ledger, original=None):
    for target in ("SUBMITTED", "APPROVED", "COMPLETED"):
        result = transition(document, target, ACTOR, ledger=ledger, original=original)
        assert result.ok, result.errors
        document = result.document
    return document


@pytest.mark.parametrize("current", DocumentStatus.values)
@pytest.mark.parametrize("target", DocumentStatus.values)
def test_transition_table(ledger, purchase, current, target):
    document = purchase.copy(status=current)

    result = transition(document, target, ACTOR, ledger=ledger)

    if (current, target) in LEGAL_MOVES:
        assert result.ok
        assert result.document.status == target
    else:
        assert result.errors == [IllegalTransition(current, target)]
        assert result.document is document


@pytest.mark.parametrize("terminal", ["REJECTED", "COMPLETED"])
def test_terminal_statuses_have_no_exits(purchase, terminal):
    assert allowed_targets(purchase.copy(status=terminal)) == ()


def test_purchase_end_to_end(ledger, purchase):
    completed = _complete(purchase, ledger)

    assert completed.status == DocumentStatus.COMPLETED
    assert ledger.get(1).available_quantity == 30
    assert completed.submitted_by == completed.approved_by == completed.completed_by == ACTOR
    assert completed.completed_at is not None
    assert completed.is_locked
    # the input is never mutated
    assert purchase.status == DocumentStatus.DRAFT
    assert purchase.completed_at is None


def test_only_completion_moves_stock(ledger, purchase):
    submitted = transition(purchase, "SUBMITTED", ACTOR, ledger=ledger).document
    transition(submitted, "APPROVED", ACTOR)
    transition(submitted, "REJECTED", ACTOR, notes="wrong supplier")
    assert ledger.get(1).available_quantity == 20
    assert ledger.movements == []


def test_rejection_keeps_reason(ledger, purchase):
    submitted = transition(purchase, "SUBMITTED", ACTOR, ledger=ledger).document
    rejected = transition(submitted, "REJECTED", 8, notes="wrong supplier").document

    assert rejected.status == DocumentStatus.REJECTED
    assert rejected.rejected_by == 8
    assert rejected.rejection_reason == "wrong supplier"


def test_submit_refuses_invalid_document(ledger):
    doc = Document(kind=DocumentKind.GLASS_ONLY, recipient="Factory A",
                   lines=[DocumentLine(stock_unit_id=1, quantity=21)])

    result = transition(doc, "SUBMITTED", ACTOR, ledger=ledger)

    assert not result.ok
    assert result.document.status == DocumentStatus.DRAFT
    assert result.errors == [InsufficientStock(unit=1, requested=21, available=20, line_index=0)]


def test_submit_needs_ledger(purchase):
    with pytest.raises(ValueError):
        transition(purchase, "SUBMITTED", ACTOR)


def test_completion_lost_race_leaves_everything_untouched(ledger):
    ledger.add_unit(3, available_quantity=5)
    doc = Document(kind=DocumentKind.GLASS_ONLY, recipient="Factory A", number="DSP-RACE",
                   lines=[DocumentLine(stock_unit_id=3, quantity=5)])
    approved = transition(transition(doc, "SUBMITTED", ACTOR, ledger=ledger).document, "APPROVED", ACTOR).document

    # another writer takes stock between approval and completion
    assert ledger.adjust(3, -3).ok

    result = transition(approved, "COMPLETED", ACTOR, ledger=ledger)

    assert result.errors == [InsufficientStock(unit=3, requested=5, available=2)]
    assert result.document.status == DocumentStatus.APPROVED
    assert ledger.get(3).available_quantity == 2


def test_composite_dispatch_moves_every_counter(ledger, composite_dispatch):
    _complete(composite_dispatch, ledger)

    assert ledger.get(1).available_quantity == 16
    accessory = ledger.get(2)
    assert accessory.available_quantity == 10
    assert {accessory.counter(c) for c in COMPOSITE_COUNTERS} == {6}


def test_accessory_sets_are_limited_by_parts_only(ledger, composite_dispatch):
    ledger.add_unit(
        3, available_quantity=0, unit_type="ACCESSORY",
        **{c.value: 4 for c in COMPOSITE_COUNTERS}
    )
    composite_dispatch.lines[0].accessory_unit_id = 3

    _complete(composite_dispatch, ledger)

    assert {ledger.get(3).counter(c) for c in COMPOSITE_COUNTERS} == {0}


# ==================== REVERSALS ====================

def test_reversal_restores_the_ledger(ledger, composite_dispatch):
    before = {uid: ledger.get(uid).counters for uid in (1, 2)}
    completed = _complete(composite_dispatch, ledger)

    drafted = create_reversal(completed, ACTOR)
    assert drafted.ok
    reversal = drafted.document
    assert reversal.kind == DocumentKind.RETURN_GLASS_WITH_ACCESSORIES
    assert reversal.status == DocumentStatus.DRAFT
    assert reversal.reverses_id == completed.id
    assert reversal.reference_number == completed.number
    assert reversal.lines[0].accessory_unit_id == 2

    _complete(reversal, ledger, original=completed)

    assert {uid: ledger.get(uid).counters for uid in (1, 2)} == before
    assert completed.status == DocumentStatus.COMPLETED


def test_glass_only_return_of_composite_dispatch(ledger, composite_dispatch):
    completed = _complete(composite_dispatch, ledger)

    reversal = create_reversal(completed, ACTOR, return_kind=DocumentKind.RETURN_GLASS_ONLY).document
    assert reversal.lines[0].accessory_unit_id is None

    _complete(reversal, ledger, original=completed)
    assert ledger.get(1).available_quantity == 20
    assert ledger.get(2).counter("pump_quantity") == 6


def test_purchase_reversal(ledger, purchase):
    completed = _complete(purchase, ledger)

    reversal = create_reversal(completed, ACTOR).document
    assert reversal.kind == DocumentKind.PURCHASE_RETURN
    assert reversal.supplier_name == "Acme Glass"

    _complete(reversal, ledger, original=completed)
    assert ledger.get(1).available_quantity == 20


def test_return_cannot_give_back_more_than_was_moved(ledger, composite_dispatch):
    completed = _complete(composite_dispatch, ledger)
    reversal = create_reversal(completed, ACTOR).document
    reversal.lines = [
        DocumentLine(stock_unit_id=1, quantity=3, accessory_unit_id=2),
        DocumentLine(stock_unit_id=1, quantity=2, accessory_unit_id=2),
    ]

    result = transition(reversal, "SUBMITTED", ACTOR, ledger=ledger, original=completed)

    assert result.errors == [ReturnExceedsOriginal(1, returned=5, original=4).at_line(1)]
    assert result.document is reversal


def test_return_cannot_switch_stock_units(ledger, purchase):
    ledger.add_unit(3, available_quantity=5)
    completed = _complete(purchase, ledger)
    reversal = create_reversal(completed, ACTOR).document
    reversal.lines = [DocumentLine(stock_unit_id=3, quantity=1, unit_price=Decimal("2.50"))]

    result = transition(reversal, "SUBMITTED", ACTOR, ledger=ledger, original=completed)

    assert result.errors == [ReturnExceedsOriginal(3, returned=1, original=0).at_line(0)]


def test_return_submit_needs_its_original(ledger, purchase):
    completed = _complete(purchase, ledger)
    reversal = create_reversal(completed, ACTOR).document

    with pytest.raises(ValueError):
        transition(reversal, "SUBMITTED", ACTOR, ledger=ledger)


@pytest.mark.parametrize("status", ["DRAFT", "SUBMITTED", "APPROVED", "REJECTED"])
def test_only_completed_documents_reverse(purchase, status):
    result = create_reversal(purchase.copy(status=status), ACTOR)
    assert result.errors == [IllegalTransition(status, "REVERSE")]


def test_incompatible_reversal_kind(ledger):
    completed = Document(kind=DocumentKind.GLASS_ONLY, status="COMPLETED", recipient="Factory A",
                         lines=[DocumentLine(stock_unit_id=1, quantity=2)])

    result = create_reversal(completed, ACTOR, return_kind=DocumentKind.RETURN_GLASS_WITH_ACCESSORIES)

    assert result.errors == [IncompatibleReversal("GLASS_ONLY", "RETURN_GLASS_WITH_ACCESSORIES")]


def test_second_reversal_refused_until_first_is_rejected(ledger, purchase):
    completed = _complete(purchase, ledger)
    first = create_reversal(completed, ACTOR).document

    duplicate = create_reversal(completed, ACTOR, existing_reversals=[first])
    assert duplicate.errors == [DuplicateReversal(completed.id)]

    rejected = first.copy(status=DocumentStatus.REJECTED)
    assert create_reversal(completed, ACTOR, existing_reversals=[rejected]).ok


# ==================== QUALITY CHECKS ====================

def _check(defective, **overrides):
    values = dict(
        batch_number="QC-TEST-0001",
        product_type=ProductType.GLASS,
        checked_quantity=100,
        defective_quantity=defective,
        defect_types=("scratch",) if defective else (),
        stock_unit_id=1,
    )
    values.update(overrides)
    return QualityCheck(**values)


@pytest.mark.parametrize("defective, expected", [
    (0, QualityStatus.PASSED),
    (10, QualityStatus.REQUIRES_REWORK),
    (11, QualityStatus.FAILED),
])
def test_new_check_gets_recommended_status(ledger, defective, expected):
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)
    result = create_quality_check(_check(defective), ledger, actor=ACTOR, now=now)

    assert result.ok
    assert result.document.status == expected
    assert result.document.checked_by == ACTOR
    assert result.document.checked_at == now


def test_new_check_must_be_pending(ledger):
    result = create_quality_check(_check(0, status=QualityStatus.PASSED), ledger)
    assert result.errors == [IllegalTransition("PASSED", "EVALUATE")]


def test_invalid_check_stays_pending(ledger):
    result = create_quality_check(_check(5, defect_types=()), ledger)
    assert not result.ok
    assert result.document.status == QualityStatus.PENDING


@pytest.mark.parametrize("current", ["FAILED", "REQUIRES_REWORK"])
@pytest.mark.parametrize("target", ["PASSED", "FAILED", "REQUIRES_REWORK"])
def test_rework_from_open_outcomes(current, target):
    check = _check(11, status=current)

    result = apply_rework(check, ReworkDecision(target_status=target, notes="re-polished", decided_by=ACTOR))

    assert result.ok
    assert result.document.status == target
    assert result.document.rework_notes == "re-polished"
    assert result.document.reworked_by == ACTOR
    assert check.status == current


def test_passed_check_is_final():
    check = _check(0, status=QualityStatus.PASSED)
    result = apply_rework(check, ReworkDecision(target_status="FAILED", notes="second look"))
    assert result.errors == [IllegalTransition("PASSED", "FAILED")]


def test_rework_cannot_return_to_pending():
    check = _check(11, status=QualityStatus.FAILED)
    result = apply_rework(check, ReworkDecision(target_status="PENDING", notes="again"))
    assert result.errors == [IllegalTransition("FAILED", "PENDING")]


def test_rework_needs_notes():
    check = _check(11, status=QualityStatus.FAILED)
    result = apply_rework(check, ReworkDecision(target_status="PASSED", notes="  "))
    assert result.errors == [MissingField("rework_notes")]


def test_transition_routes_checks_to_rework():
    check = _check(5, status=QualityStatus.REQUIRES_REWORK)
    result = transition(check, "PASSED", ACTOR, notes="sorted out the chipped ones")
    assert result.ok
    assert result.document.status == QualityStatus.PASSED

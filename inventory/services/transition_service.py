"""
Status state machine for documents and quality checks.

Every move goes through one table keyed by ``(current_status, event)``.
Functions here never mutate their input: they return a copy carrying the
new status, or the original together with the reason it could not move.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple, Union

from inventory.choices import (
    DocumentFamily, DocumentKind, DocumentStatus, QualityStatus,
)
from inventory.domain import Document, DocumentLine, QualityCheck, ReworkDecision, kind_spec
from inventory.services.computation_service import (
    DEFAULT_DEFECT_RATE_FAIL_THRESHOLD, recommended_status, stock_adjustments,
)
from inventory.services.ledger import Ledger, LedgerReader
from inventory.services.results import (
    DuplicateReversal, IllegalTransition, IncompatibleReversal, MissingField,
    TransitionResult,
)
from inventory.services.validation_service import (
    check_is_reworkable, validate_document, validate_quality_check, validate_reversal,
)

logger = logging.getLogger(__name__)


class Event:
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    COMPLETE = "COMPLETE"
    REVERSE = "REVERSE"
    EVALUATE = "EVALUATE"
    REWORK = "REWORK"


EVENT_FOR_TARGET: Dict[str, str] = {
    DocumentStatus.SUBMITTED.value: Event.SUBMIT,
    DocumentStatus.APPROVED.value: Event.APPROVE,
    DocumentStatus.REJECTED.value: Event.REJECT,
    DocumentStatus.COMPLETED.value: Event.COMPLETE,
}

_DOCUMENT_FLOW: Dict[Tuple[str, str], str] = {
    (DocumentStatus.DRAFT.value, Event.SUBMIT): DocumentStatus.SUBMITTED.value,
    (DocumentStatus.SUBMITTED.value, Event.APPROVE): DocumentStatus.APPROVED.value,
    (DocumentStatus.SUBMITTED.value, Event.REJECT): DocumentStatus.REJECTED.value,
    (DocumentStatus.APPROVED.value, Event.COMPLETE): DocumentStatus.COMPLETED.value,
}

_QUALITY_OUTCOMES = (
    QualityStatus.PASSED.value,
    QualityStatus.FAILED.value,
    QualityStatus.REQUIRES_REWORK.value,
)

_QUALITY_FLOW: Dict[Tuple[str, str], Tuple[str, ...]] = {
    (QualityStatus.PENDING.value, Event.EVALUATE): _QUALITY_OUTCOMES,
    (QualityStatus.FAILED.value, Event.REWORK): _QUALITY_OUTCOMES,
    (QualityStatus.REQUIRES_REWORK.value, Event.REWORK): _QUALITY_OUTCOMES,
}

# Batch operations have no per-document lifecycle; see batch_service.
TRANSITIONS: Dict[str, Dict] = {
    DocumentFamily.INVOICE.value: _DOCUMENT_FLOW,
    DocumentFamily.DISPATCH.value: _DOCUMENT_FLOW,
    DocumentFamily.QUALITY.value: _QUALITY_FLOW,
}

# original kind -> kinds allowed to reverse it, default first
REVERSAL_KINDS: Dict[str, Tuple[str, ...]] = {
    DocumentKind.PURCHASE.value: (DocumentKind.PURCHASE_RETURN.value,),
    DocumentKind.PURCHASE_RETURN.value: (DocumentKind.PURCHASE.value,),
    DocumentKind.GLASS_ONLY.value: (DocumentKind.RETURN_GLASS_ONLY.value,),
    DocumentKind.GLASS_WITH_ACCESSORIES.value: (
        DocumentKind.RETURN_GLASS_WITH_ACCESSORIES.value,
        DocumentKind.RETURN_GLASS_ONLY.value,
    ),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def next_status(family: str, status: str, event: str) -> Optional[str]:
    return TRANSITIONS.get(str(family), {}).get((str(status), event))


def allowed_targets(document: Union[Document, QualityCheck]) -> Tuple[str, ...]:
    """Statuses ``document`` may be moved to right now."""
    if isinstance(document, QualityCheck):
        return _QUALITY_FLOW.get((str(document.status), Event.REWORK), ())
    flow = TRANSITIONS.get(str(document.family), {})
    return tuple(target for (status, _), target in flow.items() if status == str(document.status))


# =============================================================================
# DOCUMENTS
# =============================================================================

def transition(document: Union[Document, QualityCheck],
               target_status: str,
               actor: Optional[int],
               ledger: Optional[Ledger] = None,
               notes: str = "",
               now: Optional[datetime] = None,
               original: Optional[Document] = None) -> TransitionResult:
    """
    Move ``document`` to ``target_status``.

    SUBMITTED requires the document to validate. A return is also measured
    against ``original``, the document it reverses, and may not give back
    more than that document moved. COMPLETED applies the
    document's stock movements through ``ledger`` in one commit; a deficit
    found there leaves both the ledger and the document untouched.

    Quality checks are routed to :func:`apply_rework`.
    """
    if isinstance(document, QualityCheck):
        return apply_rework(
            document,
            ReworkDecision(target_status=str(target_status), notes=notes,
                           decided_by=actor, check_id=document.id),
            now=now,
        )

    current = str(document.status)
    target = str(target_status)
    event = EVENT_FOR_TARGET.get(target)
    new_status = next_status(document.family, current, event) if event else None

    if new_status is None or new_status != target:
        logger.info(f"Refused {document.kind} {document.number or document.id}: {current} -> {target}")
        return TransitionResult(document=document, errors=[IllegalTransition(current, target)])

    now = now or _now()

    if event == Event.SUBMIT:
        if ledger is None:
            raise ValueError("A ledger is required to submit a document")
        validation = validate_document(document, ledger)
        if validation.is_valid and document.reverses_id is not None:
            if original is None or original.id != document.reverses_id:
                raise ValueError(f"Document {document.reverses_id} is required to submit its return")
            validation = validate_reversal(document, original)
        if not validation.is_valid:
            return TransitionResult(document=document, errors=list(validation.errors))
        moved = document.copy(status=new_status, submitted_by=actor, submitted_at=now)

    elif event == Event.APPROVE:
        moved = document.copy(status=new_status, approved_by=actor, approved_at=now)

    elif event == Event.REJECT:
        moved = document.copy(status=new_status, rejected_by=actor, rejected_at=now,
                              rejection_reason=notes or document.rejection_reason)

    else:
        adjustments = stock_adjustments(document)
        if adjustments:
            if ledger is None:
                raise ValueError("A ledger is required to complete a stock-moving document")
            committed = ledger.apply(
                adjustments,
                reference=document.number or str(document.id or ""),
                actor_id=actor,
                notes=notes or f"{document.kind} completed",
            )
            if not committed.ok:
                logger.warning(
                    f"Completion of {document.number or document.id} lost a stock race: "
                    f"{committed.error.to_dict()}"
                )
                return TransitionResult(document=document, errors=[committed.error])
        moved = document.copy(status=new_status, completed_by=actor, completed_at=now)

    logger.info(f"{document.kind} {document.number or document.id}: {current} -> {new_status} by {actor}")
    return TransitionResult(document=moved)


def create_reversal(original: Document,
                    actor: Optional[int],
                    return_kind: Optional[str] = None,
                    notes: str = "",
                    existing_reversals: Iterable[Document] = ()) -> TransitionResult:
    """
    Draft a compensating document for a completed one.

    The new document restores what ``original`` moved and goes through the
    usual lifecycle on its own. ``original`` is never touched.
    """
    if str(original.status) != DocumentStatus.COMPLETED:
        return TransitionResult(document=original,
                                errors=[IllegalTransition(str(original.status), Event.REVERSE)])

    allowed = REVERSAL_KINDS.get(str(original.kind), ())
    kind = str(return_kind) if return_kind else (allowed[0] if allowed else "")
    if kind not in allowed:
        return TransitionResult(document=original,
                                errors=[IncompatibleReversal(str(original.kind), kind)])

    for earlier in existing_reversals:
        if str(earlier.status) != DocumentStatus.REJECTED:
            return TransitionResult(document=original, errors=[DuplicateReversal(original.id)])

    composite = kind_spec(kind).composite
    lines = [
        DocumentLine(
            stock_unit_id=line.stock_unit_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            accessory_unit_id=line.accessory_unit_id if composite else None,
            notes=line.notes,
        )
        for line in original.lines
    ]

    reversal = Document(
        kind=kind,
        lines=lines,
        status=DocumentStatus.DRAFT,
        supplier_name=original.supplier_name,
        recipient=original.recipient,
        reference_number=original.number,
        notes=notes,
        reverses_id=original.id,
        created_by=actor,
        created_at=_now(),
    )
    logger.info(f"Drafted {kind} reversing {original.number or original.id}")
    return TransitionResult(document=reversal)


# =============================================================================
# QUALITY CHECKS
# =============================================================================

def create_quality_check(check: QualityCheck,
                         ledger: LedgerReader,
                         threshold: Decimal = DEFAULT_DEFECT_RATE_FAIL_THRESHOLD,
                         actor: Optional[int] = None,
                         now: Optional[datetime] = None) -> TransitionResult:
    """Validate a new check and give it the status its figures call for."""
    if str(check.status) != QualityStatus.PENDING:
        return TransitionResult(document=check,
                                errors=[IllegalTransition(str(check.status), Event.EVALUATE)])

    validation = validate_quality_check(check, ledger)
    if not validation.is_valid:
        return TransitionResult(document=check, errors=list(validation.errors))

    status = recommended_status(check.checked_quantity, check.defective_quantity, threshold)
    evaluated = check.copy(
        status=str(status),
        checked_by=actor if actor is not None else check.checked_by,
        checked_at=check.checked_at or now or _now(),
    )
    logger.info(f"Quality check {check.batch_number} evaluated as {status}")
    return TransitionResult(document=evaluated)


def apply_rework(check: QualityCheck,
                 decision: ReworkDecision,
                 now: Optional[datetime] = None) -> TransitionResult:
    current = str(check.status)
    target = str(decision.target_status)

    if not check_is_reworkable(check) or target not in _QUALITY_FLOW.get((current, Event.REWORK), ()):
        return TransitionResult(document=check, errors=[IllegalTransition(current, target)])

    if not (decision.notes or "").strip():
        return TransitionResult(document=check, errors=[MissingField("rework_notes")])

    reworked = check.copy(
        status=target,
        rework_notes=decision.notes.strip(),
        reworked_by=decision.decided_by,
        reworked_at=now or _now(),
    )
    logger.info(f"Quality check {check.batch_number} reworked: {current} -> {target}")
    return TransitionResult(document=reworked)

"""
Best-effort batch orchestration.

Every line is validated before anything is written. Lines that pass are
then committed one at a time, each under its own unit lock, so a batch can
end half applied: the result says which lines made it.
"""
import logging
from typing import List, Optional, Sequence

from inventory.choices import Counter, DocumentFamily
from inventory.domain import DocumentLine, kind_spec
from inventory.services.computation_service import batch_adjustments
from inventory.services.ledger import Ledger
from inventory.services.results import BatchLineResult, BatchResult, ValidationResult
from inventory.services.validation_service import validate_line

logger = logging.getLogger(__name__)


def preflight(kind: str, lines: Sequence[DocumentLine], ledger: Ledger) -> List[ValidationResult]:
    return [validate_line(kind, line, ledger, line_index=index) for index, line in enumerate(lines)]


def execute_batch(kind: str,
                  lines: Sequence[DocumentLine],
                  ledger: Ledger,
                  actor_id: Optional[int] = None,
                  reference: str = "",
                  notes: str = "") -> BatchResult:
    if kind_spec(kind).family != DocumentFamily.BATCH:
        raise ValueError(f"{kind} is not a batch operation kind")

    checks = preflight(kind, lines, ledger)
    result = BatchResult()

    for index, (line, check) in enumerate(zip(lines, checks)):
        if not check.is_valid:
            result.results.append(BatchLineResult(
                index=index,
                stock_unit_id=line.stock_unit_id,
                success=False,
                errors=list(check.errors),
            ))
            continue

        committed = ledger.apply(
            batch_adjustments(kind, line),
            reference=reference,
            actor_id=actor_id,
            notes=line.notes or notes,
        )

        if not committed.ok:
            # Validated against the snapshot but lost to a writer in between,
            # or to an earlier line of this batch on the same unit.
            logger.info(f"Batch {reference or kind} line {index} lost its stock: {committed.error.to_dict()}")
            result.results.append(BatchLineResult(
                index=index,
                stock_unit_id=line.stock_unit_id,
                success=False,
                errors=[committed.error.at_line(index)],
            ))
            continue

        result.results.append(BatchLineResult(
            index=index,
            stock_unit_id=line.stock_unit_id,
            success=True,
            new_quantity=committed.quantity_of(line.stock_unit_id, Counter.AVAILABLE.value),
        ))

    logger.info(
        f"Batch {reference or kind}: {len(result.succeeded)}/{len(result.results)} lines applied"
    )
    return result

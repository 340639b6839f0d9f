"""
Structured outcomes returned by the document engine.

Validation problems, illegal moves and lost stock races are values, not
exceptions: callers inspect them, localize them and decide what to show.
"""
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, List, Optional, Tuple


class EngineError:
    code = "ERROR"
    line_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"code": self.code}
        data.update({k: _plain(v) for k, v in asdict(self).items()})
        return data

    def at_line(self, index: int) -> "EngineError":
        return replace(self, line_index=index)


def _plain(value):
    if isinstance(value, tuple):
        return list(value)
    if value is None or isinstance(value, (int, bool)):
        return value
    return str(value)


@dataclass(frozen=True)
class MissingField(EngineError):
    field: str
    line_index: Optional[int] = None
    code = "MISSING_FIELD"


@dataclass(frozen=True)
class InvalidQuantity(EngineError):
    field: str
    value: Any
    line_index: Optional[int] = None
    code = "INVALID_QUANTITY"


@dataclass(frozen=True)
class InsufficientStock(EngineError):
    unit: int
    requested: int
    available: int
    counter: str = "available_quantity"
    line_index: Optional[int] = None
    code = "INSUFFICIENT_STOCK"


@dataclass(frozen=True)
class MissingDefectClassification(EngineError):
    line_index: Optional[int] = None
    code = "MISSING_DEFECT_CLASSIFICATION"


@dataclass(frozen=True)
class IllegalTransition(EngineError):
    from_status: str
    to_status: str
    line_index: Optional[int] = None
    code = "ILLEGAL_TRANSITION"


@dataclass(frozen=True)
class EmptyDocument(EngineError):
    line_index: Optional[int] = None
    code = "EMPTY_DOCUMENT"


@dataclass(frozen=True)
class StockUnitNotFound(EngineError):
    unit: Any
    field: str = "stock_unit_id"
    line_index: Optional[int] = None
    code = "STOCK_UNIT_NOT_FOUND"


@dataclass(frozen=True)
class WrongUnitType(EngineError):
    unit: Any
    expected: str
    field: str = "accessory_unit_id"
    line_index: Optional[int] = None
    code = "WRONG_UNIT_TYPE"


@dataclass(frozen=True)
class ReturnExceedsOriginal(EngineError):
    """A return line gives back more of a unit than the reversed document moved."""
    unit: Any
    returned: int
    original: int
    field: str = "stock_unit_id"
    line_index: Optional[int] = None
    code = "RETURN_EXCEEDS_ORIGINAL"


@dataclass(frozen=True)
class IncompatibleReversal(EngineError):
    original_kind: str
    requested_kind: str
    line_index: Optional[int] = None
    code = "INCOMPATIBLE_REVERSAL"


@dataclass(frozen=True)
class DuplicateReversal(EngineError):
    original_id: Any
    line_index: Optional[int] = None
    code = "DUPLICATE_REVERSAL"


# =============================================================================
# RESULT CONTAINERS
# =============================================================================

@dataclass
class ValidationResult:
    errors: List[EngineError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def document_errors(self) -> List[EngineError]:
        return [e for e in self.errors if e.line_index is None]

    def for_line(self, index: int) -> List[EngineError]:
        return [e for e in self.errors if e.line_index == index]

    @property
    def failed_lines(self) -> List[int]:
        return sorted({e.line_index for e in self.errors if e.line_index is not None})

    def add(self, error: EngineError) -> None:
        self.errors.append(error)

    def extend(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid,
            "errors": [e.to_dict() for e in self.document_errors],
            "lines": {
                str(index): [e.to_dict() for e in self.for_line(index)]
                for index in self.failed_lines
            },
        }


@dataclass
class TransitionResult:
    document: Any = None
    errors: List[EngineError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def error(self) -> Optional[EngineError]:
        return self.errors[0] if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class AdjustResult:
    new_quantities: Dict[Tuple[int, str], int] = field(default_factory=dict)
    error: Optional[InsufficientStock] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def quantity_of(self, stock_unit_id: int, counter: str = "available_quantity") -> Optional[int]:
        return self.new_quantities.get((stock_unit_id, str(counter)))


@dataclass
class BatchLineResult:
    index: int
    stock_unit_id: Any
    success: bool
    new_quantity: Optional[int] = None
    errors: List[EngineError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "stock_unit_id": self.stock_unit_id,
            "success": self.success,
            "new_quantity": self.new_quantity,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class BatchResult:
    results: List[BatchLineResult] = field(default_factory=list)

    @property
    def overall_success(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    @property
    def succeeded(self) -> List[BatchLineResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[BatchLineResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_success": self.overall_success,
            "processed": len(self.results),
            "succeeded": len(self.succeeded),
            "results": [r.to_dict() for r in self.results],
        }

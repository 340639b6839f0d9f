"""
Inventory services: the document engine and the ORM services around it.

Usage:
    from inventory.services import InMemoryLedger, validate_document, transition

    ledger = InMemoryLedger()
    ledger.add_unit(1, available_quantity=5)
    result = transition(document, "SUBMITTED", actor=7, ledger=ledger)

    # Through the database
    DocumentService.change_status(document_id=3, status="APPROVED", actor_id=7)
"""

# Base utilities
from inventory.services.base_service import (
    ServiceError,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
    LedgerUnavailableError,
    success_response,
    error_response,
    paginate_queryset,
    to_decimal,
    to_int,
    round_decimal,
    generate_number,
    BaseService,
)

# Engine
from .results import (
    EngineError,
    MissingField,
    InvalidQuantity,
    InsufficientStock,
    MissingDefectClassification,
    IllegalTransition,
    EmptyDocument,
    StockUnitNotFound,
    IncompatibleReversal,
    DuplicateReversal,
    WrongUnitType,
    ReturnExceedsOriginal,
    ValidationResult,
    TransitionResult,
    AdjustResult,
    BatchLineResult,
    BatchResult,
)
from .ledger import LedgerReader, LedgerWriter, Ledger, InMemoryLedger
from .computation_service import (
    DEFAULT_DEFECT_RATE_FAIL_THRESHOLD,
    DEFAULT_CURRENCY_PLACES,
    document_total,
    pass_quantity,
    defect_rate,
    recommended_status,
    quality_metrics,
)
from .validation_service import validate_line, validate_header, validate_document, validate_reversal
from .transition_service import (
    TRANSITIONS,
    transition,
    create_reversal,
    create_quality_check,
    apply_rework,
)
from .batch_service import execute_batch

# Persistence
from .ledger_service import DatabaseLedger, StockUnitService
from .document_service import DocumentService
from .quality_service import QualityCheckService
from .operation_service import BatchOperationService
from .settings_service import InventorySettingsService


__all__ = [
    # Base
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BusinessRuleError",
    "LedgerUnavailableError",
    "success_response",
    "error_response",
    "paginate_queryset",
    "to_decimal",
    "to_int",
    "round_decimal",
    "generate_number",
    "BaseService",

    # Results
    "EngineError",
    "MissingField",
    "InvalidQuantity",
    "InsufficientStock",
    "MissingDefectClassification",
    "IllegalTransition",
    "EmptyDocument",
    "StockUnitNotFound",
    "IncompatibleReversal",
    "DuplicateReversal",
    "WrongUnitType",
    "ReturnExceedsOriginal",
    "ValidationResult",
    "TransitionResult",
    "AdjustResult",
    "BatchLineResult",
    "BatchResult",

    # Ledger
    "LedgerReader",
    "LedgerWriter",
    "Ledger",
    "InMemoryLedger",
    "DatabaseLedger",

    # Rules
    "DEFAULT_DEFECT_RATE_FAIL_THRESHOLD",
    "DEFAULT_CURRENCY_PLACES",
    "document_total",
    "pass_quantity",
    "defect_rate",
    "recommended_status",
    "quality_metrics",
    "validate_line",
    "validate_header",
    "validate_document",
    "validate_reversal",
    "TRANSITIONS",
    "transition",
    "create_reversal",
    "create_quality_check",
    "apply_rework",
    "execute_batch",

    # Services
    "StockUnitService",
    "DocumentService",
    "QualityCheckService",
    "BatchOperationService",
    "InventorySettingsService",
]

"""Services package - Business logic layer for the Production Batch Tracker.

This package contains all service modules that provide business logic
and database operations for the application.

Architecture:
- Services: Stateless functions organized by component
- Transactions: Managed via session_scope() / run_in_transaction()
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- lot_service: Lot pool ledger (intake, reserve, release, replace)
- consumption_service: Consumption record store and batch lock guard
- batch_output_service: Output registry for draft batches
- batch_service: Batch lifecycle (create, edit, save, finalize, delete)
- materialization_service: Finished goods created from approved batches
- directory_service: Operators, units and produced goods tags

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- batch_state: Draft/Locked state machine
- logging_utils: Structured operation logging
"""

# Service modules
from . import (
    database,
    directory_service,
    consumption_service,
    lot_service,
    batch_output_service,
    materialization_service,
    batch_service,
)

# Lot pool ledger
from .lot_service import (
    reserve,
    release,
    replace_consumption,
    receive_lot,
    get_lot,
    get_lot_by_code,
    list_lots,
    set_lot_usable,
    get_lot_movements,
    get_lot_usage,
    check_lot_in_locked_batches,
    verify_lot_ledger,
)

# Consumption records
from .consumption_service import (
    get_batch_consumptions,
    get_consumption,
    is_batch_locked,
)

# Outputs
from .batch_output_service import (
    add_output,
    update_output,
    remove_output,
    get_output,
    get_batch_outputs,
)

# Batch lifecycle
from .batch_service import (
    create_batch,
    edit_batch,
    save_batch,
    finalize_batch,
    delete_batch,
    get_batch,
    get_batch_by_code,
    list_batches,
)

# Materialization
from .materialization_service import (
    materialize,
    has_materialized_goods,
    get_materialized_goods,
)

# Exception hierarchy
from .exceptions import (
    ServiceError,
    ValidationError,
    FractionalNotAllowed,
    MissingTag,
    UnknownUnit,
    UnknownTag,
    InvalidQaTransition,
    PreconditionError,
    BatchLocked,
    NoOutputsDefined,
    InvalidDateRange,
    QaNotResolved,
    MissingReason,
    ResourceError,
    InsufficientQuantity,
    LotUnusable,
    NotFoundError,
    BatchNotFound,
    LotNotFound,
    ConsumptionNotFound,
    AlreadyReleased,
    OutputNotFound,
    OperatorNotFound,
    IntegrityViolation,
    TransientStoreError,
)

# Session management
from .database import session_scope, run_in_transaction

__all__ = [
    # Modules
    "database",
    "directory_service",
    "consumption_service",
    "lot_service",
    "batch_output_service",
    "materialization_service",
    "batch_service",
    # Lot pool ledger
    "reserve",
    "release",
    "replace_consumption",
    "receive_lot",
    "get_lot",
    "get_lot_by_code",
    "list_lots",
    "set_lot_usable",
    "get_lot_movements",
    "get_lot_usage",
    "check_lot_in_locked_batches",
    "verify_lot_ledger",
    # Consumption records
    "get_batch_consumptions",
    "get_consumption",
    "is_batch_locked",
    # Outputs
    "add_output",
    "update_output",
    "remove_output",
    "get_output",
    "get_batch_outputs",
    # Batch lifecycle
    "create_batch",
    "edit_batch",
    "save_batch",
    "finalize_batch",
    "delete_batch",
    "get_batch",
    "get_batch_by_code",
    "list_batches",
    # Materialization
    "materialize",
    "has_materialized_goods",
    "get_materialized_goods",
    # Exceptions
    "ServiceError",
    "ValidationError",
    "FractionalNotAllowed",
    "MissingTag",
    "UnknownUnit",
    "UnknownTag",
    "InvalidQaTransition",
    "PreconditionError",
    "BatchLocked",
    "NoOutputsDefined",
    "InvalidDateRange",
    "QaNotResolved",
    "MissingReason",
    "ResourceError",
    "InsufficientQuantity",
    "LotUnusable",
    "NotFoundError",
    "BatchNotFound",
    "LotNotFound",
    "ConsumptionNotFound",
    "AlreadyReleased",
    "OutputNotFound",
    "OperatorNotFound",
    "IntegrityViolation",
    "TransientStoreError",
    # Session management
    "session_scope",
    "run_in_transaction",
]

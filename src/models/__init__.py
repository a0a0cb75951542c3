"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import QaStatus, LotType, MovementType
from .operator import Operator
from .unit import Unit
from .produced_goods_tag import ProducedGoodsTag
from .lot import Lot
from .lot_movement import LotMovement
from .production_batch import ProductionBatch
from .batch_consumption import BatchConsumption
from .batch_output import BatchOutput
from .materialized_good import BatchMaterialization, MaterializedGood

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "QaStatus",
    "LotType",
    "MovementType",
    # Directories
    "Operator",
    "Unit",
    "ProducedGoodsTag",
    # Lot pool
    "Lot",
    "LotMovement",
    # Batch workflow
    "ProductionBatch",
    "BatchConsumption",
    "BatchOutput",
    # Downstream inventory
    "BatchMaterialization",
    "MaterializedGood",
]

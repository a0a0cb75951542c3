"""
Constants for the Production Batch Tracker application.

This module defines all system-wide constants including:
- Application metadata
- Lot, QA and movement vocabularies
- Default directory seeds (units, produced goods tags)
- Field limits
"""

from decimal import Decimal
from typing import Dict, List, Tuple

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Production Batch Tracker"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"
DATABASE_FILENAME = "batch_tracker.db"

# ============================================================================
# Batches
# ============================================================================

DEFAULT_BATCH_CODE_PREFIX = "BATCH-"
BATCH_CODE_DIGITS = 4

# Attempts made when two callers race for the same sequential batch code
BATCH_CODE_MAX_ATTEMPTS = 5

# Fields callers may change on a draft batch through edit/save
EDITABLE_BATCH_FIELDS: Tuple[str, ...] = (
    "notes",
    "batch_date",
    "responsible_operator_id",
    "qa_status",
    "qa_reason",
    "production_start_date",
    "production_end_date",
    "additional_information",
    "custom_fields",
)

# Subset accepted by save/finalize completion data
COMPLETION_FIELDS: Tuple[str, ...] = (
    "qa_status",
    "qa_reason",
    "production_start_date",
    "production_end_date",
    "additional_information",
    "custom_fields",
)

# ============================================================================
# Lots
# ============================================================================

LOT_TYPE_RAW_MATERIAL = "raw_material"
LOT_TYPE_PACKAGING = "packaging"
LOT_TYPES: List[str] = [LOT_TYPE_RAW_MATERIAL, LOT_TYPE_PACKAGING]

# Quantities are stored with this many decimal places
QUANTITY_SCALE = 3

# Largest value a Numeric(14, 3) column holds
MAX_QUANTITY = Decimal("99999999999.999")

# ============================================================================
# Directories
# ============================================================================

UNIT_TYPE_RAW_MATERIAL = "raw_material"
UNIT_TYPE_PACKAGING = "packaging"
UNIT_TYPE_PRODUCED_GOODS = "produced_goods"
UNIT_TYPES: List[str] = [
    UNIT_TYPE_RAW_MATERIAL,
    UNIT_TYPE_PACKAGING,
    UNIT_TYPE_PRODUCED_GOODS,
]

DIRECTORY_STATUS_ACTIVE = "active"
DIRECTORY_STATUS_INACTIVE = "inactive"

# (code, display_name, allows_decimal) per unit type
DEFAULT_UNITS: Dict[str, List[Tuple[str, str, bool]]] = {
    UNIT_TYPE_RAW_MATERIAL: [
        ("Kg.", "Kilogram", True),
        ("g", "Gram", True),
        ("L", "Litre", True),
        ("ml", "Millilitre", True),
        ("pieces", "Pieces", False),
    ],
    UNIT_TYPE_PACKAGING: [
        ("pieces", "Pieces", False),
        ("rolls", "Rolls", False),
        ("boxes", "Boxes", False),
    ],
    UNIT_TYPE_PRODUCED_GOODS: [
        ("Kg.", "Kilogram", True),
        ("L", "Litre", True),
        ("bottles", "Bottles", False),
        ("pouches", "Pouches", False),
        ("jars", "Jars", False),
    ],
}

# (tag_key, display_name)
DEFAULT_PRODUCED_GOODS_TAGS: List[Tuple[str, str]] = [
    ("finished_liquid", "Finished Liquid"),
    ("finished_powder", "Finished Powder"),
    ("semi_finished", "Semi Finished"),
]

# ============================================================================
# Field Limits
# ============================================================================

MAX_NAME_LENGTH = 200
MAX_CODE_LENGTH = 50
MAX_UNIT_LENGTH = 50
MAX_REASON_LENGTH = 2000

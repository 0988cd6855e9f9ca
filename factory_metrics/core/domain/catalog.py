"""
Domain Catalog

Record kinds and ratio-formula variants of the factory. Tables and columns
follow the production database schema.
"""

from decimal import Decimal
from typing import Dict

from factory_metrics.core.domain.models import UNKNOWN_FABRIC
from factory_metrics.core.domain.settings import RatioFormula, RecordKind

# ============================================================
# SEWING
# ============================================================

SEWING_MACHINES = (
    tuple(f"C{i}" for i in range(1, 13))
    + tuple(f"S{i}" for i in range(1, 25))
    + ("ST1", "ST2")
)

SEWING_OP_TYPES = ("SP1", "SP2", "PC", "SB", "SPP", "SS", "SSP", "SD", "ST")

SEWING_MULTIPLIERS = {
    "SP1": Decimal("1"),
    "SP2": Decimal("2"),
    "PC": Decimal("1.5"),
    "SB": Decimal("2"),
    "SPP": Decimal("1"),
    "SS": Decimal("0.2"),
    "SSP": Decimal("0.2"),
    "SD": Decimal("0.6"),
    "ST": Decimal("0.2"),
}

SEWING = RecordKind(
    name="sewing",
    table="Sewing",
    fields=SEWING_MACHINES,
    categories=SEWING_OP_TYPES,
    weights=SEWING_MULTIPLIERS,
    fields_are_subcategories=True,
)

# ============================================================
# INSPECTION
# ============================================================

INSPECTION_MACHINES = tuple(f"I{i}" for i in range(1, 15))

INSPECTION_OP_TYPES = ("IH", "S", "OS", "B")

INSPECTION = RecordKind(
    name="inspection",
    table="Inspection",
    fields=INSPECTION_MACHINES,
    categories=INSPECTION_OP_TYPES,
    fields_are_subcategories=True,
)

# ============================================================
# PACKING
# ============================================================

PACKING_OP_TYPES = ("in-house", "semi", "complete wt 100%", "complete wo 100%")

# One packing row carries every op type; the column name encodes (op type, machine)
PACKING_COLUMNS = {
    "M1ForInHouse": ("in-house", "M1"),
    "M2ForInHouse": ("in-house", "M2"),
    "M1ForSemi": ("semi", "M1"),
    "M2ForSemi": ("semi", "M2"),
    "M1ForCompleteWt100": ("complete wt 100%", "M1"),
    "M2ForCompleteWt100": ("complete wt 100%", "M2"),
    "M1ForCompleteWO100": ("complete wo 100%", "M1"),
    "M2ForCompleteWO100": ("complete wo 100%", "M2"),
}

PACKING = RecordKind(
    name="packing",
    table="Packing",
    fields=("M1", "M2"),
    categories=PACKING_OP_TYPES,
    fields_are_subcategories=True,
    category_column=None,
    pivot_columns=PACKING_COLUMNS,
)

# ============================================================
# CUTTING
# ============================================================

# pcs, weight x pcs, length x pcs
CUTTING_MEASURES = ("actualOutput", "areaM2", "lengthMl")

CUTTING = RecordKind(
    name="cutting",
    table="Cutting",
    fields=("actualOutput",),
    timestamp_is_date=True,
    category_column="panelType",
    subcategory_column="panelId",
    missing_subcategory_label=UNKNOWN_FABRIC,
    product_fields={
        "areaM2": ("weight", "actualOutput"),
        "lengthMl": ("lengthSize", "actualOutput"),
    },
)

# ============================================================
# RATIO FORMULAS (efficiency / utilization)
# ============================================================

SEWING_EFFICIENCY = RatioFormula(
    name="sewing",
    table="EfficiencySewing",
    target_weights={"panel": Decimal("1")},
    target_columns={"panel": "m1_target_panel"},
    actual_output_kind="sewing",
)

INSPECTION100_EFFICIENCY = RatioFormula(
    name="inspection100",
    table="EfficiencyInspection100",
    target_weights={
        "panel": Decimal("0.85"),
        "duffel": Decimal("0.04"),
        "blower": Decimal("0.11"),
    },
    target_columns={
        "panel": "m1_target_panel",
        "duffel": "m6_target_duffel",
        "blower": "m7_target_blower",
    },
    actual_output_kind="inspection",
)

RECORD_KINDS: Dict[str, RecordKind] = {
    kind.name: kind for kind in (SEWING, INSPECTION, PACKING, CUTTING)
}

RATIO_FORMULAS: Dict[str, RatioFormula] = {
    formula.name: formula for formula in (SEWING_EFFICIENCY, INSPECTION100_EFFICIENCY)
}

# Record kinds reported as one rollup per measure
MEASURES: Dict[str, tuple] = {
    "cutting": CUTTING_MEASURES,
}

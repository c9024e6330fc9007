# backend/unit_conversion_engine.py

"""
Unit Conversion Engine

This engine is responsible for:
- Resolving the conversion rule for a unit pair (FROM_TO_TO key)
- Product-specific factor overrides (per SKU)
- Conversion direction from the unit hierarchy
- Two-decimal rounding of every converted quantity

This engine MUST NOT:
- Log, retry or persist anything
- Synthesize transitive conversions (PIECE -> BOX -> CARTON)
- Guess a direction for units outside the hierarchy
- Mutate the conversion table it was built with

GLOBAL INVARIANTS (ENFORCED):
1) Same unit → quantity returned unchanged (no rounding)
2) Missing "<FROM>_TO_<TO>" rule → HARD ERROR
3) SKU override always wins over the rule default
4) Smaller → larger unit divides, otherwise multiplies
5) Unit missing from unitHierarchy → HARD ERROR
6) Results are rounded half away from zero to 2 decimals
7) NaN or infinite result → HARD ERROR
"""

import math
from typing import Optional, List, Dict, Any
from decimal import Context, Decimal, ROUND_HALF_UP
from pydantic import BaseModel, ConfigDict, Field, field_validator

# ==================== PRECISION RULES ====================

# Rounding is applied to result × 100, so the float product decides the tie
DECIMAL_PLACES = 2
ROUNDING_SCALE = Decimal(10) ** DECIMAL_PLACES
# Enough digits to quantize any finite float (max ~1.8e308) without InvalidOperation
ROUNDING_CONTEXT = Context(prec=400, rounding=ROUND_HALF_UP)

# ==================== ERROR CLASSES ====================

class ConversionError(Exception):
    """Base conversion error"""
    def __init__(self, error_code: str, message: str, field: Optional[str] = None, severity: str = "HARD_ERROR"):
        self.error_code = error_code
        self.message = message
        self.field = field
        self.severity = severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "field": self.field,
            "severity": self.severity
        }


class NoConversionRuleError(ConversionError):
    """No rule for the requested unit pair"""
    def __init__(self, from_unit: str, to_unit: str):
        super().__init__(
            "NO_CONVERSION_RULE",
            f"No conversion rule found for {from_unit} to {to_unit}",
            field="unit"
        )


class UnitNotInHierarchyError(ConversionError):
    """Unit has no rank in unitHierarchy"""
    def __init__(self, unit: str, hierarchy: List[str]):
        super().__init__(
            "UNIT_NOT_IN_HIERARCHY",
            f"Unit '{unit}' is not part of the unit hierarchy ({', '.join(hierarchy)}). "
            f"Conversion direction cannot be determined.",
            field="unit"
        )


class InvalidInventoryDataError(ConversionError):
    """Batch payload is not { items: [] }"""
    def __init__(self):
        super().__init__(
            "INVALID_INVENTORY_DATA",
            "Invalid inventory data format. Expected { items: [] }",
            field="items"
        )


class InvalidInventoryItemError(ConversionError):
    """Item is missing quantity/unit or carries a non-numeric quantity"""
    def __init__(self, item: Any, reason: str):
        super().__init__(
            "INVALID_INVENTORY_ITEM",
            f"Invalid inventory item {item!r}: {reason}",
            field="quantity"
        )


class ZeroQuantityError(ConversionError):
    """Conversion factor cannot be derived from a zero quantity"""
    def __init__(self, sku: Optional[str]):
        super().__init__(
            "ZERO_QUANTITY",
            f"Quantity for item '{sku}' is zero. Conversion factor cannot be derived.",
            field="quantity"
        )


class QuantityOutOfRangeError(ConversionError):
    """Converted quantity is not a finite number"""
    def __init__(self, quantity: Any, from_unit: str, to_unit: str):
        super().__init__(
            "QUANTITY_OUT_OF_RANGE",
            f"Quantity {quantity!r} cannot be converted from {from_unit} to {to_unit}: result is not a finite number",
            field="quantity"
        )


class ConversionMasterNotLoadedError(ConversionError):
    """Conversion attempted before a conversion master was loaded"""
    def __init__(self):
        super().__init__(
            "CONVERSION_MASTER_NOT_LOADED",
            "Conversion master is not loaded. Refusing to convert.",
            field="conversionRules"
        )


class ConversionMasterInvalidError(ConversionError):
    """Conversion master document failed to parse or validate"""
    def __init__(self, source: str, reason: str):
        super().__init__(
            "CONVERSION_MASTER_INVALID",
            f"Invalid conversion master '{source}': {reason}",
            field="conversionRules"
        )


# ==================== DATA MODELS ====================

class ConversionRule(BaseModel):
    """Factor for one direction key, with optional per-SKU overrides"""
    model_config = ConfigDict(frozen=True)

    default: float = Field(gt=0)
    products: Dict[str, float] = Field(default_factory=dict)

    @field_validator("products")
    @classmethod
    def _positive_product_factors(cls, value: Dict[str, float]) -> Dict[str, float]:
        for sku, factor in value.items():
            if factor <= 0:
                raise ValueError(f"factor for product '{sku}' must be greater than 0")
        return value


class ConversionTable(BaseModel):
    """Immutable conversion master (one loaded version)"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str
    supported_units: List[str] = Field(alias="supportedUnits", min_length=1)
    unit_hierarchy: List[str] = Field(alias="unitHierarchy")
    conversion_rules: Dict[str, ConversionRule] = Field(alias="conversionRules", default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_string(cls, value: Any) -> Any:
        # "version": 1 and "version": "1" are the same master
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def rule_key(self, from_unit: str, to_unit: str) -> str:
        return f"{from_unit}_TO_{to_unit}"


# ==================== UNIT CONVERSION ENGINE ====================

class UnitConversionEngine:
    """
    Stateless unit conversion engine bound to one ConversionTable.

    The table is never modified; a reloaded master gets a new engine.
    Callers that captured an engine keep converting against its table
    even after a reload (snapshot semantics).
    """

    def __init__(self, table: ConversionTable):
        """
        Initialize engine.

        Args:
            table: Loaded conversion master
        """
        self.table = table
        self._hierarchy_rank: Dict[str, int] = {}
        for index, unit in enumerate(table.unit_hierarchy):
            self._hierarchy_rank.setdefault(unit, index)

    @property
    def version(self) -> str:
        return self.table.version

    @property
    def supported_units(self) -> List[str]:
        return list(self.table.supported_units)

    def get_rule(self, from_unit: str, to_unit: str) -> ConversionRule:
        """
        Look up the rule for an exact unit pair.

        Raises:
            NoConversionRuleError: If "<FROM>_TO_<TO>" is not in the table
        """
        rule = self.table.conversion_rules.get(self.table.rule_key(from_unit, to_unit))
        if rule is None:
            raise NoConversionRuleError(from_unit, to_unit)
        return rule

    def resolve_factor(self, rule: ConversionRule, sku: Optional[str] = None) -> float:
        """Product-specific factor if the SKU has one, else the rule default"""
        if sku is not None and sku != "":
            override = rule.products.get(str(sku))
            if override is not None:
                return override
        return rule.default

    def hierarchy_rank(self, unit: str) -> int:
        """
        Position of unit in unitHierarchy (0 = smallest).

        Raises:
            UnitNotInHierarchyError: If unit has no rank
        """
        rank = self._hierarchy_rank.get(unit)
        if rank is None:
            raise UnitNotInHierarchyError(unit, self.table.unit_hierarchy)
        return rank

    def apply_precision(self, value: float) -> float:
        """
        Round value to 2 decimals, half away from zero.

        The float product value × 100 is rounded to an integer and divided
        back, so 1.005 stays 1.0 (1.005 × 100 == 100.49999...).
        Values whose × 100 product overflows are already whole numbers and
        come back unchanged.
        """
        product = value * 100
        if not math.isfinite(product):
            return value
        scaled = Decimal(str(product))
        rounded = scaled.quantize(Decimal(1), context=ROUNDING_CONTEXT)
        return float(ROUNDING_CONTEXT.divide(rounded, ROUNDING_SCALE))

    def convert_unit(
        self,
        quantity: float,
        from_unit: str,
        to_unit: str,
        sku: Optional[str] = None
    ) -> float:
        """
        Convert quantity from one unit to another.

        Follows strict step-by-step process:
        1) Identity short-circuit (no lookup, no rounding)
        2) Resolve rule for "<FROM>_TO_<TO>"
        3) Resolve factor (SKU override > default)
        4) Direction from unitHierarchy (smaller → larger divides)
        5) Apply precision

        Args:
            quantity: Amount in from_unit
            from_unit: Source unit (e.g. 'PIECE')
            to_unit: Target unit (e.g. 'BOX')
            sku: Product identifier for override lookup

        Returns:
            Converted quantity

        Raises:
            NoConversionRuleError: No rule for the unit pair
            UnitNotInHierarchyError: Either unit missing from unitHierarchy
            QuantityOutOfRangeError: Result is NaN or infinite
        """
        if from_unit == to_unit:
            return quantity

        rule = self.get_rule(from_unit, to_unit)
        factor = self.resolve_factor(rule, sku)

        if self.hierarchy_rank(from_unit) < self.hierarchy_rank(to_unit):
            # Smaller to larger unit (e.g. PIECE to BOX)
            raw_value = quantity / factor
        else:
            # Larger to smaller unit (e.g. BOX to PIECE)
            raw_value = quantity * factor

        if not math.isfinite(raw_value):
            raise QuantityOutOfRangeError(quantity, from_unit, to_unit)

        return self.apply_precision(raw_value)

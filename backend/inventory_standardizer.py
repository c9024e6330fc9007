# backend/inventory_standardizer.py

"""
Inventory standardization on top of the UnitConversionEngine.

- standardize_item: one item → quantities in every supported unit.
  Never raises for item problems; failures come back as error records.
- process_inventory_data: batch of items with per-item failure isolation.
- convert_units: items → one explicit target unit. NO per-item isolation,
  the first failure aborts the whole call.
"""

import json
import logging
import math
from datetime import datetime, timezone
from numbers import Number
from typing import Any, Dict, List

from unit_conversion_engine import (
    UnitConversionEngine,
    ConversionError,
    InvalidInventoryDataError,
    InvalidInventoryItemError,
    ZeroQuantityError
)

logger = logging.getLogger(__name__)

CORE_FIELDS = ("sku", "quantity", "unit")
MISSING_FIELDS_MESSAGE = "Missing required fields: sku, quantity, unit"
NON_NUMERIC_QUANTITY_MESSAGE = "Quantity must be numeric"
NON_FINITE_QUANTITY_MESSAGE = "Quantity must be a finite number"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_numeric(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _is_finite(value: Number) -> bool:
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints too large for a float
        return False


def standardize_item(engine: UnitConversionEngine, item: Dict[str, Any]) -> Dict[str, Any]:
    """
    Standardize a single inventory item's units.

    Returns either a standardized item:
        {...passthrough, sku, originalQuantity, originalUnit, standardizedUnits, convertedAt}
    or an error record:
        {...item, error}
    """
    if not isinstance(item, dict):
        logger.warning(f"Invalid item format: {item!r}")
        return {"item": item, "error": MISSING_FIELDS_MESSAGE}

    sku = item.get("sku")
    quantity = item.get("quantity")
    unit = item.get("unit")

    if not sku or not quantity or not unit:
        logger.warning(f"Invalid item format: {json.dumps(item, default=str)}")
        return {**item, "error": MISSING_FIELDS_MESSAGE}

    if not _is_numeric(quantity):
        logger.warning(f"Non-numeric quantity for item {sku}: {quantity!r}")
        return {**item, "error": NON_NUMERIC_QUANTITY_MESSAGE}

    if not _is_finite(quantity):
        logger.warning(f"Non-finite quantity for item {sku}: {quantity!r}")
        # NaN/Infinity are echoed as text so the record stays valid JSON
        return {**item, "quantity": str(quantity), "error": NON_FINITE_QUANTITY_MESSAGE}

    try:
        conversions: Dict[str, Any] = {}
        for target_unit in engine.table.supported_units:
            if unit == target_unit:
                conversions[target_unit] = quantity
            else:
                conversions[target_unit] = engine.convert_unit(quantity, unit, target_unit, sku)
    except ConversionError as e:
        logger.error(f"Failed to standardize item {sku}: {e.message}")
        return {**item, "error": e.message}

    passthrough = {key: value for key, value in item.items() if key not in CORE_FIELDS}
    return {
        **passthrough,
        "sku": sku,
        "originalQuantity": quantity,
        "originalUnit": unit,
        "standardizedUnits": conversions,
        "convertedAt": _utc_now()
    }


def process_inventory_data(engine: UnitConversionEngine, data: Any) -> Dict[str, Any]:
    """
    Process inventory data and standardize units.

    Every item is standardized independently; a failed item becomes an
    error record and never affects its siblings. Output order matches input.

    Raises:
        InvalidInventoryDataError: data is not a mapping with an items list
    """
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise InvalidInventoryDataError()

    logger.info("Processing inventory data for unit standardization")

    processed_items = [standardize_item(engine, item) for item in data["items"]]
    failed = sum(1 for item in processed_items if "error" in item)

    result = {
        **data,
        "items": processed_items,
        "processedAt": _utc_now(),
        "conversionVersion": engine.version
    }

    logger.info(f"Processed {len(processed_items)} inventory items ({failed} failed)")
    return result


def convert_units(engine: UnitConversionEngine, items: Any, target_unit: str) -> List[Dict[str, Any]]:
    """
    Convert multiple items to one target unit.

    Unlike process_inventory_data there is no failure isolation: the first
    item that cannot be converted raises and nothing is returned.

    Raises:
        InvalidInventoryDataError: items is not a list
        InvalidInventoryItemError: item without quantity/unit, or a non-numeric / non-finite quantity
        ZeroQuantityError: item quantity is 0 (conversion factor undefined)
        NoConversionRuleError / UnitNotInHierarchyError: from the engine
    """
    if not isinstance(items, list):
        raise InvalidInventoryDataError()

    converted: List[Dict[str, Any]] = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidInventoryItemError(item, "expected an object")

        quantity = item.get("quantity")
        unit = item.get("unit")
        sku = item.get("sku")

        if quantity is None or not unit:
            raise InvalidInventoryItemError(item, "quantity and unit are required")
        if not _is_numeric(quantity):
            raise InvalidInventoryItemError(item, NON_NUMERIC_QUANTITY_MESSAGE.lower())
        if not _is_finite(quantity):
            raise InvalidInventoryItemError(item, NON_FINITE_QUANTITY_MESSAGE.lower())
        if quantity == 0:
            raise ZeroQuantityError(sku)

        converted_quantity = engine.convert_unit(quantity, unit, target_unit, sku)
        converted.append({
            **item,
            "convertedQuantity": converted_quantity,
            "convertedUnit": target_unit,
            "conversionFactor": converted_quantity / quantity
        })

    return converted

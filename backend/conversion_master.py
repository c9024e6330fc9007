# backend/conversion_master.py

"""
Conversion master loading.

Reads the conversion master JSON document and validates it into an
immutable ConversionTable. The table is never edited here; a new load
produces a new table.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from pydantic import ValidationError

from unit_conversion_engine import ConversionTable, ConversionMasterInvalidError

logger = logging.getLogger(__name__)


def parse_conversion_master(raw: Dict[str, Any], source: str = "<memory>") -> ConversionTable:
    """
    Validate a decoded conversion master document.

    Raises:
        ConversionMasterInvalidError: Schema violation (missing field, factor <= 0, ...)
    """
    if not isinstance(raw, dict):
        raise ConversionMasterInvalidError(source, "expected a JSON object")

    try:
        table = ConversionTable.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConversionMasterInvalidError(source, problems) from e

    missing = [unit for unit in table.supported_units if unit not in table.unit_hierarchy]
    if missing:
        logger.warning(
            f"Conversion master v{table.version}: supported units {missing} are not in unitHierarchy, "
            f"conversions involving them will fail"
        )

    return table


def load_conversion_master(path: Union[str, Path]) -> ConversionTable:
    """
    Load conversion master data from a JSON file.

    Args:
        path: Path to conversion-master.json

    Returns:
        Validated ConversionTable

    Raises:
        FileNotFoundError: File does not exist
        ConversionMasterInvalidError: File is not valid JSON or fails validation
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Conversion master file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConversionMasterInvalidError(str(path), f"invalid JSON ({e})") from e

    table = parse_conversion_master(raw, source=str(path))
    logger.info(f"Loaded conversion master v{table.version} from {path}")
    return table

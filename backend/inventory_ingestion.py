# backend/inventory_ingestion.py

"""
File ingestion for inventory data.

- JSON files are read as-is ({ items: [...], ...metadata })
- CSV files become { items: [...] }, one item per row
- Processed batches are archived as processed_<name>_<timestamp>.json
- InventoryFileWatcher polls the data directory for new/changed files
"""

import asyncio
import json
import logging
import re
import warnings
from contextlib import suppress
from datetime import datetime, timezone
from io import StringIO
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import pandas as pd

from unit_conversion_engine import ConversionError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".json", ".csv"}
NUMBER_PATTERN = re.compile(r"^\d+(\.\d+)?$")


class UnsupportedFileTypeError(ConversionError):
    """Only .json and .csv inventory files are processed"""
    def __init__(self, extension: str):
        super().__init__(
            "UNSUPPORTED_FILE_TYPE",
            f"Unsupported file type: {extension or '<none>'}",
            field="file",
            severity="WARNING"
        )


# ==================== PARSING ====================

def parse_value(value: Any) -> Any:
    """Numbers stay numbers ("100" → 100, "1.5" → 1.5), everything else is trimmed text"""
    text = str(value).strip()
    if NUMBER_PATTERN.match(text):
        return float(text) if "." in text else int(text)
    return text


def parse_csv(content: str) -> Dict[str, List[Dict[str, Any]]]:
    """
    Parse CSV text with a header row into { items: [...] }.

    Values are trimmed; plain decimal numbers are converted.
    Missing trailing cells become empty strings, cells beyond the
    header are dropped.
    """
    if not content or not content.strip():
        return {"items": []}

    # index_col=False keeps fields mapped by header position when rows
    # carry extra cells (pandas would otherwise treat them as an index)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", pd.errors.ParserWarning)
        df = pd.read_csv(
            StringIO(content.strip()),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            index_col=False,
            engine="python"
        )
    if any(issubclass(w.category, pd.errors.ParserWarning) for w in caught):
        logger.warning("CSV rows have more cells than the header; extra cells were dropped")
    df.columns = [str(col).strip() for col in df.columns]
    # short rows come back as NaN even with keep_default_na=False
    df = df.fillna("")

    items = [
        {header: parse_value(value) for header, value in row.items()}
        for row in df.to_dict(orient="records")
    ]
    return {"items": items}


def load_inventory_file(file_path: Union[str, Path]) -> Any:
    """
    Read an inventory file (JSON/CSV).

    Raises:
        UnsupportedFileTypeError: Extension is not .json or .csv
        FileNotFoundError: File does not exist
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    if ext == ".json":
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    if ext == ".csv":
        return parse_csv(path.read_text(encoding="utf-8"))

    raise UnsupportedFileTypeError(ext)


def save_processed_data(
    original_path: Union[str, Path],
    processed_data: Dict[str, Any],
    log_directory: Union[str, Path]
) -> Path:
    """Write processed_<name>_<timestamp>.json into log_directory and return its path"""
    original_path = Path(original_path)
    log_directory = Path(log_directory)

    timestamp = re.sub(r"[:.]", "-", datetime.now(timezone.utc).isoformat())
    output_path = log_directory / f"processed_{original_path.stem}_{timestamp}.json"

    log_directory.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(processed_data, f, indent=2, default=str)

    logger.info(f"Saved processed data to: {output_path}")
    return output_path


# ==================== FILE WATCHER ====================

InventoryFileCallback = Callable[[Path], Awaitable[Any]]


class InventoryFileWatcher:
    """
    Polls a directory and hands new or changed files to on_file.

    Files present when the watcher starts are handled on the first scan.
    A file counts as changed when its mtime or size differs from the
    last scan. Hidden files (".name") are ignored.
    """

    def __init__(self, directory: Union[str, Path], on_file: InventoryFileCallback, interval: float = 2.0):
        self.directory = Path(directory)
        self.on_file = on_file
        self.interval = interval
        self._seen: Dict[Path, Tuple[int, int]] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def scan(self) -> List[Path]:
        """Return files that are new or changed since the previous scan"""
        if not self.directory.exists():
            return []

        pending: List[Path] = []
        present = set()
        for path in sorted(self.directory.iterdir()):
            if path.name.startswith(".") or not path.is_file():
                continue

            stat = path.stat()
            signature = (stat.st_mtime_ns, stat.st_size)
            present.add(path)

            previous = self._seen.get(path)
            if previous == signature:
                continue

            if previous is None:
                logger.info(f"New file detected: {path}")
            else:
                logger.info(f"File changed: {path}")
            self._seen[path] = signature
            pending.append(path)

        for gone in set(self._seen) - present:
            del self._seen[gone]

        return pending

    async def _run(self):
        while True:
            try:
                for path in self.scan():
                    try:
                        await self.on_file(path)
                    except Exception as e:
                        logger.error(f"Failed to process file {path}: {e}")
            except Exception as e:
                logger.error(f"Error scanning {self.directory}: {e}")
            await asyncio.sleep(self.interval)

    def start(self):
        if self.is_running:
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        self._task = asyncio.create_task(self._run())
        logger.info(f"File watcher setup for directory: {self.directory}")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

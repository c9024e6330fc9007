# backend/inventory_agent.py

"""
InventoryUnitConverter - always-on agent for inventory unit conversion.

Owns the currently loaded conversion master (as a UnitConversionEngine),
watches the data directory for inventory files and exposes the
standardization operations to the HTTP layer.

A reload builds the new table and engine completely before swapping the
single `_engine` reference, so concurrent callers either see the old
engine or the new one, never a half-loaded table.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from converter_settings import ConverterConfig
from conversion_master import load_conversion_master
from inventory_ingestion import (
    SUPPORTED_EXTENSIONS,
    InventoryFileWatcher,
    load_inventory_file,
    save_processed_data
)
from inventory_standardizer import standardize_item, process_inventory_data, convert_units
from unit_conversion_engine import (
    UnitConversionEngine,
    ConversionTable,
    ConversionMasterNotLoadedError
)

logger = logging.getLogger(__name__)


class InventoryUnitConverter:
    """Auto-detects new inventory data and standardizes units using the conversion master"""

    def __init__(self, config: Optional[ConverterConfig] = None):
        self.config = config or ConverterConfig()
        self.is_running = False
        self.file_watcher: Optional[InventoryFileWatcher] = None
        self._engine: Optional[UnitConversionEngine] = None
        self._reload_lock = threading.Lock()
        self._stopped: Optional[asyncio.Event] = None

    # ==================== CONVERSION MASTER ====================

    @property
    def engine(self) -> UnitConversionEngine:
        """Current engine snapshot; callers should capture it once per operation"""
        engine = self._engine
        if engine is None:
            raise ConversionMasterNotLoadedError()
        return engine

    @property
    def conversion_rules(self) -> Optional[ConversionTable]:
        engine = self._engine
        return engine.table if engine else None

    def load_conversion_master(self, path: Union[str, Path, None] = None) -> ConversionTable:
        """Load the master and atomically replace the current engine"""
        path = Path(path) if path is not None else self.config.conversion_master_path
        with self._reload_lock:
            table = load_conversion_master(path)
            self._engine = UnitConversionEngine(table)
        return table

    def reload_conversion_master(self) -> ConversionTable:
        logger.info("Reloading conversion master data")
        return self.load_conversion_master()

    # ==================== LIFECYCLE ====================

    async def initialize(self):
        """Load the conversion master and start the file watcher (if enabled)"""
        try:
            logger.info("Initializing InventoryUnitConverter agent")
            self.load_conversion_master()

            if self.config.enable_file_watcher:
                self.file_watcher = InventoryFileWatcher(
                    self.config.data_directory,
                    self._handle_file,
                    interval=self.config.watch_interval_seconds
                )
                self.file_watcher.start()

            self.is_running = True
            logger.info("InventoryUnitConverter agent initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize converter: {e}")
            raise

    async def stop(self):
        logger.info("Stopping InventoryUnitConverter agent")
        self.is_running = False

        if self.file_watcher:
            await self.file_watcher.stop()
            self.file_watcher = None

        if self._stopped is not None:
            self._stopped.set()

        logger.info("InventoryUnitConverter agent stopped")

    async def run_forever(self):
        """Initialize and block until stop() is called (watcher-only mode)"""
        self._stopped = asyncio.Event()
        await self.initialize()
        logger.info("Agent is running continuously. Press Ctrl+C to stop.")
        try:
            await self._stopped.wait()
        finally:
            if self.is_running:
                await self.stop()

    # ==================== OPERATIONS ====================

    def convert_unit(self, quantity: float, from_unit: str, to_unit: str, sku: Optional[str] = None) -> float:
        return self.engine.convert_unit(quantity, from_unit, to_unit, sku)

    def standardize_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return standardize_item(self.engine, item)

    def process_inventory_data(self, data: Any) -> Dict[str, Any]:
        return process_inventory_data(self.engine, data)

    def convert_units(self, items: Any, target_unit: str) -> List[Dict[str, Any]]:
        return convert_units(self.engine, items, target_unit)

    def process_inventory_file(self, file_path: Union[str, Path]) -> Optional[Dict[str, Any]]:
        """
        Process inventory file (JSON/CSV) and archive the result.

        Returns None for unsupported file types.
        """
        path = Path(file_path)
        if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            logger.warning(f"Unsupported file type: {path.suffix or '<none>'} ({path})")
            return None

        data = load_inventory_file(path)
        result = self.process_inventory_data(data)
        save_processed_data(path, result, self.config.log_directory)

        logger.info(f"Processed file: {path} ({len(result['items'])} items)")
        return result

    async def _handle_file(self, path: Path):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.process_inventory_file, path)

    # ==================== STATUS ====================

    def get_health(self) -> Dict[str, Any]:
        table = self.conversion_rules
        return {
            "status": "healthy",
            "version": table.version if table else None,
            "running": self.is_running
        }

    def get_status(self) -> Dict[str, Any]:
        table = self.conversion_rules
        return {
            "running": self.is_running,
            "conversionVersion": table.version if table else None,
            "config": self.config.model_dump(mode="json"),
            "supportedUnits": list(table.supported_units) if table else []
        }

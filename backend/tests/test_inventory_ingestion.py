# backend/tests/test_inventory_ingestion.py

"""
Unit tests for inventory file ingestion

Tests cover:
- CSV parsing (numbers converted, values trimmed)
- JSON/CSV file loading, unsupported extensions
- processed_<name>_<timestamp>.json archive
- File watcher scan: new, unchanged, changed, hidden files
"""

import asyncio
import json
import pytest
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from inventory_ingestion import (
    parse_csv,
    parse_value,
    load_inventory_file,
    save_processed_data,
    InventoryFileWatcher,
    UnsupportedFileTypeError
)


class TestParseCSV:
    """Test CSV parsing"""

    def test_parse_csv(self):
        content = """sku,name,quantity,unit
SKU001,Widget A,100,PIECE
SKU002,Widget B,5,BOX"""

        result = parse_csv(content)

        assert len(result["items"]) == 2
        assert result["items"][0] == {"sku": "SKU001", "name": "Widget A", "quantity": 100, "unit": "PIECE"}
        assert result["items"][1]["quantity"] == 5

    def test_trims_values_and_headers(self):
        result = parse_csv("sku , quantity , unit\n SKU001 , 2.5 , BOX \n")

        assert result["items"] == [{"sku": "SKU001", "quantity": 2.5, "unit": "BOX"}]

    def test_missing_cells_are_empty(self):
        result = parse_csv("sku,quantity,unit\nSKU001,12\n")

        assert result["items"][0]["unit"] == ""

    def test_extra_cells_dropped(self):
        """Test rows with more cells than the header keep header-position mapping"""
        result = parse_csv("sku,quantity,unit\nSKU001,12,PIECE,extra\n")

        assert result["items"] == [{"sku": "SKU001", "quantity": 12, "unit": "PIECE"}]

    def test_some_rows_with_extra_cells(self):
        content = "sku,quantity,unit\nSKU001,12,PIECE\nSKU002,3,BOX,note,more\nSKU003,1,CARTON\n"

        result = parse_csv(content)

        assert result["items"] == [
            {"sku": "SKU001", "quantity": 12, "unit": "PIECE"},
            {"sku": "SKU002", "quantity": 3, "unit": "BOX"},
            {"sku": "SKU003", "quantity": 1, "unit": "CARTON"}
        ]

    def test_empty_content(self):
        assert parse_csv("") == {"items": []}
        assert parse_csv("   \n") == {"items": []}

    def test_parse_value(self):
        assert parse_value("12") == 12
        assert parse_value("12.50") == 12.5
        assert parse_value("-3") == "-3"
        assert parse_value("1e3") == "1e3"
        assert parse_value(" BOX ") == "BOX"


class TestLoadInventoryFile:
    """Test file loading"""

    def test_json_file(self, tmp_path):
        path = tmp_path / "stock.json"
        path.write_text(json.dumps({"source": "outlet-1", "items": [{"sku": "SKU001"}]}), encoding="utf-8")

        data = load_inventory_file(path)

        assert data["source"] == "outlet-1"
        assert data["items"] == [{"sku": "SKU001"}]

    def test_csv_file(self, tmp_path):
        path = tmp_path / "stock.CSV"
        path.write_text("sku,quantity,unit\nSKU001,120,PIECE\n", encoding="utf-8")

        data = load_inventory_file(path)

        assert data == {"items": [{"sku": "SKU001", "quantity": 120, "unit": "PIECE"}]}

    def test_unsupported_file(self, tmp_path):
        path = tmp_path / "stock.xlsx"
        path.write_bytes(b"")

        with pytest.raises(UnsupportedFileTypeError) as exc_info:
            load_inventory_file(path)

        assert exc_info.value.error_code == "UNSUPPORTED_FILE_TYPE"
        assert ".xlsx" in exc_info.value.message


class TestSaveProcessedData:
    """Test processed data archive"""

    def test_save(self, tmp_path):
        log_dir = tmp_path / "logs"
        data = {"items": [{"sku": "SKU001"}], "conversionVersion": "1.0.0"}

        output_path = save_processed_data(tmp_path / "data" / "outlet.csv", data, log_dir)

        assert output_path.parent == log_dir
        assert output_path.name.startswith("processed_outlet_")
        assert output_path.suffix == ".json"
        assert ":" not in output_path.name
        assert json.loads(output_path.read_text(encoding="utf-8")) == data


class TestInventoryFileWatcher:
    """Test directory polling"""

    @pytest.fixture
    def watcher(self, tmp_path):
        async def on_file(path):
            return path
        return InventoryFileWatcher(tmp_path, on_file, interval=0.01)

    def test_initial_scan_picks_up_existing_files(self, tmp_path, watcher):
        (tmp_path / "a.json").write_text("{}", encoding="utf-8")
        (tmp_path / "b.csv").write_text("sku\n", encoding="utf-8")

        assert watcher.scan() == [tmp_path / "a.json", tmp_path / "b.csv"]

    def test_unchanged_files_skipped(self, tmp_path, watcher):
        (tmp_path / "a.json").write_text("{}", encoding="utf-8")
        watcher.scan()

        assert watcher.scan() == []

    def test_changed_file_detected(self, tmp_path, watcher):
        path = tmp_path / "a.json"
        path.write_text("{}", encoding="utf-8")
        watcher.scan()

        path.write_text('{"items": []}', encoding="utf-8")

        assert watcher.scan() == [path]

    def test_hidden_files_ignored(self, tmp_path, watcher):
        (tmp_path / ".a.json.swp").write_text("x", encoding="utf-8")
        (tmp_path / "nested").mkdir()

        assert watcher.scan() == []

    def test_missing_directory(self, tmp_path):
        async def on_file(path):
            return path
        watcher = InventoryFileWatcher(tmp_path / "missing", on_file)

        assert watcher.scan() == []

    @pytest.mark.asyncio
    async def test_start_and_stop(self, tmp_path):
        handled = []

        async def on_file(path):
            handled.append(path)

        data_dir = tmp_path / "data"
        watcher = InventoryFileWatcher(data_dir, on_file, interval=0.01)
        watcher.start()
        assert data_dir.exists()
        assert watcher.is_running

        (data_dir / "stock.json").write_text("{}", encoding="utf-8")
        for _ in range(200):
            if handled:
                break
            await asyncio.sleep(0.01)

        await watcher.stop()

        assert handled == [data_dir / "stock.json"]
        assert not watcher.is_running

    @pytest.mark.asyncio
    async def test_handler_failure_keeps_watching(self, tmp_path):
        handled = []

        async def on_file(path):
            handled.append(path)
            raise ValueError("boom")

        (tmp_path / "a.json").write_text("{}", encoding="utf-8")
        watcher = InventoryFileWatcher(tmp_path, on_file, interval=0.01)
        watcher.start()

        for _ in range(200):
            if handled:
                break
            await asyncio.sleep(0.01)
        (tmp_path / "b.json").write_text("{}", encoding="utf-8")
        for _ in range(200):
            if len(handled) >= 2:
                break
            await asyncio.sleep(0.01)

        await watcher.stop()

        assert handled == [tmp_path / "a.json", tmp_path / "b.json"]

"""Tests for the exporter public API."""

import json
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from taskboard_api.lib.exporter import (
    SUPPORTED_FORMATS,
    ExportResult,
    ensure_supported_format,
    export_tasks,
    media_type_for,
)


async def _batches(*batches: list[dict[str, Any]]) -> AsyncIterator[list[dict[str, Any]]]:
    for batch in batches:
        yield batch


class TestExporterPublicAPI:
    """Tests for the exporter __init__ module."""

    def test_supported_formats(self) -> None:
        assert SUPPORTED_FORMATS == ["csv", "json"]

    def test_media_types(self) -> None:
        assert media_type_for("csv") == "text/csv"
        assert media_type_for("json") == "application/json"

    def test_unsupported_format_raises(self) -> None:
        with pytest.raises(ValueError, match="Unsupported format"):
            ensure_supported_format("xml")

    @pytest.mark.asyncio
    async def test_export_csv(self, tmp_path: Path) -> None:
        output = tmp_path / "test.csv"
        result = await export_tasks(_batches([{"id": "1", "title": "A"}]), "csv", output)
        assert isinstance(result, ExportResult)
        assert result.record_count == 1
        assert result.file_size_bytes == output.stat().st_size
        assert result.output_path == output

    @pytest.mark.asyncio
    async def test_export_json(self, tmp_path: Path) -> None:
        output = tmp_path / "test.json"
        result = await export_tasks(_batches([{"id": "1"}, {"id": "2"}]), "json", output)
        assert result.record_count == 2
        assert len(json.loads(output.read_text())["tasks"]) == 2

    @pytest.mark.asyncio
    async def test_export_unsupported_format(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Unsupported format"):
            await export_tasks(_batches(), "xml", tmp_path / "test.xml")
        assert not (tmp_path / "test.xml").exists()

"""
Pytest configuration and shared fixtures.
"""
import io
import os
import sys
import zipfile

import pytest
from openpyxl import Workbook, load_workbook

# Add project root to path for imports
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from populator.ir import DataItem


def build_workbook_bytes(sheets):
    """
    Build an .xlsx from {sheet_name: {"A1": value, ...}}.

    Values may be tuples of (value, number_format) to set a number format.
    """
    wb = Workbook()
    wb.remove(wb.active)
    for sheet_name, cells in sheets.items():
        ws = wb.create_sheet(sheet_name)
        for ref, spec in cells.items():
            if isinstance(spec, tuple):
                value, number_format = spec
                ws[ref] = value
                ws[ref].number_format = number_format
            else:
                ws[ref] = spec
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def load_output(data):
    return load_workbook(io.BytesIO(data), data_only=False)


def add_fake_vba(data):
    """Append an xl/vbaProject.bin part so the archive looks macro-enabled."""
    buffer = io.BytesIO(data)
    with zipfile.ZipFile(buffer, "a") as archive:
        archive.writestr("xl/vbaProject.bin", b"\x00fake-vba")
    return buffer.getvalue()


@pytest.fixture
def make_workbook():
    return build_workbook_bytes


@pytest.fixture
def make_item():
    """Factory for DataItem using the upstream camelCase field names."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        payload = {
            "id": f"item-{counter['n']}",
            "originalName": f"Item {counter['n']}",
            "itemCode": None,
            "value": 0,
            "dataType": "currency",
            "category": "Other",
            "mappingStatus": "confirmed",
            "confidence": 0.9,
        }
        payload.update(overrides)
        return DataItem.model_validate(payload)

    return _make


@pytest.fixture
def read_workbook():
    return load_output


@pytest.fixture
def with_vba():
    return add_fake_vba

"""Spreadsheet-backed table: the first worksheet of an ``.xlsx`` workbook."""

from __future__ import annotations

import zipfile
from pathlib import Path

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException

from geoenrich.common.errors import SetupError
from geoenrich.common.fs import atomic_target


def _text(value) -> str:
    if value is None:
        return ""
    return str(value)


class WorkbookTable:
    def __init__(self, workbook: Workbook) -> None:
        self.workbook = workbook
        self.sheet = workbook.worksheets[0]
        self._rows = [[_text(value) for value in row] for row in self.sheet.iter_rows(values_only=True)]
        # openpyxl reports a single empty row for an empty sheet.
        if self._rows == [[""]]:
            self._rows = []

    @classmethod
    def open(cls, path: Path) -> "WorkbookTable":
        try:
            workbook = load_workbook(path)
        except (OSError, InvalidFileException, KeyError, zipfile.BadZipFile) as exc:
            raise SetupError(f"opening workbook {path}: {exc}") from exc
        if not workbook.worksheets:
            raise SetupError(f"no sheets found in workbook {path}")
        table = cls(workbook)
        if not table.rows():
            workbook.close()
            raise SetupError(f"workbook {path} is empty")
        return table

    @property
    def sheet_name(self) -> str:
        return self.sheet.title

    def rows(self) -> list[list[str]]:
        return self._rows

    def set_cell(self, row_index: int, column_index: int, value: str) -> None:
        # Worksheets reject control characters; geocoder text occasionally carries them.
        value = ILLEGAL_CHARACTERS_RE.sub("", value)
        self.sheet.cell(row=row_index + 1, column=column_index + 1, value=value)
        row = self._rows[row_index]
        if column_index >= len(row):
            row.extend([""] * (column_index + 1 - len(row)))
        row[column_index] = value

    def save(self, path: Path) -> None:
        with atomic_target(Path(path)) as tmp_path:
            self.workbook.save(tmp_path)

    def close(self) -> None:
        self.workbook.close()

"""
Workbook Service - Load and save grid snapshots as workbook files.

Host-side adapter: reads the first worksheet of an .xlsx/.xlsm file (or a
.csv file) into a GridSnapshot, using the first row as column names, and
writes snapshots back out. Formula cells are kept as their text.
"""

import csv
import logging
import math
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, List, Optional, Sequence

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from backend.models.grid import CellValue, GridSnapshot

logger = logging.getLogger(__name__)

EXCEL_EXTENSIONS = ('.xlsx', '.xlsm')
CSV_EXTENSIONS = ('.csv',)


class WorkbookError(ValueError):
    """Raised when a file cannot be read as a grid."""


def _to_cell_value(value: Any) -> CellValue:
    """Convert a raw workbook value into a CellValue."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    # openpyxl ArrayFormula objects carry their text separately
    if hasattr(value, 'text'):
        return str(value.text)
    text = str(value)
    return text if text != '' else None


def _parse_csv_value(text: str) -> CellValue:
    """CSV fields are text; numeric-looking fields become numbers."""
    if text == '':
        return None
    stripped = text.strip()
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        number = float(stripped)
    except ValueError:
        return text
    return number if math.isfinite(number) else text


def _column_names(header: Sequence[Any]) -> List[str]:
    """Header row to unique column names; blanks become 'Column N'."""
    names: List[str] = []
    for index, raw in enumerate(header):
        name = str(raw).strip() if raw is not None and str(raw).strip() else f"Column {index + 1}"
        candidate = name
        suffix = 2
        while candidate in names:
            candidate = f"{name} ({suffix})"
            suffix += 1
        names.append(candidate)
    return names


def _trim_trailing_blank_rows(rows: List[List[CellValue]]) -> List[List[CellValue]]:
    while rows and all(v is None for v in rows[-1]):
        rows.pop()
    return rows


class WorkbookService:
    """Read and write grid snapshots from workbook files."""

    def load(self, file_path: str, sheet_name: Optional[str] = None) -> GridSnapshot:
        """
        Load a grid snapshot from a workbook file.

        Args:
            file_path: Path to .xlsx, .xlsm or .csv file
            sheet_name: Worksheet to read (Excel only; default first sheet)

        Returns:
            GridSnapshot with the header row as columns

        Raises:
            WorkbookError: If the file type is unsupported or unreadable
        """
        path = Path(file_path)
        ext = path.suffix.lower()

        if ext in EXCEL_EXTENSIONS:
            header, rows = self._read_excel(path, sheet_name)
        elif ext in CSV_EXTENSIONS:
            header, rows = self._read_csv(path)
        else:
            raise WorkbookError(f"Unsupported file type: {ext or path.name}")

        columns = _column_names(header)
        width = len(columns)
        records = [
            {columns[i]: (row[i] if i < len(row) else None) for i in range(width)}
            for row in _trim_trailing_blank_rows(rows)
        ]

        snapshot = GridSnapshot.from_records(columns, records)
        logger.info(f"Loaded {path.name}: {snapshot.column_count} columns, "
                    f"{snapshot.row_count} rows")
        return snapshot

    def save(self, snapshot: GridSnapshot, file_path: str) -> str:
        """
        Write a snapshot to .xlsx or .csv (header row first).

        Returns:
            The path written
        """
        path = Path(file_path)
        ext = path.suffix.lower()
        records = snapshot.to_records()

        if ext in EXCEL_EXTENSIONS:
            wb = openpyxl.Workbook()
            ws = wb.active
            ws.title = 'Sheet1'
            ws.append(records['columns'])
            for row in records['rows']:
                ws.append([row[name] for name in records['columns']])
            wb.save(path)
        elif ext in CSV_EXTENSIONS:
            with open(path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(records['columns'])
                for row in records['rows']:
                    writer.writerow(['' if row[name] is None else row[name]
                                     for name in records['columns']])
        else:
            raise WorkbookError(f"Unsupported file type: {ext or path.name}")

        logger.info(f"Saved {snapshot.row_count} rows to {path}")
        return str(path)

    def _read_excel(self, path: Path, sheet_name: Optional[str]):
        try:
            # data_only=False keeps formulas as text
            wb = openpyxl.load_workbook(path, data_only=False)
        except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as e:
            raise WorkbookError(f"Could not read workbook {path.name}: {e}") from e

        if sheet_name is not None and sheet_name not in wb.sheetnames:
            raise WorkbookError(f"Worksheet not found: {sheet_name}")
        ws = wb[sheet_name] if sheet_name else wb.worksheets[0]

        all_rows = [
            [_to_cell_value(v) for v in row]
            for row in ws.iter_rows(values_only=True)
        ]
        if not all_rows:
            return [], []

        return all_rows[0], all_rows[1:]

    def _read_csv(self, path: Path):
        try:
            with open(path, newline='', encoding='utf-8-sig') as f:
                all_rows = list(csv.reader(f))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise WorkbookError(f"Could not read CSV {path.name}: {e}") from e

        if not all_rows:
            return [], []

        return all_rows[0], [[_parse_csv_value(v) for v in row] for row in all_rows[1:]]

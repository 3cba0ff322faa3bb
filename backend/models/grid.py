"""
Grid snapshot model for the cell computation core.

A snapshot is the full column-order + row-data state handed to the core for
one evaluation or prediction call. The core never mutates it.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

CellValue = Union[int, float, str, None]


@dataclass(frozen=True)
class GridSnapshot:
    """Immutable view of a grid: ordered column names plus ordered rows."""

    columns: Tuple[str, ...] = ()
    rows: Tuple[Mapping[str, CellValue], ...] = field(default_factory=tuple)

    @classmethod
    def from_records(
        cls,
        columns: Sequence[str],
        rows: Iterable[Mapping[str, Any]]
    ) -> 'GridSnapshot':
        """
        Build a snapshot from plain lists and dicts.

        Args:
            columns: Column names in display order
            rows: Row mappings (column name -> value), top to bottom

        Returns:
            GridSnapshot with read-only row mappings

        Raises:
            ValueError: If a column name appears more than once
        """
        columns = tuple(columns)
        seen = set()
        for name in columns:
            if name in seen:
                raise ValueError(f"Duplicate column name: {name}")
            seen.add(name)

        frozen_rows = tuple(MappingProxyType(dict(row)) for row in rows)
        return cls(columns=columns, rows=frozen_rows)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def cell_value(self, column_index: int, row_index: int) -> CellValue:
        """
        Get the stored value at a grid position.

        Raises:
            IndexError: If the position is outside the grid
        """
        if not 0 <= row_index < len(self.rows):
            raise IndexError(f"Row index {row_index} outside grid of {len(self.rows)} rows")
        if not 0 <= column_index < len(self.columns):
            raise IndexError(
                f"Column index {column_index} outside grid of {len(self.columns)} columns"
            )
        return self.rows[row_index].get(self.columns[column_index])

    def column_values(self, name: str) -> List[CellValue]:
        """Return one column's values, top to bottom."""
        if name not in self.columns:
            raise KeyError(f"Unknown column: {name}")
        return [row.get(name) for row in self.rows]

    def iter_cells(self) -> Iterator[Tuple[int, int, CellValue]]:
        """Yield (column_index, row_index, value) for every position, row-major."""
        for row_index, row in enumerate(self.rows):
            for column_index, name in enumerate(self.columns):
                yield column_index, row_index, row.get(name)

    def to_records(self) -> Dict[str, Any]:
        """Plain-dict form used by the API and CLI."""
        return {
            'columns': list(self.columns),
            'rows': [
                {name: row.get(name) for name in self.columns}
                for row in self.rows
            ]
        }

    def with_column_values(
        self,
        name: str,
        values: Sequence[CellValue],
        start_row: int = 0,
        fill: Optional[CellValue] = None
    ) -> 'GridSnapshot':
        """
        Return a new snapshot with `values` written down column `name`.

        Rows are appended (filled with `fill`) when the values run past the
        end of the grid. This is the host-side merge path; the core itself
        only returns values.
        """
        if name not in self.columns:
            raise KeyError(f"Unknown column: {name}")

        rows = [dict(row) for row in self.rows]
        for offset, value in enumerate(values):
            target = start_row + offset
            while target >= len(rows):
                rows.append({column: fill for column in self.columns})
            rows[target][name] = value

        return GridSnapshot.from_records(self.columns, rows)

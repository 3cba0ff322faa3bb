"""Models package for the sheet computation core."""
from backend.models.grid import CellValue, GridSnapshot

__all__ = ['CellValue', 'GridSnapshot']

"""
Service layer for the sheet computation core.

This package contains framework-agnostic business logic (formula
evaluation, fill-down prediction, workbook adapters) that can be used
by CLI, API, or any other interface.
"""

__version__ = "1.0.0"

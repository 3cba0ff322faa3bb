"""
Pytest configuration and fixtures for sheet core tests.
"""

import pytest

from backend.models.grid import GridSnapshot
from services.evaluation_service import CircularPolicy, FormulaEvaluator


@pytest.fixture
def evaluator():
    """Evaluator with the default (zero) circular policy."""
    return FormulaEvaluator()


@pytest.fixture
def strict_evaluator():
    """Evaluator that reports circular references as errors."""
    return FormulaEvaluator(circular_policy=CircularPolicy.ERROR)


@pytest.fixture
def budget_grid():
    """
    Small budget sheet.

        A        B      C      D
    1   Item     Q1     Q2     Total
    2   Rent     1000   1000   =B2+C2
    3   Power    250    "300"  =SUM(B3:C3)
    4   Total    =SUM(B2:B3)  =SUM(C2:C3)  =D2+D3
    """
    columns = ['Item', 'Q1', 'Q2', 'Total']
    rows = [
        {'Item': 'Item', 'Q1': 'Q1', 'Q2': 'Q2', 'Total': 'Total'},
        {'Item': 'Rent', 'Q1': 1000, 'Q2': 1000, 'Total': '=B2+C2'},
        {'Item': 'Power', 'Q1': 250, 'Q2': '300', 'Total': '=SUM(B3:C3)'},
        {'Item': 'Total', 'Q1': '=SUM(B2:B3)', 'Q2': '=SUM(C2:C3)', 'Total': '=D2+D3'},
    ]
    return GridSnapshot.from_records(columns, rows)


@pytest.fixture
def numbers_grid():
    """Column A holds 10, 20, "30" and a blank; column B is empty."""
    return GridSnapshot.from_records(
        ['A', 'B'],
        [{'A': 10}, {'A': 20}, {'A': '30'}, {'A': None}]
    )


@pytest.fixture
def circular_grid():
    """A1 and B1 read each other; C1 reads itself."""
    return GridSnapshot.from_records(
        ['A', 'B', 'C'],
        [{'A': '=B1+1', 'B': '=A1*2', 'C': '=C1+5'}]
    )


def make_grid(columns, *rows):
    """Build a snapshot from positional row tuples."""
    return GridSnapshot.from_records(
        columns,
        [dict(zip(columns, row)) for row in rows]
    )


@pytest.fixture
def grid_factory():
    """Expose make_grid to tests."""
    return make_grid

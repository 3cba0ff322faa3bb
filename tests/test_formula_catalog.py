"""
Unit tests for the formula catalog.
"""

import pytest

from services.evaluation_service import AGGREGATE_FUNCTIONS
from services.formula_catalog import (
    FORMULA_FUNCTIONS, FORMULA_TEMPLATES, get_formula_summary,
    natural_language_to_formula, search_formulas
)


class TestCatalog:
    """Catalog contents."""

    def test_catalog_matches_evaluator(self):
        """Every documented function is evaluable and vice versa."""
        assert {f.name for f in FORMULA_FUNCTIONS} == set(AGGREGATE_FUNCTIONS)

    def test_function_to_dict(self):
        data = FORMULA_FUNCTIONS[0].to_dict()
        assert data['name'] == 'SUM'
        assert isinstance(data['examples'], list)

    def test_templates(self):
        names = [t.name for t in FORMULA_TEMPLATES]
        assert 'Sum' in names
        assert 'Percentage' in names

    def test_summary(self):
        summary = get_formula_summary()
        assert 'SUM' in summary
        assert 'MEDIAN' in summary


class TestSearch:
    """search_formulas()"""

    def test_by_name(self):
        assert [f.name for f in search_formulas('median')] == ['MEDIAN']

    def test_by_description(self):
        names = [f.name for f in search_formulas('largest')]
        assert names == ['MAX']

    def test_no_match(self):
        assert search_formulas('vlookup') == []


class TestNaturalLanguage:
    """natural_language_to_formula()"""

    def test_sum(self):
        assert natural_language_to_formula('total of b2:b10') == '=SUM(B2:B10)'

    def test_average(self):
        assert natural_language_to_formula('mean of C1:C5') == '=AVERAGE(C1:C5)'

    def test_max_min(self):
        assert natural_language_to_formula('highest in A1:A9') == '=MAX(A1:A9)'
        assert natural_language_to_formula('lowest value D2:D4') == '=MIN(D2:D4)'

    def test_needs_range(self):
        assert natural_language_to_formula('sum everything') is None

    def test_needs_keyword(self):
        assert natural_language_to_formula('look at A1:A3') is None


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

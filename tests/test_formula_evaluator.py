"""
Unit tests for FormulaEvaluator and DependencyAnalyzer.

Tests cover aggregate functions, references, arithmetic, error kinds,
circular reference handling and whole-sheet evaluation.
"""

import time

import pytest

from services.evaluation_service import (
    ArithmeticParser, CircularPolicy, DependencyAnalyzer, ErrorKind, FormulaError,
    FormulaEvaluator, evaluate_ast, normalize_number, to_number
)


class TestAggregates:
    """Function calls over ranges."""

    def test_sum_coerces_numeric_text(self, evaluator, numbers_grid):
        """SUM over 10, 20, "30" is 60."""
        result = evaluator.evaluate('=SUM(A1:A3)', numbers_grid)
        assert result.ok
        assert result.value == 60
        assert isinstance(result.value, int)

    def test_average_of_blanks_is_zero(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=AVERAGE(B1:B4)', numbers_grid).value == 0

    def test_average_skips_blanks(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=AVERAGE(A1:A4)', numbers_grid).value == 20

    def test_avg_alias(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=AVG(A1:A2)', numbers_grid).value == 15

    def test_max_min_median(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=MAX(A1:A4)', numbers_grid).value == 30
        assert evaluator.evaluate('=MIN(A1:A4)', numbers_grid).value == 10
        assert evaluator.evaluate('=MEDIAN(A1:A3)', numbers_grid).value == 20

    def test_count_and_product(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=COUNT(A1:A4)', numbers_grid).value == 3
        assert evaluator.evaluate('=PRODUCT(A1:A2)', numbers_grid).value == 200

    def test_max_without_numbers_is_no_data(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=MAX(B1:B4)', numbers_grid)
        assert not result.ok
        assert result.error == ErrorKind.NO_DATA

    def test_case_and_whitespace(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=sum(a1:a3)', numbers_grid).value == 60
        assert evaluator.evaluate('= SUM( A1 : A3 )', numbers_grid).value == 60

    def test_range_past_grid_is_clipped(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=SUM(A1:A99)', numbers_grid).value == 60

    def test_swapped_range(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=SUM(A3:A1)', numbers_grid).value == 60

    def test_multiple_arguments(self, evaluator, numbers_grid):
        """Single references and literals mix with ranges."""
        assert evaluator.evaluate('=SUM(A1, 5)', numbers_grid).value == 15
        assert evaluator.evaluate('=SUM(A1:A2, A3)', numbers_grid).value == 60

    def test_unknown_function(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=FOO(A1:A3)', numbers_grid)
        assert result.error == ErrorKind.UNKNOWN_FUNCTION
        assert 'FOO' in result.message

    def test_invalid_range(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=SUM(A1:)', numbers_grid)
        assert result.error == ErrorKind.INVALID_RANGE

    def test_currency_text(self, evaluator, grid_factory):
        grid = grid_factory(['A'], ('$1,000',), ('250',))
        assert evaluator.evaluate('=SUM(A1:A2)', grid).value == 1250

    def test_nested_call_argument(self, evaluator, numbers_grid):
        """A call argument containing a range is evaluated, not split as a range."""
        result = evaluator.evaluate('=SUM(A1, MAX(A2:A3))', numbers_grid)
        assert result.ok
        assert result.value == 40

    def test_huge_range_only_reads_grid(self, evaluator, grid_factory):
        """A range far larger than the grid costs only the cells that exist."""
        grid = grid_factory(['A'], (1,))

        started = time.perf_counter()
        result = evaluator.evaluate('=SUM(A1:Z200000)', grid)

        assert result.value == 1
        assert time.perf_counter() - started < 2


class TestReferences:
    """Bare cell references."""

    def test_number(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=A2', numbers_grid).value == 20

    def test_numeric_text_becomes_number(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=A3', numbers_grid).value == 30

    def test_blank_is_zero(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=A4', numbers_grid).value == 0

    def test_text_passes_through(self, evaluator, budget_grid):
        assert evaluator.evaluate('=A2', budget_grid).value == 'Rent'

    def test_outside_grid(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=A99', numbers_grid)
        assert result.error == ErrorKind.INVALID_REFERENCE

        result = evaluator.evaluate('=Z1', numbers_grid)
        assert result.error == ErrorKind.INVALID_REFERENCE

    def test_chained_formulas(self, evaluator, budget_grid):
        """D4 reads D2 and D3, which are formulas themselves."""
        assert evaluator.evaluate('=D4', budget_grid).value == 2550


class TestArithmetic:
    """Arithmetic expressions."""

    def test_precedence(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=A1+A2*2', numbers_grid).value == 50
        assert evaluator.evaluate('=(A1+A2)*2', numbers_grid).value == 60

    def test_unary_minus(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=-A1+5', numbers_grid).value == -5

    def test_fraction(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=A1/4', numbers_grid).value == 2.5

    def test_text_counts_as_zero(self, evaluator, budget_grid):
        assert evaluator.evaluate('=A2+1', budget_grid).value == 1

    def test_division_by_zero(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=A1/A4', numbers_grid)
        assert result.error == ErrorKind.CALCULATION_ERROR

    def test_unsupported_operator(self, evaluator, budget_grid):
        """Concatenation is not supported."""
        result = evaluator.evaluate('=B2&C2', budget_grid)
        assert result.error == ErrorKind.INVALID_EXPRESSION

    def test_unsupported_operator_before_bad_reference(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=A99&A1', numbers_grid)
        assert result.error == ErrorKind.INVALID_EXPRESSION

    def test_two_calls_not_supported(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=SUM(A1)+SUM(A2)', numbers_grid)
        assert result.error == ErrorKind.INVALID_EXPRESSION

    def test_unbalanced_parentheses(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=(A1+A2', numbers_grid).error == ErrorKind.INVALID_EXPRESSION
        assert evaluator.evaluate('=A1+A2)', numbers_grid).error == ErrorKind.INVALID_EXPRESSION

    def test_empty_formula(self, evaluator, numbers_grid):
        assert evaluator.evaluate('=', numbers_grid).error == ErrorKind.INVALID_EXPRESSION

    def test_no_python_evaluation(self, evaluator, numbers_grid):
        result = evaluator.evaluate('=__import__("os")', numbers_grid)
        assert result.error == ErrorKind.INVALID_EXPRESSION

    def test_error_propagates(self, evaluator, grid_factory):
        grid = grid_factory(['A', 'B'], ('=1/0', '=A1+1'))
        assert evaluator.evaluate('=B1', grid).error == ErrorKind.CALCULATION_ERROR


class TestArithmeticParser:
    """The recursive-descent parser on its own."""

    def test_parse_and_evaluate(self):
        tokens = [('number', 2.0), ('op', '*'), ('op', '('), ('number', 3.0),
                  ('op', '+'), ('number', 4.0), ('op', ')')]
        assert evaluate_ast(ArithmeticParser(tokens).parse()) == 14

    def test_trailing_token(self):
        with pytest.raises(FormulaError) as exc_info:
            ArithmeticParser([('number', 1.0), ('number', 2.0)]).parse()
        assert exc_info.value.kind == ErrorKind.INVALID_EXPRESSION


class TestCircularReferences:
    """Cycle guard behavior under both policies."""

    def test_self_reference_is_zero(self, evaluator, grid_factory):
        grid = grid_factory(['A'], ('=A1',))
        assert evaluator.evaluate('=A1', grid).value == 0
        assert evaluator.evaluate_sheet(grid)['A1'].value == 0

    def test_mutual_reference_is_bounded(self, evaluator, circular_grid):
        results = evaluator.evaluate_sheet(circular_grid)
        assert results['A1'].value == 1
        assert results['B1'].value == 2
        assert results['C1'].value == 5

    def test_error_policy(self, strict_evaluator, circular_grid):
        results = strict_evaluator.evaluate_sheet(circular_grid)
        for ref in ('A1', 'B1', 'C1'):
            assert results[ref].error == ErrorKind.CIRCULAR_REFERENCE

    def test_policy_from_string(self):
        assert FormulaEvaluator('error').circular_policy == CircularPolicy.ERROR

    def test_reader_of_cycle(self, evaluator, grid_factory):
        """Cells outside a cycle see the same values as the cycle's own cells."""
        grid = grid_factory(['A', 'B', 'C', 'D'], ('=B1+1', '=A1*2', '=A1', '=A1+B1'))
        results = evaluator.evaluate_sheet(grid)

        assert results['A1'].value == 1
        assert results['B1'].value == 2
        assert results['C1'].value == 1
        assert results['D1'].value == 3


class TestEvaluateSheet:
    """Whole-grid evaluation."""

    def test_budget(self, evaluator, budget_grid):
        results = evaluator.evaluate_sheet(budget_grid)

        assert list(results) == ['D2', 'D3', 'B4', 'C4', 'D4']
        assert results['D2'].value == 2000
        assert results['D3'].value == 550
        assert results['B4'].value == 1250
        assert results['C4'].value == 1300
        assert results['D4'].value == 2550

    def test_no_formulas(self, evaluator, numbers_grid):
        assert evaluator.evaluate_sheet(numbers_grid) == {}

    def test_snapshot_not_modified(self, evaluator, budget_grid):
        before = budget_grid.to_records()
        evaluator.evaluate_sheet(budget_grid)
        assert budget_grid.to_records() == before


class TestSharedReferences:
    """Cells read by many formulas are computed once per evaluation."""

    @staticmethod
    def running_totals(grid_factory, rows):
        """Column A: 1, then each row sums every row above it."""
        return grid_factory(['A'], (1,), *[(f'=SUM(A1:A{k - 1})',) for k in range(2, rows + 1)])

    def test_single_evaluation(self, evaluator, grid_factory):
        grid = self.running_totals(grid_factory, 30)

        started = time.perf_counter()
        result = evaluator.evaluate('=A30', grid)

        assert result.value == 2 ** 28
        assert time.perf_counter() - started < 2

    def test_sheet_evaluation(self, evaluator, grid_factory):
        grid = self.running_totals(grid_factory, 30)

        started = time.perf_counter()
        results = evaluator.evaluate_sheet(grid)

        assert results['A2'].value == 1
        assert results['A5'].value == 8
        assert results['A30'].value == 2 ** 28
        assert time.perf_counter() - started < 2


class TestDeepChains:
    """Long reference chains."""

    @staticmethod
    def counting_column(grid_factory, rows):
        return grid_factory(['A'], (1,), *[(f'=A{k - 1}+1',) for k in range(2, rows + 1)])

    def test_too_deep_is_calculation_error(self, evaluator, grid_factory):
        grid = self.counting_column(grid_factory, 2000)

        result = evaluator.evaluate('=A2000', grid)

        assert not result.ok
        assert result.error == ErrorKind.CALCULATION_ERROR
        assert result.message == 'Reference chain too deep'

    def test_sheet_evaluation_reuses_earlier_rows(self, evaluator, grid_factory):
        grid = self.counting_column(grid_factory, 2000)

        results = evaluator.evaluate_sheet(grid)

        assert len(results) == 1999
        assert all(r.ok for r in results.values())
        assert results['A2000'].value == 2000


class TestFormulaResult:
    """Result serialization."""

    def test_error_to_dict(self, evaluator, numbers_grid):
        data = evaluator.evaluate('=A1/A4', numbers_grid).to_dict()
        assert data['value'] is None
        assert data['error'] == 'CalculationError'
        assert data['message']


class TestNumberHelpers:
    """to_number() and normalize_number()."""

    def test_to_number(self):
        assert to_number('1,250') == 1250
        assert to_number(' $3.5 ') == 3.5
        assert to_number('') is None
        assert to_number('abc') is None
        assert to_number('inf') is None
        assert to_number(None) is None

    def test_normalize_number(self):
        assert normalize_number(60.0) == 60
        assert isinstance(normalize_number(60.0), int)
        assert normalize_number(2.5) == 2.5


class TestDependencyAnalyzer:
    """Dependency graph and cycle detection."""

    def test_dependencies(self, budget_grid):
        deps = DependencyAnalyzer(budget_grid).dependencies()
        assert deps['D2'] == ['B2', 'C2']
        assert deps['B4'] == ['B2', 'B3']

    def test_no_cycles(self, budget_grid):
        analyzer = DependencyAnalyzer(budget_grid)
        assert analyzer.detect_cycles() == []
        assert analyzer.is_circular('D2') is False

    def test_cycles(self, circular_grid):
        analyzer = DependencyAnalyzer(circular_grid)
        assert analyzer.detect_cycles() == [['A1', 'B1'], ['C1']]
        assert analyzer.is_circular('B1') is True

    def test_ranges_clipped_to_grid(self, grid_factory):
        grid = grid_factory(['A', 'B'], (1, '=SUM(A1:A200000)'))
        assert DependencyAnalyzer(grid).dependencies() == {'B1': ['A1']}

    def test_dependents(self, budget_grid):
        analyzer = DependencyAnalyzer(budget_grid)
        assert analyzer.dependents('B2') == ['D2', 'B4', 'D4']
        assert analyzer.dependents('A1') == []


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

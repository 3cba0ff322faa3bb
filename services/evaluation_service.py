"""
Formula Evaluation Service - Framework-agnostic cell computation.

This module evaluates cell formulas over a grid snapshot: function calls
over ranges (SUM, AVERAGE, ...), bare references and arithmetic
expressions. Arithmetic is parsed by a small recursive-descent parser into
an AST after references have been resolved; no text is ever handed to
Python's own evaluator.

Every failure is returned as a tagged FormulaResult instead of raised.
"""

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

import networkx as nx

from backend.models.grid import CellValue, GridSnapshot
from services.formula_service import FormulaParser, InvalidRangeError, InvalidReferenceError

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Tags for evaluation failures."""
    INVALID_REFERENCE = 'InvalidReference'
    INVALID_RANGE = 'InvalidRange'
    UNKNOWN_FUNCTION = 'UnknownFunction'
    INVALID_EXPRESSION = 'InvalidExpression'
    CALCULATION_ERROR = 'CalculationError'
    NO_DATA = 'NoData'
    CIRCULAR_REFERENCE = 'CircularReference'


class CircularPolicy(str, Enum):
    """What a revisited reference resolves to."""
    ZERO = 'zero'
    ERROR = 'error'


class FormulaError(Exception):
    """Internal evaluation failure; converted to a FormulaResult at the boundary."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class FormulaResult:
    """Display value of one evaluation, or the error that replaced it."""

    value: CellValue = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict:
        return {
            'value': self.value,
            'error': self.error.value if self.error else None,
            'message': self.message
        }


def normalize_number(value: float):
    """Return integral floats as int so 60.0 displays as 60."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return int(value)
    return value


def to_number(value: CellValue) -> Optional[float]:
    """
    Coerce a cell value to a number.

    Currency symbols and thousands separators ($ and ,) are stripped before
    parsing. Blank, non-numeric and non-finite values return None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace('$', '').replace(',', '')
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None

    return number if math.isfinite(number) else None


# ============================================================================
# Aggregate functions
# ============================================================================

def _sum(values: List[float]) -> float:
    return math.fsum(values)


def _average(values: List[float]) -> float:
    # Empty list averages to 0 rather than dividing by zero
    if not values:
        return 0
    return math.fsum(values) / len(values)


def _max(values: List[float]) -> float:
    if not values:
        raise FormulaError(ErrorKind.NO_DATA, "MAX has no numeric values")
    return max(values)


def _min(values: List[float]) -> float:
    if not values:
        raise FormulaError(ErrorKind.NO_DATA, "MIN has no numeric values")
    return min(values)


def _count(values: List[float]) -> int:
    return len(values)


def _median(values: List[float]) -> float:
    if not values:
        raise FormulaError(ErrorKind.NO_DATA, "MEDIAN has no numeric values")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def _product(values: List[float]) -> float:
    return math.prod(values)


AGGREGATE_FUNCTIONS: Dict[str, Callable[[List[float]], float]] = {
    'SUM': _sum,
    'AVERAGE': _average,
    'AVG': _average,
    'MAX': _max,
    'MIN': _min,
    'COUNT': _count,
    'MEDIAN': _median,
    'PRODUCT': _product,
}


# ============================================================================
# Arithmetic parser
# ============================================================================

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: object


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: object
    right: object


class ArithmeticParser:
    """
    Recursive-descent parser for resolved arithmetic token streams.

    Grammar:
        expr   := term (('+' | '-') term)*
        term   := factor (('*' | '/') factor)*
        factor := ('+' | '-') factor | NUMBER | '(' expr ')'

    Tokens are (kind, value) pairs where kind is 'number' or 'op'.
    """

    def __init__(self, tokens: List[Tuple[str, object]]):
        self.tokens = tokens
        self.pos = 0

    def _peek(self) -> Optional[Tuple[str, object]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _eat(self, expected: Optional[str] = None) -> Tuple[str, object]:
        token = self._peek()
        if token is None:
            raise FormulaError(ErrorKind.INVALID_EXPRESSION, "Unexpected end of expression")
        if expected is not None and token != ('op', expected):
            raise FormulaError(
                ErrorKind.INVALID_EXPRESSION,
                f"Expected '{expected}' but found {token[1]!r}"
            )
        self.pos += 1
        return token

    def parse(self):
        if not self.tokens:
            raise FormulaError(ErrorKind.INVALID_EXPRESSION, "Empty expression")
        node = self._expr()
        if self._peek() is not None:
            raise FormulaError(
                ErrorKind.INVALID_EXPRESSION,
                f"Unexpected token {self._peek()[1]!r}"
            )
        return node

    def _expr(self):
        node = self._term()
        while self._peek() in (('op', '+'), ('op', '-')):
            op = self._eat()[1]
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self):
        node = self._factor()
        while self._peek() in (('op', '*'), ('op', '/')):
            op = self._eat()[1]
            node = BinaryOp(op, node, self._factor())
        return node

    def _factor(self):
        token = self._eat()
        kind, value = token

        if kind == 'number':
            return Number(value)
        if token in (('op', '+'), ('op', '-')):
            return UnaryOp(value, self._factor())
        if token == ('op', '('):
            node = self._expr()
            self._eat(')')
            return node

        raise FormulaError(ErrorKind.INVALID_EXPRESSION, f"Unexpected token {value!r}")


def evaluate_ast(node) -> float:
    """Compute the value of a parsed arithmetic AST."""
    if isinstance(node, Number):
        return node.value

    if isinstance(node, UnaryOp):
        operand = evaluate_ast(node.operand)
        return -operand if node.op == '-' else operand

    left = evaluate_ast(node.left)
    right = evaluate_ast(node.right)

    if node.op == '+':
        return left + right
    if node.op == '-':
        return left - right
    if node.op == '*':
        return left * right
    if right == 0:
        raise FormulaError(ErrorKind.CALCULATION_ERROR, "Division by zero")
    return left / right


# ============================================================================
# Evaluator
# ============================================================================

class _EvaluationPass:
    """
    Memo shared by the resolutions of one evaluation (or one sheet pass).

    A formula cell's value is memoized only when resolving it never hit
    the cycle guard; such a value does not depend on the path that
    reached the cell.
    """

    def __init__(self):
        self.values: Dict[str, CellValue] = {}
        self.cycle_hits = 0


class FormulaEvaluator:
    """
    Evaluate cell formulas against a grid snapshot.

    The evaluator holds no grid state; every call takes the snapshot it
    reads, so one instance can serve any number of sheets.
    """

    FUNCTION_PATTERN = re.compile(r'^([A-Za-z]+)\s*\((.*)\)$', re.DOTALL)

    # Letters+digits reference, decimal number, operator or parenthesis
    TOKEN_PATTERN = re.compile(
        r'\s*(?:(?P<ref>[A-Za-z]+\d+)|(?P<number>\d+(?:\.\d*)?|\.\d+)|(?P<op>[-+*/()]))'
    )

    def __init__(self, circular_policy: CircularPolicy = CircularPolicy.ZERO):
        """
        Initialize evaluator.

        Args:
            circular_policy: ZERO resolves a revisited reference to 0;
                ERROR fails the evaluation with CircularReference
        """
        self.circular_policy = CircularPolicy(circular_policy)

    def evaluate(
        self,
        formula: CellValue,
        snapshot: GridSnapshot,
        cell: Optional[str] = None
    ) -> FormulaResult:
        """
        Evaluate one cell's text.

        Args:
            formula: Cell text, with or without the leading '='
            snapshot: Grid the references resolve against
            cell: Optional address of the cell being evaluated; seeds the
                cycle guard so a formula reading its own cell stops there

        Returns:
            FormulaResult with the value, or the error kind and message
        """
        return self._run(formula, snapshot, cell, _EvaluationPass())

    def evaluate_sheet(self, snapshot: GridSnapshot) -> Dict[str, FormulaResult]:
        """
        Evaluate every formula cell of a snapshot.

        Returns:
            Mapping of cell address to its FormulaResult, row-major order
        """
        results: Dict[str, FormulaResult] = {}
        errors = 0
        state = _EvaluationPass()

        for column_index, row_index, value in snapshot.iter_cells():
            if not FormulaParser.is_formula(value):
                continue
            ref = FormulaParser.encode(column_index, row_index)
            result = self._run(value, snapshot, ref, state)
            if not result.ok:
                errors += 1
            results[ref] = result

        logger.info(f"Evaluated {len(results)} formula cells ({errors} errors)")
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        formula: CellValue,
        snapshot: GridSnapshot,
        cell: Optional[str],
        state: _EvaluationPass
    ) -> FormulaResult:
        try:
            visited: FrozenSet[str] = frozenset()
            if cell:
                visited = frozenset([self._canonical(cell)])

            value = self._evaluate(str(formula), snapshot, visited, state)
            return FormulaResult(value=value)

        except FormulaError as e:
            logger.debug(f"Evaluation of {formula!r} failed: {e.kind.value}: {e}")
            return FormulaResult(value=None, error=e.kind, message=str(e))

        except RecursionError:
            logger.warning(f"Evaluation of {formula!r} exceeded the reference depth limit")
            return FormulaResult(
                value=None,
                error=ErrorKind.CALCULATION_ERROR,
                message="Reference chain too deep"
            )

    @staticmethod
    def _canonical(ref: str) -> str:
        try:
            return FormulaParser.encode(*FormulaParser.decode(ref))
        except InvalidReferenceError as e:
            raise FormulaError(ErrorKind.INVALID_REFERENCE, str(e)) from e

    def _evaluate(
        self,
        text: str,
        snapshot: GridSnapshot,
        visited: FrozenSet[str],
        state: _EvaluationPass
    ) -> CellValue:
        expr = text.strip()
        if expr.startswith('='):
            expr = expr[1:].strip()

        call = self._match_function(expr)
        if call:
            name, args = call
            return self._evaluate_function(name, args, snapshot, visited, state)

        if FormulaParser.CELL_REF_PATTERN.match(expr):
            return self._evaluate_reference(expr, snapshot, visited, state)

        return self._evaluate_arithmetic(expr, snapshot, visited, state)

    def _match_function(self, expr: str) -> Optional[Tuple[str, List[str]]]:
        """
        Match NAME(args) where the opening parenthesis closes at the end.

        "SUM(A1)+SUM(B1)" is arithmetic, not a call with a mangled argument.
        """
        match = self.FUNCTION_PATTERN.match(expr)
        if not match:
            return None

        args_str = match.group(2)
        args: List[str] = []
        current = ''
        depth = 0

        for char in args_str:
            if char == '(':
                depth += 1
            elif char == ')':
                depth -= 1
                if depth < 0:
                    return None
            elif char == ',' and depth == 0:
                args.append(current.strip())
                current = ''
                continue
            current += char

        if depth != 0:
            return None
        if current.strip():
            args.append(current.strip())

        return match.group(1), args

    def _resolve(
        self,
        ref: str,
        snapshot: GridSnapshot,
        visited: FrozenSet[str],
        state: _EvaluationPass,
        strict: bool = True
    ) -> CellValue:
        """
        Resolve a reference to the value it displays.

        Formula cells are evaluated recursively with the reference added to
        the visited set. A reference already being resolved stops the
        recursion. Outside the grid: error when strict, None otherwise.
        """
        key = self._canonical(ref)

        if key in visited:
            state.cycle_hits += 1
            if self.circular_policy == CircularPolicy.ERROR:
                raise FormulaError(
                    ErrorKind.CIRCULAR_REFERENCE,
                    f"Circular reference through {key}"
                )
            logger.debug(f"Circular reference through {key} resolved to 0")
            return 0

        if key in state.values:
            return state.values[key]

        col, row = FormulaParser.decode(key)
        try:
            value = snapshot.cell_value(col, row)
        except IndexError:
            if strict:
                raise FormulaError(
                    ErrorKind.INVALID_REFERENCE,
                    f"Reference {key} is outside the grid"
                )
            return None

        if FormulaParser.is_formula(value):
            hits_before = state.cycle_hits
            value = self._evaluate(value, snapshot, visited | {key}, state)
            if state.cycle_hits == hits_before:
                state.values[key] = value

        return value

    def _evaluate_reference(
        self,
        ref: str,
        snapshot: GridSnapshot,
        visited: FrozenSet[str],
        state: _EvaluationPass
    ) -> CellValue:
        value = self._resolve(ref, snapshot, visited, state)

        if value is None or value == '':
            return 0
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return normalize_number(value)

        # Numeric-looking text displays as a number; other text passes through
        number = to_number(value)
        return normalize_number(number) if number is not None else value

    def _collect_values(
        self,
        args: List[str],
        snapshot: GridSnapshot,
        visited: FrozenSet[str],
        state: _EvaluationPass
    ) -> List[float]:
        values: List[float] = []

        for arg in args:
            if not arg:
                continue

            if self._match_function(arg) is None and ':' in arg:
                # Only cells inside the grid are enumerated
                try:
                    refs = FormulaParser.expand_range(
                        arg, limit=(snapshot.column_count, snapshot.row_count)
                    )
                except InvalidRangeError as e:
                    raise FormulaError(ErrorKind.INVALID_RANGE, str(e)) from e
            elif FormulaParser.CELL_REF_PATTERN.match(arg):
                refs = [arg]
            else:
                # Literal, nested call or expression argument
                number = to_number(self._evaluate(arg, snapshot, visited, state))
                if number is not None:
                    values.append(number)
                continue

            for ref in refs:
                number = to_number(self._resolve(ref, snapshot, visited, state, strict=False))
                if number is not None:
                    values.append(number)

        return values

    def _evaluate_function(
        self,
        name: str,
        args: List[str],
        snapshot: GridSnapshot,
        visited: FrozenSet[str],
        state: _EvaluationPass
    ) -> CellValue:
        func = AGGREGATE_FUNCTIONS.get(name.upper())
        if func is None:
            raise FormulaError(ErrorKind.UNKNOWN_FUNCTION, f"Unknown function: {name}")

        values = self._collect_values(args, snapshot, visited, state)
        try:
            result = func(values)
        except OverflowError as e:
            raise FormulaError(ErrorKind.CALCULATION_ERROR, f"{name.upper()} overflow: {e}") from e

        if not math.isfinite(result):
            raise FormulaError(ErrorKind.CALCULATION_ERROR, f"{name.upper()} result is not finite")
        return normalize_number(float(result)) if not isinstance(result, int) else result

    def _tokenize(
        self,
        expr: str,
        snapshot: GridSnapshot,
        visited: FrozenSet[str],
        state: _EvaluationPass
    ) -> List[Tuple[str, object]]:
        """
        Split arithmetic text into tokens, substituting resolved references.

        The whole text is scanned before any reference is resolved, so a
        stray character fails as InvalidExpression regardless of the grid.
        """
        raw: List[Tuple[str, str]] = []
        pos = 0

        while pos < len(expr):
            if expr[pos:].strip() == '':
                break

            match = self.TOKEN_PATTERN.match(expr, pos)
            if not match:
                char = expr[pos:].lstrip()[0]
                raise FormulaError(
                    ErrorKind.INVALID_EXPRESSION,
                    f"Invalid character {char!r} in expression"
                )
            pos = match.end()
            raw.append((match.lastgroup, match.group(match.lastgroup)))

        tokens: List[Tuple[str, object]] = []
        for kind, text in raw:
            if kind == 'ref':
                number = to_number(self._resolve(text, snapshot, visited, state))
                tokens.append(('number', number if number is not None else 0.0))
            elif kind == 'number':
                tokens.append(('number', float(text)))
            else:
                tokens.append(('op', text))

        return tokens

    def _evaluate_arithmetic(
        self,
        expr: str,
        snapshot: GridSnapshot,
        visited: FrozenSet[str],
        state: _EvaluationPass
    ) -> CellValue:
        tokens = self._tokenize(expr, snapshot, visited, state)
        tree = ArithmeticParser(tokens).parse()

        try:
            result = evaluate_ast(tree)
        except OverflowError as e:
            raise FormulaError(ErrorKind.CALCULATION_ERROR, f"Calculation overflow: {e}") from e

        if not math.isfinite(result):
            raise FormulaError(ErrorKind.CALCULATION_ERROR, "Calculation Error")

        return normalize_number(result)


# ============================================================================
# Dependency analysis
# ============================================================================

class DependencyAnalyzer:
    """Build the reference graph of a snapshot's formula cells and find cycles."""

    def __init__(self, snapshot: GridSnapshot):
        self.graph = nx.DiGraph()
        self.circular_groups: List[List[str]] = []

        limit = (snapshot.column_count, snapshot.row_count)
        for column_index, row_index, value in snapshot.iter_cells():
            if FormulaParser.is_formula(value):
                ref = FormulaParser.encode(column_index, row_index)
                self.add_dependency(ref, FormulaParser.extract_references(value, limit))

    def add_dependency(self, cell: str, depends_on: List[str]):
        """Add a cell and its dependencies to the graph."""
        self.graph.add_node(cell)
        for dep in depends_on:
            self.graph.add_edge(cell, dep)

    def dependencies(self) -> Dict[str, List[str]]:
        """Map each formula cell to the references it reads."""
        return {
            cell: list(self.graph.successors(cell))
            for cell in self.graph.nodes
            if self.graph.out_degree(cell) > 0
        }

    def detect_cycles(self) -> List[List[str]]:
        """
        Detect all circular reference groups.

        Returns list of groups (strongly connected components with more
        than one cell, or a single cell reading itself), each sorted.
        """
        groups = []
        for component in nx.strongly_connected_components(self.graph):
            if len(component) > 1:
                groups.append(sorted(component, key=self._sort_key))
            else:
                (cell,) = component
                if self.graph.has_edge(cell, cell):
                    groups.append([cell])

        self.circular_groups = sorted(groups, key=lambda group: self._sort_key(group[0]))

        if self.circular_groups:
            logger.info(f"Detected {len(self.circular_groups)} circular reference groups")
            for i, group in enumerate(self.circular_groups):
                logger.debug(f"Circular group {i + 1}: {group}")

        return self.circular_groups

    def is_circular(self, cell: str) -> bool:
        """Check if a cell is part of a circular reference."""
        if not self.circular_groups:
            self.detect_cycles()
        return any(cell in group for group in self.circular_groups)

    def dependents(self, cell: str) -> List[str]:
        """Formula cells whose value changes when `cell` changes."""
        if cell not in self.graph:
            return []
        return sorted(nx.ancestors(self.graph, cell), key=self._sort_key)

    @staticmethod
    def _sort_key(ref: str) -> Tuple[int, int]:
        col, row = FormulaParser.decode(ref)
        return (row, col)

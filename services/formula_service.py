"""
Formula service for parsing cell references and formula text.

This module provides the reference codec (cell address <-> grid position),
range expansion, and the reference-shifting helpers used by fill-down.
"""

import re
from typing import List, Optional, Tuple


class InvalidReferenceError(ValueError):
    """Raised when text is not a valid cell reference."""


class InvalidRangeError(ValueError):
    """Raised when text is not a valid two-corner range."""


class FormulaParser:
    """Parse and analyze spreadsheet formulas and cell references."""

    # Letters then digits, e.g. A1, b24, AA100
    CELL_REF_PATTERN = re.compile(r'^([A-Za-z]+)(\d+)$')

    # Reference-shaped tokens inside formula text
    REF_TOKEN_PATTERN = re.compile(r'([A-Za-z]+)(\d+)')

    # Range tokens inside formula text (A1:B10)
    RANGE_TOKEN_PATTERN = re.compile(r'([A-Za-z]+\d+)\s*:\s*([A-Za-z]+\d+)')

    @staticmethod
    def is_formula(value) -> bool:
        """
        Check whether a cell value is formula text.

        A formula is text whose first non-space character is '='.
        """
        return isinstance(value, str) and value.strip().startswith('=')

    @staticmethod
    def column_index(letters: str) -> int:
        """
        Convert column letters to a zero-based index (bijective base-26).

        Examples:
            A → 0
            Z → 25
            AA → 26
            AAA → 702
        """
        if not letters or not letters.isalpha() or not letters.isascii():
            raise InvalidReferenceError(f"Invalid column letters: {letters!r}")

        col = 0
        for char in letters.upper():
            col = col * 26 + (ord(char) - ord('A') + 1)
        return col - 1

    @staticmethod
    def column_letter(index: int) -> str:
        """
        Convert a zero-based column index to letters.

        Examples:
            0 → A
            25 → Z
            26 → AA
        """
        if index < 0:
            raise InvalidReferenceError(f"Column index must be non-negative: {index}")

        col_letters = ''
        col_num = index + 1  # Convert to 1-based for calculation

        while col_num > 0:
            col_num -= 1  # No zero digit in bijective base-26
            col_letters = chr(ord('A') + (col_num % 26)) + col_letters
            col_num //= 26

        return col_letters

    @staticmethod
    def decode(cell_ref: str) -> Tuple[int, int]:
        """
        Convert a cell reference to zero-based (column, row) indices.

        Examples:
            A1 → (0, 0)
            B24 → (1, 23)
            AA100 → (26, 99)

        Args:
            cell_ref: Cell address (e.g., "A1", "aa100")

        Returns:
            Tuple of (column_index, row_index)

        Raises:
            InvalidReferenceError: If the text is not letters-then-digits,
                or the row number is 0
        """
        if not isinstance(cell_ref, str):
            raise InvalidReferenceError(f"Invalid cell reference: {cell_ref!r}")

        match = FormulaParser.CELL_REF_PATTERN.match(cell_ref.strip())
        if not match or not match.group(1).isascii():
            raise InvalidReferenceError(f"Invalid cell reference: {cell_ref!r}")

        col_letters, row_str = match.groups()
        row_num = int(row_str)
        if row_num < 1:
            raise InvalidReferenceError(f"Row number must be at least 1: {cell_ref!r}")

        return (FormulaParser.column_index(col_letters), row_num - 1)

    @staticmethod
    def encode(column_index: int, row_index: int) -> str:
        """
        Convert zero-based (column, row) indices to a cell reference.

        Examples:
            (0, 0) → A1
            (1, 23) → B24
            (26, 99) → AA100

        Raises:
            InvalidReferenceError: If either index is negative
        """
        if row_index < 0 or column_index < 0:
            raise InvalidReferenceError(
                f"Row and column must be non-negative: column={column_index}, row={row_index}"
            )

        return f"{FormulaParser.column_letter(column_index)}{row_index + 1}"

    @staticmethod
    def split_range(range_ref: str) -> Tuple[str, str]:
        """
        Split "A1:B10" into its two corner references.

        Raises:
            InvalidRangeError: If the text does not have exactly two parts
        """
        parts = [part.strip() for part in range_ref.split(':')]
        if len(parts) != 2 or not all(parts):
            raise InvalidRangeError(f"Invalid range reference: {range_ref!r}")
        return parts[0], parts[1]

    @staticmethod
    def range_bounds(start: str, end: Optional[str] = None) -> Tuple[int, int, int, int]:
        """
        Get the normalized corners of a range.

        Examples:
            range_bounds("B3:A1") → (0, 0, 1, 2)

        Returns:
            Tuple of (first_column, first_row, last_column, last_row)

        Raises:
            InvalidRangeError: If the text is not two decodable corners
        """
        if end is None:
            start, end = FormulaParser.split_range(start)

        try:
            start_col, start_row = FormulaParser.decode(start)
            end_col, end_row = FormulaParser.decode(end)
        except InvalidReferenceError as e:
            raise InvalidRangeError(f"Invalid range {start}:{end}: {e}") from e

        return (
            min(start_col, end_col), min(start_row, end_row),
            max(start_col, end_col), max(start_row, end_row)
        )

    @staticmethod
    def expand_range(
        start: str,
        end: Optional[str] = None,
        limit: Optional[Tuple[int, int]] = None
    ) -> List[str]:
        """
        List every reference in the inclusive rectangle between two corners.

        Corners may be given in any order; rows are iterated outer and
        columns inner.

        Examples:
            expand_range("A1", "B2") → ["A1", "B1", "A2", "B2"]
            expand_range("B2:A1") → ["A1", "B1", "A2", "B2"]
            expand_range("A1:Z9999", limit=(1, 2)) → ["A1", "A2"]

        Args:
            start: First corner, or a full "A1:B2" range when `end` is None
            end: Second corner
            limit: Optional (column_count, row_count); cells past it are
                never generated

        Raises:
            InvalidRangeError: If either corner fails to decode
        """
        first_col, first_row, last_col, last_row = FormulaParser.range_bounds(start, end)

        if limit is not None:
            column_count, row_count = limit
            last_col = min(last_col, column_count - 1)
            last_row = min(last_row, row_count - 1)

        return [
            FormulaParser.encode(col, row)
            for row in range(first_row, last_row + 1)
            for col in range(first_col, last_col + 1)
        ]

    @staticmethod
    def extract_references(formula: str, limit: Optional[Tuple[int, int]] = None) -> List[str]:
        """
        Extract the cells a formula reads, ranges expanded.

        Args:
            formula: Formula text (e.g., "=SUM(A1:A3)+B2")
            limit: Optional (column_count, row_count) ranges are clipped to

        Returns:
            Uppercase references in order of first appearance, no duplicates.
            Non-formula text returns an empty list.
        """
        if not FormulaParser.is_formula(formula):
            return []

        body = formula.strip()[1:]
        references: List[str] = []
        seen = set()

        def add(ref: str):
            if ref not in seen:
                seen.add(ref)
                references.append(ref)

        # Ranges first, then blank them out so their corners aren't counted twice
        for match in FormulaParser.RANGE_TOKEN_PATTERN.finditer(body):
            try:
                for ref in FormulaParser.expand_range(match.group(1), match.group(2), limit):
                    add(ref)
            except InvalidRangeError:
                continue
        remainder = FormulaParser.RANGE_TOKEN_PATTERN.sub(' ', body)

        for match in FormulaParser.REF_TOKEN_PATTERN.finditer(remainder):
            try:
                col, row = FormulaParser.decode(match.group(0))
            except InvalidReferenceError:
                continue
            add(FormulaParser.encode(col, row))

        return references

    @staticmethod
    def shift_row_references(formula: str, delta: int) -> str:
        """
        Add `delta` to the row number of every reference in a formula.

        Column letters, including their case, are left untouched.

        Examples:
            ("=B2+C2", 1) → "=B3+C3"
            ("=sum(a1:a3)", 2) → "=sum(a3:a5)"
        """
        def _shift(match: re.Match) -> str:
            col_letters, row_str = match.groups()
            return f"{col_letters}{int(row_str) + delta}"

        return FormulaParser.REF_TOKEN_PATTERN.sub(_shift, formula)

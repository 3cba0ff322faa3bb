"""
Pattern Service - Fill-down value prediction.

This module classifies the values already entered in a column into a
generative pattern (arithmetic, geometric, numbered text, weekdays, months,
formulas) with a confidence score, and extrapolates the next values.
"""

import json
import logging
import math
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from backend.models.grid import CellValue, GridSnapshot
from services.evaluation_service import normalize_number
from services.formula_service import FormulaParser

logger = logging.getLogger(__name__)

# Below this confidence the generator repeats the last value
DEFAULT_MIN_CONFIDENCE = 40

# Tolerance when comparing consecutive differences / ratios
DEFAULT_TOLERANCE = 0.01

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')

MONTHS = ('January', 'February', 'March', 'April', 'May', 'June',
          'July', 'August', 'September', 'October', 'November', 'December')

NUMBERED_TEXT_PATTERN = re.compile(r'^(.+?)(\d+)$', re.DOTALL)


class PatternKind(str, Enum):
    """Generative pattern kinds, in detection priority order."""
    FORMULA = 'formula'
    ARITHMETIC = 'arithmetic'
    GEOMETRIC = 'geometric'
    NUMERIC_UNCLASSIFIED = 'numeric_unclassified'
    NUMERIC_REPEAT = 'numeric_repeat'
    TEXT_SUFFIX = 'text_suffix'
    WEEKDAY = 'weekday'
    MONTH = 'month'
    TEXT_UNCLASSIFIED = 'text_unclassified'


@dataclass(frozen=True)
class FillPattern:
    """A detected pattern and what the generator needs to continue it."""

    kind: PatternKind
    confidence: int
    description: str
    increment: Optional[float] = None
    formula: Optional[str] = None
    prefix: Optional[str] = None
    step: Optional[int] = None

    def is_usable(self, min_confidence: int = DEFAULT_MIN_CONFIDENCE) -> bool:
        return self.confidence >= min_confidence

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['kind'] = self.kind.value
        return data


def _is_blank(value: CellValue) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


def _as_number(value: CellValue) -> Optional[float]:
    """Numeric reading of a value for pattern purposes (no currency stripping)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _tidy(value: float):
    """Round away float noise (0.1 + 0.2) and show integral values as int."""
    if not math.isfinite(value):
        return value
    return normalize_number(round(value, 10))


class PatternDetector:
    """Classify an ordered value sequence into a fill pattern."""

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE):
        self.tolerance = tolerance

    def detect(self, values: Sequence[CellValue]) -> Optional[FillPattern]:
        """
        Detect the pattern of a column's values, most recent last.

        Blank entries are ignored. Returns None when nothing is left.
        """
        valid = [v for v in values if not _is_blank(v)]
        if not valid:
            return None

        if any(FormulaParser.is_formula(v) for v in valid):
            pattern = self._detect_formula(valid)
        else:
            numbers = [_as_number(v) for v in valid]
            if all(n is not None for n in numbers):
                pattern = self._detect_numeric(numbers)
            else:
                pattern = self._detect_text([str(v) for v in valid])

        logger.debug(f"Detected {pattern.kind.value} pattern "
                     f"({pattern.confidence}%): {pattern.description}")
        return pattern

    def _detect_formula(self, values: List[CellValue]) -> FillPattern:
        formulas = [str(v) for v in values if FormulaParser.is_formula(v)]
        return FillPattern(
            kind=PatternKind.FORMULA,
            confidence=85,
            description='Auto-increment formula cell references',
            formula=formulas[-1]
        )

    def _detect_numeric(self, numbers: List[float]) -> FillPattern:
        if len(numbers) < 2:
            return FillPattern(
                kind=PatternKind.NUMERIC_REPEAT,
                confidence=50,
                description='Repeat value',
                increment=0
            )

        differences = [b - a for a, b in zip(numbers, numbers[1:])]
        avg_diff = sum(differences) / len(differences)
        if all(abs(d - avg_diff) < self.tolerance for d in differences):
            sign = '+' if avg_diff > 0 else ''
            return FillPattern(
                kind=PatternKind.ARITHMETIC,
                confidence=95,
                description=f"Numeric sequence ({sign}{avg_diff:.2f})",
                increment=_tidy(avg_diff)
            )

        if all(n != 0 for n in numbers):
            ratios = [b / a for a, b in zip(numbers, numbers[1:])]
            avg_ratio = sum(ratios) / len(ratios)
            is_geometric = all(abs(r - avg_ratio) < self.tolerance for r in ratios)

            if is_geometric and abs(avg_ratio - 1) > self.tolerance:
                return FillPattern(
                    kind=PatternKind.GEOMETRIC,
                    confidence=90,
                    description=f"Geometric sequence (x{avg_ratio:.2f})",
                    increment=_tidy(avg_ratio)
                )

        return FillPattern(
            kind=PatternKind.NUMERIC_UNCLASSIFIED,
            confidence=30,
            description='No clear pattern',
            increment=0
        )

    def _detect_text(self, texts: List[str]) -> FillPattern:
        if len(texts) < 2:
            return FillPattern(
                kind=PatternKind.TEXT_UNCLASSIFIED,
                confidence=50,
                description='Repeat text'
            )

        # Number suffix with a constant step, e.g. "Item 1", "Item 2"
        matches = [NUMBERED_TEXT_PATTERN.match(t) for t in texts]
        if all(matches):
            prefixes = [m.group(1) for m in matches]
            numbers = [int(m.group(2)) for m in matches]
            steps = {b - a for a, b in zip(numbers, numbers[1:])}

            if len(set(prefixes)) == 1 and len(steps) == 1:
                (step,) = steps
                if step != 0:
                    return FillPattern(
                        kind=PatternKind.TEXT_SUFFIX,
                        confidence=95,
                        description=f'Text sequence ("{prefixes[0]}N")',
                        increment=step,
                        prefix=prefixes[0],
                        step=step
                    )

        lower_texts = [t.strip().lower() for t in texts]

        if all(t in _lower(WEEKDAYS) for t in lower_texts):
            return FillPattern(
                kind=PatternKind.WEEKDAY,
                confidence=90,
                description='Days of week sequence'
            )

        if all(t in _lower(MONTHS) for t in lower_texts):
            return FillPattern(
                kind=PatternKind.MONTH,
                confidence=90,
                description='Months sequence'
            )

        return FillPattern(
            kind=PatternKind.TEXT_UNCLASSIFIED,
            confidence=30,
            description='No clear text pattern'
        )


def _lower(names: Sequence[str]) -> List[str]:
    return [n.lower() for n in names]


class ValueGenerator:
    """Produce the next values for a detected pattern."""

    def __init__(self, min_confidence: int = DEFAULT_MIN_CONFIDENCE):
        self.min_confidence = min_confidence

    def generate(
        self,
        pattern: Optional[FillPattern],
        values: Sequence[CellValue],
        count: int,
        origin_offset: int = 0
    ) -> List[CellValue]:
        """
        Generate `count` new values continuing `values`.

        Args:
            pattern: Pattern detected for `values` (None if there was none)
            values: The seed sequence, most recent last
            count: Number of values to produce
            origin_offset: Zero-based grid row index of the last seed row;
                formula references shift by (i + 1 + origin_offset)

        Returns:
            List of exactly `count` values

        Raises:
            ValueError: If count is negative
        """
        if count < 0:
            raise ValueError(f"Count must be non-negative: {count}")

        valid = [v for v in values if not _is_blank(v)]
        last = valid[-1] if valid else None

        if pattern is None or not pattern.is_usable(self.min_confidence):
            return [last] * count

        kind = pattern.kind

        if kind in (PatternKind.ARITHMETIC, PatternKind.NUMERIC_REPEAT):
            start = _as_number(last)
            increment = float(pattern.increment or 0)
            return self._extend(lambda i: start + increment * (i + 1), last, count)

        if kind == PatternKind.GEOMETRIC:
            start = _as_number(last)
            ratio = float(pattern.increment)
            return self._extend(lambda i: start * ratio ** (i + 1), last, count)

        if kind == PatternKind.FORMULA:
            return [
                FormulaParser.shift_row_references(pattern.formula, i + 1 + origin_offset)
                for i in range(count)
            ]

        if kind == PatternKind.TEXT_SUFFIX:
            match = NUMBERED_TEXT_PATTERN.match(str(last))
            if match:
                prefix, last_num = match.group(1), int(match.group(2))
                return [f"{prefix}{last_num + pattern.step * (i + 1)}" for i in range(count)]

        if kind == PatternKind.WEEKDAY:
            return self._cycle(str(last), WEEKDAYS, count)

        if kind == PatternKind.MONTH:
            return self._cycle(str(last), MONTHS, count)

        return [last] * count

    @staticmethod
    def _extend(step: Callable[[int], float], last: CellValue, count: int) -> List[CellValue]:
        """
        Compute step(0) .. step(count - 1).

        A sequence that leaves the finite float range repeats the last
        value instead.
        """
        try:
            values = [step(i) for i in range(count)]
        except OverflowError:
            values = None

        if values is None or not all(math.isfinite(v) for v in values):
            logger.warning(f"Numeric fill overflowed within {count} values; repeating {last!r}")
            return [last] * count

        return [_tidy(v) for v in values]

    @staticmethod
    def _cycle(seed: str, names: Sequence[str], count: int) -> List[str]:
        """Continue a weekday/month cycle from `seed`, wrapping around."""
        lowered = _lower(names)
        seed_key = seed.strip().lower()
        if seed_key not in lowered:
            return [seed] * count

        start = lowered.index(seed_key)
        capitalized = seed.strip()[:1].isupper()

        result = []
        for i in range(count):
            name = names[(start + i + 1) % len(names)]
            result.append(name if capitalized else name.lower())
        return result


def generate_next_values(
    values: Sequence[CellValue],
    count: int,
    origin_offset: int = 0,
    min_confidence: int = DEFAULT_MIN_CONFIDENCE
) -> List[CellValue]:
    """Detect the pattern of `values` and generate the next `count` values."""
    pattern = PatternDetector().detect(values)
    return ValueGenerator(min_confidence).generate(pattern, values, count, origin_offset)


def build_fill_prompt(
    values: Sequence[CellValue],
    column_name: str,
    snapshot: GridSnapshot,
    pattern: Optional[FillPattern] = None
) -> str:
    """
    Render the assistant prompt for a fill-down request.

    Args:
        values: Recent values of the column being filled
        column_name: Name of that column
        snapshot: Grid the column belongs to (first three rows are sampled)
        pattern: Pre-detected pattern; detected from `values` if omitted

    Returns:
        Prompt text asking for the next value only
    """
    if pattern is None:
        pattern = PatternDetector().detect(values)

    value_lines = '\n'.join(f"  Row {i + 1}: {v}" for i, v in enumerate(values))
    if pattern:
        pattern_line = f"Detected pattern: {pattern.description} (confidence: {pattern.confidence}%)"
    else:
        pattern_line = 'No clear pattern detected'

    sample = json.dumps(snapshot.to_records()['rows'][:3], default=str)

    return (
        f'I\'m filling cells in column "{column_name}" by dragging down. '
        f'Here are the last few values:\n'
        f'{value_lines}\n\n'
        f'{pattern_line}\n\n'
        f'Full data context:\n'
        f'Columns: {", ".join(snapshot.columns)}\n'
        f'Sample data: {sample}\n\n'
        f'Please generate the next value that would logically continue this sequence. '
        f'If it\'s a formula, make sure cell references increment correctly. '
        f'Return ONLY the value, no explanation.'
    )

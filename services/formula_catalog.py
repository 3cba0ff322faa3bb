"""
Formula catalog - documented functions, operations and templates.

Used for inline help, keyword search and turning short natural-language
requests ("sum of B2:B10") into formulas.
"""

import re
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class FormulaFunction:
    name: str
    description: str
    syntax: str
    examples: Tuple[str, ...]
    category: str

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['examples'] = list(self.examples)
        return data


@dataclass(frozen=True)
class FormulaTemplate:
    name: str
    description: str
    template: str
    example: str

    def to_dict(self) -> Dict:
        return asdict(self)


FORMULA_FUNCTIONS: Tuple[FormulaFunction, ...] = (
    FormulaFunction(
        name='SUM',
        description='Adds all numbers in a range of cells',
        syntax='=SUM(range)',
        examples=('=SUM(B2:E2)', '=SUM(A1:A10)', '=SUM(B2:D5)'),
        category='math'
    ),
    FormulaFunction(
        name='AVERAGE',
        description='Calculates the average (mean) of numbers in a range',
        syntax='=AVERAGE(range)',
        examples=('=AVERAGE(B2:E2)', '=AVERAGE(A1:A10)'),
        category='statistical'
    ),
    FormulaFunction(
        name='AVG',
        description='Alias for AVERAGE - calculates the mean of numbers',
        syntax='=AVG(range)',
        examples=('=AVG(B2:E2)',),
        category='statistical'
    ),
    FormulaFunction(
        name='MAX',
        description='Returns the largest number in a range',
        syntax='=MAX(range)',
        examples=('=MAX(C2:C10)', '=MAX(B2:E5)'),
        category='statistical'
    ),
    FormulaFunction(
        name='MIN',
        description='Returns the smallest number in a range',
        syntax='=MIN(range)',
        examples=('=MIN(D2:D10)', '=MIN(B2:E5)'),
        category='statistical'
    ),
    FormulaFunction(
        name='COUNT',
        description='Counts how many numbers are in a range',
        syntax='=COUNT(range)',
        examples=('=COUNT(A2:A10)',),
        category='statistical'
    ),
    FormulaFunction(
        name='MEDIAN',
        description='Returns the median (middle value) of numbers in a range',
        syntax='=MEDIAN(range)',
        examples=('=MEDIAN(B2:B20)',),
        category='statistical'
    ),
    FormulaFunction(
        name='PRODUCT',
        description='Multiplies all numbers in a range together',
        syntax='=PRODUCT(range)',
        examples=('=PRODUCT(B2:B5)',),
        category='math'
    ),
)

ARITHMETIC_OPERATIONS: Tuple[Dict[str, str], ...] = (
    {'operation': 'Addition', 'syntax': '=CELL1 + CELL2', 'example': '=B2+C2'},
    {'operation': 'Subtraction', 'syntax': '=CELL1 - CELL2', 'example': '=B2-C2'},
    {'operation': 'Multiplication', 'syntax': '=CELL1 * CELL2', 'example': '=B2*0.10'},
    {'operation': 'Division', 'syntax': '=CELL1 / CELL2', 'example': '=(B2+C2)/D2'},
    {'operation': 'Percentage', 'syntax': '=(CELL1/CELL2)*100', 'example': '=((C2-B2)/B2)*100'},
)

FORMULA_TEMPLATES: Tuple[FormulaTemplate, ...] = (
    FormulaTemplate('Sum', 'Add up numbers in a range', '=SUM(START:END)', '=SUM(B2:E2)'),
    FormulaTemplate('Average', 'Calculate average of numbers', '=AVERAGE(START:END)', '=AVERAGE(B2:B10)'),
    FormulaTemplate('Maximum', 'Find the largest number', '=MAX(START:END)', '=MAX(C2:C10)'),
    FormulaTemplate('Minimum', 'Find the smallest number', '=MIN(START:END)', '=MIN(D2:D10)'),
    FormulaTemplate('Count', 'Count how many numbers', '=COUNT(START:END)', '=COUNT(A2:A10)'),
    FormulaTemplate('Arithmetic', 'Basic math operations', '=CELL1 + CELL2', '=B2+C2'),
    FormulaTemplate('Percentage', 'Calculate percentage', '=(CELL1/CELL2)*100', '=(B2/C2)*100'),
)

# Checked in order; the first keyword group found in the request wins
NATURAL_LANGUAGE_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ('SUM', ('sum', 'total', 'add')),
    ('AVERAGE', ('average', 'mean')),
    ('MAX', ('max', 'largest', 'highest')),
    ('MIN', ('min', 'smallest', 'lowest')),
)

RANGE_MENTION = re.compile(r'([A-Za-z]+\d+):([A-Za-z]+\d+)')


def search_formulas(keyword: str) -> List[FormulaFunction]:
    """Functions whose name, description or examples mention `keyword`."""
    lower = keyword.lower()
    return [
        f for f in FORMULA_FUNCTIONS
        if lower in f.name.lower()
        or lower in f.description.lower()
        or any(lower in ex.lower() for ex in f.examples)
    ]


def get_formula_summary() -> str:
    """One-paragraph help text for inline display."""
    names = ', '.join(f.name for f in FORMULA_FUNCTIONS)
    return f"Available functions: {names}\nArithmetic: +, -, *, /\nPercentage: (A/B)*100"


def natural_language_to_formula(text: str) -> Optional[str]:
    """
    Turn a short request such as "total of b2:b10" into a formula.

    Returns None unless the text names an aggregate and mentions a range.
    """
    lower = text.lower()
    range_match = RANGE_MENTION.search(text)
    if not range_match:
        return None

    for function, keywords in NATURAL_LANGUAGE_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return f"={function}({range_match.group(0).upper()})"

    return None

#!/usr/bin/env python3
"""
Sheet Core CLI - Dual Mode

This script can operate in two modes:
1. Direct mode (default): evaluates with the services directly
2. API mode: makes HTTP requests to the FastAPI backend

Usage:
    # Evaluate one cell of a workbook
    python scripts/sheet_cli.py evaluate budget.xlsx --cell D4

    # Evaluate an ad-hoc formula against a workbook (API mode)
    python scripts/sheet_cli.py --api-url http://localhost:8000 evaluate budget.xlsx --formula "=SUM(B1:B3)"

    # Evaluate every formula cell
    python scripts/sheet_cli.py sheet budget.xlsx

    # Detect the pattern of some values
    python scripts/sheet_cli.py detect Monday Tuesday

    # Fill a column down and save the result
    python scripts/sheet_cli.py fill budget.xlsx --column Month --count 6 --output filled.xlsx
"""

import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
from typing import Any, Dict, Optional

import click
from dotenv import load_dotenv
import requests

from backend.models.grid import GridSnapshot
from services.evaluation_service import CircularPolicy, DependencyAnalyzer, FormulaEvaluator
from services.formula_catalog import FORMULA_FUNCTIONS, get_formula_summary, search_formulas
from services.formula_service import FormulaParser, InvalidReferenceError
from services.pattern_service import PatternDetector, ValueGenerator
from services.workbook_service import WorkbookError, WorkbookService

# Load environment variables
load_dotenv()

# Configure logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'WARNING')
LOG_FILE = os.getenv('LOG_FILE', 'cli.log')

handlers = [logging.StreamHandler(sys.stderr)]
if LOG_FILE:
    handlers.append(logging.FileHandler(LOG_FILE))

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.WARNING),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=handlers
)

logger = logging.getLogger('sheet_cli')

# Configuration
CIRCULAR_REFERENCE_MODE = os.getenv('CIRCULAR_REFERENCE_MODE', 'zero')
MIN_PATTERN_CONFIDENCE = int(os.getenv('MIN_PATTERN_CONFIDENCE', '40'))


@click.group()
@click.option('--api-url', envvar='API_URL', help='FastAPI backend URL (enables API mode)')
@click.pass_context
def cli(ctx, api_url):
    """Sheet Core CLI - formula evaluation and fill-down"""
    ctx.ensure_object(dict)
    ctx.obj['api_url'] = api_url.rstrip('/') if api_url else None


@cli.command('evaluate')
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--cell', '-c', help='Cell to evaluate, e.g. D4')
@click.option('--formula', '-f', help='Formula to evaluate against the file, e.g. =SUM(B1:B3)')
@click.pass_context
def evaluate_cmd(ctx, file: str, cell: Optional[str], formula: Optional[str]):
    """Evaluate one cell (or an ad-hoc formula) of a workbook."""
    if bool(cell) == bool(formula):
        raise click.UsageError('Give exactly one of --cell or --formula')

    snapshot = load_snapshot(file)
    label = cell.upper() if cell else formula

    if cell:
        try:
            col, row = FormulaParser.decode(cell)
            text = snapshot.cell_value(col, row)
        except (InvalidReferenceError, IndexError) as e:
            click.echo(f"✗ {e}", err=True)
            sys.exit(1)

        if not FormulaParser.is_formula(text):
            click.echo(f"{label} = {format_value(text)}")
            return
    else:
        text = formula

    api_url = ctx.obj.get('api_url')
    if api_url:
        result = api_request('POST', api_url, '/api/formulas/evaluate', {
            'formula': text,
            'grid': snapshot.to_records(),
            'cell': cell
        })
    else:
        result = make_evaluator().evaluate(text, snapshot, cell=cell).to_dict()

    if result.get('error'):
        click.echo(f"✗ {label}: {result['error']} ({result.get('message')})", err=True)
        sys.exit(1)

    click.echo(f"{label} = {format_value(result.get('value'))}")


@cli.command('sheet')
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def sheet_cmd(ctx, file: str):
    """Evaluate every formula cell of a workbook."""
    snapshot = load_snapshot(file)

    api_url = ctx.obj.get('api_url')
    if api_url:
        data = api_request('POST', api_url, '/api/formulas/evaluate-sheet',
                           {'grid': snapshot.to_records()})
        cells = data['cells']
        cycles = data.get('circular_references', [])
    else:
        results = make_evaluator().evaluate_sheet(snapshot)
        cells = {ref: r.to_dict() for ref, r in results.items()}
        cycles = DependencyAnalyzer(snapshot).detect_cycles()

    if not cells:
        click.echo("No formula cells found")
        return

    errors = 0
    for ref, result in cells.items():
        if result.get('error'):
            errors += 1
            click.echo(f"  {ref}: #{result['error']} ({result.get('message')})")
        else:
            click.echo(f"  {ref}: {format_value(result.get('value'))}")

    click.echo(f"\nFormula cells: {len(cells)}")
    click.echo(f"Errors: {errors}")

    if cycles:
        click.echo(f"\n⚠️  Circular references ({len(cycles)}):")
        for group in cycles:
            click.echo(f"  {' -> '.join(group)}")


@cli.command('detect')
@click.argument('values', nargs=-1, required=True)
@click.pass_context
def detect_cmd(ctx, values):
    """Detect the fill pattern of VALUES (most recent last)."""
    api_url = ctx.obj.get('api_url')
    if api_url:
        pattern = api_request('POST', api_url, '/api/autofill/detect',
                              {'values': list(values)}).get('pattern')
    else:
        detected = PatternDetector().detect(list(values))
        pattern = detected.to_dict() if detected else None

    if not pattern:
        click.echo("No pattern detected")
        return

    click.echo(f"Pattern: {pattern['kind']}")
    click.echo(f"Confidence: {pattern['confidence']}%")
    click.echo(f"Description: {pattern['description']}")


@cli.command('fill')
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.option('--column', '-c', 'column', required=True, help='Column name to fill down')
@click.option('--count', '-n', required=True, type=click.IntRange(min=0),
              help='Number of values to generate')
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Write the filled grid to this .xlsx/.csv file')
@click.pass_context
def fill_cmd(ctx, file: str, column: str, count: int, output: Optional[str]):
    """Continue a column's values below its last entry."""
    snapshot = load_snapshot(file)

    if column not in snapshot.columns:
        click.echo(f"✗ Unknown column: {column}. "
                   f"Columns: {', '.join(snapshot.columns)}", err=True)
        sys.exit(1)

    column_values = snapshot.column_values(column)
    filled_rows = [i for i, v in enumerate(column_values) if v not in (None, '')]
    if not filled_rows:
        click.echo(f"✗ Column {column} has no values to continue", err=True)
        sys.exit(1)

    origin_offset = filled_rows[-1]
    seeds = column_values[:origin_offset + 1]

    api_url = ctx.obj.get('api_url')
    if api_url:
        data = api_request('POST', api_url, '/api/autofill/generate', {
            'values': seeds,
            'count': count,
            'origin_offset': origin_offset
        })
        values = data['values']
        pattern = data.get('pattern')
    else:
        detected = PatternDetector().detect(seeds)
        values = ValueGenerator(MIN_PATTERN_CONFIDENCE).generate(
            detected, seeds, count, origin_offset
        )
        pattern = detected.to_dict() if detected else None

    if pattern:
        click.echo(f"Pattern: {pattern['description']} ({pattern['confidence']}% confidence)")

    first_row = origin_offset + 1
    for i, value in enumerate(values):
        ref = FormulaParser.encode(snapshot.columns.index(column), first_row + i)
        click.echo(f"  {ref}: {format_value(value)}")

    if output:
        filled = snapshot.with_column_values(column, values, start_row=first_row)
        try:
            WorkbookService().save(filled, output)
        except WorkbookError as e:
            click.echo(f"✗ {e}", err=True)
            sys.exit(1)
        click.echo(f"\n✓ Saved to {output}")


@cli.command('functions')
@click.option('--search', '-s', help='Filter by keyword')
def functions_cmd(search: Optional[str]):
    """List supported formula functions."""
    functions = search_formulas(search) if search else FORMULA_FUNCTIONS

    if not functions:
        click.echo(f"No functions match {search!r}")
        return

    for func in functions:
        click.echo(f"{func.name:<8} {func.syntax:<18} {func.description}")

    if not search:
        click.echo(f"\n{get_formula_summary()}")


# ============================================================================
# Helpers
# ============================================================================

def make_evaluator() -> FormulaEvaluator:
    try:
        policy = CircularPolicy(CIRCULAR_REFERENCE_MODE.lower())
    except ValueError:
        logger.warning(f"Unknown CIRCULAR_REFERENCE_MODE {CIRCULAR_REFERENCE_MODE!r}, using 'zero'")
        policy = CircularPolicy.ZERO
    return FormulaEvaluator(circular_policy=policy)


def load_snapshot(file_path: str) -> GridSnapshot:
    """Load a workbook or exit with an error message."""
    try:
        return WorkbookService().load(file_path)
    except WorkbookError as e:
        logger.error(f"Could not load {file_path}: {e}")
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


def api_request(method: str, api_url: str, path: str,
                payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Call the backend and return its JSON body, exiting on failure."""
    try:
        response = requests.request(method, f"{api_url}{path}", json=payload, timeout=30)
    except requests.exceptions.RequestException as e:
        click.echo(f"❌ Network error: {e}", err=True)
        sys.exit(1)

    if response.status_code != 200:
        click.echo(f"❌ Request failed ({response.status_code}): {response.text}", err=True)
        sys.exit(1)

    return response.json()


def format_value(value: Any) -> str:
    if value is None:
        return '(blank)'
    if isinstance(value, float):
        return f"{value:.10g}"
    return str(value)


if __name__ == '__main__':
    cli()

"""
Tests for loading and saving grid snapshots as workbook files.
"""

import openpyxl
import pytest

from backend.models.grid import GridSnapshot
from services.evaluation_service import FormulaEvaluator
from services.workbook_service import WorkbookError, WorkbookService


@pytest.fixture
def service():
    return WorkbookService()


@pytest.fixture
def budget_xlsx(tmp_path):
    """Workbook with a header row, numbers and a formula."""
    path = tmp_path / 'budget.xlsx'
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(['Item', 'Amount'])
    ws.append(['Rent', 1000])
    ws.append(['Power', 250])
    ws.append(['Total', '=SUM(B1:B2)'])
    ws.append([None, None])
    wb.save(path)
    return path


class TestLoadExcel:
    """Reading .xlsx files."""

    def test_header_becomes_columns(self, service, budget_xlsx):
        snapshot = service.load(str(budget_xlsx))
        assert snapshot.columns == ('Item', 'Amount')
        assert snapshot.row_count == 3

    def test_formula_kept_as_text(self, service, budget_xlsx):
        snapshot = service.load(str(budget_xlsx))
        assert snapshot.cell_value(1, 2) == '=SUM(B1:B2)'

    def test_evaluates_after_load(self, service, budget_xlsx):
        snapshot = service.load(str(budget_xlsx))
        assert FormulaEvaluator().evaluate('=B3', snapshot).value == 1250

    def test_named_sheet(self, service, tmp_path):
        path = tmp_path / 'two.xlsx'
        wb = openpyxl.Workbook()
        wb.active.append(['First'])
        second = wb.create_sheet('Data')
        second.append(['X', 'Y'])
        second.append([1, 2])
        wb.save(path)

        snapshot = service.load(str(path), sheet_name='Data')
        assert snapshot.columns == ('X', 'Y')

        with pytest.raises(WorkbookError):
            service.load(str(path), sheet_name='Missing')

    def test_blank_and_duplicate_headers(self, service, tmp_path):
        path = tmp_path / 'headers.xlsx'
        wb = openpyxl.Workbook()
        wb.active.append(['Name', None, 'Name'])
        wb.active.append(['a', 'b', 'c'])
        wb.save(path)

        snapshot = service.load(str(path))
        assert snapshot.columns == ('Name', 'Column 2', 'Name (2)')

    def test_corrupt_file(self, service, tmp_path):
        path = tmp_path / 'broken.xlsx'
        path.write_text('not a workbook')
        with pytest.raises(WorkbookError):
            service.load(str(path))


class TestLoadCsv:
    """Reading .csv files."""

    def test_numbers_parsed(self, service, tmp_path):
        path = tmp_path / 'data.csv'
        path.write_text('Name,Qty,Price\nA,3,1.5\nB,,=B2*C2\n', encoding='utf-8')

        snapshot = service.load(str(path))
        assert snapshot.columns == ('Name', 'Qty', 'Price')
        assert snapshot.column_values('Qty') == [3, None]
        assert snapshot.column_values('Price') == [1.5, '=B2*C2']

    def test_unsupported_extension(self, service, tmp_path):
        path = tmp_path / 'notes.txt'
        path.write_text('hello')
        with pytest.raises(WorkbookError):
            service.load(str(path))


class TestSave:
    """Writing snapshots back out."""

    @pytest.mark.parametrize('filename', ['out.xlsx', 'out.csv'])
    def test_save_and_reload(self, service, tmp_path, filename):
        snapshot = GridSnapshot.from_records(
            ['Day', 'Hours'],
            [{'Day': 'Monday', 'Hours': 8}, {'Day': 'Tuesday', 'Hours': '=B1'}]
        )
        path = tmp_path / filename
        service.save(snapshot, str(path))

        reloaded = service.load(str(path))
        assert reloaded.columns == snapshot.columns
        assert reloaded.to_records() == snapshot.to_records()

    def test_save_unsupported(self, service, tmp_path):
        snapshot = GridSnapshot.from_records(['A'], [{'A': 1}])
        with pytest.raises(WorkbookError):
            service.save(snapshot, str(tmp_path / 'out.json'))


if __name__ == '__main__':
    pytest.main([__file__, '-v'])

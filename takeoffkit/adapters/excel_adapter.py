import openpyxl
from pathlib import Path

from ..errors import StructuralError
from ..models import RawTable
from ..normalizer import to_text


class ExcelAdapter:
    """Reads the first worksheet of an .xlsx workbook (cached formula values)."""

    def can_handle(self, file_path):
        return Path(file_path).suffix.lower() in [".xlsx", ".xlsm"]

    def read(self, file_path):
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        wb = openpyxl.load_workbook(file_path, data_only=True, read_only=True)
        try:
            ws = wb.worksheets[0]
            records = [
                [to_text(value) for value in row]
                for row in ws.iter_rows(values_only=True)
            ]
        finally:
            wb.close()

        records = [record for record in records if any(cell.strip() for cell in record)]
        if not records:
            raise StructuralError(f"File {path.name} has no header row")

        headers = [cell.strip() for cell in records[0]]
        # Trailing empty header cells are formatting residue, not columns
        while headers and not headers[-1]:
            headers.pop()
        if not headers:
            raise StructuralError(f"File {path.name} has no header row")

        width = len(headers)
        rows = []
        for row_number, record in enumerate(records[1:], start=1):
            if any(cell.strip() for cell in record[width:]):
                raise StructuralError(
                    f"Row {row_number} has values beyond the {width} header columns",
                    row_number=row_number,
                )
            rows.append((record + [""] * width)[:width])

        return RawTable(headers=headers, rows=rows, file_name=path.name, file_size=path.stat().st_size)

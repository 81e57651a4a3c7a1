import csv
import io
import chardet
from pathlib import Path
from typing import List

from ..errors import StructuralError
from ..models import RawTable


class CsvAdapter:
    """CSV adapter for reading takeoff exports into a RawTable.

    Handles:
    - Multiple encodings (UTF-8, UTF-8-BOM, Windows-1252, ISO-8859-1, etc.)
    - Different delimiters (comma, semicolon, tab)
    - Blank lines between rows (skipped, not counted)

    Every data row must have as many cells as the header row.
    """

    FALLBACK_ENCODINGS = ('latin-1', 'cp1252', 'iso-8859-1')

    def can_handle(self, file_path: str) -> bool:
        """Check if this adapter can handle the given file."""
        return Path(file_path).suffix.lower() in [".csv", ".tsv"]

    def _detect_encoding(self, raw_data: bytes) -> str:
        """Detect encoding using chardet with a UTF-8 default."""
        # Check for BOM first
        if raw_data.startswith(b'\xef\xbb\xbf'):
            return 'utf-8-sig'

        result = chardet.detect(raw_data[:10000])
        encoding = result.get('encoding') or 'utf-8'

        encoding_lower = encoding.lower()
        if 'utf-8' in encoding_lower or 'utf8' in encoding_lower or encoding_lower == 'ascii':
            return 'utf-8'
        return encoding

    def _decode(self, raw_data: bytes, file_path: str) -> str:
        """Decode file bytes, trying fallback encodings when detection was wrong."""
        encoding = self._detect_encoding(raw_data)
        try:
            return raw_data.decode(encoding)
        except (UnicodeDecodeError, LookupError) as e:
            for fallback_encoding in self.FALLBACK_ENCODINGS:
                try:
                    return raw_data.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue
            raise StructuralError(f"Could not decode file {file_path}: {e}")

    def _detect_delimiter(self, text: str, suffix: str) -> str:
        """Detect the delimiter from the header line."""
        # TSV files use tab delimiter
        if suffix == '.tsv':
            return '\t'

        first_line = text.split('\n', 1)[0]
        comma_count = first_line.count(',')
        semicolon_count = first_line.count(';')
        tab_count = first_line.count('\t')

        if tab_count > comma_count and tab_count > semicolon_count:
            return '\t'
        elif semicolon_count > comma_count:
            return ';'
        return ','

    def read(self, file_path: str) -> RawTable:
        """Read a CSV/TSV file.

        Args:
            file_path: Path to the CSV/TSV file

        Returns:
            RawTable with the header row and every non-blank data row

        Raises:
            FileNotFoundError: If file doesn't exist
            StructuralError: If the file has no header, cannot be decoded or
                parsed, or a row's cell count differs from the header's
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        raw_data = path.read_bytes()
        text = self._decode(raw_data, file_path)
        if text.startswith('\ufeff'):
            text = text[1:]

        delimiter = self._detect_delimiter(text, path.suffix.lower())

        try:
            records = [
                record for record in csv.reader(io.StringIO(text, newline=''), delimiter=delimiter)
                if any(cell.strip() for cell in record)
            ]
        except csv.Error as e:
            raise StructuralError(f"Error parsing CSV file {file_path}: {e}")

        if not records:
            raise StructuralError(f"File {path.name} has no header row")

        headers = [cell.strip() for cell in records[0]]
        rows: List[List[str]] = []
        for row_number, record in enumerate(records[1:], start=1):
            if len(record) != len(headers):
                raise StructuralError(
                    f"Row {row_number} has {len(record)} columns, expected {len(headers)}",
                    row_number=row_number,
                )
            rows.append(record)

        return RawTable(headers=headers, rows=rows, file_name=path.name, file_size=len(raw_data))

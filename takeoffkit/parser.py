import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .column_mapper import ColumnMapper
from .config import ImportSettings
from .errors import StructuralError
from .models import RawTable

logger = logging.getLogger(__name__)


class TakeoffParser:
    """Reads takeoff files through registered adapters and enforces file limits."""

    def __init__(self, settings: Optional[ImportSettings] = None):
        """Initialize the takeoff parser.

        Args:
            settings: Import limits (default: ImportSettings())
        """
        self.adapters = []
        self.settings = settings or ImportSettings()
        self.column_mapper = ColumnMapper()

    def register_adapter(self, adapter):
        """Register a file adapter for parsing.

        Args:
            adapter: Adapter instance with can_handle() and read() methods
        """
        self.adapters.append(adapter)

    def _find_adapter(self, file_path: str):
        for a in self.adapters:
            if a.can_handle(file_path):
                return a
        raise ValueError(f"No adapter found for {file_path}")

    def parse(self, file_path: str) -> RawTable:
        """Read a takeoff file into a RawTable.

        The file size is checked before anything is read and the row count
        right after reading, so an oversized file never reaches mapping.

        Args:
            file_path: Path to the takeoff file

        Returns:
            RawTable with headers and string cells

        Raises:
            ValueError: If no adapter is found for the file
            StructuralError: If a size/row limit is exceeded or the adapter
                cannot read the file as a table
        """
        adapter = self._find_adapter(file_path)

        file_size = os.stat(file_path).st_size
        if file_size > self.settings.max_file_size:
            raise StructuralError(
                f"File too large: {file_size / (1024 * 1024):.2f}MB "
                f"(max {self.settings.max_file_size / (1024 * 1024):.2f}MB)"
            )

        table = adapter.read(file_path)
        if table.total_rows > self.settings.max_rows:
            raise StructuralError(
                f"Too many rows: {table.total_rows} (max {self.settings.max_rows})"
            )

        logger.debug(f"Read {table.total_rows} rows from {Path(file_path).name} with {type(adapter).__name__}")
        return table

    def get_mapping_report(self, file_path: str) -> Dict[str, Any]:
        """Get a report of how a file's headers map to canonical fields."""
        table = self.parse(file_path)
        return self.column_mapper.get_mapping_report(table.headers)

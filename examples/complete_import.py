#!/usr/bin/env python3
"""Example: Preview and import a takeoff file with takeoffkit.

Reads a CSV or Excel takeoff, prints the preview (column mapping, row
categories, dimensions to create) and, when nothing blocks the import,
runs it. Uses Supabase when SUPABASE_DB_URL is set, an in-memory store
otherwise.
"""

import json
import logging
import os
from uuid import UUID, uuid4

from dotenv import load_dotenv

from takeoffkit import TakeoffParser, ImportSettings, build_preview, build_import_payload
from takeoffkit.adapters.csv_adapter import CsvAdapter
from takeoffkit.adapters.excel_adapter import ExcelAdapter
from takeoffkit.ingest import InMemoryClient, SupabaseClient, execute_import


def import_takeoff(input_file: str, project_id: UUID, debug: bool = False):
    """Preview a takeoff file and import it if it has no blocking rows.

    Args:
        input_file: Path to the takeoff file
        project_id: Target project
        debug: Log every import decision
    """
    settings = ImportSettings.from_env()

    parser = TakeoffParser(settings)
    parser.register_adapter(CsvAdapter())
    parser.register_adapter(ExcelAdapter())

    db = SupabaseClient() if os.getenv("SUPABASE_DB_URL") else InMemoryClient()

    try:
        table = parser.parse(input_file)
        preview = build_preview(table, project_id, db, settings)

        print(f"Column Mapping Report:")
        for mapping in preview.mapping.mappings:
            print(f"  {mapping.raw_header!r} -> {mapping.canonical_field} ({mapping.confidence})")
        if preview.mapping.unmapped_headers:
            print(f"  Unmapped: {', '.join(preview.mapping.unmapped_headers)}")

        print(f"\nRows: {preview.total_rows} total, {preview.valid_count} valid, "
              f"{preview.skipped_count} skipped, {preview.error_count} error")
        for result in preview.summary.skipped + preview.summary.errors:
            print(f"  row {result.row_number}: {result.status.value} - {result.reason}")

        to_create = {k: v for k, v in preview.discovery.to_create().items() if v}
        if to_create:
            print(f"\nDimensions to create: {json.dumps(to_create)}")

        if not preview.can_import:
            print("\n✗ Import blocked")
            return None

        payload = build_import_payload(preview, settings=settings)
        result = execute_import(payload, db, settings=settings, debug=debug)
        print(f"\n{json.dumps(result.to_dict(), indent=2)}")
        return result

    finally:
        db.close()


if __name__ == "__main__":
    import sys

    load_dotenv()

    if len(sys.argv) < 2:
        print("Usage: python complete_import.py <input_file> [project_id]")
        print("\nExample:")
        print("  python complete_import.py takeoff.csv 6f1c2a7e-8a51-4d5b-9a76-0d3c1b2e4f90")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO)

    input_file = sys.argv[1]
    project_id = UUID(sys.argv[2]) if len(sys.argv) > 2 else uuid4()

    import_takeoff(input_file, project_id, debug=True)

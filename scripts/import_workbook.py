#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Sequence
from pathlib import Path

from attendance_admin.db import SessionLocal, engine
from attendance_admin.logging_utils import setup_json_logging
from attendance_admin.services.employees import import_employee_rows
from attendance_admin.services.master_sheet import import_master_sheet_rows, import_overtime_rows
from attendance_admin.services.spreadsheets import read_sheet_rows
from attendance_admin.settings import get_settings
from attendance_admin.store import DocumentStore, SqlDocumentStore, create_schema, get_memory_store

IMPORTERS = {
    "employees": import_employee_rows,
    "master-sheet": import_master_sheet_rows,
    "overtime": import_overtime_rows,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import an Excel workbook into the document store.")
    parser.add_argument("kind", choices=sorted(IMPORTERS))
    parser.add_argument("workbook", type=Path)
    parser.add_argument(
        "--show-rows",
        action="store_true",
        help="include per-row outcomes in the printed summary",
    )
    return parser


def open_store() -> DocumentStore:
    if get_settings().document_store_backend.strip().lower() == "memory":
        return get_memory_store()
    create_schema(engine)
    return SqlDocumentStore(SessionLocal)


def main(argv: Sequence[str] | None = None, *, store: DocumentStore | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_json_logging(get_settings().log_level)

    rows = read_sheet_rows(args.workbook.read_bytes())
    summary = IMPORTERS[args.kind](store or open_store(), rows)

    report = summary.to_dict()
    if not args.show_rows:
        report.pop("results", None)
    print(json.dumps(report, ensure_ascii=False, indent=2))
    logging.getLogger("attendance_admin.cli").info("workbook_imported", extra=summary.counts())
    return 0 if summary.errors == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())

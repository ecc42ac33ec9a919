"""
Model export as JSON, CSV, Excel or SQL.

Each exporter takes a snapshot (see graph.snapshot.load_snapshot) and
returns an ExportResult the API layer streams back as a download.
"""

import csv
import io
import json
from dataclasses import dataclass
from typing import List

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

from modeler.errors import InvalidRequestError
from modeler.export.sql import SqlOptions, generate_sql

CSV_COLUMNS = [
    "Entity Name",
    "Entity Description",
    "Attribute Name",
    "Attribute Type",
    "Attribute Description",
    "Is Primary Key",
    "Is Foreign Key",
]
EXCEL_COLUMNS = CSV_COLUMNS + ["Is Required", "Is Unique"]

HEADER_FILL = PatternFill(start_color="FF4472C4", end_color="FF4472C4", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFFFF")


@dataclass
class ExportResult:
    content: bytes
    media_type: str
    filename: str

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'


def _yes_no(value) -> str:
    return "Yes" if value else "No"


def attribute_rows(snapshot: dict, extended: bool = False) -> List[list]:
    """One row per attribute; an entity without attributes still gets one row."""
    by_entity = {}
    for attribute in snapshot.get("attributes", []):
        by_entity.setdefault(attribute["entity_id"], []).append(attribute)

    rows = []
    for entity in snapshot.get("entities", []):
        attributes = by_entity.get(entity["id"], [])
        if not attributes:
            row = [entity["name"], entity.get("description") or "", "", "", "", "", ""]
            if extended:
                row += ["", ""]
            rows.append(row)
            continue
        for attribute in attributes:
            row = [
                entity["name"],
                entity.get("description") or "",
                attribute["name"],
                attribute.get("data_type") or "",
                attribute.get("description") or "",
                _yes_no(attribute.get("is_primary_key")),
                _yes_no(attribute.get("is_foreign_key")),
            ]
            if extended:
                row += [_yes_no(attribute.get("is_required")), _yes_no(attribute.get("is_unique"))]
            rows.append(row)
    return rows


def export_json(snapshot: dict) -> ExportResult:
    model_id = snapshot["dataModel"]["id"]
    document = {
        "dataModel": snapshot["dataModel"],
        "entities": snapshot.get("entities", []),
        "attributes": snapshot.get("attributes", []),
        "relationships": snapshot.get("relationships", []),
        "referentials": snapshot.get("referentials", []),
        "rules": snapshot.get("rules", []),
    }
    return ExportResult(
        content=json.dumps(document, indent=2, default=str).encode("utf-8"),
        media_type="application/json",
        filename=f"data-model-{model_id}.json",
    )


def export_csv(snapshot: dict) -> ExportResult:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    writer.writerows(attribute_rows(snapshot))
    return ExportResult(
        content=buffer.getvalue().encode("utf-8"),
        media_type="text/csv",
        filename=f"data-model-{snapshot['dataModel']['id']}.csv",
    )


def export_excel(snapshot: dict) -> ExportResult:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Data Model"

    sheet.append(EXCEL_COLUMNS)
    for cell in sheet[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
    for row in attribute_rows(snapshot, extended=True):
        sheet.append(row)

    for index, column in enumerate(EXCEL_COLUMNS, start=1):
        width = max([len(column)] + [len(str(c.value or "")) for c in sheet[sheet.cell(1, index).column_letter]])
        sheet.column_dimensions[sheet.cell(1, index).column_letter].width = min(width + 2, 60)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return ExportResult(
        content=buffer.getvalue(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"data-model-{snapshot['dataModel']['id']}.xlsx",
    )


def export_sql(snapshot: dict, options: SqlOptions = None) -> ExportResult:
    options = options or SqlOptions()
    return ExportResult(
        content=generate_sql(snapshot, options).encode("utf-8"),
        media_type="application/sql",
        filename=f"{options.schema_name}_{snapshot['dataModel']['id']}.sql",
    )


EXPORTERS = {
    "json": export_json,
    "csv": export_csv,
    "excel": export_excel,
    "xlsx": export_excel,
}


def export_model(snapshot: dict, fmt: str, sql_options: SqlOptions = None) -> ExportResult:
    fmt = (fmt or "json").lower()
    if fmt == "sql":
        return export_sql(snapshot, sql_options)
    exporter = EXPORTERS.get(fmt)
    if exporter is None:
        raise InvalidRequestError(
            f"Unsupported export format: {fmt}", details={"allowed": sorted(list(EXPORTERS) + ["sql"])}
        )
    return exporter(snapshot)

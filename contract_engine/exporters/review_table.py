"""Reviewer exports of a pipeline result: CSV and Excel."""

import csv
import json
import logging

import openpyxl
from openpyxl.styles import Font

from contract_engine.pipeline import PipelineResult

logger = logging.getLogger(__name__)

FIELD_HEADERS = [
    "category",
    "name",
    "label",
    "value",
    "value_type",
    "confidence",
    "source_page",
    "source_quote",
    "validation",
]
AMENDMENT_HEADERS = [
    "amendment_number",
    "amendment_date",
    "amendment_type",
    "affected_field",
    "original_value",
    "revised_value",
    "confidence",
    "source_page",
    "description",
    "source_quote",
]
CONFLICT_HEADERS = ["amendment_number", "amendment_type", "original_value", "revised_value", "conflict"]
VALIDATION_HEADERS = ["fields", "level", "is_valid", "message"]


# ── Helpers ──────────────────────────────────────────────────────────


def _cell(value) -> str | int | float | bool | None:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return value


def _field_rows(result: PipelineResult) -> list[list]:
    """One row per extracted field, with its worst validation finding."""
    findings: dict[str, str] = {}
    for finding in result.validations:
        if finding.result.level == "info":
            continue
        for name in finding.field_names:
            root = name.split(".", 1)[0].split("[", 1)[0]
            if findings.get(root, "").startswith("error"):
                continue
            findings[root] = f"{finding.result.level}: {finding.result.message}"

    return [
        [
            f.category,
            f.name,
            f.label,
            _cell(f.value),
            f.value_type,
            f.confidence,
            f.source_page,
            f.source_quote,
            findings.get(f.name, ""),
        ]
        for f in result.fields.all_fields()
    ]


def _amendment_rows(result: PipelineResult) -> list[list]:
    return [
        [
            a.amendment_number,
            a.amendment_date,
            a.amendment_type,
            a.affected_field,
            a.original_value,
            a.revised_value,
            a.confidence,
            a.source_page,
            a.description,
            a.source_quote,
        ]
        for a in result.amendments.amendments
    ]


def _conflict_rows(result: PipelineResult) -> list[list]:
    return [
        [
            c.amendment.amendment_number,
            c.amendment.amendment_type,
            c.amendment.original_value,
            c.amendment.revised_value,
            c.conflict_description,
        ]
        for c in result.conflicts
    ]


def _validation_rows(result: PipelineResult) -> list[list]:
    return [
        [", ".join(v.field_names), v.result.level, v.result.is_valid, v.result.message]
        for v in result.validations
    ]


# ── CSV Export ───────────────────────────────────────────────────────


def export_review_csv(result: PipelineResult, output_path: str) -> None:
    """Export extracted fields as CSV, one row per field."""
    rows = _field_rows(result)
    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(FIELD_HEADERS)
        writer.writerows(rows)

    logger.info("Review CSV exported to %s (%d rows)", output_path, len(rows))


# ── Excel Export ─────────────────────────────────────────────────────


def export_review_excel(result: PipelineResult, output_path: str) -> None:
    """Export fields, amendments, conflicts and validations as a 5-sheet workbook."""
    wb = openpyxl.Workbook()

    ws = wb.active
    ws.title = "Summary"
    ws.append(["file_name", "document_type", "overall_confidence", "requires_review", "config_hash"])
    ws.append(
        [
            result.file_name,
            result.classification.document_type,
            result.overall_confidence,
            result.requires_review,
            result.config_hash,
        ]
    )
    for domain, error in result.extraction_errors.items():
        ws.append([f"error: {domain}", error])
    _style_header(ws)

    for title, headers, rows in (
        ("Fields", FIELD_HEADERS, _field_rows(result)),
        ("Amendments", AMENDMENT_HEADERS, _amendment_rows(result)),
        ("Conflicts", CONFLICT_HEADERS, _conflict_rows(result)),
        ("Validation", VALIDATION_HEADERS, _validation_rows(result)),
    ):
        sheet = wb.create_sheet(title)
        sheet.append(headers)
        for row in rows:
            sheet.append(row)
        _style_header(sheet)

    wb.save(output_path)
    logger.info("Review Excel exported to %s", output_path)


def _style_header(ws) -> None:
    """Bold the header row."""
    for cell in ws[1]:
        cell.font = Font(bold=True)

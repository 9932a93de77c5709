from __future__ import annotations

import csv
import io
import json
from datetime import datetime

import pytest
from openpyxl import load_workbook

from donation_reports.core.clock import FixedClock
from donation_reports.models.entities import ReportType
from donation_reports.services.report_exporter import (
    ExportDataset,
    ReportExporter,
    cell_text,
    discover_headers,
    inline_text,
    pad_rows,
    sheet_title,
)
from donation_reports.services.report_payload import ReportPayload, RevenueRow, RevenueSection

REVENUE_PAYLOAD = {
    "type": "revenue",
    "title": "Revenue report",
    "filters": {"period": "month", "group_by": "month"},
    "meta": {"period": "month", "group_by": "month", "date_from": "2024-03-01", "date_to": "2024-03-31"},
    "data": [
        {"period": "2024-01", "total": 15000, "count": 2, "total_major_unit": 150.0},
        {"period": "2024-02", "total": 20000, "count": 1, "total_major_unit": 200.0},
    ],
    "summary": {
        "total_amount": 35000,
        "total_amount_rubles": 350.0,
        "total_transactions": 3,
        "average_transaction": 11666.67,
    },
    "rows_count": 2,
    "generated_at": "2024-03-15T12:30:45",
}


@pytest.fixture()
def exporter(clock: FixedClock) -> ReportExporter:
    return ReportExporter(clock=clock)


def _csv_rows(content: bytes) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content.decode("utf-8")), delimiter=";"))


def test_headers_are_union_of_row_keys_in_first_seen_order() -> None:
    rows = [{"a": 1, "b": 2}, {"b": 3, "c": 4}]

    headers = discover_headers(rows)

    assert headers == ["a", "b", "c"]
    assert pad_rows(rows, headers)[1] == {"a": None, "b": 3, "c": 4}


def test_csv_leaves_missing_cells_empty(exporter: ReportExporter) -> None:
    rows = [{"a": 1, "b": 2}, {"b": 3, "c": 4}]
    headers = discover_headers(rows)
    dataset = ExportDataset(title="Sample", headers=headers, rows=pad_rows(rows, headers))

    assert _csv_rows(exporter.render_csv(dataset)) == [["a", "b", "c"], ["1", "2", ""], ["", "3", "4"]]


def test_csv_round_trip_preserves_awkward_values(exporter: ReportExporter) -> None:
    payload = {
        "title": "Projects report",
        "data": {
            "projects_by_status": [{"status": "active; paused", "count": 2}],
            "funding_progress": [
                {
                    "project_id": "p-1",
                    "title": "Roof\nrepair",
                    "target_amount": 1000,
                    "collected_amount": 250,
                    "progress_percentage": 25.0,
                },
                {
                    "project_id": "p-2",
                    "title": 'Школа "Надежда"; Kraków',
                    "target_amount": 0,
                    "collected_amount": 0,
                    "progress_percentage": 0.0,
                },
            ],
            "average_funding_time": 4.5,
        },
    }
    dataset = exporter.prepare_dataset("projects", payload)

    result = exporter.export("projects", payload, "csv")

    parsed = _csv_rows(result.content)
    assert parsed[0] == dataset.headers
    assert parsed[1:] == [[cell_text(row.get(header)) for header in dataset.headers] for row in dataset.rows]
    titles = [row[dataset.headers.index("title")] for row in parsed[1:]]
    assert "Roof\nrepair" in titles
    assert 'Школа "Надежда"; Kraków' in titles
    assert parsed[1][dataset.headers.index("status")] == "active; paused"


def test_csv_export_of_revenue_payload(exporter: ReportExporter) -> None:
    result = exporter.export(ReportType.REVENUE, REVENUE_PAYLOAD, "csv")

    assert result.status_code == 200
    assert result.media_type == "text/csv; charset=utf-8"
    assert _csv_rows(result.content) == [
        ["section", "period", "total", "count"],
        ["revenue", "2024-01", "15000", "2"],
        ["revenue", "2024-02", "20000", "1"],
    ]


def test_export_filename_and_headers(exporter: ReportExporter) -> None:
    result = exporter.export("revenue", REVENUE_PAYLOAD, "CSV")

    assert result.filename == "report_revenue_2024-03-15_12-30-45.csv"
    assert result.headers["Content-Disposition"] == 'attachment; filename="report_revenue_2024-03-15_12-30-45.csv"'
    assert result.headers["X-Filename"] == result.filename
    assert result.headers["Content-Type"] == result.media_type


def test_excel_alias_produces_xlsx(exporter: ReportExporter) -> None:
    result = exporter.export("members", {"data": {}}, "excel")

    assert result.status_code == 200
    assert result.filename.endswith(".xlsx")
    assert result.media_type == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def test_explicit_filename_is_kept(exporter: ReportExporter) -> None:
    result = exporter.export("revenue", REVENUE_PAYLOAD, "csv", "march.csv")

    assert result.filename == "march.csv"


def test_unsupported_format_returns_client_error(exporter: ReportExporter) -> None:
    result = exporter.export("revenue", REVENUE_PAYLOAD, "docx")

    assert result.status_code == 400
    assert result.media_type == "application/json"
    assert json.loads(result.content) == {"message": "Unsupported export format: docx"}
    assert result.filename is None


def test_revenue_rows_fall_back_to_total_amount(exporter: ReportExporter) -> None:
    dataset = exporter.prepare_dataset(
        "revenue",
        {"data": [{"period": "2024-01", "total_amount": 500, "count": 1}]},
    )

    assert dataset.rows == [{"section": "revenue", "period": "2024-01", "total": 500, "count": 1}]
    assert dataset.title == "Revenue report"


def test_members_rows_include_summary_row(exporter: ReportExporter) -> None:
    dataset = exporter.prepare_dataset(
        "members",
        {
            "data": {
                "daily_registrations": [{"date": "2024-03-02", "count": 2}],
                "members_by_source": [{"source": "ads", "count": 2}],
                "active_members": 5,
            }
        },
    )

    assert dataset.headers == ["section", "date", "count", "source", "active_members"]
    assert [row["section"] for row in dataset.rows] == [
        "members_daily_registrations",
        "members_by_source",
        "members_summary",
    ]
    assert dataset.rows[2]["active_members"] == 5


def test_comprehensive_rows_cover_every_section(exporter: ReportExporter) -> None:
    dataset = exporter.prepare_dataset(
        ReportType.COMPREHENSIVE,
        {
            "data": {
                "revenue": [{"period": "2024-03", "total": 100, "count": 1}],
                "members": {"daily_registrations": [], "members_by_source": [], "active_members": 0},
                "projects": {
                    "projects_by_status": [{"status": "active", "count": 1}],
                    "funding_progress": [
                        {
                            "project_id": "p-1",
                            "title": "Clean Water",
                            "target_amount": 1000,
                            "collected_amount": 250,
                            "progress_percentage": 25.0,
                        }
                    ],
                    "average_funding_time": 4.5,
                },
                "analytics": {
                    "conversion_rate": 1.0,
                    "average_donation": 100.0,
                    "retention_rate": 50.0,
                    "growth_rate": 0.0,
                },
            }
        },
    )

    assert [row["section"] for row in dataset.rows] == [
        "revenue",
        "members_summary",
        "projects_by_status",
        "projects_funding",
        "projects_metrics",
        "analytics",
    ]
    assert dataset.rows[-1]["retention_rate"] == 50.0


def test_custom_rows_read_nested_revenue(exporter: ReportExporter) -> None:
    dataset = exporter.prepare_dataset("custom", {"data": {"revenue": [{"period": "2024-Q1", "total": 9, "count": 3}]}})

    assert dataset.rows == [{"section": "revenue", "period": "2024-Q1", "total": 9, "count": 3}]


def test_empty_dataset_uses_default_headers(exporter: ReportExporter) -> None:
    result = exporter.export("revenue", {"data": []}, "csv")

    assert _csv_rows(result.content) == [["section", "key", "value"]]


def test_typed_payload_is_accepted(exporter: ReportExporter) -> None:
    payload = ReportPayload(
        type="revenue",
        title="Revenue report",
        filters={"period": "month"},
        meta={},
        data=RevenueSection(rows=[RevenueRow(period="2024-03", total=700, count=7, total_major_unit=7.0)]),
        summary={},
        rows_count=1,
        generated_at=datetime(2024, 3, 15),
    )

    dataset = exporter.prepare_dataset("revenue", payload)

    assert dataset.rows[0]["total"] == 700
    assert dataset.generated_at == "2024-03-15T00:00:00"


def test_cell_text_formats_non_scalar_values() -> None:
    assert cell_text(True) == "Yes"
    assert cell_text(False) == "No"
    assert cell_text(None) == ""
    assert cell_text({"city": "Kraków"}) == '{"city": "Kraków"}'
    assert cell_text("line one\nline two") == "line one\nline two"
    assert inline_text("line one\nline two") == "line one line two"
    assert inline_text(None) == ""


def test_summary_rows_flatten_nested_sections() -> None:
    dataset = ExportDataset(
        title="Comprehensive report",
        headers=[],
        rows=[],
        summary={"revenue": {"total_amount": 5}, "note": None},
    )

    assert dataset.summary_rows() == [("Revenue: Total amount", "5"), ("Note", "")]


def test_parameters_for_custom_period(exporter: ReportExporter) -> None:
    parameters = exporter.build_parameters(
        {"period": "custom", "status": "completed"},
        {"date_from": "2024-01-01", "date_to": "2024-03-31", "group_by": "payment_method", "project_id": "p-1"},
    )

    assert parameters == [
        ("Period", "2024-01-01 to 2024-03-31"),
        ("Grouping", "By payment method"),
        ("Project status", "Completed"),
        ("Start date", "2024-01-01"),
        ("End date", "2024-03-31"),
        ("Project", "ID p-1"),
    ]


def test_parameters_defaults(exporter: ReportExporter) -> None:
    assert exporter.build_parameters({"period": "month", "status": "all"}, {}) == [
        ("Period", "Month"),
        ("Project", "All projects"),
    ]


def test_sheet_title_is_sanitized_and_truncated() -> None:
    title = sheet_title("Revenue: Q1/2024 [draft] with a rather long name")

    assert len(title) <= 31
    assert not set(title) & set(":/[]*?\\")
    assert sheet_title("[]") == "Report"


def test_sheet_title_keeps_full_length_after_cleaning_edges() -> None:
    title = sheet_title("[[Revenue report for the first quarter of 2024]]")

    assert title == "Revenue report for the first qu"
    assert len(title) == 31
    assert sheet_title("Q1/2024: donors") == "Q1 2024 donors"


def test_xlsx_export_has_bold_header_and_summary_block(exporter: ReportExporter) -> None:
    payload = {**REVENUE_PAYLOAD, "title": "Revenue report for the first quarter of 2024"}

    result = exporter.export("revenue", payload, "xlsx")

    workbook = load_workbook(io.BytesIO(result.content))
    sheet = workbook.active
    assert len(sheet.title) == 31
    assert [cell.value for cell in sheet[1]] == ["section", "period", "total", "count"]
    assert sheet["A1"].font.bold
    assert sheet["C2"].value == 15000

    labels = {sheet.cell(row=row, column=1).value: row for row in range(1, sheet.max_row + 1)}
    summary_row = labels["Summary"]
    assert summary_row == 5
    assert sheet.cell(row=summary_row, column=1).font.bold
    assert sheet.cell(row=summary_row + 1, column=1).value == "Total amount"
    assert sheet.cell(row=summary_row + 1, column=2).value == "35000"
    assert sheet.cell(row=labels["Period"], column=2).value == "Month"


def test_pdf_export_renders_document(exporter: ReportExporter) -> None:
    result = exporter.export("revenue", REVENUE_PAYLOAD, "pdf")

    assert result.status_code == 200
    assert result.media_type == "application/pdf"
    assert result.content.startswith(b"%PDF")
    assert result.filename.endswith(".pdf")


def test_every_report_type_has_a_flattener(exporter: ReportExporter) -> None:
    assert set(exporter._flatteners) == set(ReportType)

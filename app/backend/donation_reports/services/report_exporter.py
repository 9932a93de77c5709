"""Flattening of report payloads and rendering to CSV, PDF and XLSX."""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from xhtml2pdf import pisa

from donation_reports.core.clock import Clock, SystemClock
from donation_reports.core.config import Settings, get_settings
from donation_reports.core.errors import ExportRenderError, InvalidFilterError, UnsupportedFormatError
from donation_reports.models.entities import ReportType
from donation_reports.services.report_payload import ReportPayload

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
PDF_TEMPLATE = "reports/export.html"

DEFAULT_HEADERS = ["section", "key", "value"]
MAX_SHEET_TITLE = 31
MAX_COLUMN_WIDTH = 60
INVALID_SHEET_TITLE_CHARS = re.compile(r"[\\/*?:\[\]]")

FORMAT_EXTENSIONS = {"csv": "csv", "pdf": "pdf", "excel": "xlsx", "xlsx": "xlsx"}
MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

PERIOD_LABELS = {
    "day": "Day",
    "week": "Week",
    "month": "Month",
    "quarter": "Quarter",
    "year": "Year",
}
GROUP_BY_LABELS = {
    "day": "By day",
    "week": "By week",
    "month": "By month",
    "quarter": "By quarter",
    "project": "By project",
    "payment_method": "By payment method",
}


@dataclass(slots=True)
class ExportDataset:
    title: str
    headers: list[str]
    rows: list[dict[str, Any]]
    summary: dict[str, Any] = field(default_factory=dict)
    filters: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)
    parameters: list[tuple[str, str]] = field(default_factory=list)
    generated_at: str | None = None

    def summary_rows(self) -> list[tuple[str, str]]:
        rows: list[tuple[str, str]] = []
        for key, value in self.summary.items():
            if isinstance(value, Mapping):
                for nested_key, nested_value in value.items():
                    rows.append((f"{humanize(key)}: {humanize(nested_key)}", inline_text(nested_value)))
            else:
                rows.append((humanize(key), inline_text(value)))
        return rows


@dataclass(slots=True)
class ExportResult:
    status_code: int
    media_type: str
    content: bytes
    filename: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


def humanize(value: Any) -> str:
    text = str(value).replace("_", " ").strip().lower()
    return text[:1].upper() + text[1:]


def cell_text(value: Any) -> str:
    """Render a cell as text, keeping its content intact for CSV."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def inline_text(value: Any) -> str:
    """Single-line rendering for PDF cells and summary values."""

    return " ".join(cell_text(value).splitlines())


def xlsx_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def discover_headers(rows: Iterable[Mapping[str, Any]]) -> list[str]:
    """Union of row keys in first-seen order."""

    headers: list[str] = []
    seen: set[str] = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                headers.append(key)
    return headers or list(DEFAULT_HEADERS)


def pad_rows(rows: Iterable[Mapping[str, Any]], headers: list[str]) -> list[dict[str, Any]]:
    return [{header: row.get(header) for header in headers} for row in rows]


def sheet_title(title: str) -> str:
    cleaned = " ".join(INVALID_SHEET_TITLE_CHARS.sub(" ", title).split())
    return cleaned[:MAX_SHEET_TITLE] or "Report"


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


# ---------- Flattening ----------
def revenue_rows(data: Any) -> list[dict[str, Any]]:
    rows = []
    for entry in _as_list(data):
        entry = _as_mapping(entry)
        rows.append(
            {
                "section": "revenue",
                "period": entry.get("period"),
                "total": entry["total"] if "total" in entry else entry.get("total_amount"),
                "count": entry.get("count"),
            }
        )
    return rows


def members_rows(data: Any, prefix: str = "members") -> list[dict[str, Any]]:
    data = _as_mapping(data)
    rows = [
        {"section": f"{prefix}_daily_registrations", "date": entry.get("date"), "count": entry.get("count")}
        for entry in map(_as_mapping, _as_list(data.get("daily_registrations")))
    ]
    rows.extend(
        {"section": f"{prefix}_by_source", "source": entry.get("source"), "count": entry.get("count")}
        for entry in map(_as_mapping, _as_list(data.get("members_by_source")))
    )
    rows.append({"section": f"{prefix}_summary", "active_members": data.get("active_members")})
    return rows


def projects_rows(data: Any, prefix: str = "projects") -> list[dict[str, Any]]:
    data = _as_mapping(data)
    rows = [
        {"section": f"{prefix}_by_status", "status": entry.get("status"), "count": entry.get("count")}
        for entry in map(_as_mapping, _as_list(data.get("projects_by_status")))
    ]
    rows.extend(
        {
            "section": f"{prefix}_funding",
            "project_id": entry.get("project_id"),
            "title": entry.get("title"),
            "target_amount": entry.get("target_amount"),
            "collected_amount": entry.get("collected_amount"),
            "progress_percentage": entry.get("progress_percentage"),
        }
        for entry in map(_as_mapping, _as_list(data.get("funding_progress")))
    )
    if "average_funding_time" in data:
        rows.append({"section": f"{prefix}_metrics", "average_funding_time": data.get("average_funding_time")})
    return rows


def analytics_row(data: Any) -> dict[str, Any]:
    data = _as_mapping(data)
    return {
        "section": "analytics",
        "conversion_rate": data.get("conversion_rate"),
        "average_donation": data.get("average_donation"),
        "retention_rate": data.get("retention_rate"),
        "growth_rate": data.get("growth_rate"),
    }


def comprehensive_rows(data: Any) -> list[dict[str, Any]]:
    data = _as_mapping(data)
    rows = revenue_rows(data.get("revenue"))
    if "members" in data:
        rows.extend(members_rows(data["members"], prefix="members"))
    if "projects" in data:
        rows.extend(projects_rows(data["projects"], prefix="projects"))
    if data.get("analytics"):
        rows.append(analytics_row(data["analytics"]))
    return rows


def custom_rows(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, Mapping) and "revenue" in data:
        return revenue_rows(data["revenue"])
    return revenue_rows(data)


class ReportExporter:
    """Turns a report payload into a downloadable file."""

    def __init__(self, *, clock: Clock | None = None, settings: Settings | None = None) -> None:
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()
        self.templates = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html"]),
        )
        self._flatteners: dict[ReportType, Callable[[Any], list[dict[str, Any]]]] = {
            ReportType.REVENUE: revenue_rows,
            ReportType.MEMBERS: members_rows,
            ReportType.PROJECTS: projects_rows,
            ReportType.COMPREHENSIVE: comprehensive_rows,
            ReportType.CUSTOM: custom_rows,
        }
        self._renderers: dict[str, Callable[[ExportDataset], bytes]] = {
            "csv": self.render_csv,
            "pdf": self.render_pdf,
            "xlsx": self.render_xlsx,
        }

    def export(
        self,
        report_type: ReportType | str,
        payload: ReportPayload | Mapping[str, Any],
        format_name: str = "csv",
        filename: str | None = None,
    ) -> ExportResult:
        report_type = self._report_type(report_type)
        normalized_format = (format_name or "").strip().lower()
        try:
            extension = self._resolve_format(normalized_format)
        except UnsupportedFormatError as exc:
            logger.warning("Rejected %s export in format %r", report_type.value, format_name)
            return ExportResult(
                status_code=400,
                media_type="application/json",
                content=json.dumps({"message": exc.detail}, ensure_ascii=False).encode("utf-8"),
            )

        filename = filename or self.build_filename(report_type, normalized_format)
        dataset = self.prepare_dataset(report_type, payload)
        content = self._renderers[extension](dataset)
        media_type = MEDIA_TYPES[extension]
        logger.info(
            "Exported %s report as %s (%s, %s rows)",
            report_type.value,
            extension,
            filename,
            len(dataset.rows),
        )
        return ExportResult(
            status_code=200,
            media_type=media_type,
            content=content,
            filename=filename,
            headers={
                "Content-Type": media_type,
                "Content-Disposition": f'attachment; filename="{filename}"',
                "X-Filename": filename,
            },
        )

    @staticmethod
    def _report_type(value: ReportType | str) -> ReportType:
        try:
            return ReportType(value)
        except ValueError as exc:
            raise InvalidFilterError(f"Unsupported report type: {value}") from exc

    @staticmethod
    def _resolve_format(format_name: str) -> str:
        extension = FORMAT_EXTENSIONS.get(format_name)
        if extension is None:
            raise UnsupportedFormatError(format_name)
        return extension

    def build_filename(self, report_type: ReportType, format_name: str) -> str:
        extension = FORMAT_EXTENSIONS.get(format_name, format_name)
        timestamp = self.clock.now().strftime("%Y-%m-%d_%H-%M-%S")
        return f"report_{report_type.value}_{timestamp}.{extension}"

    # ---------- Dataset ----------
    def prepare_dataset(
        self,
        report_type: ReportType | str,
        payload: ReportPayload | Mapping[str, Any],
    ) -> ExportDataset:
        report_type = self._report_type(report_type)
        if isinstance(payload, ReportPayload):
            payload = payload.to_dict()

        filters = dict(_as_mapping(payload.get("filters")))
        meta = dict(_as_mapping(payload.get("meta")))
        flat_rows = self._flatteners[report_type](payload.get("data"))
        headers = discover_headers(flat_rows)
        generated_at = payload.get("generated_at")
        return ExportDataset(
            title=str(payload.get("title") or report_type.label),
            headers=headers,
            rows=pad_rows(flat_rows, headers),
            summary=dict(_as_mapping(payload.get("summary"))),
            filters=filters,
            meta=meta,
            parameters=self.build_parameters(filters, meta),
            generated_at=str(generated_at) if generated_at else None,
        )

    @staticmethod
    def build_parameters(filters: Mapping[str, Any], meta: Mapping[str, Any]) -> list[tuple[str, str]]:
        period = filters.get("period") or meta.get("period")
        group_by = meta.get("group_by") or filters.get("group_by")
        status = meta.get("status") or filters.get("status")
        date_from = meta.get("date_from") or filters.get("date_from")
        date_to = meta.get("date_to") or filters.get("date_to")

        if period in PERIOD_LABELS:
            period_label = PERIOD_LABELS[period]
        elif date_from and date_to:
            period_label = f"{date_from} to {date_to}"
        elif period:
            period_label = humanize(period)
        else:
            period_label = "Not specified"

        parameters = [("Period", period_label)]
        if group_by:
            parameters.append(("Grouping", GROUP_BY_LABELS.get(group_by, humanize(group_by))))
        if status and status != "all":
            parameters.append(("Project status", humanize(status)))
        if period == "custom":
            if date_from:
                parameters.append(("Start date", str(date_from)))
            if date_to:
                parameters.append(("End date", str(date_to)))
        project_id = meta.get("project_id")
        parameters.append(("Project", f"ID {project_id}" if project_id else "All projects"))
        if meta.get("project_stage_id"):
            parameters.append(("Project stage", f"ID {meta['project_stage_id']}"))
        return parameters

    # ---------- Renderers ----------
    def render_csv(self, dataset: ExportDataset) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=";")
        writer.writerow(dataset.headers)
        for row in dataset.rows:
            writer.writerow([cell_text(row.get(header)) for header in dataset.headers])
        return buffer.getvalue().encode("utf-8")

    def render_pdf(self, dataset: ExportDataset) -> bytes:
        template = self.templates.get_template(PDF_TEMPLATE)
        html = template.render(
            title=dataset.title,
            headers=dataset.headers,
            rows=[[inline_text(row.get(header)) for header in dataset.headers] for row in dataset.rows],
            summary=dataset.summary_rows(),
            parameters=dataset.parameters,
            filters=dataset.filters,
            meta=dataset.meta,
            generated_at=dataset.generated_at,
            page_size=self.settings.pdf_page_size,
            page_orientation=self.settings.pdf_orientation,
        )
        output = io.BytesIO()
        result = pisa.CreatePDF(html, dest=output, encoding="utf-8")
        if result.err:
            raise ExportRenderError("PDF rendering failed.")
        return output.getvalue()

    def render_xlsx(self, dataset: ExportDataset) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = sheet_title(dataset.title)

        sheet.append(dataset.headers)
        for cell in sheet[1]:
            cell.font = Font(bold=True)
        for row in dataset.rows:
            sheet.append([xlsx_value(row.get(header)) for header in dataset.headers])

        last_column = max(len(dataset.headers), 2)
        self._append_block(sheet, "Summary", dataset.summary_rows(), last_column)
        self._append_block(sheet, "Parameters", dataset.parameters, last_column)
        self._autosize_columns(sheet)

        output = io.BytesIO()
        workbook.save(output)
        return output.getvalue()

    @staticmethod
    def _append_block(sheet, heading: str, rows: list[tuple[str, str]], last_column: int) -> None:
        if not rows:
            return
        header_row = sheet.max_row + 2
        sheet.cell(row=header_row, column=1, value=heading).font = Font(bold=True)
        sheet.merge_cells(start_row=header_row, start_column=1, end_row=header_row, end_column=last_column)
        for offset, (label, value) in enumerate(rows, start=1):
            sheet.cell(row=header_row + offset, column=1, value=label)
            sheet.cell(row=header_row + offset, column=2, value=value)

    @staticmethod
    def _autosize_columns(sheet) -> None:
        widths: dict[int, int] = {}
        for row in sheet.iter_rows():
            for cell in row:
                if cell.value is None:
                    continue
                widths[cell.column] = max(widths.get(cell.column, 0), len(str(cell.value)))
        for column, width in widths.items():
            sheet.column_dimensions[get_column_letter(column)].width = min(width + 2, MAX_COLUMN_WIDTH)

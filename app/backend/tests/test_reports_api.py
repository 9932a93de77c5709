from __future__ import annotations

import csv
import io
import uuid
from collections.abc import Callable
from datetime import datetime
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from donation_reports.models.entities import Donation, Organization, Project
from donation_reports.services import report_exporter


def _headers(user_id: str = "user-analyst", email: str = "analyst@test.local") -> dict[str, str]:
    return {
        "X-User-Id": user_id,
        "X-User-Email": email,
        "X-User-Name": "Report Analyst",
    }


def _base(organization: Organization) -> str:
    return f"/api/v1/organizations/{organization.id}"


def _create_report(client: TestClient, organization: Organization, **overrides) -> dict:
    body = {"title": "Monthly revenue", "report_type": "revenue", "filters": {"period": "month"}, **overrides}
    response = client.post(f"{_base(organization)}/reports", json=body, headers=_headers())
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture()
def organization(make_organization: Callable[..., Organization]) -> Organization:
    return make_organization()


def test_create_and_list_reports(client: TestClient, organization: Organization) -> None:
    created = _create_report(client, organization, description="Board pack")

    assert created["title"] == "Monthly revenue"
    assert created["status"] == "draft"
    assert created["visibility"] == "private"
    assert created["creator"]["display_name"] == "Report Analyst"
    assert created["runs_count"] == 0
    assert created["latest_run"] is None

    response = client.get(f"{_base(organization)}/reports", params={"report_type": "revenue", "search": "board"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["last_page"] == 1
    assert body["items"][0]["id"] == created["id"]


def test_list_reports_with_unknown_type_returns_empty_page(client: TestClient, organization: Organization) -> None:
    _create_report(client, organization)

    response = client.get(f"{_base(organization)}/reports", params={"report_type": "forecast"})

    assert response.status_code == 200
    assert response.json()["total"] == 0
    assert response.json()["items"] == []


def test_create_report_with_missing_organization_returns_404(client: TestClient) -> None:
    response = client.post(
        f"/api/v1/organizations/{uuid.uuid4()}/reports",
        json={"title": "Lost", "report_type": "revenue"},
        headers=_headers(),
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "Organization not found."}


def test_create_report_rejects_unknown_type(client: TestClient, organization: Organization) -> None:
    response = client.post(
        f"{_base(organization)}/reports",
        json={"title": "Forecast", "report_type": "forecast"},
        headers=_headers(),
    )

    assert response.status_code == 422


def test_update_report_detaches_project(
    client: TestClient,
    organization: Organization,
    make_project: Callable[..., Project],
) -> None:
    project = make_project(organization, title="Clean Water")
    created = _create_report(client, organization, project_id=str(project.id))
    assert created["project"] == {"id": str(project.id), "title": "Clean Water"}

    renamed = client.patch(
        f"{_base(organization)}/reports/{created['id']}",
        json={"title": "Water revenue"},
        headers=_headers(),
    )
    assert renamed.status_code == 200
    assert renamed.json()["project"]["title"] == "Clean Water"

    detached = client.patch(
        f"{_base(organization)}/reports/{created['id']}",
        json={"project_id": None},
        headers=_headers(),
    )
    assert detached.status_code == 200
    assert detached.json()["project"] is None
    assert detached.json()["title"] == "Water revenue"


def test_report_is_hidden_from_other_organizations(
    client: TestClient,
    organization: Organization,
    make_organization: Callable[..., Organization],
) -> None:
    created = _create_report(client, organization)
    other = make_organization(name="Other")

    response = client.patch(
        f"{_base(other)}/reports/{created['id']}",
        json={"title": "Hijacked"},
        headers=_headers(),
    )
    assert response.status_code == 404

    response = client.delete(f"{_base(other)}/reports/{created['id']}")
    assert response.status_code == 404


def test_generate_persist_and_history(
    client: TestClient,
    organization: Organization,
    make_donation: Callable[..., Donation],
) -> None:
    make_donation(organization, amount=10000, created_at=datetime(2024, 1, 12))
    make_donation(organization, amount=25000, created_at=datetime(2024, 2, 20))
    created = _create_report(client, organization)

    response = client.post(
        f"{_base(organization)}/reports/generate",
        json={
            "report_type": "revenue",
            "filters": {"period": "custom", "date_from": "2024-01-01", "date_to": "2024-02-29", "group_by": "month"},
            "persist": True,
            "report_id": created["id"],
        },
        headers=_headers(),
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["payload"]["summary"]["total_amount"] == 35000
    assert body["payload"]["rows_count"] == 2
    assert [row["period"] for row in body["payload"]["data"]] == ["2024-01", "2024-02"]
    assert body["run"]["report_id"] == created["id"]
    assert body["run"]["generated_by"]["display_name"] == "Report Analyst"
    assert body["report"]["summary"]["total_transactions"] == 2
    assert body["report"]["runs_count"] == 1

    runs = client.get(f"{_base(organization)}/reports/{created['id']}/runs")
    assert runs.status_code == 200
    assert runs.json()["total"] == 1

    recent = client.get(f"{_base(organization)}/report-runs/recent")
    assert recent.status_code == 200
    assert [item["report_type"] for item in recent.json()["items"]] == ["revenue"]


def test_generate_preview_is_not_persisted(client: TestClient, organization: Organization) -> None:
    response = client.post(
        f"{_base(organization)}/reports/generate",
        json={"report_type": "comprehensive", "filters": {"period": "quarter"}},
        headers=_headers(),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["run"] is None
    assert body["report"] is None
    assert set(body["payload"]["data"]) == {"revenue", "members", "projects", "analytics"}

    recent = client.get(f"{_base(organization)}/report-runs/recent")
    assert recent.json()["items"] == []


def test_generate_with_invalid_custom_range_returns_422(client: TestClient, organization: Organization) -> None:
    response = client.post(
        f"{_base(organization)}/reports/generate",
        json={
            "report_type": "revenue",
            "filters": {"period": "custom", "date_from": "2024-03-10", "date_to": "2024-03-01"},
        },
        headers=_headers(),
    )

    assert response.status_code == 422
    assert response.json() == {"detail": "date_from must be on or before date_to."}


def test_generate_reports_data_store_failure_as_503(
    client: TestClient,
    organization: Organization,
    db_session: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _failing_execute(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    monkeypatch.setattr(db_session, "execute", _failing_execute)

    response = client.post(
        f"{_base(organization)}/reports/generate",
        json={"report_type": "revenue", "filters": {"period": "month"}},
        headers=_headers(),
    )

    assert response.status_code == 503
    assert response.json() == {"detail": "Failed to load daily donation totals."}


def test_delete_report_keeps_run_history(client: TestClient, organization: Organization) -> None:
    created = _create_report(client, organization)
    client.post(
        f"{_base(organization)}/reports/generate",
        json={"report_type": "revenue", "persist": True, "report_id": created["id"]},
        headers=_headers(),
    )

    response = client.delete(f"{_base(organization)}/reports/{created['id']}")
    assert response.status_code == 204

    recent = client.get(f"{_base(organization)}/report-runs/recent").json()["items"]
    assert len(recent) == 1
    assert recent[0]["report_id"] is None


def test_export_csv_download(client: TestClient, organization: Organization) -> None:
    response = client.post(
        f"{_base(organization)}/reports/export",
        json={
            "report_type": "revenue",
            "format": "csv",
            "payload": {
                "title": "Revenue report",
                "data": [{"period": "2024-03", "total": 35000, "count": 2}],
                "summary": {"total_amount": 35000},
            },
        },
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["x-filename"].startswith("report_revenue_")
    assert response.headers["content-disposition"].startswith("attachment;")
    rows = list(csv.reader(io.StringIO(response.text), delimiter=";"))
    assert rows == [["section", "period", "total", "count"], ["revenue", "2024-03", "35000", "2"]]


def test_export_unsupported_format(client: TestClient, organization: Organization) -> None:
    response = client.post(
        f"{_base(organization)}/reports/export",
        json={"report_type": "revenue", "format": "docx", "payload": {"data": []}},
    )

    assert response.status_code == 400
    assert response.json() == {"message": "Unsupported export format: docx"}


def test_export_pdf_render_failure_returns_structured_error(
    client: TestClient,
    organization: Organization,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(report_exporter.pisa, "CreatePDF", lambda *args, **kwargs: SimpleNamespace(err=1))

    response = client.post(
        f"{_base(organization)}/reports/export",
        json={"report_type": "revenue", "format": "pdf", "payload": {"data": []}},
    )

    assert response.status_code == 500
    assert response.json() == {"detail": "PDF rendering failed."}

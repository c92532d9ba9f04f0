import io
from datetime import date, datetime

import pandas as pd
import pytest
from openpyxl import load_workbook

from main import Operation, db
from carcare.exceptions import ValidationError
from carcare.services.report_service import EXPORT_HEADERS, compute_trends
from carcare.utils.validation import validate_trends_query


def _add_operation(created_at, *, brand="Toyota", model="Camry", is_matching=True, branch_id=1,
                   oil_used="Toyota Genuine", viscosity="0W-20", quantity=4.5, reason=None, **extra):
    operation = Operation(
        operation_type="service",
        car_brand=brand,
        car_model=model,
        car_year=2020,
        engine_size="2.5L",
        oil_used=oil_used,
        oil_viscosity=viscosity,
        oil_quantity=quantity,
        is_matching=is_matching,
        mismatch_reason=reason,
        reason_source="user" if reason else None,
        branch_id=branch_id,
        user_id=1,
        created_at=created_at,
        **extra,
    )
    db.session.add(operation)
    return operation


@pytest.fixture
def history(seeded):
    with seeded.app_context():
        for day in range(1, 13):
            _add_operation(datetime(2024, 3, day, 10, 0), oil_filter=day % 2 == 0)
        _add_operation(datetime(2024, 3, 5, 23, 30), brand="Honda", model="Civic", branch_id=2,
                       oil_used="Honda Genuine", viscosity="5W-30", quantity=3.5,
                       is_matching=False, reason="طلب العميل", air_filter=True)
        _add_operation(datetime(2024, 3, 20, 9, 0), brand="Nissan", model="Sunny", branch_id=2,
                       oil_used="Nissan Genuine", viscosity="5W-30", quantity=3.5,
                       is_matching=False, reason="نفاد المخزون")
        db.session.commit()
    return seeded


# ---- listing ----

def test_listing_paginates(admin_client, history):
    client, _ = admin_client
    data = client.get("/api/operations?limit=10").get_json()["data"]
    assert len(data["items"]) == 10
    assert data["pagination"] == {
        "page": 1, "limit": 10, "total": 14, "total_pages": 2, "has_next": True, "has_prev": False,
    }
    assert data["items"][0]["car_brand"] == "Nissan"

    page2 = client.get("/api/operations?limit=10&page=2").get_json()["data"]
    assert len(page2["items"]) == 4
    assert page2["pagination"]["has_prev"] is True


@pytest.mark.parametrize("limit, expected", [("1", 10), ("500", 100), ("", 25), ("40", 40)])
def test_listing_limit_is_clamped(employee_client, history, limit, expected):
    client, _ = employee_client
    data = client.get(f"/api/operations?limit={limit}").get_json()["data"]
    assert data["pagination"]["limit"] == expected


def test_listing_search_and_filters(employee_client, history):
    client, _ = employee_client
    data = client.get("/api/operations?search=civic").get_json()["data"]
    assert [item["car_model"] for item in data["items"]] == ["Civic"]

    data = client.get("/api/operations?is_matching=0").get_json()["data"]
    assert data["pagination"]["total"] == 2

    data = client.get("/api/operations?branch_id=2&is_matching=false").get_json()["data"]
    assert data["pagination"]["total"] == 2

    data = client.get("/api/operations?search=100%25").get_json()["data"]
    assert data["pagination"]["total"] == 0


def test_listing_date_range_is_inclusive(employee_client, history):
    client, _ = employee_client
    data = client.get("/api/operations?start_date=2024-03-05&end_date=2024-03-05").get_json()["data"]
    assert data["pagination"]["total"] == 2


def test_listing_sort(employee_client, history):
    client, _ = employee_client
    data = client.get("/api/operations?sort_by=car_brand&sort_order=asc&limit=100").get_json()["data"]
    brands = [item["car_brand"] for item in data["items"]]
    assert brands == sorted(brands)


def test_listing_rejects_unknown_sort_column(employee_client):
    client, _ = employee_client
    resp = client.get("/api/operations?sort_by=password_hash")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["details"]["field"] == "sort_by"


def test_listing_rejects_bad_dates(employee_client):
    client, _ = employee_client
    assert client.get("/api/operations?start_date=05/03/2024").status_code == 400
    resp = client.get("/api/operations?start_date=2024-03-10&end_date=2024-03-01")
    assert resp.get_json()["error"]["code"] == "invalid_range"


# ---- stats ----

def test_stats(employee_client, history):
    client, _ = employee_client
    data = client.get("/api/reports/stats").get_json()["data"]

    assert data["total"] == 14
    assert data["matching"] == 12
    assert data["mismatched"] == 2
    assert data["total_oil_used"] == 61.0
    assert data["oil_types"]["Toyota Genuine"] == 12
    assert data["viscosities"] == {"0W-20": 12, "5W-30": 2}
    assert data["filters"] == {"oil": 6, "air": 1, "cooling": 0}
    assert data["branch_counts"] == {"الفرع الرئيسي": 12, "فرع الإسكندرية": 2, "فرع الجيزة": 0}
    assert [op["car_brand"] for op in data["mismatched_operations"]] == ["Nissan", "Honda"]


def test_stats_respect_filters(employee_client, history):
    client, _ = employee_client
    data = client.get("/api/reports/stats?branch_id=2").get_json()["data"]
    assert data["total"] == 2
    assert data["branch_counts"]["الفرع الرئيسي"] == 0


def test_stats_on_empty_log(employee_client):
    client, _ = employee_client
    data = client.get("/api/reports/stats").get_json()["data"]
    assert data["total"] == 0
    assert data["total_oil_used"] == 0
    assert data["mismatched_operations"] == []


# ---- trends ----

def test_trends_zero_fills_days(history):
    with history.app_context():
        query = validate_trends_query({"days": "7"})
        data = compute_trends(query, today=date(2024, 3, 12))

    assert data["date_range"] == {"start": "2024-03-06", "end": "2024-03-12", "days": 7}
    assert [point["count"] for point in data["timeline"]] == [1] * 7
    assert data["kpis"]["total"] == 7
    assert data["kpis"]["days_active"] == 7
    assert data["kpis"]["avg_operations_per_day"] == 1


def test_trends_with_gaps(history):
    with history.app_context():
        query = validate_trends_query({"start_date": "2024-03-10", "end_date": "2024-03-21"})
        data = compute_trends(query)

    counts = {point["date"]: point for point in data["timeline"]}
    assert len(counts) == 12
    assert counts["2024-03-15"]["count"] == 0
    assert counts["2024-03-20"]["mismatched"] == 1
    assert data["kpis"]["total"] == 4
    assert data["kpis"]["mismatch_rate"] == 25.0
    assert data["kpis"]["days_active"] == 4


def test_trends_endpoint_validates_days(employee_client):
    client, _ = employee_client
    assert client.get("/api/reports/trends?days=400").status_code == 400
    data = client.get("/api/reports/trends").get_json()["data"]
    assert data["date_range"]["days"] == 30


def test_trends_rejects_ranges_longer_than_a_year(employee_client):
    client, _ = employee_client
    resp = client.get("/api/reports/trends?start_date=0001-01-01&end_date=2024-12-31")
    error = resp.get_json()["error"]
    assert resp.status_code == 400
    assert error["code"] == "range_too_large"
    assert error["details"] == {"field": "start_date", "max_days": 365}

    resp = client.get("/api/reports/trends?start_date=2000-01-01")
    assert resp.get_json()["error"]["code"] == "range_too_large"


def test_trends_accepts_a_full_year_range():
    query = validate_trends_query({"start_date": "2024-01-01", "end_date": "2024-12-30"})
    assert query["start_date"] == date(2024, 1, 1)

    with pytest.raises(ValidationError) as exc:
        validate_trends_query({"start_date": "2024-01-01", "end_date": "2024-12-31"})
    assert exc.value.code == "range_too_large"


def test_trends_open_ended_range_ends_today():
    today = date(2024, 3, 12)
    query = validate_trends_query({"start_date": "2024-03-01"}, today=today)
    assert query["end_date"] is None

    with pytest.raises(ValidationError) as exc:
        validate_trends_query({"start_date": "2024-04-01"}, today=today)
    assert exc.value.code == "invalid_range"


# ---- export ----

def test_export_csv(employee_client, history):
    client, _ = employee_client
    resp = client.get("/api/reports/export?format=csv&is_matching=0")

    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "attachment; filename=\"operations_" in resp.headers["Content-Disposition"]
    assert resp.data.startswith(b"\xef\xbb\xbf")

    frame = pd.read_csv(io.BytesIO(resp.data), encoding="utf-8-sig")
    assert list(frame.columns) == EXPORT_HEADERS
    assert len(frame) == 2
    assert set(frame["الحالة"]) == {"غير مطابق"}
    assert "نفاد المخزون" in set(frame["السبب"])


def test_export_xlsx(employee_client, history):
    client, _ = employee_client
    resp = client.get("/api/reports/export?format=xlsx")

    assert resp.status_code == 200
    assert resp.headers["Content-Disposition"].endswith('.xlsx"')
    workbook = load_workbook(io.BytesIO(resp.data))
    sheet = workbook.active
    assert sheet.sheet_view.rightToLeft is True
    assert [cell.value for cell in sheet[1]] == EXPORT_HEADERS
    assert sheet.max_row == 15


def test_export_rejects_unknown_format(employee_client):
    client, _ = employee_client
    resp = client.get("/api/reports/export?format=pdf")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["details"]["field"] == "format"


def test_reports_require_authentication(client):
    assert client.get("/api/reports/stats").status_code == 401
    assert client.get("/api/reports/export").status_code == 401

import carcare.extensions as extensions
from main import Operation, User, db
from carcare.services import ai_service


def _service(**overrides):
    payload = {
        "operation_type": "service",
        "brand": "Toyota",
        "model": "Camry",
        "year": 2020,
        "engine_size": "2.5L",
        "oil_used": "Toyota Genuine",
        "oil_viscosity": "0W-20",
        "oil_quantity": 4.5,
        "oil_filter": True,
        "air_filter": False,
        "cooling_filter": "1",
    }
    payload.update(overrides)
    return payload


def _inquiry(**overrides):
    payload = {
        "operation_type": "inquiry",
        "brand": "Toyota",
        "model": "Camry",
        "year": 2015,
        "engine_size": "2.5L",
    }
    payload.update(overrides)
    return payload


def _operation_count(app):
    with app.app_context():
        return Operation.query.count()


def test_inquiry_is_recorded_with_recommended_oil(employee_client, seeded):
    client, user_id = employee_client
    resp = client.post("/api/operations", json=_inquiry())
    data = resp.get_json()["data"]

    assert resp.status_code == 201
    assert data["state"] == "RECORDED"
    assert data["recommended"]["oil_viscosity"] == "5W-30"
    assert data["recommended"]["source"] == "local"

    operation = data["operation"]
    assert operation["operation_type"] == "inquiry"
    assert operation["is_matching"] is True
    assert operation["oil_used"] == "Toyota Genuine"
    assert operation["oil_viscosity"] == "5W-30"
    assert operation["oil_quantity"] == 4.5
    assert operation["user_id"] == user_id

    with seeded.app_context():
        employee = db.session.get(User, user_id)
        assert operation["branch_id"] == employee.branch_id


def test_inquiry_for_unknown_car_records_nothing(employee_client, seeded):
    client, _ = employee_client
    resp = client.post("/api/operations", json=_inquiry(year=2010))
    data = resp.get_json()

    assert resp.status_code == 404
    assert data["error"]["code"] == "car_not_found"
    assert "لا توجد بيانات" in data["error"]["message"]
    assert _operation_count(seeded) == 0


def test_matching_service_is_recorded(employee_client, seeded):
    client, _ = employee_client
    resp = client.post("/api/operations", json=_service(oil_quantity=4.0))
    data = resp.get_json()["data"]

    assert resp.status_code == 201
    assert data["operation"]["is_matching"] is True
    assert data["operation"]["oil_filter"] is True
    assert data["operation"]["air_filter"] is False
    assert data["operation"]["cooling_filter"] is True
    assert data["comparison"]["mismatches"] == []
    assert _operation_count(seeded) == 1


def test_mismatch_without_reason_is_not_recorded(employee_client, seeded):
    client, _ = employee_client
    resp = client.post("/api/operations", json=_service(oil_viscosity="5W-30"))
    body = resp.get_json()

    assert resp.status_code == 422
    assert body["error"]["code"] == "mismatch_reason_required"
    details = body["error"]["details"]
    assert details["state"] == "MISMATCH_PENDING"
    assert details["mismatches"][0]["key"] == "oil_viscosity"
    assert details["mismatches"][0]["expected"] == "0W-20"
    assert details["ai_analysis_available"] is False
    assert _operation_count(seeded) == 0


def test_blank_reason_is_not_enough(employee_client, seeded):
    client, _ = employee_client
    resp = client.post("/api/operations", json=_service(oil_viscosity="5W-30", mismatch_reason="   "))
    assert resp.status_code == 422
    assert _operation_count(seeded) == 0


def test_mismatch_with_reason_is_recorded_verbatim(employee_client, seeded):
    client, _ = employee_client
    reason = "  العميل طلب زيت 5W-30  "
    resp = client.post("/api/operations", json=_service(oil_viscosity="5W-30", mismatch_reason=reason))
    data = resp.get_json()["data"]

    assert resp.status_code == 201
    assert data["operation"]["is_matching"] is False
    assert data["operation"]["mismatch_reason"] == reason
    assert data["operation"]["reason_source"] == "user"
    assert _operation_count(seeded) == 1


def test_quantity_mismatch_is_reported_in_liters(employee_client):
    client, _ = employee_client
    resp = client.post("/api/operations", json=_service(oil_quantity=3.9))
    mismatch = resp.get_json()["error"]["details"]["mismatches"][0]

    assert resp.status_code == 422
    assert mismatch["field"] == "الكمية"
    assert mismatch["expected"] == "4.5 لتر"
    assert mismatch["actual"] == "3.9 لتر"


def test_service_for_unknown_car_is_recorded_as_matching(employee_client):
    client, _ = employee_client
    resp = client.post("/api/operations", json=_service(brand="Lada", model="Niva", engine_size="1.7L"))
    data = resp.get_json()["data"]

    assert resp.status_code == 201
    assert data["recommended"] is None
    assert data["operation"]["is_matching"] is True


def test_missing_fields_are_listed_by_label(employee_client, seeded):
    client, _ = employee_client
    resp = client.post("/api/operations", json={"operation_type": "service", "brand": "Toyota", "year": 2020})
    error = resp.get_json()["error"]

    assert resp.status_code == 400
    assert error["code"] == "missing_fields"
    assert error["details"]["missing"] == ["الموديل", "حجم المحرك", "نوع الزيت", "اللزوجة", "الكمية"]
    assert error["details"]["fields"] == ["model", "engine_size", "oil_used", "oil_viscosity", "oil_quantity"]
    assert error["message"].startswith("⚠️ بيانات ناقصة!")
    assert _operation_count(seeded) == 0


def test_inquiry_does_not_need_oil_fields(employee_client):
    client, _ = employee_client
    resp = client.post("/api/operations", json={"operation_type": "inquiry", "brand": "Toyota"})
    error = resp.get_json()["error"]
    assert error["details"]["fields"] == ["model", "year", "engine_size"]


def test_actor_and_branch_come_from_token(employee_client, seeded):
    client, user_id = employee_client
    resp = client.post("/api/operations", json=_service(user_id=999, branch_id=999))
    operation = resp.get_json()["data"]["operation"]

    assert operation["user_id"] == user_id
    assert operation["branch_id"] != 999
    assert operation["user_name"] == "أحمد محمد"


def test_accept_ai_analysis_records_ai_reason(employee_client, seeded, monkeypatch):
    client, _ = employee_client
    narrative = "تم استخدام لزوجة أعلى من الموصى بها"

    def fake_gemini(prompt):
        if "Reference options" in prompt:
            return {
                "reference_id": None,
                "oil_type": "Toyota Genuine",
                "oil_viscosity": "0W-20",
                "oil_quantity": 4.5,
                "reasoning": "مطابق لدليل الشركة",
            }, None
        return {"analysis": narrative, "recommendation": "استخدم 0W-20 في المرة القادمة"}, None

    monkeypatch.setattr(extensions, "ai_client", object())
    monkeypatch.setattr(ai_service, "call_gemini_once", fake_gemini)

    resp = client.post(
        "/api/operations",
        json=_service(oil_viscosity="5W-30", use_ai=True, accept_ai_analysis=True),
    )
    data = resp.get_json()["data"]

    assert resp.status_code == 201
    assert data["recommended"]["source"] == "ai"
    assert data["comparison"]["source"] == "ai"
    assert data["operation"]["is_matching"] is False
    assert data["operation"]["mismatch_reason"] == narrative
    assert data["operation"]["reason_source"] == "ai"


def test_accept_ai_analysis_needs_an_ai_answer(employee_client, seeded):
    client, _ = employee_client
    resp = client.post(
        "/api/operations",
        json=_service(oil_viscosity="5W-30", use_ai=True, accept_ai_analysis=True),
    )
    details = resp.get_json()["error"]["details"]

    assert resp.status_code == 422
    assert details["ai_analysis_available"] is False
    assert _operation_count(seeded) == 0


def test_ai_narrative_never_flips_the_verdict(employee_client, monkeypatch):
    client, _ = employee_client

    def fake_gemini(prompt):
        if "Reference options" in prompt:
            return None, "CALL_TIMEOUT"
        return {"analysis": "البيانات مطابقة تمامًا", "recommendation": "لا شيء"}, None

    monkeypatch.setattr(extensions, "ai_client", object())
    monkeypatch.setattr(ai_service, "call_gemini_once", fake_gemini)

    resp = client.post("/api/operations", json=_service(oil_used="Castrol", use_ai=True))
    details = resp.get_json()["error"]["details"]

    assert resp.status_code == 422
    assert details["recommended"]["source"] == "local"
    assert details["recommended"]["fallback_reason"] == "CALL_TIMEOUT"
    assert details["analysis"] == "البيانات مطابقة تمامًا"
    assert details["ai_analysis_available"] is True
    assert details["mismatches"][0]["key"] == "oil_type"


def test_invalid_operation_type(employee_client):
    client, _ = employee_client
    resp = client.post("/api/operations", json=_service(operation_type="repair"))
    assert resp.status_code == 400
    assert resp.get_json()["error"]["details"]["field"] == "operation_type"


def test_operations_require_authentication(client):
    assert client.post("/api/operations", json=_inquiry()).status_code == 401

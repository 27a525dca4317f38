from fastapi.testclient import TestClient

import database
import main
from main import generate_password


def admission_body(academy, **overrides):
    body = {
        "studentName": "Bilal Ahmed",
        "fatherName": "Naveed Ahmed",
        "class": "MDCAT Prep - Morning",
        "group": "Pre-Medical",
        "subjects": [{"name": "Biology", "fee": 0}],
        "parentCell": "0300-7654321",
        "totalFee": 5000,
        "paidAmount": 2000,
        "classRef": academy["medical_class"],
        "sessionRef": academy["priced_session"],
    }
    body.update(overrides)
    return body


def test_root():
    assert TestClient(main.app).get("/").json() == {"message": "Academy Admissions API running"}


def test_routes_answer_503_without_database(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    monkeypatch.setattr(main, "db", None)
    client = TestClient(main.app)
    assert client.get("/api/config/session-price/abc").status_code == 503
    assert client.get("/api/classes").status_code == 503
    assert client.get("/test").json()["database"] == "Not Available"


def test_session_price_lookup(api, academy):
    found = api.get(f"/api/config/session-price/{academy['priced_session']}").json()
    assert found["success"] is True
    assert found["data"]["found"] is True
    assert found["data"]["price"] == 5000

    missing = api.get(f"/api/config/session-price/{academy['unpriced_session']}").json()
    assert missing["success"] is True
    assert missing["data"] == {
        "sessionId": academy["unpriced_session"],
        "price": 0,
        "found": False,
        "message": "No price configured for this session",
    }


def test_list_classes_filters_by_status(api, academy):
    api.post("/api/classes", json={"classTitle": "Old Batch", "group": "Pre-Medical", "status": "inactive"})
    active = api.get("/api/classes", params={"status": "active"}).json()
    assert active["count"] == 2
    assert {c["classTitle"] for c in active["data"]} == {"MDCAT Prep - Morning", "ECAT Prep"}
    assert all("_id" in c for c in active["data"])


def test_create_student(api, academy, mongo):
    response = api.post("/api/students", json=admission_body(academy))
    assert response.status_code == 201
    student = response.json()["data"]
    assert student["studentId"] == "260001"
    assert student["studentStatus"] == "Active"
    assert student["feeStatus"] == "partial"
    assert student["sessionRate"] == 5000
    assert student["discountAmount"] == 0
    assert "password" not in student
    assert student["credentials"] == {"username": "260001", "password": "bila4321"}

    record = mongo["feerecord"].find_one({"student": student["_id"]})
    assert record["amount"] == 2000
    assert record["subject"] == "Session Admission"


def test_create_student_fills_session_rate_and_discount(api, academy):
    student = api.post("/api/students", json=admission_body(academy, totalFee=4200, sessionRate=None)).json()["data"]
    assert student["sessionRate"] == 5000
    assert student["discountAmount"] == 800


def test_create_student_rejects_overpayment(api, academy, mongo):
    response = api.post("/api/students", json=admission_body(academy, paidAmount=6000))
    assert response.status_code == 400
    assert mongo["student"].count_documents({}) == 0


def test_student_ids_increment(api, academy):
    first = api.post("/api/students", json=admission_body(academy)).json()["data"]
    second = api.post("/api/students", json=admission_body(academy, studentName="Sara")).json()["data"]
    assert (first["studentId"], second["studentId"]) == ("260001", "260002")


def test_generate_password():
    assert generate_password("Ayesha Khan", "0300-123-4567") == "ayes4567"
    assert generate_password("Al i", "12") == "ali12"


def test_register_and_list_pending(api, academy, register):
    student_id = register()
    pending = api.get("/api/public/pending").json()
    assert pending["count"] == 1
    record = pending["data"][0]
    assert record["_id"] == student_id
    assert record["studentStatus"] == "Pending"
    assert record["totalFee"] == 5000
    assert record["sessionRef"] == academy["priced_session"]
    assert record["subjects"] == [{"name": "Biology", "fee": 0}, {"name": "Chemistry", "fee": 0}]
    assert api.get("/api/public/pending-count").json()["count"] == 1


def test_duplicate_registration_conflicts(api, register):
    register(name="Ayesha Khan")
    response = api.post("/api/public/register", json={
        "studentName": "ayesha khan",
        "fatherName": "Imran Khan",
        "parentCell": "0300-1234567",
        "class": api.get("/api/classes").json()["data"][0]["_id"],
        "group": "Pre-Medical",
    })
    assert response.status_code == 409
    # a sibling on the same phone is fine
    register(name="Hamza Khan")


def test_register_with_unknown_class(api, academy):
    response = api.post("/api/public/register", json={
        "studentName": "Zain",
        "fatherName": "Asif",
        "parentCell": "0301",
        "class": "not-an-id",
        "group": "Pre-Medical",
    })
    assert response.status_code == 400


def test_approve_with_collection(api, academy, register):
    student_id = register()
    response = api.post(f"/api/public/approve/{student_id}", json={
        "classId": academy["medical_class"],
        "collectFee": True,
        "paidAmount": 5000,
    })
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["studentStatus"] == "Active"
    assert data["totalFee"] == 5000
    assert data["paidAmount"] == 5000
    assert data["feeStatus"] == "paid"
    assert data["credentials"] == {"username": data["studentId"], "password": "ayes4567"}
    assert api.get("/api/public/pending-count").json()["count"] == 0


def test_approve_with_custom_total_records_discount(api, academy, register):
    student_id = register()
    data = api.post(f"/api/public/approve/{student_id}", json={
        "classId": academy["medical_class"],
        "collectFee": False,
        "paidAmount": 1000,
        "customFee": True,
        "customTotal": 4000,
    }).json()["data"]
    assert data["totalFee"] == 4000
    assert data["discountAmount"] == 1000
    assert data["paidAmount"] == 0
    assert data["feeStatus"] == "pending"


def test_approve_unpriced_class_uses_class_fee(api, academy, register):
    student_id = register(session=academy["unpriced_session"], class_id=academy["engineering_class"])
    data = api.post(f"/api/public/approve/{student_id}", json={"classId": academy["engineering_class"]}).json()["data"]
    assert data["totalFee"] == 4500
    assert data["class"] == "ECAT Prep"
    assert data["subjects"] == [{"name": "Physics", "fee": 0}, {"name": "Mathematics", "fee": 0}]


def test_approve_twice_is_refused(api, academy, register):
    student_id = register()
    api.post(f"/api/public/approve/{student_id}", json={"classId": academy["medical_class"]})
    response = api.post(f"/api/public/approve/{student_id}", json={"classId": academy["medical_class"]})
    assert response.status_code == 400
    assert "Active" in response.json()["detail"]


def test_reject_deletes_pending(api, register, mongo):
    student_id = register()
    response = api.request("DELETE", f"/api/public/reject/{student_id}", json={"reason": "Incomplete documents"})
    assert response.status_code == 200
    assert response.json()["reason"] == "Incomplete documents"
    assert mongo["student"].count_documents({}) == 0


def test_reject_unknown_student(api, academy):
    response = api.request("DELETE", "/api/public/reject/64b7f0c2a1b2c3d4e5f60718", json={})
    assert response.status_code == 404


def test_collect_fee(api, academy, mongo):
    student = api.post("/api/students", json=admission_body(academy)).json()["data"]
    url = f"/api/students/{student['_id']}/collect-fee"

    response = api.post(url, json={"amount": 3500, "month": "November 2026"})
    assert response.status_code == 400
    assert "exceeds remaining balance (Rs. 3,000)" in response.json()["detail"]

    assert api.post(url, json={"amount": 0, "month": "November 2026"}).status_code == 400

    data = api.post(url, json={"amount": 3000, "month": "November 2026"}).json()["data"]
    assert data["student"]["paidAmount"] == 5000
    assert data["student"]["feeStatus"] == "paid"
    assert mongo["feerecord"].count_documents({"student": student["_id"]}) == 2


def test_collect_fee_rejects_non_finite_amount(api, academy, mongo):
    student = api.post("/api/students", json=admission_body(academy)).json()["data"]
    response = api.post(
        f"/api/students/{student['_id']}/collect-fee",
        content='{"amount": NaN, "month": "November 2026"}',
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 422
    assert mongo["feerecord"].count_documents({"student": student["_id"]}) == 1


def test_failed_fee_record_restores_paid_amount(api, academy, mongo, monkeypatch):
    student = api.post("/api/students", json=admission_body(academy)).json()["data"]

    def refuse(collection, data):
        raise RuntimeError("write failed")
    monkeypatch.setattr(main, "create_document", refuse)

    response = api.post(f"/api/students/{student['_id']}/collect-fee", json={"amount": 1000, "month": "November 2026"})
    assert response.status_code == 503
    stored = mongo["student"].find_one({"studentId": student["studentId"]})
    assert stored["paidAmount"] == 2000
    assert stored["feeStatus"] == "partial"


def test_pending_count_tracks_registrations(api, academy, register):
    assert api.get("/api/public/pending-count").json() == {"success": True, "count": 0}
    register(name="Ayesha Khan")
    register(name="Hamza Khan")
    assert api.get("/api/public/pending-count").json()["count"] == 2

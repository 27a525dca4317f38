import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main
from client import AcademyClient


@pytest.fixture
def mongo(monkeypatch):
    fake_db = mongomock.MongoClient()["academy_test"]
    monkeypatch.setattr(database, "db", fake_db)
    monkeypatch.setattr(main, "db", fake_db)
    return fake_db


@pytest.fixture
def api(mongo):
    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture
def academy(api):
    """Reference data: one priced session, one unpriced session, two classes"""
    priced = api.post("/api/sessions", json={"sessionName": "MDCAT 2026", "status": "active"}).json()["data"]
    unpriced = api.post("/api/sessions", json={"sessionName": "Summer Camp", "status": "upcoming"}).json()["data"]
    medical = api.post("/api/classes", json={
        "classTitle": "MDCAT Prep - Morning",
        "group": "Pre-Medical",
        "subjects": [{"name": "Biology", "fee": 3000}, {"name": "Chemistry", "fee": 2500}],
        "baseFee": 4000,
        "session": priced["_id"],
    }).json()["data"]
    engineering = api.post("/api/classes", json={
        "classTitle": "ECAT Prep",
        "group": "Pre-Engineering",
        "subjects": [{"name": "Physics"}, {"name": "Mathematics"}],
        "baseFee": 4500,
    }).json()["data"]
    api.put("/api/config", json={"sessionPrices": [
        {"sessionId": priced["_id"], "sessionName": "MDCAT 2026", "price": 5000},
    ]})
    return {
        "priced_session": priced["_id"],
        "unpriced_session": unpriced["_id"],
        "medical_class": medical["_id"],
        "engineering_class": engineering["_id"],
    }


@pytest.fixture
def academy_client(api):
    return AcademyClient(http=api)


@pytest.fixture
def register(api, academy):
    def _register(name="Ayesha Khan", phone="0300-1234567", session=None, class_id=None):
        body = {
            "studentName": name,
            "fatherName": "Imran Khan",
            "parentCell": phone,
            "class": class_id or academy["medical_class"],
            "group": "Pre-Medical",
            "subjects": ["Biology", "Chemistry"],
        }
        if session:
            body["session"] = session
        response = api.post("/api/public/register", json=body)
        assert response.status_code == 201, response.text
        return response.json()["data"]["_id"]
    return _register

import os
import re
import logging
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from bson.objectid import ObjectId
from bson.errors import InvalidId

from database import db, create_document, get_documents
from fees import fee_status, format_amount, standard_class_total
from schemas import (
    CLASS_COLLECTION,
    AcademyClass,
    Session,
    Configuration,
    Student,
    Registration,
    ApproveRequest,
    RejectRequest,
    FeeCollection,
    FeeRecord,
)

logger = logging.getLogger(__name__)

FIRST_STUDENT_ID = 260001

app = FastAPI(title="Academy Admissions API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --------- Utilities ---------

def serialize_doc(doc: dict):
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k == "password":
            continue
        if isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, (datetime, date)):
            out[k] = v.isoformat()
        else:
            out[k] = v
    return out


def require_db():
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")


def to_object_id(value: str, label: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label} id")


def utcnow():
    return datetime.now(timezone.utc)


def list_response(docs):
    return {"success": True, "count": len(docs), "data": [serialize_doc(d) for d in docs]}


def get_configuration() -> dict:
    config = db["configuration"].find_one({})
    if not config:
        create_document("configuration", Configuration())
        config = db["configuration"].find_one({})
    return config


def lookup_session_rate(session_id) -> float:
    if not session_id:
        return 0.0
    config = db["configuration"].find_one({}) or {}
    for entry in config.get("sessionPrices") or []:
        if str(entry.get("sessionId")) == str(session_id):
            try:
                return float(entry.get("price") or 0)
            except (TypeError, ValueError):
                return 0.0
    return 0.0


def next_student_id() -> str:
    """Numeric ids (barcode friendly): 260001, 260002, ..."""
    highest = 0
    for doc in db["student"].find({"studentId": {"$regex": r"^\d+$"}}, {"studentId": 1}):
        highest = max(highest, int(doc["studentId"]))
    return str(highest + 1) if highest else str(FIRST_STUDENT_ID)


def generate_password(student_name: str, phone: str) -> str:
    """First four letters of the name plus the last four digits of the phone"""
    name_part = re.sub(r"\s", "", student_name or "user").lower()[:4]
    phone_digits = re.sub(r"\D", "", phone or "")[-4:]
    return f"{name_part}{phone_digits}"


def find_student(student_id: str) -> dict:
    oid = to_object_id(student_id, "student")
    student = db["student"].find_one({"_id": oid})
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


def find_pending(student_id: str, action: str) -> dict:
    student = find_student(student_id)
    status = student.get("studentStatus")
    if status != "Pending":
        raise HTTPException(status_code=400, detail=f"Cannot {action} - student is {status}")
    return student


# --------- Sessions ---------

@app.get("/api/sessions")
async def list_sessions(status: Optional[str] = None):
    filt = {"status": status} if status else {}
    try:
        docs = get_documents("session", filt)
    except Exception as e:
        raise HTTPException(status_code=503, detail=str(e))
    return list_response(docs)


@app.post("/api/sessions", status_code=201)
async def create_session(session: Session):
    try:
        new_id = create_document("session", session)
    except Exception as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, "data": {"_id": new_id, **session.model_dump()}}


# --------- Classes ---------

@app.get("/api/classes")
async def list_classes(status: Optional[str] = None):
    filt = {"status": status} if status else {}
    try:
        docs = get_documents(CLASS_COLLECTION, filt)
    except Exception as e:
        raise HTTPException(status_code=503, detail=str(e))
    return list_response(docs)


@app.post("/api/classes", status_code=201)
async def create_class(academy_class: AcademyClass):
    try:
        new_id = create_document(CLASS_COLLECTION, academy_class)
    except Exception as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, "data": {"_id": new_id, **academy_class.model_dump()}}


# --------- Configuration ---------

@app.get("/api/config")
async def read_config():
    require_db()
    return {"success": True, "data": serialize_doc(get_configuration())}


@app.put("/api/config")
async def update_config(config: Configuration):
    require_db()
    existing = get_configuration()
    db["configuration"].update_one(
        {"_id": existing["_id"]},
        {"$set": {"sessionPrices": [sp.model_dump() for sp in config.sessionPrices], "updated_at": utcnow()}},
    )
    logger.info("Configuration saved with %d session prices", len(config.sessionPrices))
    return {"success": True, "data": serialize_doc(db["configuration"].find_one({"_id": existing["_id"]}))}


@app.get("/api/config/session-price/{session_id}")
async def session_price(session_id: str):
    require_db()
    config = get_configuration()
    entry = next(
        (sp for sp in config.get("sessionPrices") or [] if str(sp.get("sessionId")) == session_id),
        None,
    )
    if not entry:
        logger.info("No session price found for session %s", session_id)
        return {
            "success": True,
            "data": {"sessionId": session_id, "price": 0, "found": False, "message": "No price configured for this session"},
        }
    return {
        "success": True,
        "data": {"sessionId": session_id, "sessionName": entry.get("sessionName"), "price": entry.get("price", 0), "found": True},
    }


# --------- Students (direct admission) ---------

@app.post("/api/students", status_code=201)
async def create_student(student: Student):
    require_db()
    data = student.model_dump(by_alias=True)

    if data["paidAmount"] > data["totalFee"]:
        raise HTTPException(status_code=400, detail="Paid amount cannot exceed total fee")

    data["admissionDate"] = data.get("admissionDate") or date.today().isoformat()

    if data.get("sessionRef") and not data.get("sessionRate"):
        rate = lookup_session_rate(data["sessionRef"])
        if rate:
            data["sessionRate"] = rate
    if data.get("sessionRate") and not data.get("discountAmount"):
        data["discountAmount"] = max(0.0, data["sessionRate"] - data["totalFee"])

    password = generate_password(data["studentName"], data.get("parentCell") or data.get("studentCell"))
    numeric_id = next_student_id()
    data.update({
        "studentId": numeric_id,
        "barcodeId": numeric_id,
        "password": password,
        "studentStatus": "Active",
        "status": "active",
        "feeStatus": fee_status(data["paidAmount"], data["totalFee"]),
    })

    try:
        new_id = create_document("student", data)
    except Exception as e:
        raise HTTPException(status_code=503, detail=str(e))
    logger.info("Admitted %s (%s), fee status %s", data["studentName"], numeric_id, data["feeStatus"])

    if data["paidAmount"] > 0:
        record = FeeRecord(
            student=new_id,
            studentName=data["studentName"],
            className=data["class"],
            amount=data["paidAmount"],
            month=datetime.now().strftime("%B %Y"),
            notes="Admission payment",
        )
        create_document("feerecord", record.model_dump() | {"subject": "Session Admission", "sessionRate": data.get("sessionRate") or 0})

    saved = serialize_doc(db["student"].find_one({"_id": ObjectId(new_id)}))
    saved["credentials"] = {"username": numeric_id, "password": password}
    return {"success": True, "message": "Student created successfully", "data": saved}


@app.get("/api/students")
async def list_students(studentStatus: Optional[str] = None):
    filt = {"studentStatus": studentStatus} if studentStatus else {}
    try:
        docs = get_documents("student", filt)
    except Exception as e:
        raise HTTPException(status_code=503, detail=str(e))
    return list_response(docs)


@app.post("/api/students/{student_id}/collect-fee")
async def collect_fee(student_id: str, payment: FeeCollection):
    require_db()
    student = find_student(student_id)

    if payment.amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than 0")

    total = float(student.get("totalFee") or 0)
    paid = float(student.get("paidAmount") or 0)
    remaining = total - paid
    if payment.amount > remaining:
        raise HTTPException(
            status_code=400,
            detail=f"Amount (Rs. {format_amount(payment.amount)}) exceeds remaining balance (Rs. {format_amount(remaining)})",
        )

    record = FeeRecord(
        student=str(student["_id"]),
        studentName=student.get("studentName", ""),
        className=student.get("class"),
        amount=payment.amount,
        month=payment.month,
        paymentMethod=payment.paymentMethod,
        notes=payment.notes,
    )

    new_paid = paid + payment.amount
    status = fee_status(new_paid, total)
    db["student"].update_one(
        {"_id": student["_id"]},
        {"$set": {"paidAmount": new_paid, "feeStatus": status, "updated_at": utcnow()}},
    )
    try:
        record_id = create_document("feerecord", record)
    except Exception as e:
        logger.exception("Fee record for %s not saved, restoring paid amount", student.get("studentName"))
        db["student"].update_one(
            {"_id": student["_id"]},
            {"$set": {"paidAmount": paid, "feeStatus": student.get("feeStatus") or fee_status(paid, total)}},
        )
        raise HTTPException(status_code=503, detail=str(e))
    logger.info("Fee collected from %s: %s (%s), balance %s", student.get("studentName"), payment.amount, payment.month, total - new_paid)

    return {
        "success": True,
        "message": "Fee collected successfully",
        "data": {
            "feeRecord": {"_id": record_id, **record.model_dump()},
            "student": serialize_doc(db["student"].find_one({"_id": student["_id"]})),
        },
    }


# --------- Public registration & approvals ---------

@app.post("/api/public/register", status_code=201)
async def public_register(registration: Registration):
    require_db()
    duplicate = db["student"].find_one({
        "parentCell": registration.parentCell,
        "studentName": re.compile(f"^{re.escape(registration.studentName.strip())}$", re.IGNORECASE),
        "studentStatus": {"$in": ["Active", "Pending"]},
    })
    if duplicate:
        raise HTTPException(status_code=409, detail="This student is already registered with this phone number")

    if registration.session:
        target_session = db["session"].find_one({"_id": to_object_id(registration.session, "session")})
    else:
        target_session = db["session"].find_one({"status": "active"})

    class_doc = db[CLASS_COLLECTION].find_one({"_id": to_object_id(registration.class_, "class")})
    if not class_doc:
        raise HTTPException(status_code=400, detail="Invalid class selection")

    session_rate = lookup_session_rate(target_session["_id"]) if target_session else 0.0
    total_fee = session_rate if session_rate > 0 else float(class_doc.get("baseFee") or 0)

    data = registration.model_dump(exclude={"class_", "session", "subjects"})
    data.update({
        "class": class_doc.get("classTitle") or "Unassigned",
        "classRef": str(class_doc["_id"]),
        "sessionRef": str(target_session["_id"]) if target_session else None,
        "subjects": [{"name": name, "fee": 0} for name in registration.subjects],
        "totalFee": total_fee,
        "sessionRate": session_rate,
        "paidAmount": 0,
        "discountAmount": 0,
        "feeStatus": "pending",
        "studentStatus": "Pending",
        "status": "inactive",
    })
    new_id = create_document("student", data)
    logger.info("New public registration: %s (pending approval)", registration.studentName)

    return {
        "success": True,
        "message": "Application submitted successfully! Please visit the administration office for verification.",
        "data": {"_id": new_id, "studentName": data["studentName"], "class": data["class"], "status": "Pending"},
    }


@app.get("/api/public/pending")
async def list_pending():
    require_db()
    docs = get_documents("student", {"studentStatus": "Pending"}, sort=[("created_at", -1)])
    return list_response(docs)


@app.get("/api/public/pending-count")
async def pending_count():
    require_db()
    return {"success": True, "count": db["student"].count_documents({"studentStatus": "Pending"})}


@app.get("/api/public/pending/{student_id}")
async def get_pending(student_id: str):
    require_db()
    student = find_student(student_id)
    if student.get("studentStatus") != "Pending":
        raise HTTPException(status_code=400, detail="Student is not in pending status")
    return {"success": True, "data": serialize_doc(student)}


@app.post("/api/public/approve/{student_id}")
async def approve_registration(student_id: str, req: ApproveRequest):
    require_db()
    student = find_pending(student_id, "approve")
    updates = {}

    class_doc = None
    if req.classId:
        class_doc = db[CLASS_COLLECTION].find_one({"_id": to_object_id(req.classId, "class")})
        if class_doc:
            updates.update({
                "classRef": str(class_doc["_id"]),
                "class": class_doc.get("classTitle"),
                "subjects": [{"name": s["name"] if isinstance(s, dict) else s, "fee": 0} for s in class_doc.get("subjects") or []],
                "group": class_doc.get("group") or student.get("group"),
            })
        else:
            logger.warning("Approval of %s names unknown class %s", student_id, req.classId)

    session_rate = lookup_session_rate(student.get("sessionRef") or (class_doc or {}).get("session"))
    standard_total = session_rate if session_rate > 0 else standard_class_total(class_doc)

    total_fee = standard_total
    discount = 0.0
    if req.customFee and req.customTotal is not None:
        total_fee = float(req.customTotal)
        discount = max(0.0, standard_total - total_fee)
        logger.info("Custom fee applied: standard %s -> custom %s (discount %s)", standard_total, total_fee, discount)

    paid = req.paidAmount if req.collectFee and req.paidAmount > 0 else 0.0
    if paid > total_fee:
        raise HTTPException(status_code=400, detail="Paid amount cannot exceed total fee")

    numeric_id = next_student_id()
    password = generate_password(student.get("studentName", ""), student.get("parentCell", ""))
    updates.update({
        "totalFee": total_fee,
        "discountAmount": discount,
        "sessionRate": session_rate,
        "paidAmount": paid,
        "feeStatus": fee_status(paid, total_fee),
        "admissionDate": date.today().isoformat(),
        "studentId": numeric_id,
        "barcodeId": numeric_id,
        "password": password,
        "studentStatus": "Active",
        "status": "active",
        "updated_at": utcnow(),
    })
    db["student"].update_one({"_id": student["_id"]}, {"$set": updates})
    logger.info("Approved %s (%s), fee status %s", student.get("studentName"), numeric_id, updates["feeStatus"])

    data = serialize_doc(db["student"].find_one({"_id": student["_id"]}))
    data["credentials"] = {"username": numeric_id, "password": password}
    return {"success": True, "message": f"{student.get('studentName')} approved successfully!", "data": data}


@app.delete("/api/public/reject/{student_id}")
async def reject_registration(student_id: str, req: Optional[RejectRequest] = None):
    require_db()
    student = find_pending(student_id, "reject")
    reason = (req.reason if req else None) or "Not specified"
    db["student"].delete_one({"_id": student["_id"]})
    logger.info("Rejected %s (reason: %s)", student.get("studentName"), reason)
    return {"success": True, "message": f"Registration for {student.get('studentName')} has been rejected", "reason": reason}


# --------- Health/Test ---------

@app.get("/")
def read_root():
    return {"message": "Academy Admissions API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    if db is not None:
        response["database"] = "Available"
        response["database_url"] = "Set" if os.getenv("DATABASE_URL") else "Not Set"
        response["database_name"] = "Set" if os.getenv("DATABASE_NAME") else "Not Set"
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "Connected & Working"
        except Exception as e:
            logger.exception("Database check failed")
            response["database"] = f"Connected but Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

"""
Front-desk workflows

One class per screen: Admissions (new intake), Students (later fee
collection), PendingApprovals (plain approve/reject) and VerificationHub
(approval with fee override). Each holds the form state the operator is
editing and talks to the API through an AcademyClient. Rule violations raise
FormValidationError before any request is made; backend failures propagate
as ApiError.
"""

import logging
from datetime import datetime
from typing import Optional

from client import AcademyClient, ApiError
from drafts import AdmissionDraft, DraftStore
from fees import (
    FeeState,
    FormValidationError,
    build_admission_payload,
    check_paid_amount,
    compute_balance,
    derive_fee_state,
    format_input,
    parse_amount,
    standard_class_total,
    validate_admission,
    validate_fee_collection,
)

logger = logging.getLogger(__name__)


def _subject_names(class_doc: Optional[dict]) -> list:
    if not class_doc:
        return []
    return [s["name"] if isinstance(s, dict) else s for s in class_doc.get("subjects") or []]


def _find(records: list, record_id: Optional[str]) -> Optional[dict]:
    if not record_id:
        return None
    return next((r for r in records if r.get("_id") == record_id), None)


class AdmissionDesk:
    """New-student intake with session pricing and draft persistence"""

    def __init__(self, client: AcademyClient, store: Optional[DraftStore] = None):
        self.client = client
        self.store = store or DraftStore()
        self.classes = []
        self.sessions = []
        self.session_price = None
        self.paid_error = None
        self.pending_id = None
        self._session_token = 0
        self.draft = self.store.load() or AdmissionDraft()

    def load_reference_data(self):
        self.classes = self.client.list_classes("active")
        self.sessions = self.client.list_sessions()

    @property
    def fee_state(self) -> FeeState:
        return derive_fee_state(self.session_price, self.draft.isCustomFeeMode, self.draft.totalFee, self.draft.paidAmount)

    @property
    def balance(self) -> float:
        return self.fee_state.balance

    @property
    def selected_class(self) -> Optional[dict]:
        return _find(self.classes, self.draft.selectedClassId)

    def _changed(self):
        self.store.save(self.draft)

    def _set(self, **fields):
        self.draft = self.draft.model_copy(update=fields)

    def update(self, **fields):
        """Apply typed values to the form.

        Picking a group clears the class; picking a class selects all of its
        subjects and turns the custom fee off.
        """
        if "selectedSessionId" in fields:
            raise ValueError("use select_session() to change the session")
        previous_group = self.draft.group
        previous_class = self.draft.selectedClassId
        self._set(**fields)

        if "group" in fields and self.draft.group and self.draft.group != previous_group and "selectedClassId" not in fields:
            self._set(selectedClassId="", selectedSubjects=[], totalFee="")
        if self.draft.selectedClassId and self.draft.selectedClassId != previous_class:
            self._set(selectedSubjects=_subject_names(self.selected_class), isCustomFeeMode=False)

        self._lock_to_session_price()
        self._changed()

    def _lock_to_session_price(self):
        if self.session_price and not self.draft.isCustomFeeMode:
            self._set(totalFee=format_input(self.session_price))

    # --------- Session price ---------

    def begin_session_selection(self, session_id: str) -> int:
        self._session_token += 1
        self._set(selectedSessionId=session_id or "")
        return self._session_token

    def apply_session_price(self, token: int, price: Optional[float], keep_custom_total: bool = False) -> bool:
        """Apply a looked-up price unless a newer selection superseded it.

        With `keep_custom_total` a total typed in custom mode survives the
        new price; otherwise the total restarts at the session price.
        """
        if token != self._session_token:
            logger.warning("Discarding stale session price response (token %s, latest %s)", token, self._session_token)
            return False
        had_session_price = self.session_price is not None
        if price and price > 0:
            self.session_price = float(price)
            if not (keep_custom_total and self.draft.isCustomFeeMode):
                self._set(totalFee=format_input(price))
        else:
            self.session_price = None
            if had_session_price or not self.draft.selectedSessionId:
                self._set(totalFee="")
        self._changed()
        return True

    def select_session(self, session_id: str):
        token = self.begin_session_selection(session_id)
        price = self.client.get_session_price(session_id) if session_id else None
        self.apply_session_price(token, price)

    def refresh_session_price(self):
        """Re-resolve the price of a restored draft without losing a custom total"""
        session_id = self.draft.selectedSessionId
        if not session_id:
            return
        token = self.begin_session_selection(session_id)
        price = self.client.get_session_price(session_id)
        self.apply_session_price(token, price, keep_custom_total=True)

    # --------- Fees ---------

    def toggle_custom_fee(self, enabled: bool):
        if enabled and not self.session_price:
            raise FormValidationError(
                "isCustomFeeMode",
                "Custom Fee Unavailable",
                "A custom fee can only override a configured session rate",
            )
        self._set(isCustomFeeMode=enabled)
        self._lock_to_session_price()
        self._changed()

    def set_total_fee(self, value: str):
        if not self.fee_state.fee_editable:
            raise FormValidationError("totalFee", "Fee Locked", "The total fee follows the session rate; enable custom fee to change it")
        self._set(totalFee=value)
        self.paid_error = check_paid_amount(self.draft.paidAmount, value)
        self._changed()

    def set_paid_amount(self, value: str):
        self._set(paidAmount=value)
        self.paid_error = check_paid_amount(value, self.draft.totalFee)
        self._changed()

    # --------- Pending registration hand-off ---------

    def load_pending(self, student_id: str):
        """Prefill the form from a public registration awaiting admission"""
        student = self.client.get_pending(student_id)
        self.pending_id = student_id
        self._set(
            studentName=student.get("studentName") or "",
            fatherName=student.get("fatherName") or "",
            gender=student.get("gender") or "Male",
            group=student.get("group") or "",
            parentCell=student.get("parentCell") or "",
            studentCell=student.get("studentCell") or "",
            address=student.get("address") or "",
            referralSource=student.get("referralSource") or "",
            selectedClassId=student.get("classRef") or "",
            selectedSubjects=_subject_names(student),
            isCustomFeeMode=False,
        )
        logger.info("Loaded registration: %s", self.draft.studentName)
        self.select_session(student.get("sessionRef") or "")

    # --------- Submit / cancel ---------

    def submit(self) -> dict:
        state = self.fee_state
        try:
            validate_admission(self.draft, state)
        except FormValidationError as e:
            if e.field == "paidAmount" and state.paid_amount > state.total_fee:
                self.paid_error = "Received amount cannot exceed total fee"
            raise
        self.paid_error = None

        if not self.classes:
            self.load_reference_data()
        payload = build_admission_payload(self.draft, state, self.selected_class)

        saved = self.client.create_student(payload)
        logger.info("Admission saved for %s", saved.get("studentName"))

        if self.pending_id:
            try:
                self.client.reject(self.pending_id, "Approved and admitted")
            except ApiError:
                logger.exception("Failed to remove pending registration %s", self.pending_id)

        self.store.clear()
        self._reset()
        return saved

    def cancel(self):
        self.store.clear()
        self._reset()

    def _reset(self):
        self.draft = AdmissionDraft()
        self.session_price = None
        self.paid_error = None
        self.pending_id = None
        self._session_token += 1


class VerificationDesk:
    """Front-desk approval of a pending student, with optional fee override"""

    def __init__(self, client: AcademyClient):
        self.client = client
        self.classes = []
        self._reset()

    def _reset(self):
        self.student = None
        self.class_id = ""
        self.session_price = None
        self.standard_total = 0.0
        self.custom_fee = False
        self.fee_amount = ""
        self.collect_fee = True
        self.paid_amount = ""

    def open(self, student: dict):
        self._reset()
        self.student = student
        if not self.classes:
            self.classes = self.client.list_classes("active")
        session_id = student.get("sessionRef")
        self.session_price = self.client.get_session_price(session_id) if session_id else None
        self.select_class(student.get("classRef") or "")

    def select_class(self, class_id: str):
        self.class_id = class_id
        class_doc = _find(self.classes, class_id)
        if self.session_price is None and class_doc and class_doc.get("session"):
            self.session_price = self.client.get_session_price(class_doc["session"])
        self.standard_total = self.session_price or standard_class_total(class_doc)
        if not self.custom_fee:
            self.fee_amount = format_input(self.standard_total)

    def toggle_custom_fee(self, enabled: bool):
        if enabled and not self.standard_total:
            raise FormValidationError("customFee", "Custom Fee Unavailable", "No standard fee to override for this class")
        self.custom_fee = enabled
        if not enabled:
            self.fee_amount = format_input(self.standard_total)

    def set_fee_amount(self, value: str):
        if not self.custom_fee:
            raise FormValidationError("feeAmount", "Fee Locked", "Enable custom fee to change the total")
        self.fee_amount = value

    def toggle_collect_fee(self, enabled: bool):
        self.collect_fee = enabled

    def set_paid_amount(self, value: str):
        self.paid_amount = value

    @property
    def fee_state(self) -> FeeState:
        paid = self.paid_amount if self.collect_fee else 0
        return derive_fee_state(self.standard_total, self.custom_fee, self.fee_amount, paid)

    @property
    def balance(self) -> float:
        return self.fee_state.balance

    @property
    def fully_paid(self) -> bool:
        return self.fee_state.fully_paid

    def approval_body(self) -> dict:
        body = {
            "classId": self.class_id,
            "collectFee": self.collect_fee,
            "paidAmount": parse_amount(self.paid_amount) if self.collect_fee else 0,
            "customFee": self.custom_fee,
        }
        if self.custom_fee:
            body["customTotal"] = parse_amount(self.fee_amount)
        return body

    def approve(self) -> dict:
        """Approve the open student; the response carries the new credentials"""
        if not self.student or not self.class_id:
            raise FormValidationError("classId", "Class Required", "Please select a class")
        result = self.client.approve(self.student["_id"], self.approval_body())
        logger.info("Approved %s as %s", result.get("studentName"), result.get("studentId"))
        self._reset()
        return result


class PendingApprovalsDesk:
    def __init__(self, client: AcademyClient):
        self.client = client
        self.pending = []

    def refresh(self) -> list:
        self.pending = self.client.list_pending()
        return self.pending

    def approve(self, student_id: str, class_id: str) -> dict:
        if not class_id:
            raise FormValidationError("classId", "Class Required", "Please select a class")
        result = self.client.approve(student_id, {"classId": class_id})
        self.refresh()
        return result

    def reject(self, student_id: str, reason: str = "") -> dict:
        result = self.client.reject(student_id, reason or None)
        self.refresh()
        return result


class FeeCollectionDesk:
    """Collecting later instalments from an admitted student"""

    def __init__(self, client: AcademyClient):
        self.client = client
        self.students = []
        self.student = None

    def load_students(self) -> list:
        self.students = self.client.list_students("Active")
        return self.students

    def open(self, student: dict):
        self.student = student

    @property
    def balance(self) -> float:
        if not self.student:
            return 0.0
        return compute_balance(self.student.get("totalFee"), self.student.get("paidAmount"))

    def collect(self, amount, month: Optional[str] = None, payment_method: str = "CASH", notes: Optional[str] = None) -> dict:
        if not self.student or not self.student.get("_id"):
            raise FormValidationError("student", "No Student", "Select a student before collecting a fee")
        month = month or datetime.now().strftime("%B %Y")
        value = validate_fee_collection(amount, month, self.student.get("totalFee"), self.student.get("paidAmount"))
        result = self.client.collect_fee(self.student["_id"], value, month, payment_method, notes)
        self.student = result.get("student") or self.student
        return result

"""
Fee derivation and payment validation

Pure functions shared by every front-desk workflow and by the API. Amounts
arrive as the strings typed into the form; `parse_amount` turns them into
numbers the same way everywhere.
"""

import enum
import logging
import math
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


class FeeMode(str, enum.Enum):
    MANUAL_NO_SESSION = "manual"
    LOCKED_TO_SESSION = "locked"
    CUSTOM_OVERRIDE = "custom"


class FormValidationError(ValueError):
    """A rule violation caught before anything is sent to the backend.

    `title` and `message` are what the desk shows to the operator; `field`
    names the input the error belongs to.
    """

    def __init__(self, field: str, title: str, message: str):
        super().__init__(f"{title}: {message}")
        self.field = field
        self.title = title
        self.message = message


@dataclass(frozen=True)
class FeeState:
    session_price: Optional[float]
    is_session_price_mode: bool
    is_custom_fee_mode: bool
    total_fee: float
    paid_amount: float
    discount_amount: float
    balance: float
    mode: FeeMode

    @property
    def fee_editable(self) -> bool:
        return self.mode is not FeeMode.LOCKED_TO_SESSION

    @property
    def fully_paid(self) -> bool:
        return self.balance <= 0


def parse_amount(value) -> float:
    """Read a typed amount. Blank, unreadable or non-finite input counts as 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return 0.0
        try:
            amount = float(text)
        except ValueError:
            return 0.0
    return amount if math.isfinite(amount) else 0.0


def format_amount(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def format_input(value: float) -> str:
    """Render a number back into the text the fee input holds"""
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


def compute_balance(total_fee, paid_amount) -> float:
    return max(0.0, parse_amount(total_fee) - parse_amount(paid_amount))


def compute_discount(session_price: Optional[float], total_fee, custom_mode: bool) -> float:
    if not custom_mode or not session_price or session_price <= 0:
        return 0.0
    return max(0.0, float(session_price) - parse_amount(total_fee))


def derive_fee_state(session_price: Optional[float], custom_mode: bool, manual_total, paid_amount=None) -> FeeState:
    """Derive the complete fee picture for one form.

    A configured session price locks the total to that price unless the
    custom override is on. Without a session price the custom override has
    no meaning and the manual total is used as typed.
    """
    price = float(session_price) if session_price and session_price > 0 else None

    if price is None:
        mode = FeeMode.MANUAL_NO_SESSION
        total = parse_amount(manual_total)
        custom = False
    elif custom_mode:
        mode = FeeMode.CUSTOM_OVERRIDE
        total = parse_amount(manual_total)
        custom = True
    else:
        mode = FeeMode.LOCKED_TO_SESSION
        total = price
        custom = False

    paid = parse_amount(paid_amount)
    return FeeState(
        session_price=price,
        is_session_price_mode=price is not None,
        is_custom_fee_mode=custom,
        total_fee=total,
        paid_amount=paid,
        discount_amount=compute_discount(price, total, custom),
        balance=max(0.0, total - paid),
        mode=mode,
    )


def standard_class_total(class_doc: Optional[dict]) -> float:
    """Class price when no session price applies: subject fees, else base fee"""
    if not class_doc:
        return 0.0
    subject_total = sum(
        parse_amount(s.get("fee")) for s in class_doc.get("subjects") or [] if isinstance(s, dict)
    )
    return subject_total or parse_amount(class_doc.get("baseFee"))


def fee_status(paid_amount, total_fee) -> str:
    paid = parse_amount(paid_amount)
    total = parse_amount(total_fee)
    if paid >= total and total > 0:
        return "paid"
    if 0 < paid < total:
        return "partial"
    return "pending"


def check_paid_amount(paid_amount, total_fee) -> Optional[str]:
    """Inline message shown under the paid input while typing"""
    if paid_amount in (None, "") or total_fee in (None, ""):
        return None
    if parse_amount(paid_amount) > parse_amount(total_fee):
        return "Received amount cannot exceed total fee"
    return None


# --------- Admission submission ---------

REQUIRED_ADMISSION_FIELDS = ("studentName", "fatherName", "selectedClassId", "group", "parentCell")


def validate_admission(draft, state: FeeState) -> None:
    """Raise FormValidationError for the first rule the draft breaks."""
    for field in REQUIRED_ADMISSION_FIELDS:
        value = getattr(draft, field, None)
        if not value or not str(value).strip():
            raise FormValidationError(field, "Missing Information", "Please fill in all required fields")

    if state.total_fee <= 0:
        raise FormValidationError("totalFee", "Invalid Fee", "Please enter a valid total fee amount")

    if state.paid_amount < 0:
        raise FormValidationError("paidAmount", "Invalid Payment Amount", "Received amount cannot be negative")

    if state.paid_amount > state.total_fee:
        raise FormValidationError(
            "paidAmount",
            "Invalid Payment Amount",
            f"Received amount ({format_amount(state.paid_amount)} PKR) cannot exceed "
            f"total fee ({format_amount(state.total_fee)} PKR)",
        )

    # TODO: offer the inactive-status admission path once the product defines it
    if state.paid_amount == 0:
        raise FormValidationError(
            "paidAmount",
            "No Fee Received",
            "Active students must have an initial fee payment. "
            "Set status to 'inactive' if this is intentional.",
        )


def build_admission_payload(draft, state: FeeState, class_record: Optional[dict]) -> dict:
    """Normalise a validated draft into the body of POST /api/students"""
    class_title = ""
    if class_record:
        class_title = class_record.get("classTitle") or class_record.get("className") or ""
    if not class_title:
        raise FormValidationError("selectedClassId", "Class Selection Required", "Please select a valid class from the dropdown")

    discount = state.discount_amount if state.is_custom_fee_mode else 0.0
    if discount:
        logger.info("Session discount: rate %s - custom %s = %s", state.session_price, state.total_fee, discount)

    payload = {
        "studentName": draft.studentName,
        "fatherName": draft.fatherName,
        "gender": draft.gender,
        "class": class_title,
        "group": draft.group,
        "subjects": [{"name": name, "fee": 0} for name in draft.selectedSubjects],
        "parentCell": draft.parentCell,
        "studentCell": draft.studentCell or "",
        "address": draft.address or "",
        "referralSource": draft.referralSource or "",
        "admissionDate": draft.admissionDate,
        "totalFee": state.total_fee,
        "paidAmount": state.paid_amount,
        "discountAmount": discount,
        "classRef": draft.selectedClassId,
    }
    if state.is_session_price_mode:
        payload["sessionRate"] = state.session_price
    if draft.selectedSessionId:
        payload["sessionRef"] = draft.selectedSessionId
    if draft.photo:
        payload["photo"] = draft.photo
    return payload


# --------- Post-admission fee collection ---------

def validate_fee_collection(amount, month: Optional[str], total_fee, paid_amount) -> float:
    """Check a payment against the student's remaining balance and return it"""
    value = parse_amount(amount)
    if value <= 0:
        raise FormValidationError("amount", "Invalid Amount", "Please enter a valid fee amount greater than 0.")
    if not month:
        raise FormValidationError("month", "Month Required", "Please select a month for this fee collection.")
    remaining = parse_amount(total_fee) - parse_amount(paid_amount)
    if value > remaining:
        raise FormValidationError(
            "amount",
            "Invalid Amount",
            f"Amount (Rs. {format_amount(value)}) exceeds remaining balance (Rs. {format_amount(remaining)})",
        )
    return value

"""
Database Schemas for the Academy Admissions API

Each Pydantic model maps to a MongoDB collection with the lowercase class name.
Examples:
- AcademyClass -> "class" (see CLASS_COLLECTION)
- Session -> "session"
- Configuration -> "configuration"
- Student -> "student"
- FeeRecord -> "feerecord"

Field names follow the camelCase wire format the front desk sends.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import List, Optional, Literal

CLASS_COLLECTION = "class"


class Subject(BaseModel):
    name: str = Field(..., description="Subject name")
    fee: float = Field(0, ge=0, allow_inf_nan=False, description="Per-subject fee (0 when priced per session)")


class AcademyClass(BaseModel):
    """A class students are admitted into"""
    classTitle: str = Field(..., description="Display title, e.g. 'MDCAT Prep - Morning'")
    group: str = Field(..., description="Group, e.g. 'Pre-Medical'")
    subjects: List[Subject] = Field(default_factory=list)
    baseFee: float = Field(0, ge=0, allow_inf_nan=False, description="Fallback fee when no session price is configured")
    session: Optional[str] = Field(None, description="Session id this class runs in")
    status: Literal["active", "inactive"] = Field("active")


class Session(BaseModel):
    """Academic session, e.g. 'MDCAT 2026'"""
    sessionName: str = Field(...)
    status: Literal["active", "upcoming", "completed"] = Field("upcoming")
    startDate: Optional[str] = Field(None, description="ISO date")
    endDate: Optional[str] = Field(None, description="ISO date")


class SessionPrice(BaseModel):
    sessionId: str = Field(..., description="Session id the price applies to")
    sessionName: Optional[str] = None
    price: float = Field(0, ge=0, allow_inf_nan=False, description="Fixed session price (PKR)")
    isActive: bool = Field(True)


class Configuration(BaseModel):
    """Singleton academy configuration, edited by the owner"""
    sessionPrices: List[SessionPrice] = Field(default_factory=list)


class Student(BaseModel):
    """Direct admission created at the front desk"""
    studentName: str = Field(..., min_length=1)
    fatherName: str = Field(..., min_length=1)
    gender: Literal["Male", "Female"] = Field("Male")
    class_: str = Field(..., alias="class", min_length=1, description="Class title")
    group: str = Field(..., min_length=1)
    subjects: List[Subject] = Field(default_factory=list)
    parentCell: str = Field(..., min_length=1)
    studentCell: Optional[str] = ""
    address: Optional[str] = ""
    referralSource: Optional[str] = ""
    admissionDate: Optional[str] = Field(None, description="ISO date, defaults to today")
    totalFee: float = Field(..., ge=0, allow_inf_nan=False)
    paidAmount: float = Field(0, ge=0, allow_inf_nan=False)
    discountAmount: float = Field(0, ge=0, allow_inf_nan=False)
    sessionRate: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    classRef: Optional[str] = None
    sessionRef: Optional[str] = None
    photo: Optional[str] = None

    model_config = {"populate_by_name": True}


class Registration(BaseModel):
    """Public (self-service) registration, stored as a pending student"""
    studentName: str = Field(..., min_length=1)
    fatherName: str = Field(..., min_length=1)
    parentCell: str = Field(..., min_length=1)
    class_: str = Field(..., alias="class", min_length=1, description="Class id")
    group: str = Field(..., min_length=1)
    gender: Literal["Male", "Female"] = Field("Male")
    cnic: Optional[str] = None
    studentCell: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None
    referralSource: Optional[str] = None
    subjects: List[str] = Field(default_factory=list)
    session: Optional[str] = Field(None, description="Session id, defaults to the active session")

    model_config = {"populate_by_name": True}


class ApproveRequest(BaseModel):
    classId: Optional[str] = None
    collectFee: bool = False
    paidAmount: float = Field(0, ge=0, allow_inf_nan=False)
    customFee: bool = False
    customTotal: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class FeeCollection(BaseModel):
    amount: float = Field(..., allow_inf_nan=False, description="Amount received (PKR)")
    month: str = Field(..., min_length=1, description="Billing month, e.g. 'October 2026'")
    paymentMethod: Literal["CASH", "BANK", "ONLINE"] = Field("CASH")
    notes: Optional[str] = None


class FeeRecord(BaseModel):
    """One collected payment"""
    student: str = Field(..., description="Student document id")
    studentName: str
    className: Optional[str] = None
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    month: str
    status: Literal["PAID"] = "PAID"
    paymentMethod: str = "CASH"
    notes: Optional[str] = None

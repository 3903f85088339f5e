"""Pydantic schemas for document endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from quill_engine.audit.schemas import AuditEventResponse
from quill_engine.documents.service import effective_status

RoutingMode = Literal["parallel", "sequential"]
IdentityMethod = Literal["none", "email_otp", "sms_otp"]


# ── Documents ──

class DocumentCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    message: Optional[str] = None
    document_number: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = None
    locale: Optional[str] = None
    routing_mode: RoutingMode = "parallel"
    expiration_days: Optional[int] = None
    sender_name: Optional[str] = None
    sender_email: Optional[EmailStr] = None


class DocumentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    message: Optional[str] = None
    document_number: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = None
    locale: Optional[str] = None
    routing_mode: Optional[RoutingMode] = None
    expiration_days: Optional[int] = None
    sender_name: Optional[str] = None
    sender_email: Optional[EmailStr] = None


class DocumentResponse(BaseModel):
    id: str
    organization_id: str
    template_id: Optional[str] = None
    title: str
    document_number: Optional[str] = None
    description: Optional[str] = None
    message: Optional[str] = None
    timezone: Optional[str] = None
    locale: Optional[str] = None
    status: str
    routing_mode: str
    expiration_days: int
    expires_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    file_location: Optional[str] = None
    original_sha256: Optional[str] = None
    signed_sha256: Optional[str] = None
    has_signed_file: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_model(cls, doc) -> "DocumentResponse":
        """Response with the effective (lazily expired) status."""
        resp = cls.model_validate(doc)
        resp.status = effective_status(doc)
        resp.has_signed_file = bool(doc.signed_file_url)
        return resp


# ── Recipients ──

class RecipientInput(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = None
    signing_order: int = 1
    role_name: Optional[str] = Field(default=None, max_length=100)
    identity_method: IdentityMethod = "none"
    contact_id: Optional[str] = None


class RecipientsReplace(BaseModel):
    recipients: list[RecipientInput]


class RecipientResponse(BaseModel):
    id: str
    document_id: str
    name: Optional[str] = None
    email: str
    signing_order: int
    role_name: Optional[str] = None
    identity_method: str
    routing_status: str
    status: str
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    identity_verified_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ── Fields ──

class FieldInput(BaseModel):
    field_type: str
    page_number: int = 1
    x_position: float
    y_position: float
    width: float
    height: float
    label: Optional[str] = Field(default=None, max_length=255)
    is_required: bool = True
    recipient_id: Optional[str] = None
    role_name: Optional[str] = None
    font_size: Optional[int] = None
    font_family: Optional[str] = None
    text_align: Optional[Literal["left", "center", "right"]] = None
    locked: bool = False


class FieldsReplace(BaseModel):
    fields: list[FieldInput]


class FieldResponse(BaseModel):
    id: str
    document_id: str
    recipient_id: Optional[str] = None
    role_name: Optional[str] = None
    field_type: str
    page_number: int
    x_position: float
    y_position: float
    width: float
    height: float
    label: Optional[str] = None
    is_required: bool
    value: Optional[str] = None
    font_size: Optional[int] = None
    font_family: Optional[str] = None
    text_align: Optional[str] = None
    locked: bool

    model_config = {"from_attributes": True}


class DocumentDetail(BaseModel):
    document: DocumentResponse
    recipients: list[RecipientResponse]
    fields: list[FieldResponse]
    audit: list[AuditEventResponse]


class DocumentVersionResponse(BaseModel):
    id: str
    version_number: int
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    original_sha256: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Reminders ──

class ReminderSchedule(BaseModel):
    days: Optional[int] = Field(default=None, ge=1)


class ReminderResponse(BaseModel):
    id: str
    recipient_id: Optional[str] = None
    scheduled_at: datetime
    sent_at: Optional[datetime] = None
    status: str

    model_config = {"from_attributes": True}


class RemindResponse(BaseModel):
    reminded: int


# ── Files ──

class SignedFileResponse(BaseModel):
    url: str
    file_name: str
    sha256: Optional[str] = None


# ── Email preview ──

class EmailPreviewRequest(BaseModel):
    message: str
    document_title: Optional[str] = None
    sender_name: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_email: Optional[EmailStr] = None
    expires_at: Optional[datetime] = None


class EmailPreviewResponse(BaseModel):
    subject: str
    body: str

"""Pydantic schemas for the public signing surface."""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field


class PublicDocumentView(BaseModel):
    id: str
    title: str
    description: str = ""
    message: str = ""
    status: str
    routing_mode: str
    expires_at: Optional[datetime] = None
    sender_name: str = ""
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    has_file: bool = False


class PublicRecipientView(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    status: str
    routing_status: str
    identity_method: str
    identity_verified_at: Optional[datetime] = None


class PublicFieldView(BaseModel):
    id: str
    recipient_id: Optional[str] = None
    field_type: str
    page_number: int
    x_position: float
    y_position: float
    width: float
    height: float
    label: str = ""
    is_required: bool
    value: Optional[str] = None
    font_size: Optional[int] = None
    font_family: Optional[str] = None
    text_align: Optional[str] = None
    locked: bool


class SigningViewResponse(BaseModel):
    document: PublicDocumentView
    recipient: PublicRecipientView
    fields: list[PublicFieldView]


class SubmittedField(BaseModel):
    id: str
    value: Optional[Union[bool, int, float, str]] = None


class SubmitRequest(BaseModel):
    fields: list[SubmittedField] = Field(default_factory=list)


class SubmitResponse(BaseModel):
    status: str = "signed"
    document_status: str
    completed: bool


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class DeclineResponse(BaseModel):
    status: str = "declined"


class VerifyResponse(BaseModel):
    verified: bool
    verified_at: Optional[datetime] = None


class DownloadResponse(BaseModel):
    url: str
    file_name: str

"""Pydantic schemas for template endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from quill_engine.documents.schemas import RecipientInput, RoutingMode


class TemplateCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    message: Optional[str] = None


class TemplateUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    message: Optional[str] = None


class TemplateResponse(BaseModel):
    id: str
    organization_id: str
    title: str
    description: Optional[str] = None
    message: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    file_location: Optional[str] = None
    original_sha256: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TemplateRoleInput(BaseModel):
    role_name: str = Field(..., max_length=100)
    signing_order: int = 1


class TemplateRolesReplace(BaseModel):
    roles: list[TemplateRoleInput]


class TemplateRoleResponse(BaseModel):
    id: str
    role_name: str
    signing_order: int

    model_config = {"from_attributes": True}


class TemplateFieldInput(BaseModel):
    field_type: str
    page_number: int = 1
    x_position: float
    y_position: float
    width: float
    height: float
    label: Optional[str] = Field(default=None, max_length=255)
    is_required: bool = True
    role_name: Optional[str] = None
    font_size: Optional[int] = None
    font_family: Optional[str] = None
    text_align: Optional[Literal["left", "center", "right"]] = None
    locked: bool = False


class TemplateFieldsReplace(BaseModel):
    fields: list[TemplateFieldInput]


class TemplateFieldResponse(BaseModel):
    id: str
    role_name: Optional[str] = None
    field_type: str
    page_number: int
    x_position: float
    y_position: float
    width: float
    height: float
    label: Optional[str] = None
    is_required: bool
    font_size: Optional[int] = None
    font_family: Optional[str] = None
    text_align: Optional[str] = None
    locked: bool

    model_config = {"from_attributes": True}


class TemplateDetail(BaseModel):
    template: TemplateResponse
    roles: list[TemplateRoleResponse]
    fields: list[TemplateFieldResponse]


class TemplateInstantiate(BaseModel):
    recipients: list[RecipientInput] = Field(default_factory=list)
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    message: Optional[str] = None
    routing_mode: RoutingMode = "parallel"
    expiration_days: Optional[int] = None

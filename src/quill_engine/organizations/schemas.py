"""Pydantic schemas for organization endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
    sender_name: Optional[str] = None
    sender_email: Optional[EmailStr] = None


class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganizationCreateResponse(OrganizationResponse):
    """Includes the raw API key — only returned once at creation time."""
    api_key: str


class OrganizationUpdate(BaseModel):
    name: Optional[str] = None
    sender_name: Optional[str] = None
    sender_email: Optional[EmailStr] = None

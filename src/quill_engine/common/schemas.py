"""Shared Pydantic schemas for Quill-Engine."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "quill-engine"


class ErrorResponse(BaseModel):
    detail: str
    code: str


class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    page_size: int
    pages: int

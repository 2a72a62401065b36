"""Schemas for Students module."""

from pydantic import BaseModel, Field


class StudentCreate(BaseModel):
    branch_id: int
    admission_number: str = Field(..., min_length=1, max_length=50)
    full_name: str = Field(..., min_length=1, max_length=200)
    class_name: str = Field(..., min_length=1, max_length=50)
    division: str | None = Field(None, max_length=20)


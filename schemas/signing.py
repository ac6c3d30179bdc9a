from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from schemas.enums import JobStatus


class SignerInfo(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    role: str = "Signer 1"

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("email must be a valid address")
        return v


class SigningRequest(BaseModel):
    signer: SignerInfo
    template_id: Optional[str] = Field(None, alias="templateId")

    model_config = {"populate_by_name": True}


class SigningCallback(BaseModel):
    """Provider webhook body; only the document id and event are needed."""
    document_id: str = Field(..., alias="documentId")
    event: str = "document.complete"

    model_config = {"populate_by_name": True}


class SigningJobSchema(BaseModel):
    id: str
    application_id: str
    status: JobStatus
    signer_name: str
    signer_email: str
    provider_document_id: Optional[str] = None
    signing_url: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 0
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

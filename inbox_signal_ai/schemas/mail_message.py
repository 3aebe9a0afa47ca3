"""Raw inbox message as fetched from the mail provider."""

from typing import Optional

from pydantic import BaseModel, Field


class MailMessage(BaseModel):
    """One message with the headers the analysis step needs."""

    id: str = Field(..., description="Provider message id")
    subject: str = Field(default="", description="Subject header")
    sender: str = Field(default="", description="From header")
    snippet: str = Field(default="", description="Provider-generated short excerpt")
    body: str = Field(default="", description="Plain-text body")
    received_at: Optional[str] = Field(default=None, description="Date header as sent")

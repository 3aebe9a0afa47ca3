"""Structured analysis of one inbox message."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import ORGANIZATION_REQUIRED_CATEGORIES, PRIORITY_LEVELS
from ..errors import ValidationFailure

MIN_SUMMARY_CHARS = 10

BULLET = "•"


def _to_bullet_text(value: Any) -> Optional[str]:
    """Coerce an engine value into an optional bullet-formatted text block."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, dict):
        lines = [f"{BULLET} {k}: {v}" for k, v in value.items() if v not in (None, "", [])]
        return "\n".join(lines) or None
    if isinstance(value, (list, tuple)):
        lines = [f"{BULLET} {str(v).strip()}" for v in value if v is not None and str(v).strip()]
        return "\n".join(lines) or None
    return str(value)


def _to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class EnrichmentResult(BaseModel):
    """Analysis output for one message. JSON keys follow the frontend's camelCase names."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(default="", description="Short human-readable summary")
    category: str = Field(default="", description="internship, job offer, ppt, workshop, exam, ...")
    tags: List[str] = Field(default_factory=list, description="Free-form filter tags")
    priority: str = Field(default="low", description="high, medium or low")

    company: Optional[str] = Field(default=None, description="Organization name")
    role: Optional[str] = Field(default=None, description="Role or position offered")
    deadline: Optional[str] = Field(default=None, description="YYYY-MM-DD or null")
    apply_link: Optional[str] = Field(default=None, alias="applyLink")
    other_links: List[str] = Field(default_factory=list, alias="otherLinks")

    eligibility: Optional[str] = None
    timings: Optional[str] = None
    salary: Optional[str] = None
    location: Optional[str] = None
    event_details: Optional[str] = Field(default=None, alias="eventDetails")
    requirements: Optional[str] = None

    description: Optional[str] = None
    attachment_summary: Optional[str] = Field(default=None, alias="attachmentSummary")

    message_id: Optional[str] = Field(default=None, alias="messageId", description="Source message id, set by the pipeline")

    @field_validator(
        "eligibility", "timings", "salary", "location", "event_details", "requirements",
        mode="before",
    )
    @classmethod
    def _structured_text(cls, v: Any) -> Optional[str]:
        return _to_bullet_text(v)

    @field_validator(
        "company", "role", "deadline", "apply_link", "description", "attachment_summary", "message_id",
        mode="before",
    )
    @classmethod
    def _nullable_text(cls, v: Any) -> Optional[str]:
        return _to_optional_str(v)

    @field_validator("summary", "category", mode="before")
    @classmethod
    def _plain_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("tags", "other_links", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(item).strip() for item in v if item is not None and str(item).strip()]

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v: Any) -> str:
        p = str(v or "").strip().lower()
        return p if p in PRIORITY_LEVELS else "low"

    def requires_organization(self) -> bool:
        return self.category.strip().lower() in ORGANIZATION_REQUIRED_CATEGORIES

    def validate_result(self) -> "EnrichmentResult":
        """Raise ValidationFailure unless the result can be accepted; returns self."""
        if not self.category:
            raise ValidationFailure("category is required")
        if len(self.summary) < MIN_SUMMARY_CHARS:
            raise ValidationFailure("summary is too short or missing")
        if self.requires_organization() and not self.company:
            raise ValidationFailure(f"company name missing for job category: {self.category}")
        return self

    def is_valid(self) -> bool:
        try:
            self.validate_result()
        except ValidationFailure:
            return False
        return True

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using the camelCase wire names."""
        return self.model_dump(by_alias=True)

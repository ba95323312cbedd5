from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from plain_triage.domain.models import ClassificationResult, ClassifierMode, Ticket

_DEFAULT_TIER = "pro"


class _PlainModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PlainTimestamp(_PlainModel):
    iso8601: datetime | None = None


class PlainCustomer(_PlainModel):
    id: str | None = None
    email: str | None = None
    full_name: str | None = Field(None, alias="fullName")
    tier: str | None = None

    def determine_tier(self) -> str:
        if self.tier:
            return self.tier.lower()
        email = (self.email or "").lower()
        if email.endswith("@enterprise.com"):
            return "custom"
        if email.endswith("@premium.com"):
            return "pro"
        return _DEFAULT_TIER


class PlainMessage(_PlainModel):
    id: str | None = None
    text_content: str | None = Field(None, alias="textContent")
    content: str | list[dict[str, Any]] | None = None

    def text(self) -> str:
        if self.text_content:
            return self.text_content.strip()
        if isinstance(self.content, str):
            return self.content.strip()
        if isinstance(self.content, list):
            parts = [str(component["text"]) for component in self.content if component.get("text")]
            return " ".join(parts).strip()
        return ""


class PlainThread(_PlainModel):
    id: str
    title: str | None = None
    created_at: PlainTimestamp | None = Field(None, alias="createdAt")
    customer: PlainCustomer = Field(default_factory=PlainCustomer)
    first_message: PlainMessage | None = Field(None, alias="firstMessage")

    def to_ticket(self) -> Ticket:
        return Ticket(
            id=self.id,
            message=self.first_message.text() if self.first_message else "",
            title=self.title or "",
            customer_tier=self.customer.determine_tier(),
            customer_email=self.customer.email,
            created_at=self.created_at.iso8601 if self.created_at else None,
        )


class PlainLabelType(_PlainModel):
    id: str | None = None
    name: str | None = None


class PlainLabel(_PlainModel):
    id: str | None = None
    label_type: PlainLabelType | None = Field(None, alias="labelType")


class PlainEventPayload(_PlainModel):
    event_type: str = Field(..., alias="eventType")
    thread: PlainThread | None = None
    is_start_of_thread: bool = Field(False, alias="isStartOfThread")
    added_labels: list[PlainLabel] = Field(default_factory=list, alias="addedLabels")
    removed_labels: list[PlainLabel] = Field(default_factory=list, alias="removedLabels")


class PlainWebhook(_PlainModel):
    id: str | None = None
    workspace_id: str | None = Field(None, alias="workspaceId")
    payload: PlainEventPayload


class WebhookResponse(BaseModel):
    success: bool = True
    message: str
    request_id: str
    event_type: str
    processing_time_ms: float
    classification: ClassificationResult | None = None
    label_applied: bool = False
    stored: bool = False


class ClassifyTicketRequest(BaseModel):
    ticket_id: str = Field("adhoc", description="Ticket / thread identifier")
    message: str = Field(..., description="Ticket text content")
    title: str = ""
    customer_tier: str = _DEFAULT_TIER
    created_at: datetime | None = None

    def to_ticket(self) -> Ticket:
        return Ticket(
            id=self.ticket_id,
            message=self.message,
            title=self.title,
            customer_tier=self.customer_tier,
            created_at=self.created_at,
        )


class ClassifierStatus(BaseModel):
    available: bool
    configured: bool


class HealthResponse(BaseModel):
    status: str = "ok"
    mode: ClassifierMode
    classifiers: dict[str, ClassifierStatus]

"""Pydantic models for enqueue requests, rendering results and admin payloads."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from courier.models.enums import NotificationChannel, NotificationStatus, UserRole

TemplateVariables = dict[str, str | int | float]


class NotificationButton(BaseModel):
    """Inline button; stored as ``{"label", "callbackData"}`` JSON."""

    model_config = ConfigDict(populate_by_name=True)

    label: str
    callback_data: str = Field(alias="callbackData")


class RenderedNotification(BaseModel):
    template_key: str
    text: str
    buttons: Optional[list[NotificationButton]] = None


class ResolvedTemplate(BaseModel):
    rendered: RenderedNotification
    version: Optional[str] = None
    snapshot: str
    policy_version: Optional[str] = None
    source: Literal["db", "code"]


class SendNotificationRequest(BaseModel):
    event_name: str
    recipient_id: str
    recipient_chat_id: int
    channel: NotificationChannel
    template_key: str
    variables: TemplateVariables = Field(default_factory=dict)
    recipient_role: UserRole = UserRole.TRAVELER


class EnqueueResult(BaseModel):
    notification_id: str
    deduplicated: bool
    skipped: bool = False


class SendResult(BaseModel):
    """Outcome of a single transport call."""

    success: bool
    error_message: Optional[str] = None
    # True when retrying cannot help (blocked recipient, bad chat id, ...)
    permanent: bool = False
    provider_message_id: Optional[str] = None


class DeliveryJobPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    notification_id: str


class NotificationLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    idempotency_key: str
    event_name: str
    recipient_id: str
    recipient_chat_id: int
    channel: str
    template_key: str
    payload: TemplateVariables
    status: NotificationStatus
    attempt_count: int
    last_attempt_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    skip_reason: Optional[str] = None
    template_version: Optional[str] = None
    template_snapshot: Optional[str] = None
    policy_version: Optional[str] = None
    created_at: datetime


class NotificationPage(BaseModel):
    items: list[NotificationLogOut] = Field(default_factory=list)
    total: int
    page: int
    limit: int


class RetryFailedRequest(BaseModel):
    limit: int = Field(default=100, ge=1, le=500)


class RetryResponse(BaseModel):
    id: Optional[str] = None
    requeued: bool = False
    requeued_count: Optional[int] = None


class TemplatePreviewRequest(BaseModel):
    body: str
    variables: TemplateVariables = Field(default_factory=dict)
    buttons: Optional[list[NotificationButton]] = None


class TemplatePreviewResponse(BaseModel):
    text: str
    buttons: Optional[list[NotificationButton]] = None


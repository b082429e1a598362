"""Pydantic models for the template, policy and preference admin API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from courier.models.enums import NotificationCategory, NotificationChannel, UserRole
from courier.schemas.notifications import NotificationButton


class TemplateCreate(BaseModel):
    template_key: str = Field(min_length=1)
    version: str = Field(min_length=1)
    channel: NotificationChannel
    body: str = Field(min_length=1)
    buttons: Optional[list[NotificationButton]] = None
    variables: Optional[list[str]] = None
    policy_version: Optional[str] = None


class TemplateUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    body: Optional[str] = Field(default=None, min_length=1)
    buttons: Optional[list[NotificationButton]] = None
    variables: Optional[list[str]] = None
    policy_version: Optional[str] = None


class TemplateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    template_key: str
    version: str
    channel: str
    body: str
    buttons: Optional[list[NotificationButton]] = None
    variables: Optional[list[str]] = None
    policy_version: Optional[str] = None
    is_active: bool
    created_at: datetime


class TemplatePage(BaseModel):
    items: list[TemplateOut] = Field(default_factory=list)
    total: int
    page: int
    limit: int


class PolicyUpdate(BaseModel):
    category: NotificationCategory
    allowed_channels: list[NotificationChannel] = Field(default_factory=list)
    force_deliver: bool = False
    description: Optional[str] = None


class PolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    template_key: str
    category: NotificationCategory
    allowed_channels: list[str] = Field(default_factory=list)
    force_deliver: bool
    description: Optional[str] = None
    updated_at: datetime


class PolicyPage(BaseModel):
    items: list[PolicyOut] = Field(default_factory=list)
    total: int
    page: int
    limit: int


class RoleDefaultUpdate(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: UserRole
    category: NotificationCategory
    channel: NotificationChannel
    enabled: bool


class PreferenceItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: NotificationCategory
    channel: NotificationChannel
    enabled: bool


class UserPreferencesUpdate(BaseModel):
    preferences: list[PreferenceItem] = Field(min_length=1)

"""Pydantic schemas for authentication payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    created_at: datetime


class AuthResponse(BaseModel):
    access_token: str = Field(..., description="Opaque token for session management")
    token_type: str = Field(default="bearer")
    user: UserOut


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class HealthResponse(BaseModel):
    status: str
    service: str
    quotes_mode: str
    database_url: Optional[str]


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_alerts: bool = Field(default=True, alias="priceAlerts")
    news_alerts: bool = Field(default=False, alias="newsAlerts")


class DisplayPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    decimal_places: int = Field(default=2, ge=0, le=6, alias="decimalPlaces")
    show_percentages: bool = Field(default=True, alias="showPercentages")


class ProfileOut(BaseModel):
    user_id: str
    name: str
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    currency: str = "USD"
    theme: Literal["dark", "light"] = "dark"
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    display_preferences: DisplayPreferences = Field(default_factory=DisplayPreferences)
    updated_at: datetime


class ProfileUpdate(BaseModel):
    """Partial profile update; omitted fields keep their stored value."""

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=2048)
    currency: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]{3}$")
    theme: Optional[Literal["dark", "light"]] = None
    notification_preferences: Optional[NotificationPreferences] = None
    display_preferences: Optional[DisplayPreferences] = None

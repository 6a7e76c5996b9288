from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .models import MAX_CONVERSION_VALUE

SHORT_CODE_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"

_http_url = TypeAdapter(HttpUrl)


def _checked_url(value: str) -> str:
    # HttpUrl only validates; the stored destination is exactly what was submitted
    value = value.strip()
    try:
        _http_url.validate_python(value)
    except PydanticValidationError as exc:
        raise ValueError("destination_url must be an absolute http(s) URL") from exc
    return value


DestinationUrl = Annotated[str, Field(max_length=2048), AfterValidator(_checked_url)]


class LinkCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    short_code: str = Field(pattern=SHORT_CODE_PATTERN)
    destination_url: DestinationUrl
    category: str | None = Field(default=None, max_length=100)
    platform: str | None = Field(default=None, max_length=100)
    commission_rate: Decimal | None = Field(default=None, ge=0, le=999)
    is_active: bool = True
    expires_at: datetime | None = None


class LinkUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    short_code: str | None = Field(default=None, pattern=SHORT_CODE_PATTERN)
    destination_url: DestinationUrl | None = None
    category: str | None = Field(default=None, max_length=100)
    platform: str | None = Field(default=None, max_length=100)
    commission_rate: Decimal | None = Field(default=None, ge=0, le=999)
    is_active: bool | None = None
    expires_at: datetime | None = None


class LinkResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    short_code: str
    destination_url: str
    category: str | None
    platform: str | None
    commission_rate: float | None
    is_active: bool
    expires_at: datetime | None
    total_clicks: int
    unique_clicks: int
    conversions: int
    revenue: float
    created_at: datetime
    updated_at: datetime
    redirect_path: str


class ClickResponse(BaseModel):
    id: uuid.UUID
    link_id: uuid.UUID
    ip_address: str | None
    user_agent: str | None
    referrer: str | None
    device_type: str
    country: str | None
    clicked_at: datetime
    converted: bool
    conversion_value: float | None


class PageMeta(BaseModel):
    total: int
    limit: int
    offset: int


class ClickPageResponse(BaseModel):
    data: list[ClickResponse]
    meta: PageMeta


class DailyPerformanceResponse(BaseModel):
    link_id: uuid.UUID
    date: date
    clicks: int
    unique_visitors: int
    conversions: int
    revenue: float
    ctr: float


class ConversionRequest(BaseModel):
    link_id: uuid.UUID
    click_id: uuid.UUID | None = None
    conversion_value: Decimal | None = Field(default=None, ge=0, le=MAX_CONVERSION_VALUE, decimal_places=2)


class ConversionResponse(BaseModel):
    link_id: uuid.UUID
    click_id: uuid.UUID | None
    click_attributed: bool
    conversion_value: float
    recorded_at: datetime


class SummaryResponse(BaseModel):
    timeframe: str
    link_id: uuid.UUID | None
    total_clicks: int
    unique_clicks: int
    total_conversions: int
    total_revenue: float
    active_links: int
    total_links: int
    ctr: float
    conversion_rate: float


class TopLinkResponse(BaseModel):
    id: uuid.UUID
    name: str
    short_code: str
    category: str | None
    platform: str | None
    total_clicks: int
    unique_clicks: int
    conversions: int
    revenue: float
    ctr: float
    conversion_rate: float


class TimelinePointResponse(BaseModel):
    date: date
    clicks: int
    unique_visitors: int


class DeviceShareResponse(BaseModel):
    device_type: str
    clicks: int
    percentage: float


class CategoryPerformanceResponse(BaseModel):
    category: str
    link_count: int
    clicks: int
    conversions: int
    revenue: float
    conversion_rate: float


class DashboardResponse(BaseModel):
    period: str
    overall: SummaryResponse
    top_links: list[TopLinkResponse]
    timeline: list[TimelinePointResponse]
    device_breakdown: list[DeviceShareResponse]
    category_performance: list[CategoryPerformanceResponse]

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models exchanged as camelCase JSON"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LinkCreate(CamelModel):
    """Schema for creating a new short link"""
    destination_url: str = Field(..., description="URL to redirect to", min_length=1, max_length=2048)
    custom_alias: Optional[str] = Field(None, description="Custom alias for short code")
    password: Optional[str] = Field(None, description="Password required to follow the link", max_length=128)
    expires_at: Optional[datetime] = Field(None, description="Time after which the link stops resolving")
    max_clicks: Optional[int] = Field(None, description="Number of clicks the link accepts")
    is_one_time: bool = Field(False, description="Deactivate the link after its first click")
    domain: Optional[str] = Field(None, description="Custom domain the link lives on", max_length=255)


class LinkUpdate(CamelModel):
    """Schema for updating a link; omitted fields are left unchanged"""
    destination_url: Optional[str] = Field(None, min_length=1, max_length=2048)
    # Empty string removes the password
    password: Optional[str] = Field(None, max_length=128)
    expires_at: Optional[datetime] = None
    max_clicks: Optional[int] = None


class LinkResponse(CamelModel):
    """Schema for link response"""
    short_code: str
    domain: Optional[str] = None
    short_url: str
    destination_url: str
    owner_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_clicks: Optional[int] = None
    click_count: int
    unique_click_count: int = 0
    is_one_time: bool
    is_active: bool
    is_password_protected: bool
    created_at: datetime
    updated_at: datetime

from datetime import datetime
from typing import List, Optional

from .link import CamelModel


class TimeSeriesPoint(CamelModel):
    """Single point in time series data"""
    timestamp: str  # ISO date or hour string
    clicks: int
    unique_clicks: int


class RefererStats(CamelModel):
    """Referer statistics"""
    referer: Optional[str]
    clicks: int
    percentage: float


class CountryStats(CamelModel):
    """Country-level statistics"""
    country_code: Optional[str]
    country_name: Optional[str]
    clicks: int
    percentage: float


class RecentClick(CamelModel):
    clicked_at: datetime
    referer_domain: Optional[str] = None
    country_code: Optional[str] = None
    is_unique: bool
    is_qr_click: bool


class LinkAnalytics(CamelModel):
    """Complete analytics for a link"""
    short_code: str
    period: str  # "24h", "7d", "30d", "90d"
    total_clicks: int
    unique_clicks: int
    qr_clicks: int = 0  # Clicks from QR code scans
    unique_ratio: float
    clicks_by_time: List[TimeSeriesPoint]
    clicks_by_country: List[CountryStats]
    top_referers: List[RefererStats]
    recent_clicks: List[RecentClick]

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from ..database import as_utc, utcnow
from ..models import Click, Link

PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}


def get_period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """Get start datetime for given period"""
    now = now or utcnow()
    return now - PERIODS.get(period, PERIODS["7d"])


def get_clicks_by_day(db: Session, link_id: int, start_date: datetime) -> List[dict]:
    """Get clicks aggregated by day"""
    # SQLite compatible date extraction
    day = func.date(Click.clicked_at)

    results = db.query(
        day.label('date'),
        func.count(Click.id).label('clicks'),
        func.sum(cast(Click.is_unique, Integer)).label('unique_clicks')
    ).filter(
        Click.link_id == link_id,
        Click.clicked_at >= start_date
    ).group_by(day).order_by(day).all()

    return [
        {
            "timestamp": row.date if isinstance(row.date, str) else row.date.isoformat(),
            "clicks": row.clicks,
            "unique_clicks": row.unique_clicks or 0
        }
        for row in results
    ]


def get_clicks_by_hour(db: Session, link_id: int, start_time: datetime) -> List[dict]:
    """Get clicks aggregated by hour"""
    # SQLite compatible hour extraction
    hour = func.strftime('%Y-%m-%d %H:00', Click.clicked_at)

    results = db.query(
        hour.label('hour'),
        func.count(Click.id).label('clicks'),
        func.sum(cast(Click.is_unique, Integer)).label('unique_clicks')
    ).filter(
        Click.link_id == link_id,
        Click.clicked_at >= start_time
    ).group_by(hour).order_by(hour).all()

    return [
        {
            "timestamp": row.hour or "",
            "clicks": row.clicks,
            "unique_clicks": row.unique_clicks or 0
        }
        for row in results
    ]


def get_clicks_by_country(db: Session, link_id: int, start_date: datetime,
                          limit: int = 20) -> List[dict]:
    """Get clicks aggregated by country"""
    results = db.query(
        Click.country_code,
        Click.country_name,
        func.count(Click.id).label('clicks')
    ).filter(
        Click.link_id == link_id,
        Click.clicked_at >= start_date
    ).group_by(
        Click.country_code,
        Click.country_name
    ).order_by(
        func.count(Click.id).desc()
    ).limit(limit).all()

    total = sum(row.clicks for row in results)

    return [
        {
            "country_code": row.country_code,
            "country_name": row.country_name or "Unknown",
            "clicks": row.clicks,
            "percentage": round(row.clicks / total * 100, 1) if total > 0 else 0
        }
        for row in results
    ]


def get_top_referers(db: Session, link_id: int, start_date: datetime,
                     limit: int = 10) -> List[dict]:
    """Get top referring domains; direct visits are reported with a null referer"""
    results = db.query(
        Click.referer_domain,
        func.count(Click.id).label('clicks')
    ).filter(
        Click.link_id == link_id,
        Click.clicked_at >= start_date
    ).group_by(
        Click.referer_domain
    ).order_by(
        func.count(Click.id).desc()
    ).limit(limit).all()

    total = sum(row.clicks for row in results)

    return [
        {
            "referer": row.referer_domain,
            "clicks": row.clicks,
            "percentage": round(row.clicks / total * 100, 1) if total > 0 else 0
        }
        for row in results
    ]


def get_recent_clicks(db: Session, link_id: int, limit: int = 20) -> List[dict]:
    clicks = db.query(Click).filter(
        Click.link_id == link_id
    ).order_by(Click.clicked_at.desc(), Click.id.desc()).limit(limit).all()

    return [
        {
            "clicked_at": as_utc(click.clicked_at),
            "referer_domain": click.referer_domain,
            "country_code": click.country_code,
            "is_unique": click.is_unique,
            "is_qr_click": click.is_qr_click,
        }
        for click in clicks
    ]


def get_link_analytics(db: Session, link: Link, period: str = "7d",
                       now: Optional[datetime] = None) -> dict:
    """
    Build the full analytics report for a link.

    Args:
        db: Database session
        link: Link to report on
        period: One of "24h", "7d", "30d", "90d"
        now: Reference time (defaults to the current UTC time)
    """
    start = get_period_start(period, now)

    counts = db.query(
        func.count(Click.id).label('total'),
        func.sum(cast(Click.is_unique, Integer)).label('unique'),
        func.sum(cast(Click.is_qr_click, Integer)).label('qr')
    ).filter(
        Click.link_id == link.id,
        Click.clicked_at >= start
    ).one()

    total_clicks = counts.total or 0
    unique_clicks = counts.unique or 0

    if period == "24h":
        clicks_by_time = get_clicks_by_hour(db, link.id, start)
    else:
        clicks_by_time = get_clicks_by_day(db, link.id, start)

    return {
        "short_code": link.short_code,
        "period": period,
        "total_clicks": total_clicks,
        "unique_clicks": unique_clicks,
        "qr_clicks": counts.qr or 0,
        "unique_ratio": round(unique_clicks / total_clicks, 3) if total_clicks else 0.0,
        "clicks_by_time": clicks_by_time,
        "clicks_by_country": get_clicks_by_country(db, link.id, start),
        "top_referers": get_top_referers(db, link.id, start),
        "recent_clicks": get_recent_clicks(db, link.id),
    }

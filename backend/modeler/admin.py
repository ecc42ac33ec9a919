"""Superuser dashboard figures and superuser management."""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from modeler.db.models import ApiRequest, Project, User, utcnow
from modeler.graph.common import get_or_404
from modeler.log import get_logger

logger = get_logger(__name__)

AVERAGE_WINDOW_DAYS = 7


def _requests_since(db: Session, since: datetime) -> int:
    return db.query(ApiRequest).filter(ApiRequest.request_timestamp >= since).count()


def collect_metrics(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    last_day = _requests_since(db, now - timedelta(hours=24))
    average = _requests_since(db, now - timedelta(days=AVERAGE_WINDOW_DAYS)) / AVERAGE_WINDOW_DAYS

    percent_change = 0
    if average > 0:
        percent_change = round((last_day - average) / average * 100)

    rate_limited = (
        db.query(ApiRequest)
        .filter(ApiRequest.status_code == 429, ApiRequest.request_timestamp >= now - timedelta(hours=24))
        .count()
    )

    return {
        "totalUsers": db.query(User).count(),
        "totalProjects": db.query(Project).count(),
        "apiRequests": {
            "count": last_day,
            "averagePerDay": round(average, 2),
            "percentChange": percent_change,
            "trend": "up" if percent_change >= 0 else "down",
        },
        "rateLimitHits": {"count": rate_limited},
        "timestamp": now.isoformat(),
    }


def set_superuser(db: Session, user_id: str, flag: bool) -> User:
    user = get_or_404(db, User, user_id, "User")
    user.is_superuser = bool(flag)
    db.commit()
    logger.info(f"[ADMIN] {user.email} superuser={user.is_superuser}")
    return user

"""Presence heartbeats: who has a project open right now."""

from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from modeler.config import PRESENCE_THRESHOLD_MINUTES
from modeler.db.models import User, UserPresence, utcnow
from modeler.log import get_logger

logger = get_logger(__name__)


def find_presence(db: Session, user_id: str, project_id: str) -> Optional[UserPresence]:
    return (
        db.query(UserPresence)
        .filter(UserPresence.user_id == user_id, UserPresence.project_id == project_id)
        .first()
    )


def heartbeat(db: Session, user_id: str, project_id: str) -> UserPresence:
    """Upsert the caller's presence row; repeated beats only move last_seen_at."""
    presence = find_presence(db, user_id, project_id)
    if presence is None:
        try:
            with db.begin_nested():
                presence = UserPresence(user_id=user_id, project_id=project_id)
                db.add(presence)
        except IntegrityError:
            # A concurrent first beat inserted the row
            logger.debug(f"[PRESENCE] {user_id} already present in {project_id}")
            presence = find_presence(db, user_id, project_id)
    presence.last_seen_at = utcnow()
    presence.is_online = True
    db.commit()
    return presence


def online_users(db: Session, project_id: str) -> List[dict]:
    cutoff = utcnow() - timedelta(minutes=PRESENCE_THRESHOLD_MINUTES)
    rows = (
        db.query(UserPresence, User)
        .join(User, User.id == UserPresence.user_id)
        .filter(
            UserPresence.project_id == project_id,
            UserPresence.is_online.is_(True),
            UserPresence.last_seen_at >= cutoff,
        )
        .order_by(UserPresence.last_seen_at.desc())
        .all()
    )
    return [
        {
            "user_id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "last_seen_at": presence.last_seen_at.isoformat(),
        }
        for presence, user in rows
    ]


def mark_offline(db: Session, user_id: str, project_id: str = None) -> int:
    query = db.query(UserPresence).filter(UserPresence.user_id == user_id)
    if project_id:
        query = query.filter(UserPresence.project_id == project_id)
    updated = query.update({"is_online": False}, synchronize_session="fetch")
    db.commit()
    return updated

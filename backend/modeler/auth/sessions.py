"""
Server-side sessions behind an HTTP-only cookie.

The cookie carries an opaque random token; only its sha256 is stored, so a
leaked sessions table cannot be replayed.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from modeler.auth.security import generate_token, hash_password, hash_token, verify_password
from modeler.config import SESSION_TTL_HOURS
from modeler.db.models import User, UserSession, utcnow
from modeler.errors import AuthenticationError, InvalidRequestError
from modeler.log import get_logger

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8


def sign_up(db: Session, email: str, password: str, full_name: Optional[str] = None) -> User:
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise InvalidRequestError("A valid email is required")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if db.query(User).filter(User.email == email).first() is not None:
        raise InvalidRequestError("An account with this email already exists")

    user = User(email=email, password_hash=hash_password(password), full_name=full_name)
    db.add(user)
    db.commit()
    logger.info(f"[AUTH] registered {email}")
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == (email or "").strip().lower()).first()
    if user is None or not verify_password(password or "", user.password_hash):
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Account is disabled")
    return user


def create_session(db: Session, user: User) -> str:
    """Persist a new session and return the raw token for the cookie."""
    token = generate_token()
    db.add(
        UserSession(
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=utcnow() + timedelta(hours=SESSION_TTL_HOURS),
        )
    )
    db.commit()
    return token


def resolve_session(db: Session, token: Optional[str]) -> Optional[User]:
    """User for a session token, or None. Expired or inactive sessions are removed."""
    if not token:
        return None
    session = db.query(UserSession).filter(UserSession.token_hash == hash_token(token)).first()
    if session is None:
        return None

    user = db.get(User, session.user_id)
    if user is None or not user.is_active or session.expires_at < utcnow():
        db.delete(session)
        db.commit()
        return None
    return user


def end_session(db: Session, token: Optional[str]) -> None:
    if not token:
        return
    db.query(UserSession).filter(UserSession.token_hash == hash_token(token)).delete()
    db.commit()

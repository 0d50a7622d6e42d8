"""
Authentication and session handling for filehost
"""

import json
import logging
import secrets
import time
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Request
from passlib.context import CryptContext

from .models import UserInfo

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_KEY = "sid"


class LoginRequired(Exception):
    """Raised by the admin gate when no valid session exists"""
    pass


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str, is_bcrypt: bool = True) -> bool:
    """Verify a password against its hash"""
    if is_bcrypt:
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except ValueError:
            return False
    else:
        # Plain text comparison (legacy records only)
        return secrets.compare_digest(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


class CredentialStore:
    """
    Operator credentials kept in a JSON list of {username, password}.

    ``password`` may be a bcrypt hash or, for legacy records, plain text.
    The file is read on every login so edits take effect immediately.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load_users(self) -> List[UserInfo]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("users.json not found, no operators can log in: %s", self.path)
            return []

        if not raw.strip():
            return []

        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("credential file must contain a list")

        users = []
        for record in data:
            if not isinstance(record, dict):
                continue
            name = record.get("username")
            password = record.get("password")
            if not name or not password:
                continue
            users.append(UserInfo(
                name=str(name),
                pass_hash=str(password),
                is_bcrypt=pwd_context.identify(str(password)) is not None,
            ))
        return users

    def authenticate(self, username: str, password: str) -> Optional[UserInfo]:
        """Authenticate user by username and password"""
        for user in self.load_users():
            if user.name != username:
                continue
            if not user.is_bcrypt:
                logger.warning(f"User {username} has a plaintext password; store a bcrypt hash instead")
            if verify_password(password, user.pass_hash, user.is_bcrypt):
                logger.info(f"User authenticated successfully: {username}")
                return user
            break

        logger.warning(f"Authentication failed for user: {username}")
        return None


class SessionRegistry:
    """
    Server-side record of live admin sessions.

    The signed session cookie only carries an opaque id; logging out
    removes the id here so a replayed cookie is rejected.
    """

    def __init__(self, max_age: int):
        self.max_age = max_age
        self._sessions: Dict[str, Dict] = {}

    def create(self, username: str) -> str:
        self._purge()
        session_id = secrets.token_urlsafe(32)
        self._sessions[session_id] = {"user": username, "created": time.time()}
        return session_id

    def get(self, session_id: Optional[str]) -> Optional[str]:
        if not session_id:
            return None
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        if time.time() - entry["created"] > self.max_age:
            self._sessions.pop(session_id, None)
            return None
        return entry["user"]

    def revoke(self, session_id: Optional[str]) -> None:
        if session_id:
            self._sessions.pop(session_id, None)

    def _purge(self):
        now = time.time()
        expired = [sid for sid, entry in self._sessions.items() if now - entry["created"] > self.max_age]
        for sid in expired:
            del self._sessions[sid]


def get_current_user_optional(request: Request) -> Optional[str]:
    """Username bound to the request's session, if any"""
    session = request.scope.get("session")
    if not session:
        return None
    registry: SessionRegistry = request.app.state.sessions
    return registry.get(session.get(SESSION_KEY))


def require_session(request: Request) -> str:
    """Dependency gating every admin route"""
    user = get_current_user_optional(request)
    if not user:
        raise LoginRequired()
    return user


def login(request: Request, user: UserInfo) -> None:
    registry: SessionRegistry = request.app.state.sessions
    request.session.clear()
    request.session[SESSION_KEY] = registry.create(user.name)


def logout(request: Request) -> None:
    registry: SessionRegistry = request.app.state.sessions
    registry.revoke(request.session.get(SESSION_KEY))
    request.session.clear()

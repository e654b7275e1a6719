"""
Mock user directory.

Users come from document["users"]. Login only checks that the username
exists and hands back a throwaway token; there are no passwords or sessions.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
import logging
import secrets

from .storage import DocumentStoreInterface
from .audit import AuditLog, AuditAction
from .errors import NotFoundError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class User:
    id: str
    username: str
    role: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username, "role": self.role}


class UserDirectory:

    def __init__(self, store: DocumentStoreInterface, audit_log: AuditLog):
        self.store = store
        self.audit_log = audit_log

    def list_users(self) -> List[User]:
        return [User(**data) for data in self.store.load().get("users", [])]

    def find_by_username(self, username: str) -> Optional[User]:
        for user in self.list_users():
            if user.username == username:
                return user
        return None

    def login(self, username: str) -> Tuple[str, User]:
        """Return a mock token and the user, NotFoundError for unknown users"""
        user = self.find_by_username(username)
        if user is None:
            logger.warning("Login refused for unknown user %r", username)
            raise NotFoundError(f"Unknown user: {username}")

        token = "mock-" + secrets.token_urlsafe(8)[:8]
        self.audit_log.record(user.username, AuditAction.USER_LOGIN, {"userId": user.id})
        return token, user

"""
In-memory user directory.

Holds user profiles (roles, permissions, facilities, active flag) and
answers emergency-privilege queries for the access engine.
"""

import threading
from typing import Dict, Iterable, Optional
import structlog

from core.models import UserProfile

logger = structlog.get_logger(__name__)


EMERGENCY_ROLES = frozenset({"emergency_physician", "emergency_nurse", "emergency_responder"})
EMERGENCY_PERMISSIONS = frozenset({"emergency_access", "break_glass"})


class InMemoryUserDirectory:
    """UserDirectory backed by a dict of profiles."""

    def __init__(self):
        self._users: Dict[str, UserProfile] = {}
        self._lock = threading.Lock()

    def register_user(
        self,
        user_id: str,
        roles: Iterable[str] = (),
        permissions: Iterable[str] = (),
        facilities: Iterable[str] = (),
        active: bool = True,
    ) -> UserProfile:
        """Add or replace a user profile."""
        profile = UserProfile(
            user_id=user_id,
            active=active,
            roles=frozenset(roles),
            permissions=frozenset(permissions),
            facilities=frozenset(facilities),
        )
        with self._lock:
            self._users[user_id] = profile
        logger.debug("User registered", user_id=user_id, roles=sorted(profile.roles))
        return profile

    def deactivate_user(self, user_id: str) -> bool:
        """Mark a user inactive. Returns False if the user is unknown."""
        with self._lock:
            profile = self._users.get(user_id)
            if profile is None:
                return False
            self._users[user_id] = profile.model_copy(update={"active": False})
        logger.info("User deactivated", user_id=user_id)
        return True

    async def resolve(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            return self._users.get(user_id)

    async def has_emergency_access(self, user_id: str) -> bool:
        """Active users holding an emergency role or permission."""
        with self._lock:
            profile = self._users.get(user_id)
        if profile is None or not profile.active:
            return False
        return bool(profile.roles & EMERGENCY_ROLES or profile.permissions & EMERGENCY_PERMISSIONS)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

"""User records, preferences and the profile used for personalisation."""

from datetime import datetime
from typing import Optional

import structlog

from legistrack.exceptions import NotFoundError
from legistrack.models.database import User, get_session

log = structlog.get_logger()


def _merge(base: dict, updates: dict) -> dict:
    """Recursively merge ``updates`` into a copy of ``base``."""
    merged = dict(base or {})
    for key, value in (updates or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def ensure_user(session, user_id: str) -> User:
    """Return the user row, inserting a bare one for a new auth identity."""
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, preferences={}, profile={})
        session.add(user)
        session.flush()
    return user


def profile_completeness(user: Optional[User]) -> dict:
    """Percentage of profile sections filled in, and which are missing."""
    preferences = (user.preferences if user else None) or {}
    profile = (user.profile if user else None) or {}

    items = [
        ("Location", bool((preferences.get("location") or {}).get("state"))),
        ("Interests", bool(preferences.get("interests"))),
        ("Demographics", bool((profile.get("demographics") or profile).get("ageGroup"))),
        ("Notification settings", bool(preferences.get("notifications"))),
        ("Content preferences", bool(preferences.get("contentTypes"))),
    ]
    completed = sum(1 for _, done in items if done)
    return {
        "score": round(completed / len(items) * 100),
        "incomplete": [name for name, done in items if not done],
    }


class UserService:
    """CRUD over ``users``."""

    def get_user(self, user_id: str) -> Optional[User]:
        session = get_session()
        try:
            return session.get(User, user_id)
        finally:
            session.close()

    def create_user(self, user_id: str, email: Optional[str] = None, full_name: Optional[str] = None,
                    preferences: Optional[dict] = None, profile: Optional[dict] = None) -> User:
        session = get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                user = User(id=user_id)
                session.add(user)
            user.email = email or user.email
            user.full_name = full_name or user.full_name
            user.preferences = preferences if preferences is not None else (user.preferences or {})
            user.profile = profile if profile is not None else (user.profile or {})
            session.commit()
            log.info("User saved", user_id=user_id)
            return user
        except Exception as e:
            session.rollback()
            log.error("Failed to save user", user_id=user_id, error=str(e))
            raise
        finally:
            session.close()

    def _update_json(self, user_id: str, column: str, updates: dict) -> User:
        session = get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User not found: {user_id}")
            setattr(user, column, _merge(getattr(user, column), updates))
            user.updated_at = datetime.utcnow()
            session.commit()
            return user
        except NotFoundError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            log.error("Failed to update user", user_id=user_id, column=column, error=str(e))
            raise
        finally:
            session.close()

    def update_preferences(self, user_id: str, updates: dict) -> User:
        return self._update_json(user_id, "preferences", updates)

    def update_profile(self, user_id: str, updates: dict) -> User:
        return self._update_json(user_id, "profile", updates)

    def get_user_context(self, user_id: str) -> Optional[dict]:
        """Location, interests and demographics for personalised prompts."""
        user = self.get_user(user_id)
        if user is None:
            return None
        preferences = user.preferences or {}
        profile = user.profile or {}
        return {
            "location": preferences.get("location") or {},
            "interests": preferences.get("interests") or [],
            "demographics": profile.get("demographics") or profile,
        }

    def profile_completeness(self, user_id: str) -> dict:
        return profile_completeness(self.get_user(user_id))

from __future__ import annotations

from ..errors import NotFoundError
from .models import HealthProfile


class HealthProfileRegistry:
    """In-memory stand-in for the external health assessment provider."""

    def __init__(self) -> None:
        self._profiles: dict[str, HealthProfile] = {}

    def register(self, user_id: str, profile: HealthProfile) -> HealthProfile:
        stored = profile.model_copy(update={"user_id": user_id})
        self._profiles[user_id] = stored
        return stored

    def get(self, user_id: str) -> HealthProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError(f"No health profile for user {user_id}")
        return profile

    def clear(self) -> None:
        self._profiles.clear()


_registry = HealthProfileRegistry()


def get_profile_registry() -> HealthProfileRegistry:
    return _registry

import logging

from db import ProfileRepository
from tools import NumberTools

logger = logging.getLogger(__name__)


class ProfileService:
    """Manage user profiles (display name, active group, goal weight)."""

    def __init__(self, repo: ProfileRepository) -> None:
        self.repo = repo

    def ensure_profile(self, user_id: str, display_name: str | None = None) -> dict:
        if not user_id or not str(user_id).strip():
            raise ValueError("user id required")
        if self.repo.fetch(user_id) is None:
            name = (display_name or "").strip() or None
            self.repo.create(user_id, name)
            logger.info("created profile for %s", user_id)
        return self.repo.fetch(user_id)

    def get(self, user_id: str) -> dict:
        profile = self.repo.fetch(user_id)
        if profile is None:
            raise ValueError("profile not found")
        return profile

    def set_display_name(self, user_id: str, name: str) -> None:
        clean = (name or "").strip()
        if len(clean) < 2:
            raise ValueError("display name must have at least 2 characters")
        self.ensure_profile(user_id)
        self.repo.set_display_name(user_id, clean)

    def set_active_group(self, user_id: str, group_id: int | None) -> None:
        self.ensure_profile(user_id)
        self.repo.set_active_group(user_id, group_id)

    def set_target_weight(self, user_id: str, weight_kg) -> None:
        value = NumberTools.parse_number_or_none(weight_kg)
        if value is not None and value <= 0:
            raise ValueError("target weight must be positive")
        self.ensure_profile(user_id)
        self.repo.set_target_weight(user_id, value)

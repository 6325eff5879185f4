"""Business settings and user profile records."""

import logging

from invoicing.database.base import Repository
from invoicing.domain.requests import BusinessSettingsUpdate
from invoicing.domain.schema import BusinessSettings, UserProfile, utcnow

logger = logging.getLogger(__name__)

SETTINGS_TABLE = "business_settings"
USERS_TABLE = "users"


class ProfileService:
    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    def get_business_settings(self, user_id: str) -> BusinessSettings:
        """Stored business settings, or empty defaults for a new account."""
        rows = self.repository.select(SETTINGS_TABLE, user_id=user_id)
        if not rows:
            return BusinessSettings(user_id=user_id)
        return BusinessSettings.model_validate(rows[0])

    def update_business_settings(
        self, user_id: str, update: BusinessSettingsUpdate
    ) -> BusinessSettings:
        current = self.get_business_settings(user_id)
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        merged = current.model_copy(update=changes)
        merged.updated_at = utcnow()
        row = self.repository.upsert(
            SETTINGS_TABLE, merged.model_dump(mode="json"), on_conflict="user_id"
        )
        logger.info(f"Saved business settings for user {user_id}")
        return BusinessSettings.model_validate(row)

    def set_logo(self, user_id: str, logo_url: str) -> BusinessSettings:
        return self.update_business_settings(user_id, BusinessSettingsUpdate(logo=logo_url))

    def ensure_profile(self, user_id: str, email: str = "", name: str = "") -> UserProfile:
        """Return the user's profile row, creating a free-plan row on first use."""
        row = self.repository.get(USERS_TABLE, user_id)
        if row is not None:
            return UserProfile.model_validate(row)
        profile = UserProfile(id=user_id, email=email, name=name)
        self.repository.insert(USERS_TABLE, profile.model_dump(mode="json"))
        logger.info(f"Created profile for user {user_id}")
        return profile

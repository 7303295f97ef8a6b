"""
Per-user alert preferences.

One AlertPreferences record per user, created on first access from
DEFAULT_PREFERENCE_SETTINGS. Updates replace the whole settings body
(last writer wins); contacts are edited by list index. All mutations for a
user are serialized through a per-user lock.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from alert_engine.domain.errors import NotFound, ValidationError, parse_model
from alert_engine.domain.models import (
    DEFAULT_PREFERENCE_SETTINGS,
    AlertPreferences,
    EmergencyContact,
    EmergencyContactInput,
    NotificationSummary,
    PreferenceSettings,
)
from alert_engine.observability import logger
from alert_engine.services.records import KeyedLocks, RecordStore, guarded


def default_email(user_id: str) -> str:
    return f"{user_id}@example.com"


class PreferenceRepository:
    """Read and mutate AlertPreferences through a RecordStore."""

    def __init__(self, store: RecordStore[AlertPreferences], locks: KeyedLocks | None = None) -> None:
        self.store = store
        self.locks = locks or KeyedLocks()
        self.logger = logger.bind(component="preference_repository")

    async def find(self, user_id: str) -> AlertPreferences | None:
        """Plain lookup; store failures propagate as StoreUnavailable."""
        return await guarded("preferences lookup", self.store.find_one(user_id))

    async def get_or_create_default(
        self, user_id: str, user_email: str | None = None
    ) -> AlertPreferences:
        async with self.locks.hold(user_id):
            existing = await self.find(user_id)
            if existing is not None:
                return existing

            prefs = AlertPreferences(
                user_id=user_id,
                user_email=user_email or default_email(user_id),
                settings=DEFAULT_PREFERENCE_SETTINGS.model_copy(deep=True),
            )
            await guarded("preferences insert", self.store.upsert(user_id, prefs))
            self.logger.info("default_preferences_created", user_id=user_id)
            return prefs

    async def replace(
        self,
        user_id: str,
        settings: PreferenceSettings | Mapping[str, Any],
        user_email: str | None = None,
    ) -> AlertPreferences:
        """Replace the whole settings body, creating the record if needed."""
        new_settings = parse_model(PreferenceSettings, settings, "preferences")

        async with self.locks.hold(user_id):
            existing = await self.find(user_id)
            now = datetime.now(UTC)
            prefs = AlertPreferences(
                user_id=user_id,
                user_email=user_email
                or (existing.user_email if existing else default_email(user_id)),
                settings=new_settings,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            await guarded("preferences update", self.store.upsert(user_id, prefs))

        self.logger.info(
            "preferences_updated",
            user_id=user_id,
            channels=[c.value for c in new_settings.channels.enabled()],
            quiet_hours=new_settings.quiet_hours.enabled,
            emergency_contacts=len(new_settings.emergency_contacts),
        )
        return prefs

    async def list_contacts(self, user_id: str) -> list[EmergencyContact]:
        prefs = await self.find(user_id)
        return list(prefs.settings.emergency_contacts) if prefs else []

    async def add_contact(
        self, user_id: str, contact: EmergencyContactInput | Mapping[str, Any]
    ) -> EmergencyContact:
        submitted = parse_model(EmergencyContactInput, contact, "emergency contact")

        async with self.locks.hold(user_id):
            prefs = await self.find(user_id)
            if prefs is None:
                raise NotFound("preferences", user_id)

            contacts = prefs.settings.emergency_contacts
            new_contact = EmergencyContact(
                name=submitted.name,
                phone=submitted.phone,
                email=submitted.email,
                relationship=submitted.relationship,
                priority=(
                    submitted.priority if submitted.priority is not None else len(contacts) + 1
                ),
                enabled=True,
            )
            updated = prefs.model_copy(
                update={
                    "settings": prefs.settings.model_copy(
                        update={"emergency_contacts": [*contacts, new_contact]}
                    ),
                    "updated_at": datetime.now(UTC),
                }
            )
            await guarded("preferences update", self.store.upsert(user_id, updated))

        self.logger.info("emergency_contact_added", user_id=user_id, priority=new_contact.priority)
        return new_contact

    async def remove_contact(self, user_id: str, index: int) -> EmergencyContact:
        async with self.locks.hold(user_id):
            prefs = await self.find(user_id)
            if prefs is None:
                raise NotFound("preferences", user_id)

            contacts = list(prefs.settings.emergency_contacts)
            if not 0 <= index < len(contacts):
                raise ValidationError(
                    f"Invalid contact index {index}; user has {len(contacts)} contacts"
                )

            removed = contacts.pop(index)
            updated = prefs.model_copy(
                update={
                    "settings": prefs.settings.model_copy(update={"emergency_contacts": contacts}),
                    "updated_at": datetime.now(UTC),
                }
            )
            await guarded("preferences update", self.store.upsert(user_id, updated))

        self.logger.info("emergency_contact_removed", user_id=user_id, index=index)
        return removed

    async def summary(self, user_id: str) -> NotificationSummary:
        prefs = await self.find(user_id)
        if prefs is None:
            return NotificationSummary()

        settings = prefs.settings
        return NotificationSummary(
            channels_enabled=len(settings.channels.enabled()),
            quiet_hours=settings.quiet_hours.enabled,
            quiet_hours_window=(
                settings.quiet_hours.window_text() if settings.quiet_hours.enabled else None
            ),
            emergency_contacts=len(settings.emergency_contacts),
            escalation_enabled=settings.escalation.enabled,
            escalation_delay_minutes=settings.escalation.delay_minutes,
        )

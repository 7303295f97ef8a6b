"""Tests for preference storage: lazy defaults, wholesale replace, contacts."""

import asyncio

import pytest
from conftest import FailingStore

from alert_engine.domain.errors import NotFound, StoreUnavailable, ValidationError
from alert_engine.domain.models import DEFAULT_PREFERENCE_SETTINGS, EmergencyContact
from alert_engine.services.preferences import PreferenceRepository
from alert_engine.services.records import InMemoryRecordStore


@pytest.fixture
def repository() -> PreferenceRepository:
    return PreferenceRepository(InMemoryRecordStore("preferences"))


class TestDefaults:
    async def test_first_access_creates_defaults(self, repository: PreferenceRepository) -> None:
        prefs = await repository.get_or_create_default("user-1")

        assert prefs.user_email == "user-1@example.com"
        assert prefs.settings == DEFAULT_PREFERENCE_SETTINGS
        assert await repository.find("user-1") == prefs

    async def test_second_access_returns_stored_record(
        self, repository: PreferenceRepository
    ) -> None:
        first = await repository.get_or_create_default("user-1", "carer@example.com")
        second = await repository.get_or_create_default("user-1", "other@example.com")

        assert second.user_email == "carer@example.com"
        assert second.created_at == first.created_at

    async def test_concurrent_first_access_creates_one_record(
        self, repository: PreferenceRepository
    ) -> None:
        results = await asyncio.gather(
            *(repository.get_or_create_default("user-1", f"{i}@example.com") for i in range(5))
        )

        assert len({r.user_email for r in results}) == 1
        assert await repository.store.count_documents() == 1

    async def test_defaults_are_not_shared_between_users(
        self, repository: PreferenceRepository
    ) -> None:
        await repository.get_or_create_default("user-1")
        await repository.add_contact("user-1", {"name": "Ana", "phone": "+63 900 000 0001"})

        other = await repository.get_or_create_default("user-2")

        assert other.settings.emergency_contacts == []
        assert DEFAULT_PREFERENCE_SETTINGS.emergency_contacts == []


class TestReplace:
    async def test_replace_is_wholesale(self, repository: PreferenceRepository) -> None:
        await repository.get_or_create_default("user-1")
        await repository.add_contact("user-1", {"name": "Ana", "phone": "1"})

        updated = await repository.replace(
            "user-1",
            {
                "channels": {"push_notifications": True, "sms": False, "email": False},
                "quiet_hours": {"enabled": True, "start_time": "21:30", "end_time": "06:00"},
            },
        )

        # Fields not sent fall back to their defaults; nothing is merged
        assert updated.settings.emergency_contacts == []
        assert updated.settings.channels.sms is False
        assert updated.settings.quiet_hours.enabled is True
        assert updated.user_email == "user-1@example.com"

    async def test_replace_rejects_malformed_settings(
        self, repository: PreferenceRepository
    ) -> None:
        await repository.get_or_create_default("user-1")

        with pytest.raises(ValidationError, match="escalation"):
            await repository.replace("user-1", {"escalation": {"delay_minutes": -1}})

        assert (await repository.find("user-1")).settings == DEFAULT_PREFERENCE_SETTINGS

    async def test_replace_creates_missing_record(self, repository: PreferenceRepository) -> None:
        prefs = await repository.replace("new-user", {}, user_email="new@example.com")
        assert prefs.user_email == "new@example.com"
        assert prefs.settings == DEFAULT_PREFERENCE_SETTINGS


class TestContacts:
    async def test_add_contact_defaults(self, repository: PreferenceRepository) -> None:
        await repository.get_or_create_default("user-1")

        first = await repository.add_contact("user-1", {"name": "Ana", "phone": "1"})
        second = await repository.add_contact(
            "user-1", {"name": "Ben", "phone": "2", "relationship": "Son"}
        )

        assert first == EmergencyContact(name="Ana", phone="1", priority=1)
        assert second.priority == 2
        assert second.relationship == "Son"
        assert [c.name for c in await repository.list_contacts("user-1")] == ["Ana", "Ben"]

    async def test_add_contact_requires_preferences(
        self, repository: PreferenceRepository
    ) -> None:
        with pytest.raises(NotFound):
            await repository.add_contact("ghost", {"name": "Ana", "phone": "1"})

    async def test_add_contact_requires_name_and_phone(
        self, repository: PreferenceRepository
    ) -> None:
        await repository.get_or_create_default("user-1")

        with pytest.raises(ValidationError):
            await repository.add_contact("user-1", {"name": "Ana"})

    async def test_remove_contact_by_index(self, repository: PreferenceRepository) -> None:
        await repository.get_or_create_default("user-1")
        for name in ("Ana", "Ben", "Cy"):
            await repository.add_contact("user-1", {"name": name, "phone": name})

        removed = await repository.remove_contact("user-1", 1)

        assert removed.name == "Ben"
        assert [c.name for c in await repository.list_contacts("user-1")] == ["Ana", "Cy"]

    @pytest.mark.parametrize("index", [-1, 1, 5])
    async def test_remove_contact_out_of_range(
        self, repository: PreferenceRepository, index: int
    ) -> None:
        await repository.get_or_create_default("user-1")
        await repository.add_contact("user-1", {"name": "Ana", "phone": "1"})

        with pytest.raises(ValidationError, match="Invalid contact index"):
            await repository.remove_contact("user-1", index)

        assert len(await repository.list_contacts("user-1")) == 1

    async def test_unknown_user_has_no_contacts(self, repository: PreferenceRepository) -> None:
        assert await repository.list_contacts("ghost") == []

    async def test_contacts_by_priority_keeps_insertion_order_on_ties(
        self, repository: PreferenceRepository
    ) -> None:
        await repository.get_or_create_default("user-1")
        await repository.add_contact("user-1", {"name": "Late", "phone": "1", "priority": 2})
        await repository.add_contact("user-1", {"name": "First", "phone": "2", "priority": 1})
        await repository.add_contact("user-1", {"name": "Second", "phone": "3", "priority": 1})

        prefs = await repository.find("user-1")

        assert [c.name for c in prefs.settings.contacts_by_priority()] == [
            "First",
            "Second",
            "Late",
        ]


class TestSummary:
    async def test_summary_for_unknown_user(self, repository: PreferenceRepository) -> None:
        summary = await repository.summary("ghost")
        assert summary.channels_enabled == 0
        assert summary.escalation_enabled is False

    async def test_summary_reports_window(self, repository: PreferenceRepository) -> None:
        await repository.replace(
            "user-1", {"quiet_hours": {"enabled": True, "start_time": "22:00", "end_time": "07:00"}}
        )

        summary = await repository.summary("user-1")

        assert summary.channels_enabled == 3
        assert summary.quiet_hours_window == "22:00 - 07:00"
        assert summary.escalation_delay_minutes == 5


async def test_store_failure_surfaces_on_writes() -> None:
    repository = PreferenceRepository(FailingStore())

    with pytest.raises(StoreUnavailable):
        await repository.get_or_create_default("user-1")

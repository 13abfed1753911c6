"""
Tests for UserService and preference merging.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from chatapp.exceptions import ConflictError
from chatapp.services.users import UserService, merge_preferences
from tests.conftest import make_result


class TestMergePreferences:
    """Shallow merge semantics."""

    def test_top_level_keys_replaced(self):
        current = {"theme": "light", "notifications": {"email": True, "push": True}}

        merged = merge_preferences(current, {"theme": "dark"})

        assert merged == {"theme": "dark", "notifications": {"email": True, "push": True}}

    def test_nested_dict_replaced_whole(self):
        current = {"theme": "light", "notifications": {"email": True, "push": True}}

        merged = merge_preferences(current, {"notifications": {"email": False}})

        assert merged["notifications"] == {"email": False}

    def test_does_not_mutate_input(self):
        current = {"theme": "light"}

        merge_preferences(current, {"theme": "dark"})

        assert current == {"theme": "light"}


class TestUpdateProfile:
    """Username change and preference update."""

    async def test_rename(self, db_session: AsyncMock, active_user: MagicMock):
        service = UserService(db_session)

        user = await service.update_profile(active_user, username="alice2")

        assert user.username == "alice2"
        db_session.commit.assert_awaited_once()

    async def test_same_username_skips_lookup(self, db_session: AsyncMock, active_user: MagicMock):
        service = UserService(db_session)

        await service.update_profile(active_user, username=active_user.username)

        db_session.execute.assert_not_awaited()

    async def test_taken_username(self, db_session: AsyncMock, active_user: MagicMock):
        db_session.execute = AsyncMock(return_value=make_result(scalar=uuid4()))
        service = UserService(db_session)

        with pytest.raises(ConflictError) as exc_info:
            await service.update_profile(active_user, username="bob")

        assert exc_info.value.code == "USERNAME_TAKEN"
        assert exc_info.value.status_code == 409
        assert active_user.username == "alice"
        db_session.commit.assert_not_awaited()

    async def test_unique_race_on_commit(self, db_session: AsyncMock, active_user: MagicMock):
        db_session.commit = AsyncMock(side_effect=IntegrityError("UPDATE", {}, Exception("dup")))
        service = UserService(db_session)

        with pytest.raises(ConflictError):
            await service.update_profile(active_user, username="bob")

        db_session.rollback.assert_awaited_once()

    async def test_preferences_merged(self, db_session: AsyncMock, active_user: MagicMock):
        service = UserService(db_session)

        user = await service.update_profile(active_user, preferences={"theme": "dark"})

        assert user.preferences["theme"] == "dark"
        assert user.preferences["notifications"] == {"email": True, "push": True}


class TestGetStats:
    """Dashboard counters."""

    async def test_counts(self, db_session: AsyncMock, active_user: MagicMock):
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(scalar_one=3),
                make_result(scalar_one=40),
                make_result(scalar_one=2),
            ]
        )
        service = UserService(db_session)

        stats = await service.get_stats(active_user)

        assert stats.conversations == 3
        assert stats.messages == 40
        assert stats.unread_notifications == 2
        assert stats.credits == active_user.credits
        assert stats.plan == "free"
        assert stats.model_dump(by_alias=True)["unreadNotifications"] == 2

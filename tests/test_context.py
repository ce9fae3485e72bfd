"""
Tests for context-scoped manager access.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from alerting.alerts.manager import AlertManager
from alerting.context import get_manager, reset_manager, set_manager, use_manager


class TestManagerContext:
    """Tests for binding the manager to a context."""

    def test_default_is_none(self):
        assert get_manager() is None

    def test_set_and_reset(self):
        manager = MagicMock(spec=AlertManager)
        token = set_manager(manager)
        assert get_manager() is manager
        reset_manager(token)
        assert get_manager() is None

    def test_use_manager_restores_previous(self):
        outer = MagicMock(spec=AlertManager)
        inner = MagicMock(spec=AlertManager)
        with use_manager(outer):
            with use_manager(inner):
                assert get_manager() is inner
            assert get_manager() is outer
        assert get_manager() is None

    @pytest.mark.asyncio
    async def test_tasks_see_their_own_manager(self):
        """Concurrent tasks bound to different managers do not interfere."""
        first = MagicMock(spec=AlertManager)
        second = MagicMock(spec=AlertManager)

        async def run(manager):
            with use_manager(manager):
                await asyncio.sleep(0)
                return get_manager()

        results = await asyncio.gather(run(first), run(second))
        assert results == [first, second]

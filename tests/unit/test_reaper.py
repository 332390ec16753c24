"""Tests for idle sandbox reaping."""

import asyncio

import pytest

from sandshell.core.reaper import SandboxReaper
from sandshell.lib.errors import AttachError, ProviderError


async def _idle_session(lifecycle, session_id):
    handle = await lifecycle.get_or_create(session_id)
    lifecycle.registry.mark_detached(session_id)
    lifecycle.registry.get(session_id).last_active = 0.0
    return handle


class TestSweep:
    @pytest.mark.asyncio
    async def test_removes_idle_detached_sandboxes(self, lifecycle, fake_provider):
        handle = await _idle_session(lifecycle, "alice")
        reaper = SandboxReaper(lifecycle, idle_timeout=60)

        reaped = await reaper.sweep()

        assert reaped == ["alice"]
        assert fake_provider.removed == [handle.sandbox_id]
        assert "alice" not in lifecycle.registry

    @pytest.mark.asyncio
    async def test_keeps_attached_sandboxes(self, lifecycle, fake_provider):
        await _idle_session(lifecycle, "alice")
        lifecycle.registry.get("alice").attachments = 1
        reaper = SandboxReaper(lifecycle, idle_timeout=60)

        assert await reaper.sweep() == []
        assert fake_provider.removed == []

    @pytest.mark.asyncio
    async def test_keeps_recently_active_sandboxes(self, lifecycle, fake_provider):
        await lifecycle.get_or_create("alice")
        lifecycle.registry.mark_detached("alice")
        reaper = SandboxReaper(lifecycle, idle_timeout=60)

        assert await reaper.sweep() == []
        assert "alice" in lifecycle.registry

    @pytest.mark.asyncio
    async def test_remove_failure_keeps_entry(self, lifecycle, fake_provider):
        await _idle_session(lifecycle, "alice")
        fake_provider.fail_remove = ProviderError("daemon down")
        reaper = SandboxReaper(lifecycle, idle_timeout=60)

        assert await reaper.sweep() == []
        assert "alice" in lifecycle.registry


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_disabled_by_default(self, lifecycle):
        reaper = SandboxReaper(lifecycle, idle_timeout=0)
        reaper.start()

        assert not reaper.enabled
        assert reaper._task is None
        await reaper.stop()

    @pytest.mark.asyncio
    async def test_background_loop_reaps(self, lifecycle, fake_provider):
        await _idle_session(lifecycle, "alice")
        reaper = SandboxReaper(lifecycle, idle_timeout=60, interval=0.01)

        reaper.start()
        try:
            for _ in range(100):
                if "alice" not in lifecycle.registry:
                    break
                await asyncio.sleep(0.01)
        finally:
            await reaper.stop()

        assert "alice" not in lifecycle.registry
        assert reaper._task is None


class TestReconnectRace:
    @pytest.mark.asyncio
    async def test_reconnect_in_progress_is_not_reaped(self, lifecycle, fake_provider):
        handle = await _idle_session(lifecycle, "alice")
        fake_provider.attach_gate = asyncio.Event()

        async def reconnect():
            reused = await lifecycle.get_or_create("alice")
            try:
                return await lifecycle.attach(reused)
            finally:
                lifecycle.registry.mark_detached("alice")

        task = asyncio.create_task(reconnect())
        for _ in range(100):
            if lifecycle.registry.get("alice").attachments:
                break
            await asyncio.sleep(0)

        reaped = await SandboxReaper(lifecycle, idle_timeout=60).sweep()
        fake_provider.attach_gate.set()
        stream = await task

        assert reaped == []
        assert fake_provider.removed == []
        assert stream is fake_provider.streams[0]
        assert fake_provider.sandboxes[handle.sandbox_id].running

    @pytest.mark.asyncio
    async def test_failed_attach_leaves_session_reapable(self, lifecycle, fake_provider):
        await _idle_session(lifecycle, "alice")
        fake_provider.fail_attach = ProviderError("attach refused")

        handle = await lifecycle.get_or_create("alice")
        try:
            with pytest.raises(AttachError):
                await lifecycle.attach(handle)
        finally:
            lifecycle.registry.mark_detached("alice")

        assert lifecycle.registry.get("alice").attachments == 0

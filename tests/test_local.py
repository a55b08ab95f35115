"""
Tests for the filesystem primitives: name codec, file operations and
per-key locking.
"""

import asyncio

import pytest

from auth_state_storage.exceptions import ConfigurationError
from auth_state_storage.local import (
    KeyedLock,
    ensure_directory,
    fix_file_name,
    read_text,
    remove_file,
    write_text_atomic,
)


class TestFixFileName:
    """Tests for record name sanitizing."""

    def test_slash_replaced(self):
        """Path separators become double underscores."""
        assert fix_file_name("sender-key-group/123.json") == "sender-key-group__123.json"

    def test_colon_replaced(self):
        """Colons become dashes."""
        assert fix_file_name("session-123:4@s.whatsapp.net.0.json") == (
            "session-123-4@s.whatsapp.net.0.json"
        )

    def test_plain_name_unchanged(self):
        """Names without special characters pass through."""
        assert fix_file_name("creds.json") == "creds.json"

    def test_deterministic(self):
        """Same input always maps to the same name."""
        assert fix_file_name("a/b:c") == fix_file_name("a/b:c")


class TestEnsureDirectory:
    """Tests for folder setup."""

    @pytest.mark.asyncio
    async def test_creates_nested(self, temp_dir):
        """Missing directories are created with parents."""
        target = temp_dir / "a" / "b" / "c"
        assert await ensure_directory(target) is True
        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_existing_directory(self, temp_dir):
        """An existing directory is reused."""
        assert await ensure_directory(temp_dir) is False

    @pytest.mark.asyncio
    async def test_file_in_the_way(self, temp_dir):
        """A regular file at the path is a configuration error naming it."""
        target = temp_dir / "not-a-dir"
        target.write_text("x")

        with pytest.raises(ConfigurationError) as exc_info:
            await ensure_directory(target)

        assert exc_info.value.path == str(target)
        assert str(target) in exc_info.value.message

    @pytest.mark.asyncio
    async def test_file_as_parent(self, temp_dir):
        """A regular file among the parents is a configuration error."""
        blocker = temp_dir / "blocker"
        blocker.write_text("x")

        with pytest.raises(ConfigurationError):
            await ensure_directory(blocker / "child")


class TestFileOperations:
    """Tests for read, atomic write and remove."""

    @pytest.mark.asyncio
    async def test_read_missing(self, temp_dir):
        """Reading a missing file returns None."""
        assert await read_text(temp_dir / "missing.json") is None

    @pytest.mark.asyncio
    async def test_write_then_read(self, temp_dir):
        """Written text reads back."""
        path = temp_dir / "record.json"
        await write_text_atomic(path, '{"a":1}')
        assert await read_text(path) == '{"a":1}'

    @pytest.mark.asyncio
    async def test_write_replaces_and_leaves_no_temp(self, temp_dir):
        """Overwriting replaces contents and cleans up temp files."""
        path = temp_dir / "record.json"
        await write_text_atomic(path, "a much longer first version")
        await write_text_atomic(path, "short")

        assert path.read_text() == "short"
        assert [p.name for p in temp_dir.iterdir()] == ["record.json"]

    @pytest.mark.asyncio
    async def test_remove_twice(self, temp_dir):
        """Removing an absent file reports False without raising."""
        path = temp_dir / "record.json"
        path.write_text("x")

        assert await remove_file(path) is True
        assert await remove_file(path) is False
        assert not path.exists()


class TestKeyedLock:
    """Tests for per-key mutual exclusion."""

    @pytest.mark.asyncio
    async def test_same_key_serialized_in_order(self):
        """Holders of one key never overlap and run in request order."""
        lock = KeyedLock()
        order: list[int] = []
        active = 0
        max_active = 0

        async def worker(i: int) -> None:
            nonlocal active, max_active
            async with lock.acquire("path"):
                active += 1
                max_active = max(max_active, active)
                await asyncio.sleep(0)
                order.append(i)
                active -= 1

        await asyncio.gather(*(worker(i) for i in range(10)))

        assert max_active == 1
        assert order == list(range(10))

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        """A held key does not delay another key."""
        lock = KeyedLock()
        holding = asyncio.Event()
        release = asyncio.Event()

        async def hold() -> None:
            async with lock.acquire("a"):
                holding.set()
                await release.wait()

        task = asyncio.create_task(hold())
        await holding.wait()

        async def other() -> bool:
            async with lock.acquire("b"):
                return lock.locked("a")

        assert await asyncio.wait_for(other(), timeout=1) is True
        release.set()
        await task

    @pytest.mark.asyncio
    async def test_entries_evicted_when_idle(self):
        """The lock map only holds keys with work in flight."""
        lock = KeyedLock()

        async with lock.acquire("a"):
            assert "a" in lock
            assert len(lock) == 1

        assert "a" not in lock
        assert len(lock) == 0

    @pytest.mark.asyncio
    async def test_entry_released_after_error(self):
        """An exception inside the block still releases the key."""
        lock = KeyedLock()

        with pytest.raises(RuntimeError):
            async with lock.acquire("a"):
                raise RuntimeError("boom")

        assert len(lock) == 0
        assert lock.locked("a") is False

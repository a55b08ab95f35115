"""
Tests for the directory record store.

Uses real temporary directories.
"""

import asyncio
import shutil

import pytest

from auth_state_storage.backends.files import FileConfig, FileRecordStore
from auth_state_storage.exceptions import ConfigurationError, StorageIOError
from auth_state_storage.local import KeyedLock, file_locks
from auth_state_storage.types import FailurePolicy

SECRET = "s3cret-passphrase"

RECORD = {
    "public": b"\x05" + bytes(range(32)),
    "private": bytes(range(32, 64)),
    "nested": {"ids": [1, 2, 3], "blob": b"\x00\xff"},
}


@pytest.fixture
async def file_store(temp_dir):
    """Initialized plain directory store."""
    store = await FileRecordStore.create(FileConfig(folder=temp_dir / "auth"))
    yield store
    await store.close()


@pytest.fixture
async def encrypted_store(temp_dir):
    """Initialized encrypted directory store."""
    store = await FileRecordStore.create(
        FileConfig(folder=temp_dir / "auth", encryption_key=SECRET)
    )
    yield store
    await store.close()


class TestFileStoreInitialization:
    """Tests for folder setup."""

    @pytest.mark.asyncio
    async def test_creates_missing_folder(self, temp_dir):
        """A missing folder is created on initialize."""
        folder = temp_dir / "nested" / "auth"
        store = await FileRecordStore.create(FileConfig(folder=folder))
        assert folder.is_dir()
        assert store.initialized is True

    @pytest.mark.asyncio
    async def test_reuses_existing_folder(self, temp_dir):
        """An existing folder and its records are kept."""
        (temp_dir / "creds.json").write_text('{"registered":true}')
        store = await FileRecordStore.create(FileConfig(folder=temp_dir))
        assert await store.read("creds") == {"registered": True}

    @pytest.mark.asyncio
    async def test_file_at_folder_path(self, temp_dir):
        """A regular file where the folder should be is a configuration error."""
        blocker = temp_dir / "auth"
        blocker.write_text("not a directory")

        store = FileRecordStore(FileConfig(folder=blocker))
        with pytest.raises(ConfigurationError) as exc_info:
            await store.initialize()

        assert "not a directory" in str(exc_info.value)
        assert blocker.read_text() == "not a directory"

    def test_empty_folder_rejected(self):
        """An empty folder path is rejected at construction."""
        with pytest.raises(ConfigurationError):
            FileRecordStore(FileConfig(folder=""))

    def test_config_repr_hides_secret(self, temp_dir):
        """The encryption secret does not appear in the config repr."""
        config = FileConfig(folder=temp_dir, encryption_key=SECRET)
        assert SECRET not in repr(config)

    def test_from_env(self, monkeypatch, temp_dir):
        """Configuration can come from the environment."""
        monkeypatch.setenv("AUTH_STATE_FOLDER", str(temp_dir))
        monkeypatch.setenv("AUTH_STATE_ENCRYPTION_KEY", SECRET)
        monkeypatch.setenv("AUTH_STATE_AUTHENTICATED_ENCRYPTION", "true")
        monkeypatch.setenv("AUTH_STATE_FAILURE_POLICY", "best_effort")

        config = FileConfig.from_env()

        assert config.folder == str(temp_dir)
        assert config.encryption_key == SECRET
        assert config.authenticated_encryption is True
        assert config.failure_policy is FailurePolicy.BEST_EFFORT

    def test_from_env_requires_folder(self, monkeypatch):
        """A missing AUTH_STATE_FOLDER is a configuration error."""
        monkeypatch.delenv("AUTH_STATE_FOLDER", raising=False)
        with pytest.raises(ConfigurationError):
            FileConfig.from_env()


class TestFileStoreRecords:
    """Tests for plain record operations."""

    @pytest.mark.asyncio
    async def test_round_trip(self, file_store):
        """Binary fields survive write and read."""
        await file_store.write("session-abc", RECORD)
        assert await file_store.read("session-abc") == RECORD

    @pytest.mark.asyncio
    async def test_absent_record(self, file_store):
        """Reading a record that was never written returns None."""
        assert await file_store.read("pre-key-404") is None

    @pytest.mark.asyncio
    async def test_overwrite(self, file_store):
        """A second write fully replaces the first."""
        await file_store.write("pre-key-1", {"a": 1, "b": 2})
        await file_store.write("pre-key-1", {"c": 3})
        assert await file_store.read("pre-key-1") == {"c": 3}

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, file_store):
        """Removing twice succeeds and leaves no record."""
        await file_store.write("pre-key-1", {"a": 1})
        await file_store.remove("pre-key-1")
        await file_store.remove("pre-key-1")
        assert await file_store.read("pre-key-1") is None
        assert not file_store.path_for("pre-key-1").exists()

    @pytest.mark.asyncio
    async def test_file_naming(self, file_store):
        """Record keys map to sanitized file names inside the folder."""
        await file_store.write("creds", {"registered": False})
        await file_store.write("session-123:4@s.whatsapp.net.0", {"s": 1})
        await file_store.write("sender-key-group/123", {"k": 1})

        names = sorted(p.name for p in file_store.folder.iterdir())
        assert names == [
            "creds.json",
            "sender-key-group__123.json",
            "session-123-4@s.whatsapp.net.0.json",
        ]

    @pytest.mark.asyncio
    async def test_plain_file_is_json_text(self, file_store):
        """Without a secret the file holds buffer-tagged JSON."""
        await file_store.write("pre-key-1", {"k": b"\x01"})
        text = file_store.path_for("pre-key-1").read_text()
        assert text == '{"k":{"type":"Buffer","data":"AQ=="}}'

    @pytest.mark.asyncio
    async def test_corrupt_file_reads_as_absent(self, file_store):
        """A file that is not JSON reads as None."""
        file_store.path_for("pre-key-1").write_text("{not json")
        assert await file_store.read("pre-key-1") is None

    @pytest.mark.asyncio
    async def test_unserializable_value_surfaces(self, file_store):
        """A value the codec cannot encode fails the write."""
        with pytest.raises(TypeError):
            await file_store.write("pre-key-1", {"bad": object()})
        assert not file_store.path_for("pre-key-1").exists()


class TestFileStoreEncryption:
    """Tests for encrypted records."""

    @pytest.mark.asyncio
    async def test_round_trip(self, encrypted_store):
        """Encrypted records read back identically."""
        await encrypted_store.write("session-abc", RECORD)
        assert await encrypted_store.read("session-abc") == RECORD

    @pytest.mark.asyncio
    async def test_plaintext_not_on_disk(self, encrypted_store):
        """The file holds no recognizable plaintext."""
        await encrypted_store.write("creds", {"marker": "very-recognizable-value"})
        raw = encrypted_store.path_for("creds").read_text()
        assert "very-recognizable-value" not in raw
        assert "marker" not in raw

    @pytest.mark.asyncio
    async def test_wrong_secret_reads_as_absent(self, encrypted_store, temp_dir):
        """A store opened with another secret sees no record."""
        await encrypted_store.write("creds", {"registered": True})

        other = await FileRecordStore.create(
            FileConfig(folder=temp_dir / "auth", encryption_key="another secret")
        )
        assert await other.read("creds") is None

    @pytest.mark.asyncio
    async def test_plain_store_cannot_read_envelope(self, encrypted_store, temp_dir):
        """A store without a secret sees encrypted records as absent."""
        await encrypted_store.write("creds", {"registered": True})

        plain = await FileRecordStore.create(FileConfig(folder=temp_dir / "auth"))
        assert await plain.read("creds") is None

    @pytest.mark.asyncio
    async def test_authenticated_round_trip(self, temp_dir):
        """AES-GCM envelopes round trip through the store."""
        store = await FileRecordStore.create(
            FileConfig(folder=temp_dir, encryption_key=SECRET, authenticated_encryption=True)
        )
        await store.write("pre-key-7", RECORD)
        assert await store.read("pre-key-7") == RECORD


class TestFileStoreConcurrency:
    """Tests for per-path mutual exclusion."""

    @pytest.mark.asyncio
    async def test_concurrent_writes_last_wins(self, encrypted_store):
        """Concurrent writes to one record end with the last call's value."""
        values = [{"version": i, "blob": bytes([i]) * 64} for i in range(20)]

        await asyncio.gather(*(encrypted_store.write("session-x", v) for v in values))

        assert await encrypted_store.read("session-x") == values[-1]
        leftovers = [p.name for p in encrypted_store.folder.iterdir()]
        assert leftovers == ["session-x.json"]

    @pytest.mark.asyncio
    async def test_reads_interleaved_with_writes_are_whole(self, file_store):
        """Readers racing writers always see a complete record."""
        values = [{"version": i, "pad": "x" * 4096} for i in range(10)]
        await file_store.write("session-y", values[0])

        results = await asyncio.gather(
            *(
                op
                for v in values
                for op in (file_store.write("session-y", v), file_store.read("session-y"))
            )
        )

        reads = [r for r in results if r is not None]
        assert reads
        assert all(r in values for r in reads)

    @pytest.mark.asyncio
    async def test_lock_map_empties(self, file_store):
        """No lock entries remain once operations finish."""
        await asyncio.gather(*(file_store.write(f"pre-key-{i}", {"i": i}) for i in range(5)))
        await asyncio.gather(*(file_store.remove(f"pre-key-{i}") for i in range(5)))
        assert len(file_locks) == 0

    @pytest.mark.asyncio
    async def test_stores_share_path_locks(self, temp_dir):
        """Two stores on the same folder contend on the same path keys."""
        locks = KeyedLock()
        first = FileRecordStore(FileConfig(folder=temp_dir), locks=locks)
        second = FileRecordStore(FileConfig(folder=temp_dir), locks=locks)
        await first.initialize()
        await second.initialize()

        path_key = str(first.path_for("creds").absolute())
        async with locks.acquire(path_key):
            pending = asyncio.create_task(second.write("creds", {"n": 1}))
            await asyncio.sleep(0.01)
            assert not pending.done()

        await pending
        assert await first.read("creds") == {"n": 1}


class TestFileStoreFailurePolicy:
    """Tests for write/remove failure handling."""

    @pytest.mark.asyncio
    async def test_surface_raises(self, temp_dir):
        """Under SURFACE a failed write raises StorageIOError."""
        folder = temp_dir / "auth"
        store = await FileRecordStore.create(FileConfig(folder=folder))
        shutil.rmtree(folder)

        with pytest.raises(StorageIOError):
            await store.write("pre-key-1", {"a": 1})

    @pytest.mark.asyncio
    async def test_best_effort_continues(self, temp_dir, caplog):
        """Under BEST_EFFORT a failed write is logged and dropped."""
        folder = temp_dir / "auth"
        store = await FileRecordStore.create(
            FileConfig(folder=folder, failure_policy=FailurePolicy.BEST_EFFORT)
        )
        shutil.rmtree(folder)

        await store.write("pre-key-1", {"a": 1})

        assert "Record write failed, continuing" in caplog.text

    @pytest.mark.asyncio
    async def test_unreadable_path_reads_as_absent(self, file_store):
        """A directory sitting at a record path reads as None under either policy."""
        file_store.path_for("pre-key-1").mkdir()
        assert await file_store.read("pre-key-1") is None

    @pytest.mark.asyncio
    async def test_remove_of_directory_surfaces(self, file_store):
        """Removal failures other than a missing file surface."""
        file_store.path_for("pre-key-1").mkdir()
        with pytest.raises(StorageIOError):
            await file_store.remove("pre-key-1")

    @pytest.mark.asyncio
    async def test_uninitialized_store_write_fails(self, temp_dir):
        """Writing before initialize is a storage error."""
        store = FileRecordStore(FileConfig(folder=temp_dir))
        with pytest.raises(StorageIOError):
            await store.write("pre-key-1", {"a": 1})

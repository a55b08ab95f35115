"""
File operations for the directory record store.

Provides:
- Record name sanitizing (path separators and colons never reach the filesystem)
- Folder setup that refuses to reuse a non-directory path
- Atomic writes using temp file + fsync + replace
- Reads and removals that treat a missing file as "no record"
"""

import os
import stat
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import ConfigurationError, StorageIOError


def fix_file_name(name: str) -> str:
    """Map a record name to a file name.

    ``/`` becomes ``__`` and ``:`` becomes ``-``. Pure function; no escaping
    beyond these two substitutions.
    """
    return name.replace("/", "__").replace(":", "-")


async def ensure_directory(path: Path) -> bool:
    """Ensure a directory exists at ``path``, creating parents as needed.

    Args:
        path: Directory path

    Returns:
        True if the directory was created, False if it already existed

    Raises:
        ConfigurationError: Something other than a directory exists at ``path``
        StorageIOError: The directory could not be created
    """
    try:
        info = await aiofiles.os.stat(path)
    except FileNotFoundError:
        info = None
    except NotADirectoryError as e:
        raise ConfigurationError(
            f"cannot create directory at {path}: a parent path is not a directory",
            field="folder",
            path=str(path),
        ) from e
    except OSError as e:
        raise StorageIOError("stat_directory", str(path), e) from e

    if info is not None:
        if not stat.S_ISDIR(info.st_mode):
            raise ConfigurationError(
                f"found something that is not a directory at {path}, "
                "either delete it or specify a different location",
                field="folder",
                path=str(path),
            )
        return False

    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except (FileExistsError, NotADirectoryError) as e:
        raise ConfigurationError(
            f"cannot create directory at {path}: a parent path is not a directory",
            field="folder",
            path=str(path),
        ) from e
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e
    return True


async def read_text(path: Path) -> str | None:
    """Read a whole file as UTF-8 text.

    Returns:
        File contents, or None if the file does not exist
    """
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            return await f.read()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        raise StorageIOError("read", str(path), e) from e


async def write_text_atomic(path: Path, text: str) -> None:
    """Replace a file's contents atomically using temp file + replace.

    Readers see either the previous contents or the new ones, never a
    partial write.
    """
    try:
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".tmp_",
            suffix=path.suffix,
        )
    except OSError as e:
        raise StorageIOError("write", str(path), e) from e

    try:
        os.close(fd)
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(text)
            await f.flush()
            os.fsync(f.fileno())

        await aiofiles.os.replace(temp_path, path)
    except Exception as e:
        try:
            await aiofiles.os.remove(temp_path)
        except OSError:
            pass
        raise StorageIOError("write", str(path), e) from e


async def remove_file(path: Path) -> bool:
    """Remove a file if it exists.

    Returns:
        True if the file was removed, False if it did not exist
    """
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageIOError("remove", str(path), e) from e

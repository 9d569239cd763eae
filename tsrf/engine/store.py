"""JSON document I/O for manifests, configs and build artifacts.

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the same directory,
then renamed to the target path, so the compiler and editors never observe a
half-written ``package.json`` or ``tsconfig.json``.

The compiler does not extend the same courtesy to its build artifact, which
is why ``read_json_retrying`` exists: a read may land in the middle of a
write and see truncated JSON.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from functools import partial
from pathlib import Path
from typing import Any

import anyio
from anyio import to_thread
from loguru import logger

BACKOFF_FACTOR = 1.6


class ReadFailure(OSError):
    """A document could not be read and parsed within the retry bound."""

    def __init__(self, path: str | Path, attempts: int, cause: BaseException) -> None:
        super().__init__(f"Failed to read {path} after {attempts} attempts: {cause}")
        self.path = str(path)
        self.attempts = attempts
        self.cause = cause


# -- Read ----------------------------------------------------------------------


async def read_json(path: str | Path) -> Any:
    """Read and parse a JSON document.

    Raises ``FileNotFoundError`` if missing and ``json.JSONDecodeError`` if
    the content is not valid JSON.
    """
    raw = await to_thread.run_sync(partial(_read_file, Path(path)))
    return json.loads(raw)


async def read_json_retrying(path: str | Path, max_attempts: int = 50, base_delay: float = 0.01) -> Any:
    """Read a JSON document, retrying torn or missing reads with backoff.

    Attempt ``n`` (0-based) that fails waits ``base_delay * 1.6 ** n``
    seconds before the next one.  After *max_attempts* consecutive failures
    the last error is wrapped in ``ReadFailure``.
    """
    attempt = 0
    while True:
        try:
            return await read_json(path)
        except (OSError, ValueError) as exc:
            attempt += 1
            if attempt >= max_attempts:
                raise ReadFailure(path, attempt, exc) from exc
            delay = base_delay * BACKOFF_FACTOR ** (attempt - 1)
            logger.trace("Retrying read of {} in {:.3f}s ({})", path, delay, exc)
            await anyio.sleep(delay)


# -- Write ---------------------------------------------------------------------


def dump_json(document: Any) -> str:
    """Serialize a document the way it is stored on disk."""
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


async def write_json(path: str | Path, document: Any) -> None:
    await to_thread.run_sync(partial(_atomic_write, Path(path), dump_json(document)))


# -- Utilities -----------------------------------------------------------------


async def exists(path: str | Path) -> bool:
    return await to_thread.run_sync(Path(path).exists)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write data atomically: temp file + rename.

    Ensures readers never see a partially-written file.  The temp file is
    created in the same directory so ``os.replace`` is atomic on POSIX.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _target_mode(path)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on any failure.
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _target_mode(path: Path) -> int:
    """Keep the permissions of the file being replaced (mkstemp creates 0600)."""
    try:
        return path.stat().st_mode & 0o777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def _read_file(path: Path) -> str:
    """Read file contents.  Raises ``FileNotFoundError`` if missing."""
    return path.read_text(encoding="utf-8")

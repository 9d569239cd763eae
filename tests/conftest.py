"""Shared test fixtures: temporary project trees.

Every test works on a throwaway project under ``tmp_path``; nothing here
needs ``tsc`` or a real filesystem watcher.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from loguru import logger

from tsrf.engine.settings import SyncOptions, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def options(tmp_path: Path) -> SyncOptions:
    """Engine options for a project rooted at ``tmp_path``, with fast artifact retries."""
    return SyncOptions(root=tmp_path, build_info_attempts=3, build_info_delay=0.001, spawn_compiler=False)


@pytest.fixture
def write_doc(tmp_path: Path) -> Callable[[str, Any], Path]:
    """Write a JSON document at a root-relative path."""

    def _write(path: str, document: Any) -> Path:
        target = tmp_path / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
        return target

    return _write


@pytest.fixture
def read_doc(tmp_path: Path) -> Callable[[str], Any]:
    def _read(path: str) -> Any:
        return json.loads((tmp_path / path).read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def make_workspace(tmp_path: Path, write_doc: Callable[[str, Any], Path]) -> Callable[..., Path]:
    """Create ``{path}/package.json`` (when *name* is given) and a source file."""

    def _make(path: str, name: str | None = None, *, dependencies: dict[str, str] | None = None, source: str = "index.ts") -> Path:
        directory = tmp_path / path
        directory.mkdir(parents=True, exist_ok=True)
        if name is not None:
            manifest: dict[str, Any] = {"name": name}
            if dependencies:
                manifest["dependencies"] = dependencies
            write_doc(f"{path}/package.json", manifest)
        if source:
            (directory / source).write_text("export {};\n", encoding="utf-8")
        return directory

    return _make


@pytest.fixture
def build_info_doc() -> Callable[..., dict[str, Any]]:
    """Build a minimal artifact where each own file references the given files.

    ``build_info_doc(["../index.ts"], ["../../b/index.ts"])`` yields an
    artifact whose ``../index.ts`` references ``../../b/index.ts``.
    """

    def _build(own_files: list[str], referenced_files: list[str]) -> dict[str, Any]:
        file_names = [*own_files, *referenced_files]
        referenced_ids = [file_names.index(name) + 1 for name in referenced_files]
        referenced_map = [[own_files.index(name) + 1, 1] for name in own_files] if referenced_ids else []
        return {
            "program": {
                "fileNames": file_names,
                "fileIdsList": [referenced_ids] if referenced_ids else [],
                "referencedMap": referenced_map,
            },
            "version": "5.4.5",
        }

    return _build


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Collect loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)

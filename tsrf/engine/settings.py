"""Engine configuration loaded from TSRF_* environment variables.

``TsrfSettings`` holds the process-level defaults; the CLI merges its flags
on top and hands the result to the engine as an immutable ``SyncOptions``.
Engine components never look at ``sys.argv`` or the environment themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class TsrfSettings(BaseSettings):
    """tsrf settings.

    All fields are read from environment variables with the ``TSRF_`` prefix.
    For example, ``TSRF_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TSRF_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    verbose: bool = False
    """Shortcut for ``log_level=DEBUG``."""

    # -- Project ---------------------------------------------------------------
    root: Path = Path()
    """Project root holding the root ``package.json``."""

    # -- Dependencies ----------------------------------------------------------
    show_redundant: bool = False
    """Print suggested uninstall commands for dependencies no longer referenced."""

    prune_redundant: bool = False
    """Remove unreferenced workspace dependencies from manifests automatically."""

    # -- Build artifact reads --------------------------------------------------
    build_info_attempts: int = 50
    build_info_delay: float = 0.01
    """Base delay in seconds; attempt ``n`` waits ``delay * 1.6 ** n``."""

    # -- Compiler --------------------------------------------------------------
    spawn_compiler: bool = True
    compiler_command: str = "tsc --build --watch --pretty"

    # -- Helpers ---------------------------------------------------------------

    def resolve_log_level(self) -> str:
        return "DEBUG" if self.verbose else self.log_level.upper()

    def to_options(self) -> SyncOptions:
        return SyncOptions(
            root=self.root.resolve(),
            show_redundant=self.show_redundant,
            prune_redundant=self.prune_redundant,
            build_info_attempts=self.build_info_attempts,
            build_info_delay=self.build_info_delay,
            spawn_compiler=self.spawn_compiler,
            compiler_command=self.compiler_command,
        )


@dataclass(frozen=True)
class SyncOptions:
    """Explicit engine configuration passed to every component."""

    root: Path
    show_redundant: bool = False
    prune_redundant: bool = False
    build_info_attempts: int = 50
    build_info_delay: float = 0.01
    spawn_compiler: bool = True
    compiler_command: str = "tsc --build --watch --pretty"

    # Doctor modifiers
    fix: bool = False
    delete: bool = False

    def with_overrides(self, **changes: object) -> SyncOptions:
        """Copy with the given non-``None`` fields replaced."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


@lru_cache(maxsize=1)
def get_settings() -> TsrfSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``get_settings.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return TsrfSettings()

"""Shared enumerations used across the synchronization engine."""

from __future__ import annotations

from enum import Flag, StrEnum

# -- Workspace ---------------------------------------------------------------


class Requirement(Flag):
    """Readiness bits a workspace collects before it is synchronized.

    A workspace is *matching* only when every bit in ``ALL`` is set.
    """

    NONE = 0
    MANIFEST = 1
    NAME = 2
    BUILD_CONFIG = 4

    ALL = 7


# -- Filesystem events -------------------------------------------------------


class ChangeType(StrEnum):
    """Normalized filesystem change kinds delivered to the router."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntityKind(StrEnum):
    """What a watched path represents."""

    ROOT_MANIFEST = "root_manifest"
    WORKSPACE_MANIFEST = "workspace_manifest"
    WORKSPACE_CONFIG = "workspace_config"
    BUILD_INFO = "build_info"


# -- Doctor ------------------------------------------------------------------


class CheckStatus(StrEnum):
    OK = "ok"
    INFO = "info"
    FAIL = "fail"
    FIXED = "fixed"

"""Workspace identity types.

Every path handled by the engine is a POSIX-style string relative to the
project root (``packages/app``, ``packages/app/package.json``).  Names are
the ``name`` field of a workspace's ``package.json``.
"""

from __future__ import annotations

from typing import TypeAlias

WorkspacePath: TypeAlias = str
"""Root-relative workspace directory, e.g. ``packages/app``."""

WorkspaceName: TypeAlias = str
"""Declared workspace name, e.g. ``@acme/app``."""

WorkspaceFilePath: TypeAlias = str
"""Root-relative path of any file, e.g. ``packages/app/src/index.ts``."""

ManifestPath: TypeAlias = str
ConfigPath: TypeAlias = str
BuildInfoPath: TypeAlias = str

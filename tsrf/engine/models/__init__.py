"""Data models for the synchronization engine."""

from tsrf.engine.models.buildinfo import BuildInfo, BuildInfoProgram
from tsrf.engine.models.enums import ChangeType, CheckStatus, EntityKind, Requirement
from tsrf.engine.models.manifest import WORKSPACE_VERSION, Manifest
from tsrf.engine.models.tsconfig import (
    DEFAULT_COMPILER_OPTIONS,
    Reference,
    TSConfig,
    default_root_config,
    default_workspace_config,
)
from tsrf.engine.models.workspace import WorkspaceFilePath, WorkspaceName, WorkspacePath

__all__ = [
    # Documents
    "DEFAULT_COMPILER_OPTIONS",
    "WORKSPACE_VERSION",
    "BuildInfo",
    "BuildInfoProgram",
    # Enums
    "ChangeType",
    "CheckStatus",
    "EntityKind",
    "Manifest",
    "Reference",
    "Requirement",
    "TSConfig",
    # Identity
    "WorkspaceFilePath",
    "WorkspaceName",
    "WorkspacePath",
    "default_root_config",
    "default_workspace_config",
]

"""Derived project paths.

Every path the engine stores is a POSIX string relative to the project root,
so values coming from the watcher (absolute, OS-specific) are normalized
here before any lookup.  Layout of a workspace::

    {root}/{workspace}/package.json
    {root}/{workspace}/tsconfig.json
    {root}/{workspace}/.ts/tsconfig.tsbuildinfo
"""

from __future__ import annotations

import glob
import os
import posixpath
from pathlib import Path

from tsrf.engine.models.tsconfig import ARTIFACT_PATH
from tsrf.engine.models.workspace import (
    BuildInfoPath,
    ConfigPath,
    ManifestPath,
    WorkspaceFilePath,
    WorkspacePath,
)

MANIFEST_FILE = "package.json"
CONFIG_FILE = "tsconfig.json"


def _posix(path: str) -> str:
    return path.replace(os.sep, "/") if os.sep != "/" else path


class WorkspacePaths:
    """Root-relative path arithmetic for one project."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).absolute()

    # -- Root documents --------------------------------------------------------

    @property
    def root_manifest(self) -> ManifestPath:
        return MANIFEST_FILE

    @property
    def root_config(self) -> ConfigPath:
        return CONFIG_FILE

    # -- Workspace documents ---------------------------------------------------

    def manifest_path(self, workspace: WorkspacePath) -> ManifestPath:
        return posixpath.join(workspace, MANIFEST_FILE)

    def config_path(self, workspace: WorkspacePath) -> ConfigPath:
        return posixpath.join(workspace, CONFIG_FILE)

    def build_info_path(self, workspace: WorkspacePath) -> BuildInfoPath:
        return posixpath.join(workspace, ARTIFACT_PATH)

    def workspace_of_manifest(self, manifest_path: ManifestPath) -> WorkspacePath:
        return posixpath.dirname(manifest_path)

    def workspace_of_config(self, config_path: ConfigPath) -> WorkspacePath:
        return posixpath.dirname(config_path)

    def workspace_of_build_info(self, build_info_path: BuildInfoPath) -> WorkspacePath:
        """The owning workspace is the parent of the artifact directory."""
        return posixpath.dirname(posixpath.dirname(build_info_path))

    # -- Conversions -----------------------------------------------------------

    def absolute(self, path: str) -> Path:
        return self.root / path

    def relative(self, path: str | Path) -> str:
        """Root-relative POSIX form of an absolute or root-relative path."""
        path = os.path.normpath(os.path.join(self.root, path))
        return _posix(os.path.relpath(path, self.root))

    def build_info_file(self, build_info_path: BuildInfoPath, file_name: str) -> WorkspaceFilePath:
        """Resolve an artifact file name (relative to the artifact) against the root."""
        return self.relative(os.path.join(self.root, posixpath.dirname(build_info_path), file_name))

    def reference_path(self, dependency: WorkspacePath, workspace: WorkspacePath | None = None) -> str:
        """Path of *dependency* as written in *workspace*'s references (root if ``None``)."""
        return posixpath.relpath(dependency, workspace or ".")

    def workspace_from_reference(self, reference_path: str, workspace: WorkspacePath | None = None) -> WorkspacePath:
        return posixpath.normpath(posixpath.join(workspace or ".", reference_path))

    @staticmethod
    def belongs_to(file: WorkspaceFilePath, workspace: WorkspacePath) -> bool:
        return file == workspace or file.startswith(workspace.rstrip("/") + "/")

    # -- Discovery -------------------------------------------------------------

    def discover(self, patterns: list[str] | None) -> set[WorkspacePath]:
        """Expand the root manifest ``workspaces`` globs into workspace directories."""
        found: set[WorkspacePath] = set()
        for pattern in patterns or []:
            if not isinstance(pattern, str) or pattern.startswith("!"):
                continue
            for match in glob.glob(pattern, root_dir=self.root):
                if (self.root / match).is_dir():
                    found.add(self.relative(match))
        return found

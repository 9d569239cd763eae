"""Config synchronizer -- applies document diffs to disk.

Each flow follows the same shape:

1. Read the current document (or start from its default template).
2. Ask the matching pure function in ``managers`` for the target document.
3. Write only when it returned one.

Skipping unchanged writes matters beyond saving I/O: every write produces a
filesystem event that routes back into the engine, and a no-op decision on
re-entry is what keeps the loop from spinning.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

import anyio
from anyio import to_thread
from loguru import logger

from tsrf.engine.managers.manifests import compute_dependencies_update, compute_dependency_rename
from tsrf.engine.managers.tsconfig import (
    compute_alias_rename,
    compute_references_update,
    compute_root_update,
    compute_workspace_configure,
)
from tsrf.engine.models.tsconfig import ARTIFACT_DIR, default_workspace_config, reference_paths
from tsrf.engine.store import read_json, write_json

if TYPE_CHECKING:
    from tsrf.engine.models.workspace import WorkspaceName, WorkspacePath
    from tsrf.engine.paths import WorkspacePaths
    from tsrf.engine.registry import WorkspaceRegistry
    from tsrf.engine.settings import SyncOptions

Document = dict[str, Any]


class InvalidDocumentError(ValueError):
    """A manifest or config exists but is not a JSON object."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid {path}: {reason}")
        self.path = path


class ConfigSynchronizer:
    """Keeps ``tsconfig.json`` references/aliases and manifest dependencies in sync."""

    def __init__(self, registry: WorkspaceRegistry, paths: WorkspacePaths, options: SyncOptions) -> None:
        self.registry = registry
        self.paths = paths
        self.options = options

    # -- Document I/O ----------------------------------------------------------

    async def read(self, path: str) -> Document:
        """Read a JSON object document.  ``FileNotFoundError`` propagates."""
        try:
            document = await read_json(self.paths.absolute(path))
        except json.JSONDecodeError as exc:
            raise InvalidDocumentError(path, str(exc)) from None
        if not isinstance(document, dict):
            raise InvalidDocumentError(path, "expected a JSON object")
        return document

    async def read_or_none(self, path: str) -> Document | None:
        try:
            return await self.read(path)
        except FileNotFoundError:
            return None

    async def write(self, path: str, document: Document) -> None:
        await write_json(self.paths.absolute(path), document)

    # -- References / aliases --------------------------------------------------

    def target_references(self, workspace: WorkspacePath, deps: Iterable[WorkspaceName]) -> list[str]:
        """Reference paths from *workspace* to each dependency, sorted by name."""
        return list(self._target_aliases(workspace, deps))

    def _target_aliases(self, workspace: WorkspacePath, deps: Iterable[WorkspaceName]) -> dict[str, WorkspaceName]:
        """Reference path -> alias of each dependency that is still registered."""
        aliases: dict[str, WorkspaceName] = {}
        for name in sorted(deps):
            path = self.registry.find_path(name)
            if path is None:
                logger.debug("Dependency {} of {} is no longer registered, skipping", name, workspace)
                continue
            aliases[self.paths.reference_path(path, workspace)] = name
        return aliases

    def _label(self, workspace: WorkspacePath) -> str:
        return self.registry.find_name(workspace) or workspace

    async def update_references(self, workspace: WorkspacePath, deps: Iterable[WorkspaceName]) -> bool:
        """Point *workspace*'s references and aliases at exactly *deps*.

        Names are resolved before the config is read; the registry may change
        while the read is in flight.  Returns whether ``tsconfig.json`` was
        written.
        """
        config_path = self.paths.config_path(workspace)
        label = self._label(workspace)
        aliases = self._target_aliases(workspace, deps)
        target = list(aliases)
        config = await self.read_or_none(config_path)
        if config is None:
            config = default_workspace_config()

        logger.debug("References update for {}: {} -> {}", workspace, reference_paths(config), target)
        updated = compute_references_update(config, target, aliases.__getitem__)
        if updated is None:
            return False

        await self.write(config_path, updated)
        logger.info("Writing {} tsconfig.json with updated references list", label)
        return True

    async def refresh_references(
        self,
        workspace: WorkspacePath,
        renamed: tuple[WorkspaceName, WorkspaceName] | None = None,
    ) -> bool:
        """Re-sync aliases using the references already in the config.

        Used after a rename, before the compiler has produced an artifact for
        the new name.  *renamed* is ``(old, new)``; the old alias keys are moved
        to the new name.
        """
        config_path = self.paths.config_path(workspace)
        label = self._label(workspace)
        aliases = self._target_aliases(workspace, self.registry.names)
        config = await self.read_or_none(config_path)
        if config is None or "references" not in config:
            return False

        updated = config
        if renamed is not None:
            updated = compute_alias_rename(updated, *renamed) or updated
        updated = compute_references_update(updated, reference_paths(updated), aliases.__getitem__) or updated
        if updated == config:
            return False

        await self.write(config_path, updated)
        logger.info("Writing {} tsconfig.json with renamed references", label)
        return True

    # -- Manifest dependencies -------------------------------------------------

    async def update_dependencies(
        self,
        workspace: WorkspacePath,
        missing: Iterable[WorkspaceName] = (),
        redundant: Iterable[WorkspaceName] = (),
    ) -> bool:
        """Add *missing* and remove *redundant* workspace dependencies."""
        manifest_path = self.paths.manifest_path(workspace)
        label = self._label(workspace)
        manifest = await self.read(manifest_path)
        updated = compute_dependencies_update(manifest, missing, redundant)
        if updated is None:
            return False

        await self.write(manifest_path, updated)
        logger.info("The {} package.json dependencies changed, writing", label)
        return True

    async def rename_dependency(self, workspace: WorkspacePath, old_name: WorkspaceName, new_name: WorkspaceName) -> bool:
        manifest_path = self.paths.manifest_path(workspace)
        label = self._label(workspace)
        manifest = await self.read(manifest_path)
        updated = compute_dependency_rename(manifest, old_name, new_name)
        if updated is None:
            return False

        await self.write(manifest_path, updated)
        logger.info("Renamed {} -> {} in {} package.json", old_name, new_name, label)
        return True

    # -- Rename propagation ----------------------------------------------------

    async def rename_references(self, old_name: WorkspaceName, new_name: WorkspaceName) -> list[WorkspaceName]:
        """Propagate a workspace rename to every workspace that depends on it.

        Must run after ``WorkspaceRegistry.rename`` so dependents already list
        *new_name*.  Returns the dependents that were visited.
        """
        dependents = self.registry.dependents_of(new_name)
        workspaces = [self.registry.get_path(dependent) for dependent in dependents]

        async def _propagate(workspace: WorkspacePath) -> None:
            await self.rename_dependency(workspace, old_name, new_name)
            await self.refresh_references(workspace, (old_name, new_name))

        async with anyio.create_task_group() as tg:
            for workspace in workspaces:
                tg.start_soon(_propagate, workspace)
        return dependents

    # -- Bootstrap -------------------------------------------------------------

    async def configure_workspace(self, workspace: WorkspacePath, *, force: bool = False) -> bool:
        """Ensure a workspace config exists and carries the composite build options."""
        config_path = self.paths.config_path(workspace)
        jsx = await to_thread.run_sync(partial(has_jsx_files, self.paths.absolute(workspace)))
        config = await self.read_or_none(config_path)

        if config is None:
            updated: Document | None = default_workspace_config(jsx)
        else:
            updated = compute_workspace_configure(config, jsx=jsx, force=force)
        if updated is None:
            return False

        await self.write(config_path, updated)
        name = self.registry.find_name(workspace) or workspace
        logger.info("Configured {} tsconfig.json", name)
        return True

    async def configure_root(self, workspaces: Iterable[WorkspacePath]) -> bool:
        """Make the root config reference exactly *workspaces*."""
        config_path = self.paths.root_config
        config = await self.read_or_none(config_path) or {}
        target = [self.paths.reference_path(workspace) for workspace in sorted(workspaces)]

        updated = compute_root_update(config, target)
        if updated is None:
            return False

        await self.write(config_path, updated)
        logger.info("Configured the root tsconfig.json")
        return True


def has_jsx_files(directory: Path) -> bool:
    """Whether a workspace has ``.tsx`` sources (outside ``node_modules`` and build output)."""
    for path in directory.rglob("*.tsx"):
        parts = path.relative_to(directory).parts
        if "node_modules" not in parts and ARTIFACT_DIR not in parts:
            return True
    return False

"""Event router -- classifies filesystem events and drives the entity state machines.

One watch subscription covers the whole project root.  Each event is
classified by its root-relative path and dispatched to the handler of the
entity it belongs to:

- **root manifest** (``package.json``): ``Absent -> Active`` on create,
  recomputes the workspace set on update, pauses everything on delete.
- **workspace manifest** (``{ws}/package.json``): registers name and declared
  dependencies, starts watching the build artifact, propagates renames.
- **workspace config** (``{ws}/tsconfig.json``): flips the build-config
  readiness bit.
- **build artifact** (``{ws}/.ts/tsconfig.tsbuildinfo``): decodes the
  discovered dependencies and synchronizes manifest and config.

Handlers run concurrently; two handlers for the same path are not ordered
against each other, so a slower read of an older artifact can land after a
newer one.  The next artifact write corrects it.
"""

from __future__ import annotations

import asyncio
import posixpath
from functools import partial
from typing import TYPE_CHECKING

import anyio
from anyio import to_thread
from loguru import logger
from pydantic import ValidationError
from watchfiles import Change, DefaultFilter, awatch

from tsrf.engine.buildinfo import get_build_info_dependencies
from tsrf.engine.managers.manifests import uninstall_command
from tsrf.engine.models.enums import ChangeType, EntityKind, Requirement
from tsrf.engine.models.manifest import Manifest
from tsrf.engine.models.tsconfig import ARTIFACT_FILE
from tsrf.engine.paths import CONFIG_FILE, MANIFEST_FILE
from tsrf.engine.registry import DuplicateWorkspaceNameError, RegistryInvariantViolation
from tsrf.engine.store import ReadFailure, exists, read_json

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tsrf.engine.models.workspace import BuildInfoPath, ManifestPath, WorkspacePath
    from tsrf.engine.paths import WorkspacePaths
    from tsrf.engine.registry import WorkspaceRegistry
    from tsrf.engine.settings import SyncOptions
    from tsrf.engine.synchronizer import ConfigSynchronizer

WATCH_DEBOUNCE_MS = 200
NOTICE_DEBOUNCE_S = 0.05

CHANGE_TYPES = {
    Change.added: ChangeType.CREATE,
    Change.modified: ChangeType.UPDATE,
    Change.deleted: ChangeType.DELETE,
}


class ProjectFilter(DefaultFilter):
    """Only the documents the engine reacts to, outside ignored directories."""

    watched_names = frozenset({MANIFEST_FILE, CONFIG_FILE, ARTIFACT_FILE})

    def __call__(self, change: Change, path: str) -> bool:
        return posixpath.basename(path.replace("\\", "/")) in self.watched_names and super().__call__(change, path)


class _DebouncedNotice:
    """Log a message once the same message stopped repeating for *delay* seconds."""

    def __init__(self, delay: float) -> None:
        self._delay = delay
        self._pending: dict[str, asyncio.TimerHandle] = {}

    def __call__(self, message: str) -> None:
        handle = self._pending.pop(message, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._pending[message] = loop.call_later(self._delay, self._emit, message)

    def _emit(self, message: str) -> None:
        self._pending.pop(message, None)
        logger.info(message)


class EventRouter:
    """Dispatches filesystem events to the per-entity handlers."""

    def __init__(
        self,
        registry: WorkspaceRegistry,
        paths: WorkspacePaths,
        synchronizer: ConfigSynchronizer,
        options: SyncOptions,
    ) -> None:
        self.registry = registry
        self.paths = paths
        self.synchronizer = synchronizer
        self.options = options
        self.active = False
        # Bumped on every root manifest delete, handlers started before it stop
        self._generation = 0
        self._install_notice = _DebouncedNotice(NOTICE_DEBOUNCE_S)

    # -- Subscription ----------------------------------------------------------

    async def start(self) -> None:
        """Initial processing of the root manifest, if it is readable.

        Otherwise the router stays inactive until the next create or update
        event of the root manifest.
        """
        try:
            manifest = await self._read_manifest(self.paths.root_manifest)
        except FileNotFoundError:
            logger.warning(
                "package.json not found, make sure you are in the root directory. "
                "The processing will begin once the file is created."
            )
            return
        except ValueError as exc:
            logger.warning("package.json is invalid, the processing will begin once it is fixed: {}", exc)
            return
        except OSError as exc:
            logger.warning("package.json can't be read, the processing will begin once it changes: {}", exc)
            return
        await self.on_root_manifest_create(manifest)

    async def watch(self, stop_event: anyio.Event | None = None) -> None:
        """Consume the watch subscription until *stop_event* is set.

        Batches are started without waiting for earlier ones to finish.
        A ``RegistryInvariantViolation`` in any handler tears the task group
        down and propagates to the caller.
        """
        async with anyio.create_task_group() as tg:
            async for changes in awatch(
                self.paths.root,
                watch_filter=ProjectFilter(),
                debounce=WATCH_DEBOUNCE_MS,
                stop_event=stop_event,
            ):
                events = [(CHANGE_TYPES[change], path) for change, path in sorted(changes, key=lambda item: item[1])]
                tg.start_soon(self.dispatch_all, events)
        logger.debug("Watcher stopped")

    # -- Classification --------------------------------------------------------

    def classify(self, path: str) -> EntityKind | None:
        rel = self.paths.relative(path)
        if rel == self.paths.root_manifest:
            return EntityKind.ROOT_MANIFEST
        if rel in self.registry.manifest_watchlist:
            return EntityKind.WORKSPACE_MANIFEST
        if rel in self.registry.build_info_watchlist:
            return EntityKind.BUILD_INFO
        if posixpath.basename(rel) == CONFIG_FILE:
            workspace = self.paths.workspace_of_config(rel)
            if self.paths.manifest_path(workspace) in self.registry.manifest_watchlist:
                return EntityKind.WORKSPACE_CONFIG
        return None

    async def dispatch(self, change: ChangeType, path: str) -> None:
        """Route one event.  Document errors are logged; invariant violations propagate."""
        kind = self.classify(path)
        if kind is None:
            return
        rel = self.paths.relative(path)
        logger.debug("Event {} {} ({})", change, rel, kind)

        try:
            match kind:
                case EntityKind.ROOT_MANIFEST:
                    await self._dispatch_root_manifest(change)
                case EntityKind.WORKSPACE_MANIFEST:
                    await self._dispatch_workspace_manifest(change, rel)
                case EntityKind.WORKSPACE_CONFIG:
                    await self._dispatch_workspace_config(change, rel)
                case EntityKind.BUILD_INFO:
                    await self._dispatch_build_info(change, rel)
        except Exception as exc:
            errors = leaf_exceptions(exc)
            for error in errors:
                if isinstance(error, RegistryInvariantViolation):
                    raise error from None
            if not all(isinstance(error, (OSError, ValueError)) for error in errors):
                raise
            for error in errors:
                logger.error("Failed to process {} {}: {}", change, rel, error)

    async def dispatch_all(self, events: Iterable[tuple[ChangeType, str]]) -> None:
        """Dispatch a batch concurrently and wait for all handlers."""
        async with anyio.create_task_group() as tg:
            for change, path in events:
                tg.start_soon(self.dispatch, change, path)

    async def _dispatch_root_manifest(self, change: ChangeType) -> None:
        match change:
            case ChangeType.CREATE | ChangeType.UPDATE:
                await (self.on_root_manifest_update() if self.active else self.on_root_manifest_create())
            case ChangeType.DELETE:
                self.on_root_manifest_delete()

    async def _dispatch_workspace_manifest(self, change: ChangeType, manifest_path: ManifestPath) -> None:
        match change:
            case ChangeType.CREATE | ChangeType.UPDATE:
                await self.on_workspace_manifest_write(manifest_path)
            case ChangeType.DELETE:
                await self.on_workspace_manifest_delete(manifest_path)

    async def _dispatch_workspace_config(self, change: ChangeType, config_path: str) -> None:
        workspace = self.paths.workspace_of_config(config_path)
        match change:
            case ChangeType.CREATE | ChangeType.UPDATE:
                await self.on_workspace_config_present(workspace)
            case ChangeType.DELETE:
                await self.on_workspace_config_delete(workspace)

    async def _dispatch_build_info(self, change: ChangeType, build_info_path: BuildInfoPath) -> None:
        match change:
            case ChangeType.CREATE:
                await self.on_build_info_create(build_info_path)
            case ChangeType.UPDATE:
                await self.on_build_info_update(build_info_path)
            case ChangeType.DELETE:
                self.on_build_info_delete(build_info_path)

    # -- Root manifest ---------------------------------------------------------

    async def on_root_manifest_create(self, manifest: Manifest | None = None) -> None:
        logger.debug("Detected package.json create, initializing processing")
        generation = self._generation
        if manifest is None:
            manifest = await self._read_manifest(self.paths.root_manifest)

        workspaces = await self._discover(manifest)
        if generation != self._generation:
            logger.debug("package.json deleted while being processed, skipping")
            return
        logger.debug("Found workspaces {}", sorted(workspaces))
        self.active = True

        await self._add_workspaces(workspaces, generation)

    async def on_root_manifest_update(self) -> None:
        logger.debug("Detected package.json change, updating watchlist")
        generation = self._generation
        manifest = await self._read_manifest(self.paths.root_manifest)
        workspaces = await self._discover(manifest)
        if not self._is_current(generation):
            logger.debug("package.json deleted while being processed, skipping")
            return
        watched = self.registry.watched_paths()

        if workspaces == watched:
            logger.debug("Workspaces list unchanged, skipping")
            return

        added = sorted(workspaces - watched)
        removed = sorted(watched - workspaces)
        summary = "; ".join(
            part
            for part in (
                f"added: {', '.join(added)}" if added else "",
                f"removed: {', '.join(removed)}" if removed else "",
            )
            if part
        )
        logger.info("Workspaces list updated, {}; processing", summary)

        for workspace in removed:
            self.registry.remove_workspace(
                workspace,
                self.paths.manifest_path(workspace),
                self.paths.build_info_path(workspace),
            )

        await self._add_workspaces(set(added), generation)

    def on_root_manifest_delete(self) -> None:
        logger.warning("package.json has been deleted, pausing processing")
        self.registry.clear()
        self.active = False
        self._generation += 1

    def _is_current(self, generation: int) -> bool:
        """Whether the root manifest is active and was not deleted since *generation*."""
        return self.active and generation == self._generation

    async def _discover(self, manifest: Manifest) -> set[WorkspacePath]:
        return await to_thread.run_sync(partial(self.paths.discover, manifest.workspaces))

    async def _add_workspaces(self, workspaces: set[WorkspacePath], generation: int) -> None:
        """Register, configure and start watching *workspaces*.

        Names of all new workspaces are registered before any artifact is
        decoded, since decoding resolves references by name.  Stops between
        stages when the root manifest was deleted in the meantime.
        """
        for workspace in workspaces:
            self.registry.manifest_watchlist.add(self.paths.manifest_path(workspace))

        manifests: dict[WorkspacePath, Manifest] = {}

        async def _load(workspace: WorkspacePath) -> None:
            manifest = await self._load_workspace_manifest(workspace)
            if manifest is not None:
                manifests[workspace] = manifest

        async with anyio.create_task_group() as tg:
            for workspace in workspaces:
                tg.start_soon(_load, workspace)
        if not self._is_current(generation):
            logger.debug("Processing paused, skipping workspaces {}", sorted(workspaces))
            return

        # Every new name is known now, so declared dependencies can be resolved
        for manifest in manifests.values():
            self._register_dependencies(manifest)

        with_manifests = sorted(w for w in workspaces if self.registry.has_requirement(w, Requirement.MANIFEST))
        logger.debug("Workspaces with package.json {}", with_manifests)

        async with anyio.create_task_group() as tg:
            for workspace in with_manifests:
                tg.start_soon(self._bootstrap_workspace_config, workspace)

        await self._configure_root()
        if not self._is_current(generation):
            logger.debug("Processing paused, skipping workspaces {}", sorted(workspaces))
            return

        async with anyio.create_task_group() as tg:
            for workspace in with_manifests:
                tg.start_soon(self._watch_build_info, workspace)

    def _is_watched(self, workspace: WorkspacePath) -> bool:
        return self.paths.manifest_path(workspace) in self.registry.manifest_watchlist

    async def _configure_root(self) -> None:
        if not self.active:
            return
        matching = self.registry.matching_workspaces(self.registry.watched_paths())
        await self.synchronizer.configure_root(matching)

    # -- Workspace manifest ----------------------------------------------------

    async def on_workspace_manifest_write(self, manifest_path: ManifestPath) -> None:
        workspace = self.paths.workspace_of_manifest(manifest_path)
        logger.debug("Detected workspace package.json write {}", manifest_path)

        ready_before = self.registry.has_all_requirements(workspace)
        manifest = await self._load_workspace_manifest(workspace)
        if manifest is None:
            if ready_before:
                await self._configure_root()
            return
        self._register_dependencies(manifest)

        if not self.registry.has_requirement(workspace, Requirement.BUILD_CONFIG):
            await self._bootstrap_workspace_config(workspace)

        if self.registry.has_all_requirements(workspace) != ready_before:
            await self._configure_root()

        await self._watch_build_info(workspace)

    async def on_workspace_manifest_delete(self, manifest_path: ManifestPath) -> None:
        workspace = self.paths.workspace_of_manifest(manifest_path)
        logger.warning("Workspace package.json deleted, ignoring {}", workspace)

        build_info_path = self.paths.build_info_path(workspace)
        self.registry.build_info_watchlist.discard(build_info_path)
        self.registry.missing_build_infos.discard(build_info_path)
        self._unregister_name(workspace, Requirement.MANIFEST | Requirement.NAME)
        await self._configure_root()

    async def _load_workspace_manifest(self, workspace: WorkspacePath) -> Manifest | None:
        """Read a workspace manifest into the registry.

        Sets the manifest/name readiness bits and registers the name, applying
        a rename (and propagating it to dependents) when it changed.  Returns
        the manifest when the workspace ended up with a usable name.
        """
        manifest_path = self.paths.manifest_path(workspace)
        try:
            manifest = await self._read_manifest(manifest_path)
        except FileNotFoundError:
            logger.warning("Workspace package.json not found, ignoring {}", workspace)
            self._unregister_name(workspace, Requirement.MANIFEST | Requirement.NAME)
            return None
        except ValueError as exc:
            logger.warning("Workspace package.json is invalid, ignoring {}: {}", workspace, exc)
            self._unregister_name(workspace, Requirement.MANIFEST | Requirement.NAME)
            return None
        if not self._is_watched(workspace):
            logger.debug("Workspace {} is no longer watched, skipping", workspace)
            return None

        self.registry.add_requirement(workspace, Requirement.MANIFEST)

        if not manifest.name:
            logger.warning("Workspace package.json name is missing, ignoring {}", workspace)
            self._unregister_name(workspace, Requirement.NAME)
            return None

        previous = self.registry.find_name(workspace)
        try:
            if previous is not None and previous != manifest.name:
                logger.info("Workspace name changed {} -> {}, updating the references", previous, manifest.name)
                self.registry.rename(workspace, manifest.name)
                await self.synchronizer.rename_references(previous, manifest.name)
            else:
                self.registry.set_name(workspace, manifest.name)
        except DuplicateWorkspaceNameError as exc:
            logger.warning("{}", exc)
            self._unregister_name(workspace, Requirement.NAME)
            return None
        if self.registry.find_name(workspace) != manifest.name:
            logger.debug("Workspace {} changed during the rename, skipping", workspace)
            return None

        self.registry.add_requirement(workspace, Requirement.NAME)
        return manifest

    def _unregister_name(self, workspace: WorkspacePath, requirement: Requirement) -> None:
        """Clear readiness bits and forget the name (and its dependencies) of *workspace*."""
        if not self._is_watched(workspace):
            return
        self.registry.remove_requirement(workspace, requirement)
        name = self.registry.forget_name(workspace)
        if name is not None:
            self.registry.drop_dependencies(name)

    def _register_dependencies(self, manifest: Manifest) -> None:
        """Overwrite the stored dependencies with the declared workspace dependencies."""
        dependencies = manifest.workspace_dependencies(self.registry.names)
        logger.debug("Found workspace dependencies {} {}", manifest.name, sorted(dependencies))
        self.registry.set_dependencies(manifest.name, dependencies)

    async def _bootstrap_workspace_config(self, workspace: WorkspacePath) -> None:
        await self.synchronizer.configure_workspace(workspace)
        if self._is_watched(workspace):
            self.registry.add_requirement(workspace, Requirement.BUILD_CONFIG)

    async def _watch_build_info(self, workspace: WorkspacePath) -> None:
        build_info_path = self.paths.build_info_path(workspace)
        if build_info_path in self.registry.build_info_watchlist or not self._is_watched(workspace):
            return
        logger.debug("Watching build info {}", build_info_path)
        self.registry.build_info_watchlist.add(build_info_path)

        # Process artifacts that already exist
        if await exists(self.paths.absolute(build_info_path)):
            await self.on_build_info_create(build_info_path)

    # -- Workspace config ------------------------------------------------------

    async def on_workspace_config_present(self, workspace: WorkspacePath) -> None:
        if self.registry.has_requirement(workspace, Requirement.BUILD_CONFIG):
            return
        logger.info("The {} tsconfig.json is back, resuming processing", workspace)
        self.registry.add_requirement(workspace, Requirement.BUILD_CONFIG)
        if self.registry.has_all_requirements(workspace):
            await self._configure_root()
            build_info_path = self.paths.build_info_path(workspace)
            if await exists(self.paths.absolute(build_info_path)):
                await self.on_build_info_update(build_info_path)

    async def on_workspace_config_delete(self, workspace: WorkspacePath) -> None:
        if not self.registry.has_requirement(workspace, Requirement.BUILD_CONFIG):
            return
        logger.warning("The {} tsconfig.json has been deleted, pausing processing", workspace)
        was_ready = self.registry.has_all_requirements(workspace)
        self.registry.remove_requirement(workspace, Requirement.BUILD_CONFIG)
        if was_ready:
            await self._configure_root()

    # -- Build artifact --------------------------------------------------------

    async def on_build_info_create(self, build_info_path: BuildInfoPath) -> None:
        if build_info_path in self.registry.missing_build_infos:
            self.registry.missing_build_infos.discard(build_info_path)
            workspace = self.paths.workspace_of_build_info(build_info_path)
            logger.info(
                "The {} tsconfig.tsbuildinfo has been created, resuming processing",
                self.registry.find_name(workspace) or workspace,
            )
        await self._on_build_info_write(build_info_path)

    async def on_build_info_update(self, build_info_path: BuildInfoPath) -> None:
        await self._on_build_info_write(build_info_path)

    def on_build_info_delete(self, build_info_path: BuildInfoPath) -> None:
        workspace = self.paths.workspace_of_build_info(build_info_path)
        name = self.registry.find_name(workspace) or workspace
        logger.warning("The {} tsconfig.tsbuildinfo has been deleted, pausing processing", name)
        self.registry.missing_build_infos.add(build_info_path)

    async def _on_build_info_write(self, build_info_path: BuildInfoPath) -> None:
        workspace = self.paths.workspace_of_build_info(build_info_path)
        if not self.registry.has_all_requirements(workspace):
            logger.debug("Workspace {} is not ready ({}), skipping", workspace, self.registry.requirements(workspace))
            return
        workspace_name = self.registry.get_name(workspace)

        # The compiler writes the artifact in chunks; a bounded number of
        # torn reads is retried, beyond that the next write retries for us.
        try:
            discovered = await get_build_info_dependencies(
                build_info_path,
                owner=workspace_name,
                registry=self.registry,
                paths=self.paths,
                max_attempts=self.options.build_info_attempts,
                base_delay=self.options.build_info_delay,
            )
        except (ReadFailure, ValidationError) as exc:
            logger.error("Failed to get build info dependencies {}: {}", build_info_path, exc)
            return

        # The registry may have changed while the artifact was being read
        if self.registry.find_name(workspace) != workspace_name or not self.registry.has_all_requirements(workspace):
            logger.debug("Workspace {} changed during decoding, skipping", workspace)
            return
        discovered = {name for name in discovered if self.registry.find_path(name) is not None}

        declared = self.registry.get_dependencies(workspace_name)
        missing = sorted(discovered - declared)
        redundant = sorted(declared - discovered)
        logger.debug("Build info {}: missing={} redundant={}", workspace_name, missing, redundant)

        if redundant and not self.options.prune_redundant:
            self._report_redundant(workspace_name, redundant)
        if missing:
            self._install_notice("Dependencies changed, run the command to update package-lock.json: npm install")

        self.registry.set_dependencies(workspace_name, discovered)

        prune = redundant if self.options.prune_redundant else []
        async with anyio.create_task_group() as tg:
            if missing or prune:
                tg.start_soon(self.synchronizer.update_dependencies, workspace, missing, prune)
            tg.start_soon(self.synchronizer.update_references, workspace, discovered)

    def _report_redundant(self, workspace_name: str, redundant: list[str]) -> None:
        if not self.options.show_redundant:
            return
        command = uninstall_command(workspace_name, redundant)
        if command in self.registry.commands_reported:
            return
        self.registry.commands_reported.add(command)
        logger.warning(
            "Detected redundant dependencies in {} package.json: {}. Please run: {}",
            workspace_name,
            ", ".join(redundant),
            command,
        )

    # -- Helpers ---------------------------------------------------------------

    async def _read_manifest(self, manifest_path: ManifestPath) -> Manifest:
        raw = await read_json(self.paths.absolute(manifest_path))
        return Manifest.model_validate(raw)


def leaf_exceptions(exc: BaseException) -> list[BaseException]:
    """Flatten the exception groups raised by nested task groups."""
    if isinstance(exc, BaseExceptionGroup):
        return [leaf for inner in exc.exceptions for leaf in leaf_exceptions(inner)]
    return [exc]

"""In-process workspace registry.

Tracks workspace identity (path <-> name), last known dependency sets,
readiness bits and the watchlists the router dispatches on.  Ephemeral --
empty on process restart and rebuilt from disk by the root manifest
handler.  All mutations happen on the event loop thread; values may change
between two ``await`` points of a handler.
"""

from __future__ import annotations

import posixpath
from collections.abc import Iterable

from loguru import logger

from tsrf.engine.models.enums import Requirement
from tsrf.engine.models.workspace import BuildInfoPath, ManifestPath, WorkspaceName, WorkspacePath


class RegistryInvariantViolation(RuntimeError):
    """A lookup hit an unregistered workspace.

    Every watched entity is registered before it is queried, so this is a
    programming or data error.  Continuing could write wrong cross-references,
    the top-level driver logs it and terminates.
    """


class DuplicateWorkspaceNameError(ValueError):
    """Raised when a name is already taken by another workspace path."""

    def __init__(self, name: WorkspaceName, holder: WorkspacePath, path: WorkspacePath) -> None:
        super().__init__(f"Workspace name '{name}' is already used by {holder}, ignoring {path}")
        self.name = name
        self.holder = holder
        self.path = path


class WorkspaceRegistry:
    """Authoritative workspace state of one project.

    Owned by the process root and passed explicitly to the router, the
    synchronizer and the decoder.
    """

    def __init__(self) -> None:
        self._names: dict[WorkspacePath, WorkspaceName] = {}
        self._paths: dict[WorkspaceName, WorkspacePath] = {}
        self._dependencies: dict[WorkspaceName, set[WorkspaceName]] = {}
        self._requirements: dict[WorkspacePath, Requirement] = {}

        # Watchlists
        self.manifest_watchlist: set[ManifestPath] = set()
        self.build_info_watchlist: set[BuildInfoPath] = set()

        # DX state
        self.missing_build_infos: set[BuildInfoPath] = set()
        self.commands_reported: set[str] = set()

    # -- Readiness -------------------------------------------------------------

    def add_requirement(self, path: WorkspacePath, requirement: Requirement) -> None:
        self._requirements[path] = self._requirements.get(path, Requirement.NONE) | requirement

    def remove_requirement(self, path: WorkspacePath, requirement: Requirement) -> None:
        self._requirements[path] = self._requirements.get(path, Requirement.NONE) & ~requirement

    def has_requirement(self, path: WorkspacePath, requirement: Requirement) -> bool:
        return requirement in self._requirements.get(path, Requirement.NONE)

    def has_all_requirements(self, path: WorkspacePath) -> bool:
        return self.has_requirement(path, Requirement.ALL)

    def requirements(self, path: WorkspacePath) -> Requirement:
        return self._requirements.get(path, Requirement.NONE)

    def matching_workspaces(self, candidates: Iterable[WorkspacePath]) -> set[WorkspacePath]:
        """Candidates that are ready for synchronization."""
        return {path for path in candidates if self.has_all_requirements(path)}

    # -- Names -----------------------------------------------------------------

    def set_name(self, path: WorkspacePath, name: WorkspaceName) -> WorkspaceName | None:
        """Assign *name* to *path*, returning the previous name of *path*.

        Raises ``DuplicateWorkspaceNameError`` when another path holds the
        name; the mapping is left untouched in that case.
        """
        holder = self._paths.get(name)
        if holder is not None and holder != path:
            raise DuplicateWorkspaceNameError(name, holder, path)

        previous = self._names.get(path)
        if previous is not None and previous != name:
            del self._paths[previous]
        self._names[path] = name
        self._paths[name] = path
        return previous

    def rename(self, path: WorkspacePath, new_name: WorkspaceName) -> WorkspaceName:
        """Swap the name of *path* and move every name-keyed fact along with it.

        The old entry is gone before the new one is visible to lookups, and
        dependency sets of other workspaces are rewritten so none of them
        keeps pointing at the old name.
        """
        old_name = self.get_name(path)
        self.set_name(path, new_name)

        deps = self._dependencies.pop(old_name, set())
        self._dependencies[new_name] = deps
        for dependent, dependent_deps in self._dependencies.items():
            if dependent != new_name and old_name in dependent_deps:
                dependent_deps.discard(old_name)
                dependent_deps.add(new_name)

        logger.debug("Registry: renamed {} ({} -> {})", path, old_name, new_name)
        return old_name

    def forget_name(self, path: WorkspacePath) -> WorkspaceName | None:
        name = self._names.pop(path, None)
        if name is not None:
            self._paths.pop(name, None)
        return name

    def get_name(self, path: WorkspacePath) -> WorkspaceName:
        name = self._names.get(path)
        if name is None:
            msg = f"Internal error: workspace name not found for {path}"
            raise RegistryInvariantViolation(msg)
        return name

    def find_name(self, path: WorkspacePath) -> WorkspaceName | None:
        return self._names.get(path)

    def get_path(self, name: WorkspaceName) -> WorkspacePath:
        path = self._paths.get(name)
        if path is None:
            msg = f"Internal error: workspace path not found for {name}"
            raise RegistryInvariantViolation(msg)
        return path

    def find_path(self, name: WorkspaceName) -> WorkspacePath | None:
        return self._paths.get(name)

    @property
    def names(self) -> set[WorkspaceName]:
        return set(self._paths)

    # -- Dependencies ----------------------------------------------------------

    def set_dependencies(self, name: WorkspaceName, deps: Iterable[WorkspaceName]) -> None:
        self._dependencies[name] = set(deps)

    def get_dependencies(self, name: WorkspaceName) -> set[WorkspaceName]:
        deps = self._dependencies.get(name)
        if deps is None:
            msg = f"Internal error: workspace dependencies not found for {name}"
            raise RegistryInvariantViolation(msg)
        return set(deps)

    def drop_dependencies(self, name: WorkspaceName) -> None:
        self._dependencies.pop(name, None)

    def dependents_of(self, name: WorkspaceName) -> list[WorkspaceName]:
        """Workspaces whose dependency set contains *name*, sorted."""
        return sorted(dependent for dependent, deps in self._dependencies.items() if name in deps and dependent != name)

    # -- Watchlists ------------------------------------------------------------

    def watched_paths(self) -> set[WorkspacePath]:
        """Workspace directories, derived from the manifest watchlist."""
        return {posixpath.dirname(path) for path in self.manifest_watchlist}

    # -- Lifecycle -------------------------------------------------------------

    def remove_workspace(self, path: WorkspacePath, manifest_path: ManifestPath, build_info_path: BuildInfoPath) -> None:
        """Drop every trace of a workspace that left the root manifest globs."""
        self.manifest_watchlist.discard(manifest_path)
        self.build_info_watchlist.discard(build_info_path)
        self.missing_build_infos.discard(build_info_path)
        name = self.forget_name(path)
        if name is not None:
            self._dependencies.pop(name, None)
        self._requirements.pop(path, None)
        logger.debug("Registry: removed workspace {} ({})", path, name)

    def clear(self) -> None:
        """Forget everything.  Used when the root manifest disappears."""
        self._names.clear()
        self._paths.clear()
        self._dependencies.clear()
        self._requirements.clear()
        self.manifest_watchlist.clear()
        self.build_info_watchlist.clear()
        self.missing_build_infos.clear()
        self.commands_reported.clear()
        logger.debug("Registry: cleared")

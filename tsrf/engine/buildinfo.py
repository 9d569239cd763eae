"""Build artifact decoder.

Turns a ``tsconfig.tsbuildinfo`` into the set of *other* workspaces the
owning workspace references:

1. Read the artifact (retrying torn reads, see ``store.read_json_retrying``).
2. Resolve the owning workspace from the artifact location
   (``{workspace}/.ts/tsconfig.tsbuildinfo``).
3. Take every *local* file -- one that neither climbs above the project
   root nor points into ``node_modules``.
4. Follow ``referencedMap`` and ``fileIdsList`` from each local file to the
   files it references.
5. Map each referenced file back to the watched workspace containing it and
   keep the names that differ from the owner.

Files that belong to no watched workspace (type-only libraries, files
outside the globs) are dropped.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from loguru import logger

from tsrf.engine.models.buildinfo import BuildInfo, FileIndex
from tsrf.engine.paths import WorkspacePaths
from tsrf.engine.store import read_json_retrying

if TYPE_CHECKING:
    from tsrf.engine.models.workspace import BuildInfoPath, WorkspaceFilePath, WorkspaceName, WorkspacePath
    from tsrf.engine.registry import WorkspaceRegistry

_NON_LOCAL_FILE_RE = re.compile(r"\.\./\.\./|\.\./node_modules")
"""Artifact file names are relative to ``{workspace}/.ts``; two levels up is another workspace."""


def is_local_file(file_name: str) -> bool:
    return _NON_LOCAL_FILE_RE.search(file_name) is None


def local_file_indices(build_info: BuildInfo) -> list[FileIndex]:
    return [index for index, name in build_info.program.file_names.items() if is_local_file(name)]


def referenced_file_names(build_info: BuildInfo) -> set[str]:
    """Names of all files referenced by the local files of the program."""
    program = build_info.program
    names: set[str] = set()
    for index in local_file_indices(build_info):
        list_ids = program.list_ids_for(index)
        file_ids = program.file_ids_in(list_ids)
        names.update(program.names_of(file_ids))
    return names


def owning_workspace(file: WorkspaceFilePath, workspaces: set[WorkspacePath]) -> WorkspacePath | None:
    """The most specific watched workspace containing *file*."""
    owners = [workspace for workspace in workspaces if WorkspacePaths.belongs_to(file, workspace)]
    return max(owners, key=len) if owners else None


def dependencies_from_build_info(
    build_info: BuildInfo,
    build_info_path: BuildInfoPath,
    *,
    owner: WorkspaceName,
    registry: WorkspaceRegistry,
    paths: WorkspacePaths,
) -> set[WorkspaceName]:
    """Decode an already parsed artifact.  See module docstring.

    *owner* is the name of the workspace the artifact belongs to, resolved by
    the caller before the artifact was read.
    """
    watched = registry.watched_paths()

    deps: set[WorkspaceName] = set()
    for file_name in referenced_file_names(build_info):
        file = paths.build_info_file(build_info_path, file_name)
        workspace = owning_workspace(file, watched)
        if workspace is None:
            continue
        name = registry.find_name(workspace)
        if name is None:
            # Watched but its manifest has no name yet
            logger.debug("Skipping reference to unnamed workspace {} ({})", workspace, file)
            continue
        if name != owner:
            deps.add(name)
    return deps


async def get_build_info_dependencies(
    build_info_path: BuildInfoPath,
    *,
    owner: WorkspaceName,
    registry: WorkspaceRegistry,
    paths: WorkspacePaths,
    max_attempts: int = 50,
    base_delay: float = 0.01,
) -> set[WorkspaceName]:
    """Read and decode the artifact at *build_info_path*.

    Raises ``store.ReadFailure`` when the artifact stays unreadable and
    ``pydantic.ValidationError`` when it is readable but not an artifact.
    """
    raw = await read_json_retrying(paths.absolute(build_info_path), max_attempts, base_delay)
    build_info = BuildInfo.model_validate(raw)
    deps = dependencies_from_build_info(build_info, build_info_path, owner=owner, registry=registry, paths=paths)
    logger.debug("Decoded {}: {}", build_info_path, sorted(deps))
    return deps

"""Project diagnostics (``tsrf doctor``).

Checks that every workspace and the project root are set up for project
references, optionally fixing what can be fixed.  The checks only build
reports; rendering them is left to the CLI.
"""

from __future__ import annotations

import os
import posixpath
import shutil
from collections import defaultdict
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

import anyio
from anyio import to_thread
from loguru import logger
from pydantic import BaseModel, Field

from tsrf.engine.managers.tsconfig import is_compiler_options_satisfactory, is_root_config_satisfactory
from tsrf.engine.models.enums import CheckStatus
from tsrf.engine.models.manifest import Manifest
from tsrf.engine.models.tsconfig import ARTIFACT_DIR, default_root_config, default_workspace_config
from tsrf.engine.paths import WorkspacePaths
from tsrf.engine.registry import WorkspaceRegistry
from tsrf.engine.synchronizer import ConfigSynchronizer, InvalidDocumentError

if TYPE_CHECKING:
    from tsrf.engine.models.workspace import WorkspaceName, WorkspacePath
    from tsrf.engine.settings import SyncOptions

IGNORED_DIRS = frozenset({"node_modules", ARTIFACT_DIR})
SOURCE_SUFFIXES = (".ts", ".tsx")


class Check(BaseModel):
    status: CheckStatus
    message: str


class Report(BaseModel):
    checks: list[Check] = Field(default_factory=list)

    def ok(self, message: str) -> None:
        self.checks.append(Check(status=CheckStatus.OK, message=message))

    def info(self, message: str) -> None:
        self.checks.append(Check(status=CheckStatus.INFO, message=message))

    def fail(self, message: str) -> None:
        self.checks.append(Check(status=CheckStatus.FAIL, message=message))

    def fixed(self, message: str) -> None:
        self.checks.append(Check(status=CheckStatus.FIXED, message=message))

    @property
    def failed(self) -> bool:
        return any(check.status == CheckStatus.FAIL for check in self.checks)


class WorkspaceReport(Report):
    path: str
    name: str | None = None
    redundant: bool = False
    has_config: bool = False
    removed: bool = False


class DoctorResult(BaseModel):
    """Outcome of a doctor run.

    ``error`` is set when the run stopped before the root was checked.
    """

    fix: bool = False
    workspaces: list[WorkspaceReport] = Field(default_factory=list)
    root: Report | None = None
    error: str | None = None
    duplicates: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def redundant(self) -> list[str]:
        return [report.path for report in self.workspaces if report.redundant]

    @property
    def failed(self) -> bool:
        reports: list[Report] = [*self.workspaces, *([self.root] if self.root else [])]
        return any(report.failed for report in reports)

    @property
    def exit_code(self) -> int:
        if self.error is not None:
            return 1
        if self.fix:
            return 0
        return 1 if self.failed else 0


class Doctor:
    """Runs the workspace and root checks of one project."""

    def __init__(self, options: SyncOptions) -> None:
        self.options = options
        self.paths = WorkspacePaths(options.root)
        self.synchronizer = ConfigSynchronizer(WorkspaceRegistry(), self.paths, options)

    async def run(self) -> DoctorResult:
        result = DoctorResult(fix=self.options.fix)

        try:
            root_manifest = await self._read_manifest(self.paths.root_manifest)
        except (OSError, ValueError):
            result.error = (
                "The root package.json is missing or invalid, please change the directory "
                "or create the package.json with workspaces"
            )
            return result

        if root_manifest.workspaces is None:
            result.error = (
                "The root package.json workspaces field is missing, please add it. "
                "See: https://docs.npmjs.com/cli/using-npm/workspaces"
            )
            return result

        workspaces = await to_thread.run_sync(partial(self.paths.discover, root_manifest.workspaces))
        if not workspaces:
            result.error = "Can't find any workspaces specified in the root package.json, please check its configuration"
            return result
        logger.debug("Checking {} workspaces", len(workspaces))

        reports: dict[WorkspacePath, WorkspaceReport] = {}

        async def _check(workspace: WorkspacePath) -> None:
            reports[workspace] = await self.check_workspace(workspace)

        async with anyio.create_task_group() as tg:
            for workspace in workspaces:
                tg.start_soon(_check, workspace)
        result.workspaces = [reports[workspace] for workspace in sorted(reports)]

        if self.options.fix and any(not report.name and not (report.redundant or report.removed) for report in result.workspaces):
            result.error = "Failed to update package.json names, please fix the issues manually"
            return result

        result.duplicates = find_name_duplicates(result.workspaces)
        if result.duplicates:
            result.error = "Found workspaces with the same name, please fix the issues manually"
            return result

        referenced = [report.path for report in result.workspaces if report.name and report.has_config]
        result.root = await self.check_root(referenced)
        return result

    # -- Workspace -------------------------------------------------------------

    async def check_workspace(self, workspace: WorkspacePath) -> WorkspaceReport:
        report = WorkspaceReport(path=workspace)
        fix = self.options.fix
        directory = self.paths.absolute(workspace)
        manifest_path = self.paths.manifest_path(workspace)

        raw_manifest = await self._read_or_none(manifest_path)
        config = await self._read_or_none(self.paths.config_path(workspace))
        sources = await to_thread.run_sync(partial(find_source_files, directory))

        # A workspace with nothing in it is only reported, never configured
        if config is None and not sources and raw_manifest is None:
            if not await to_thread.run_sync(partial(has_any_files, directory)):
                if fix and self.options.delete:
                    await to_thread.run_sync(partial(shutil.rmtree, directory))
                    report.removed = True
                    report.fixed("removed empty workspace")
                else:
                    report.redundant = True
                return report

        manifest = _parse_manifest(raw_manifest)
        if manifest is not None:
            report.ok("package.json")
        elif fix and raw_manifest is not None:
            # Valid JSON with fields of the wrong type, keep the rest of the document
            name = raw_manifest.get("name")
            report.name = name if isinstance(name, str) and name.strip() else generate_workspace_name(workspace)
            await self.synchronizer.write(manifest_path, {**raw_manifest, "name": report.name})
            report.fixed(f"set package.json name to {report.name}")
        elif fix:
            report.name = generate_workspace_name(workspace)
            await self.synchronizer.write(manifest_path, {"name": report.name})
            report.fixed(f"created package.json with name {report.name}")
        else:
            report.fail("package.json not found or it's invalid")

        if manifest is not None and not manifest.name:
            if fix:
                report.name = generate_workspace_name(workspace)
                await self.synchronizer.write(manifest_path, {**raw_manifest, "name": report.name})
                report.fixed(f"set package.json name to {report.name}")
            else:
                report.fail("name in package.json is empty or missing")

        report.name = report.name or (manifest.name if manifest is not None else None)

        if not sources:
            report.has_config = config is not None
            report.info("no TS files found, but tsconfig.json exists" if config is not None else "no TS files found")
            return report

        if config is None:
            if fix:
                jsx = any(path.suffix == ".tsx" for path in sources)
                await self.synchronizer.write(self.paths.config_path(workspace), default_workspace_config(jsx))
                report.has_config = True
                report.fixed("created tsconfig.json")
            else:
                report.fail("tsconfig.json not found or it's invalid")
            return report

        report.has_config = True
        if not is_compiler_options_satisfactory(config.get("compilerOptions")):
            if fix:
                await self.synchronizer.configure_workspace(workspace, force=True)
                report.fixed("configured tsconfig.json")
            else:
                report.fail("tsconfig.json needs to be configured")
            return report

        report.ok("tsconfig.json")
        return report

    # -- Root ------------------------------------------------------------------

    async def check_root(self, workspaces: list[WorkspacePath]) -> Report:
        report = Report()
        report.ok("package.json")

        config = await self._read_or_none(self.paths.root_config)
        if config is None:
            if self.options.fix:
                await self.synchronizer.write(self.paths.root_config, default_root_config())
                await self.synchronizer.configure_root(workspaces)
                report.fixed("created tsconfig.json")
            else:
                report.fail("tsconfig.json not found or it's invalid")
            return report

        references = [self.paths.reference_path(workspace) for workspace in sorted(workspaces)]
        if not is_root_config_satisfactory(config, references):
            if self.options.fix:
                await self.synchronizer.configure_root(workspaces)
                report.fixed("configured tsconfig.json")
            else:
                report.fail("tsconfig.json needs to be configured")
            return report

        report.ok("tsconfig.json")
        return report

    # -- Helpers ---------------------------------------------------------------

    async def _read_manifest(self, manifest_path: str) -> Manifest:
        return Manifest.model_validate(await self.synchronizer.read(manifest_path))

    async def _read_or_none(self, path: str) -> dict | None:
        """Missing and invalid documents are both reported as absent."""
        try:
            return await self.synchronizer.read(path)
        except (OSError, InvalidDocumentError):
            return None


async def run_doctor(options: SyncOptions) -> DoctorResult:
    return await Doctor(options).run()


def _parse_manifest(raw: dict | None) -> Manifest | None:
    if raw is None:
        return None
    try:
        return Manifest.model_validate(raw)
    except ValueError:
        return None


def generate_workspace_name(workspace: WorkspacePath) -> WorkspaceName:
    return posixpath.basename(workspace)


def find_name_duplicates(reports: list[WorkspaceReport]) -> dict[WorkspaceName, list[WorkspacePath]]:
    holders: dict[WorkspaceName, list[WorkspacePath]] = defaultdict(list)
    for report in reports:
        if report.name:
            holders[report.name].append(report.path)
    return {name: sorted(paths) for name, paths in sorted(holders.items()) if len(paths) > 1}


def _walk(directory: Path):
    for current, dirs, files in os.walk(directory):
        dirs[:] = [name for name in dirs if name not in IGNORED_DIRS]
        for name in files:
            yield Path(current) / name


def find_source_files(directory: Path) -> list[Path]:
    """TypeScript sources of a workspace, outside ``node_modules`` and build output."""
    return sorted(path for path in _walk(directory) if path.name.endswith(SOURCE_SUFFIXES))


def has_any_files(directory: Path) -> bool:
    return next(_walk(directory), None) is not None

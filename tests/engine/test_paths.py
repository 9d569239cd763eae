from __future__ import annotations

import pytest

from tsrf.engine.paths import WorkspacePaths


@pytest.fixture
def paths(tmp_path) -> WorkspacePaths:
    return WorkspacePaths(tmp_path)


def test_document_paths(paths: WorkspacePaths) -> None:
    assert paths.root_manifest == "package.json"
    assert paths.root_config == "tsconfig.json"
    assert paths.manifest_path("packages/a") == "packages/a/package.json"
    assert paths.config_path("packages/a") == "packages/a/tsconfig.json"
    assert paths.build_info_path("packages/a") == "packages/a/.ts/tsconfig.tsbuildinfo"


def test_workspace_of_documents(paths: WorkspacePaths) -> None:
    assert paths.workspace_of_manifest("packages/a/package.json") == "packages/a"
    assert paths.workspace_of_config("packages/a/tsconfig.json") == "packages/a"
    assert paths.workspace_of_build_info("packages/a/.ts/tsconfig.tsbuildinfo") == "packages/a"


def test_relative_normalizes_absolute_paths(paths: WorkspacePaths, tmp_path) -> None:
    assert paths.relative(str(tmp_path / "packages" / "a" / "package.json")) == "packages/a/package.json"
    assert paths.relative("packages/a/../b/./package.json") == "packages/b/package.json"


def test_build_info_file_resolves_against_artifact_dir(paths: WorkspacePaths) -> None:
    artifact = "packages/a/.ts/tsconfig.tsbuildinfo"
    assert paths.build_info_file(artifact, "../index.ts") == "packages/a/index.ts"
    assert paths.build_info_file(artifact, "../../b/src/index.ts") == "packages/b/src/index.ts"
    assert paths.build_info_file(artifact, "../../../node_modules/x/index.d.ts") == "node_modules/x/index.d.ts"


def test_reference_paths(paths: WorkspacePaths) -> None:
    assert paths.reference_path("packages/b", "packages/a") == "../b"
    assert paths.reference_path("libs/c", "packages/a") == "../../libs/c"
    assert paths.reference_path("packages/b") == "packages/b"
    assert paths.workspace_from_reference("../b", "packages/a") == "packages/b"
    assert paths.workspace_from_reference("packages/b") == "packages/b"


def test_belongs_to_respects_path_boundaries() -> None:
    assert WorkspacePaths.belongs_to("packages/a/index.ts", "packages/a")
    assert WorkspacePaths.belongs_to("packages/a", "packages/a")
    assert not WorkspacePaths.belongs_to("packages/ab/index.ts", "packages/a")


def test_discover_expands_globs_to_directories(paths: WorkspacePaths, tmp_path) -> None:
    (tmp_path / "packages" / "a").mkdir(parents=True)
    (tmp_path / "packages" / "b").mkdir()
    (tmp_path / "packages" / "README.md").write_text("", encoding="utf-8")
    (tmp_path / "tools").mkdir()

    assert paths.discover(["packages/*", "tools", "!packages/b", "missing/*"]) == {"packages/a", "packages/b", "tools"}
    assert paths.discover(None) == set()

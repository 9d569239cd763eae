from __future__ import annotations

from tsrf.engine.managers.manifests import compute_dependencies_update, compute_dependency_rename, uninstall_command
from tsrf.engine.models.manifest import Manifest


def test_adds_missing_dependencies_sorted() -> None:
    manifest = {"name": "a", "version": "1.0.0", "dependencies": {"zod": "^3.0.0"}}

    updated = compute_dependencies_update(manifest, missing=["c", "b"])

    assert updated == {"name": "a", "version": "1.0.0", "dependencies": {"b": "*", "c": "*", "zod": "^3.0.0"}}
    assert list(updated["dependencies"]) == ["b", "c", "zod"]
    assert manifest["dependencies"] == {"zod": "^3.0.0"}


def test_creates_dependencies_field() -> None:
    assert compute_dependencies_update({"name": "a"}, missing=["b"]) == {"name": "a", "dependencies": {"b": "*"}}


def test_dev_dependency_counts_as_declared() -> None:
    assert compute_dependencies_update({"name": "a", "devDependencies": {"b": "*"}}, missing=["b"]) is None


def test_existing_version_is_kept() -> None:
    assert compute_dependencies_update({"dependencies": {"b": "workspace:^"}}, missing=["b"]) is None


def test_removes_redundant_from_both_fields() -> None:
    manifest = {"dependencies": {"b": "*", "zod": "^3"}, "devDependencies": {"c": "*"}}

    updated = compute_dependencies_update(manifest, redundant=["b", "c"])

    assert updated == {"dependencies": {"zod": "^3"}, "devDependencies": {}}


def test_key_order_alone_is_not_a_change() -> None:
    assert compute_dependencies_update({"dependencies": {"c": "*", "b": "*"}}, missing=["b"]) is None


def test_dependency_rename_keeps_version() -> None:
    manifest = {"dependencies": {"zod": "^3", "b": "^1.0.0"}}

    assert compute_dependency_rename(manifest, "b", "a-new") == {"dependencies": {"a-new": "^1.0.0", "zod": "^3"}}
    assert compute_dependency_rename(manifest, "zzz", "a-new") is None


def test_uninstall_command() -> None:
    assert uninstall_command("a", ["c", "b"]) == "npm uninstall -w a b@* c@*"


def test_manifest_model() -> None:
    manifest = Manifest.model_validate(
        {"name": " ", "dependencies": None, "devDependencies": {"b": "*"}, "private": True}
    )

    assert manifest.name is None
    assert manifest.dependencies == {}
    assert manifest.workspace_dependencies({"b", "c"}) == {"b"}
    assert manifest.model_extra == {"private": True}

"""Unit tests for the pure tsconfig.json diff functions."""

from __future__ import annotations

import copy

from tsrf.engine.managers.tsconfig import (
    compute_alias_rename,
    compute_references_update,
    compute_root_update,
    compute_workspace_configure,
    is_compiler_options_satisfactory,
    is_root_config_satisfactory,
)
from tsrf.engine.models.tsconfig import DEFAULT_COMPILER_OPTIONS, default_workspace_config

ALIASES = {"../b": "b", "../c": "c", "../../libs/d": "@scope/d"}


def alias_for(reference_path: str) -> str:
    return ALIASES[reference_path]


def configured(references: list[str]) -> dict:
    config = default_workspace_config()
    config["references"] = [{"path": path} for path in references]
    paths = config["compilerOptions"]["paths"] = {}
    for path in references:
        paths[alias_for(path)] = [path]
        paths[alias_for(path) + "/*"] = [path + "/*"]
    return config


def test_adds_references_and_aliases() -> None:
    config = default_workspace_config()

    updated = compute_references_update(config, ["../b", "../../libs/d"], alias_for)

    assert updated["references"] == [{"path": "../b"}, {"path": "../../libs/d"}]
    assert updated["compilerOptions"]["paths"] == {
        "b": ["../b"],
        "b/*": ["../b/*"],
        "@scope/d": ["../../libs/d"],
        "@scope/d/*": ["../../libs/d/*"],
    }
    # Input is never mutated
    assert "references" not in config


def test_removes_references_and_their_aliases() -> None:
    config = configured(["../b", "../c"])
    config["compilerOptions"]["paths"]["custom"] = ["./src/custom"]

    updated = compute_references_update(config, ["../c"], alias_for)

    assert updated["references"] == [{"path": "../c"}]
    assert updated["compilerOptions"]["paths"] == {"c": ["../c"], "c/*": ["../c/*"], "custom": ["./src/custom"]}


def test_unchanged_set_is_a_no_op() -> None:
    config = configured(["../c", "../b"])

    assert compute_references_update(config, ["../b", "../c"], alias_for) is None
    assert compute_references_update(config, ["../c", "../b"], alias_for) is None


def test_applying_the_update_twice_is_idempotent() -> None:
    updated = compute_references_update(default_workspace_config(), ["../b"], alias_for)
    assert compute_references_update(updated, ["../b"], alias_for) is None


def test_empty_target_does_not_create_containers() -> None:
    assert compute_references_update(default_workspace_config(), [], alias_for) is None


def test_extra_reference_keys_survive() -> None:
    config = configured(["../b"])
    config["references"] = [{"path": "../b", "prepend": True}]

    updated = compute_references_update(config, ["../b", "../c"], alias_for)

    assert updated["references"] == [{"path": "../b", "prepend": True}, {"path": "../c"}]


def test_alias_rename() -> None:
    config = configured(["../b"])

    updated = compute_alias_rename(config, "b", "renamed")

    assert updated["compilerOptions"]["paths"] == {"renamed": ["../b"], "renamed/*": ["../b/*"]}
    assert compute_alias_rename(config, "zzz", "renamed") is None
    assert compute_alias_rename(default_workspace_config(), "b", "renamed") is None


def test_root_update() -> None:
    config = {"include": ["src"], "exclude": ["dist"], "compilerOptions": {"strict": True}}

    updated = compute_root_update(config, ["packages/a", "packages/b"])

    assert updated == {
        "compilerOptions": {"strict": True},
        "files": [],
        "references": [{"path": "packages/a"}, {"path": "packages/b"}],
    }
    assert is_root_config_satisfactory(updated, ["packages/b", "packages/a"])
    assert compute_root_update(updated, ["packages/b", "packages/a"]) is None


def test_root_update_with_no_workspaces() -> None:
    assert compute_root_update({}, []) == {"files": [], "references": []}


def test_root_config_satisfiability() -> None:
    config = {"files": [], "references": [{"path": "packages/a"}]}
    assert is_root_config_satisfactory(config, ["packages/a"])
    assert not is_root_config_satisfactory(config, ["packages/a", "packages/b"])
    assert not is_root_config_satisfactory({**config, "include": ["**/*.ts"]}, ["packages/a"])
    assert not is_root_config_satisfactory({"references": [{"path": "packages/a"}]}, ["packages/a"])


def test_compiler_options_satisfiability() -> None:
    assert is_compiler_options_satisfactory(copy.deepcopy(DEFAULT_COMPILER_OPTIONS))
    assert is_compiler_options_satisfactory({**DEFAULT_COMPILER_OPTIONS, "skipLibCheck": False, "strict": True})
    assert not is_compiler_options_satisfactory({**DEFAULT_COMPILER_OPTIONS, "outDir": "dist"})
    assert not is_compiler_options_satisfactory(None)


def test_workspace_configure() -> None:
    config = {"compilerOptions": {"strict": True, "outDir": "dist"}, "include": ["src"]}

    updated = compute_workspace_configure(config, jsx=True)

    assert updated["include"] == ["src"]
    assert updated["compilerOptions"] == {**DEFAULT_COMPILER_OPTIONS, "strict": True, "jsx": "preserve"}
    assert compute_workspace_configure(updated) is None
    assert compute_workspace_configure(updated, force=True) is None


def test_default_workspace_config_jsx() -> None:
    assert default_workspace_config()["include"] == ["**/*.ts"]
    config = default_workspace_config(jsx=True)
    assert config["include"] == ["**/*.ts", "**/*.tsx"]
    assert config["compilerOptions"]["jsx"] == "preserve"

"""``tsconfig.json`` diffing.

Every function here is pure: it takes the current document and returns the
document that should be written, or ``None`` when the current one is
already correct.  Reading and writing is the synchronizer's job, which
keeps the "skip the write when nothing changed" rule in one place and makes
a synchronizer write impossible to re-trigger itself through the watcher.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Sequence
from typing import Any

from tsrf.engine.diff import missing_items, redundant_items, same_items
from tsrf.engine.models.tsconfig import (
    ALIAS_GLOB_SUFFIX,
    DEFAULT_COMPILER_OPTIONS,
    REQUIRED_COMPILER_OPTIONS,
    reference_paths,
)

Document = dict[str, Any]

# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_compiler_options_satisfactory(options: dict[str, Any] | None) -> bool:
    """Whether a workspace config carries the composite build settings."""
    if not isinstance(options, dict):
        return False
    return all(options.get(key) == DEFAULT_COMPILER_OPTIONS[key] for key in REQUIRED_COMPILER_OPTIONS)


def are_references_equal(a: Sequence[str], b: Sequence[str]) -> bool:
    return len(a) == len(b) and same_items(a, b)


def is_root_config_satisfactory(config: Document, references: Sequence[str]) -> bool:
    """Whether the root config only aggregates the given workspace references."""
    return (
        config.get("files") == []
        and "include" not in config
        and "exclude" not in config
        and are_references_equal(reference_paths(config), references)
    )


# ---------------------------------------------------------------------------
# Aliases
# ---------------------------------------------------------------------------


def alias_glob(alias: str) -> str:
    return alias + ALIAS_GLOB_SUFFIX


def find_alias(aliases: dict[str, list[str]], reference_path: str) -> str | None:
    """The alias that resolves to *reference_path*, if any."""
    for alias, resolves in aliases.items():
        if isinstance(resolves, list) and reference_path in resolves:
            return alias
    return None


def _aliases(config: Document, *, create: bool) -> dict[str, list[str]] | None:
    options = config.get("compilerOptions")
    if not isinstance(options, dict):
        if not create:
            return None
        options = config["compilerOptions"] = {}
    paths = options.get("paths")
    if not isinstance(paths, dict):
        if not create:
            return None
        paths = options["paths"] = {}
    return paths


def _remove_aliases(config: Document, redundant: Sequence[str]) -> None:
    aliases = _aliases(config, create=False)
    if aliases is None:
        return
    for reference_path in redundant:
        alias = find_alias(aliases, reference_path)
        if alias is not None:
            aliases.pop(alias, None)
            aliases.pop(alias_glob(alias), None)


def _add_aliases(config: Document, missing: Sequence[str], alias_for: Callable[[str], str]) -> None:
    if not missing:
        return
    aliases = _aliases(config, create=True)
    for reference_path in missing:
        alias = alias_for(reference_path)
        aliases[alias] = [reference_path]
        aliases[alias_glob(alias)] = [alias_glob(reference_path)]


# ---------------------------------------------------------------------------
# Diffs
# ---------------------------------------------------------------------------


def compute_references_update(
    config: Document,
    target: Sequence[str],
    alias_for: Callable[[str], str],
) -> Document | None:
    """Bring references and path aliases in line with *target* reference paths.

    Aliases of references that are no longer needed are removed, references
    that appear get an exact alias and a ``/*`` alias named by *alias_for*.
    The reference list keeps its order when only its order differs.
    """
    current = reference_paths(config)
    missing = missing_items(current, target)
    redundant = redundant_items(current, target)

    updated = copy.deepcopy(config)
    _remove_aliases(updated, redundant)
    _add_aliases(updated, missing, alias_for)
    _set_references(updated, current, target)

    return None if updated == config else updated


def compute_alias_rename(config: Document, old_alias: str, new_alias: str) -> Document | None:
    """Rename the exact and ``/*`` aliases of a renamed workspace."""
    aliases = _aliases(config, create=False)
    if not aliases or (old_alias not in aliases and alias_glob(old_alias) not in aliases):
        return None

    updated = copy.deepcopy(config)
    aliases = _aliases(updated, create=False)
    for old, new in ((old_alias, new_alias), (alias_glob(old_alias), alias_glob(new_alias))):
        if old in aliases:
            aliases[new] = aliases.pop(old)
    return updated


def compute_root_update(config: Document, target: Sequence[str]) -> Document | None:
    """Make the root config a pure aggregate of the workspace references."""
    current = reference_paths(config)

    updated = copy.deepcopy(config)
    updated.pop("include", None)
    updated.pop("exclude", None)
    updated["files"] = []
    _set_references(updated, current, target, keep_empty=True)

    return None if updated == config else updated


def compute_workspace_configure(config: Document, *, jsx: bool = False, force: bool = False) -> Document | None:
    """Merge the canonical compiler options into a workspace config.

    Left alone when the config is already satisfactory, unless *force*.
    """
    options = config.get("compilerOptions")
    if not force and is_compiler_options_satisfactory(options):
        return None

    updated = copy.deepcopy(config)
    if not isinstance(updated.get("compilerOptions"), dict):
        updated["compilerOptions"] = {}
    updated["compilerOptions"].update(copy.deepcopy(DEFAULT_COMPILER_OPTIONS))
    if jsx:
        updated["compilerOptions"].setdefault("jsx", "preserve")

    return None if updated == config else updated


def _set_references(config: Document, current: list[str], target: Sequence[str], *, keep_empty: bool = False) -> None:
    if not target and "references" not in config and not keep_empty:
        return
    target = list(dict.fromkeys(target))
    ordered = current if are_references_equal(current, target) else target
    # Existing entries may carry extra keys (``prepend``, ...)
    existing = {ref["path"]: ref for ref in config.get("references") or [] if isinstance(ref, dict) and "path" in ref}
    config["references"] = [existing.get(path, {"path": path}) for path in ordered]

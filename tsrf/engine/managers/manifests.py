"""``package.json`` dependency diffing.

Pure functions over the raw manifest mapping; unrelated keys are never
touched and rewritten dependency tables come out with sorted keys.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any

from tsrf.engine.models.manifest import WORKSPACE_VERSION

Document = dict[str, Any]

DEPENDENCY_FIELDS = ("dependencies", "devDependencies")


def sort_keys(mapping: dict[str, Any]) -> dict[str, Any]:
    return {key: mapping[key] for key in sorted(mapping)}


def _table(document: Document, field: str) -> dict[str, Any] | None:
    table = document.get(field)
    return table if isinstance(table, dict) else None


def compute_dependencies_update(
    manifest: Document,
    missing: Iterable[str] = (),
    redundant: Iterable[str] = (),
) -> Document | None:
    """Add *missing* as ``"*"`` dependencies and drop *redundant* from both fields.

    Returns ``None`` when the manifest already satisfies both sets.  Key
    order alone never counts as a change.
    """
    updated = copy.deepcopy(manifest)
    dev = _table(updated, "devDependencies") or {}

    missing = [name for name in missing if name not in dev]
    if missing:
        deps = _table(updated, "dependencies")
        if deps is None:
            deps = updated["dependencies"] = {}
        for name in missing:
            deps.setdefault(name, WORKSPACE_VERSION)

    for name in redundant:
        for field in DEPENDENCY_FIELDS:
            table = _table(updated, field)
            if table is not None:
                table.pop(name, None)

    if updated == manifest:
        return None

    for field in DEPENDENCY_FIELDS:
        table = _table(updated, field)
        if table is not None:
            updated[field] = sort_keys(table)
    return updated


def compute_dependency_rename(manifest: Document, old_name: str, new_name: str) -> Document | None:
    """Rename a workspace dependency key in whichever field declares it."""
    if not any(old_name in (_table(manifest, field) or {}) for field in DEPENDENCY_FIELDS):
        return None

    updated = copy.deepcopy(manifest)
    for field in DEPENDENCY_FIELDS:
        table = _table(updated, field)
        if table is not None and old_name in table:
            version = table.pop(old_name)
            table[new_name] = version
            updated[field] = sort_keys(table)
    return updated


def uninstall_command(workspace_name: str, redundant: Iterable[str]) -> str:
    """Suggested command removing *redundant* dependencies from a workspace."""
    packages = " ".join(f"{name}@*" for name in sorted(redundant))
    return f"npm uninstall -w {workspace_name} {packages}"

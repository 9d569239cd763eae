"""``tsconfig.json`` document shapes and canonical defaults.

Config documents are handled as plain JSON mappings so unknown compiler
options survive a rewrite untouched.  The ``TypedDict`` declarations below
describe the parts the engine reads and writes.
"""

from __future__ import annotations

import copy
from typing import Any, TypedDict

ARTIFACT_DIR = ".ts"
"""Output directory (``outDir``) of every workspace build."""

ARTIFACT_FILE = "tsconfig.tsbuildinfo"

ARTIFACT_PATH = f"{ARTIFACT_DIR}/{ARTIFACT_FILE}"
"""Build artifact location relative to the workspace directory."""

ALIAS_GLOB_SUFFIX = "/*"


class Reference(TypedDict):
    path: str


class CompilerOptions(TypedDict, total=False):
    composite: bool
    outDir: str
    tsBuildInfoFile: str
    skipLibCheck: bool
    jsx: str
    paths: dict[str, list[str]]


class TSConfig(TypedDict, total=False):
    compilerOptions: CompilerOptions
    files: list[str]
    include: list[str]
    exclude: list[str]
    references: list[Reference]


DEFAULT_COMPILER_OPTIONS: CompilerOptions = {
    "composite": True,
    "outDir": ARTIFACT_DIR,
    "skipLibCheck": True,
    "tsBuildInfoFile": ARTIFACT_PATH,
}
"""Options every workspace config must carry for incremental composite builds."""

REQUIRED_COMPILER_OPTIONS = ("composite", "outDir", "tsBuildInfoFile")
"""Subset of the defaults that decides whether a workspace config is satisfactory."""


def default_workspace_config(jsx: bool = False) -> dict[str, Any]:
    """Template for a freshly created workspace ``tsconfig.json``."""
    config: dict[str, Any] = {
        "include": ["**/*.ts"],
        "compilerOptions": copy.deepcopy(DEFAULT_COMPILER_OPTIONS),
    }
    if jsx:
        config["compilerOptions"]["jsx"] = "preserve"
        config["include"].append("**/*.tsx")
    return config


def default_root_config() -> dict[str, Any]:
    """Template for a freshly created root ``tsconfig.json``."""
    return {"files": [], "references": []}


def reference_paths(config: TSConfig | dict[str, Any]) -> list[str]:
    """Reference paths of a config, in document order."""
    return [ref["path"] for ref in config.get("references") or [] if isinstance(ref, dict) and "path" in ref]

"""``package.json`` document model.

Only the fields the engine reasons about are typed; everything else is kept
as extra data so a parsed manifest never loses information.  Mutations are
performed on the raw JSON mapping (see ``managers.manifests``), this model is
the read side.
"""

from __future__ import annotations

from collections.abc import Collection

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tsrf.engine.models.workspace import WorkspaceName

WORKSPACE_VERSION = "*"
"""Version specifier written for workspace-local dependencies."""


class Manifest(BaseModel):
    """Workspace or root manifest."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: WorkspaceName | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict, alias="devDependencies")
    workspaces: list[str] | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _empty_name_is_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("dependencies", "dev_dependencies", mode="before")
    @classmethod
    def _null_is_empty(cls, value: object) -> object:
        return {} if value is None else value

    def workspace_dependencies(self, known_names: Collection[WorkspaceName]) -> set[WorkspaceName]:
        """Declared dependencies (both fields) that are workspaces of this project."""
        declared = set(self.dependencies) | set(self.dev_dependencies)
        return {name for name in declared if name in known_names}

"""Incremental build artifact (``tsconfig.tsbuildinfo``) model.

The compiler stores the program graph with two levels of indirection::

    fileNames:     file index -> file name         (0-based)
    referencedMap: [file id, list id] pairs         (ids are index + 1)
    fileIdsList:   list index -> [file id, ...]    (list index = list id - 1)

Depending on the compiler version ``fileNames`` and ``fileIdsList`` are
serialized either as JSON arrays or as objects keyed by the stringified
index; both are normalized to ``dict[int, ...]`` here.
"""

from __future__ import annotations

from typing import TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator

FileIndex: TypeAlias = int
FileId: TypeAlias = int
ListIndex: TypeAlias = int
ListId: TypeAlias = int


def file_index_to_id(index: FileIndex) -> FileId:
    return index + 1


def file_id_to_index(file_id: FileId) -> FileIndex:
    return file_id - 1


def list_id_to_index(list_id: ListId) -> ListIndex:
    return list_id - 1


def _indexed(value: object) -> object:
    if isinstance(value, list):
        return dict(enumerate(value))
    return value


class BuildInfoProgram(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    file_names: dict[FileIndex, str] = Field(alias="fileNames")
    referenced_map: list[tuple[FileId, ListId]] = Field(default_factory=list, alias="referencedMap")
    file_ids_list: dict[ListIndex, list[FileId]] = Field(default_factory=dict, alias="fileIdsList")

    @field_validator("file_names", "file_ids_list", mode="before")
    @classmethod
    def _normalize_indexed(cls, value: object) -> object:
        return _indexed(value)

    @field_validator("referenced_map", mode="before")
    @classmethod
    def _null_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    # -- Graph navigation ------------------------------------------------------

    def list_ids_for(self, index: FileIndex) -> list[ListId]:
        """List ids the file at *index* participates in."""
        file_id = file_index_to_id(index)
        return [list_id for ref_file_id, list_id in self.referenced_map if ref_file_id == file_id]

    def file_ids_in(self, list_ids: list[ListId]) -> set[FileId]:
        """Union of the file ids held by the given lists."""
        file_ids: set[FileId] = set()
        for list_id in list_ids:
            file_ids.update(self.file_ids_list.get(list_id_to_index(list_id), ()))
        return file_ids

    def names_of(self, file_ids: set[FileId]) -> set[str]:
        """File names of the given ids; unknown ids are skipped."""
        names = (self.file_names.get(file_id_to_index(file_id)) for file_id in file_ids)
        return {name for name in names if name}


class BuildInfo(BaseModel):
    """Top-level artifact document.  Only ``program`` is consumed."""

    model_config = ConfigDict(extra="ignore")

    program: BuildInfoProgram

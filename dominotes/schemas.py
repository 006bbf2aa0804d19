"""Wire models shared by the HTTP API and the offline client.

Association lists travel as ``folderIds`` / ``noteIds`` on the wire; the
snake_case names are accepted too so the ledger and the CLI can build them
directly.
"""
from __future__ import annotations
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NoteCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    content: str = ""
    folder_ids: list[int] = Field(default_factory=list, alias="folderIds")


class NoteUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = None
    folder_ids: Optional[list[int]] = Field(default=None, alias="folderIds")


class FolderCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    note_ids: list[int] = Field(default_factory=list, alias="noteIds")


class FolderUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1)
    note_ids: Optional[list[int]] = Field(default=None, alias="noteIds")


class FolderRef(BaseModel):
    id: int
    name: str


class NoteRef(BaseModel):
    id: int
    title: str


class NoteOut(BaseModel):
    id: int
    title: str
    content: str = ""
    created_at: datetime
    updated_at: datetime
    folders: list[FolderRef] = Field(default_factory=list)


class FolderOut(BaseModel):
    id: int
    name: str
    created_at: datetime
    updated_at: datetime
    notes: list[NoteRef] = Field(default_factory=list)


class PinIn(BaseModel):
    pin: str = Field(pattern=r"^\d{4}$")

from datetime import datetime, UTC
from typing import List, Optional
from sqlmodel import Field, Relationship, SQLModel


def _now() -> datetime:
    return datetime.now(UTC)


class NoteFolderLink(SQLModel, table=True):
    note_id: Optional[int] = Field(
        default=None, foreign_key="note.id", primary_key=True, ondelete="CASCADE"
    )
    folder_id: Optional[int] = Field(
        default=None, foreign_key="folder.id", primary_key=True, ondelete="CASCADE"
    )


class Note(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    content: str = ""

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now, index=True)

    folders: List["Folder"] = Relationship(back_populates="notes", link_model=NoteFolderLink)

    def touch(self) -> None:
        self.updated_at = _now()


class Folder(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    notes: List[Note] = Relationship(back_populates="folders", link_model=NoteFolderLink)

    def touch(self) -> None:
        self.updated_at = _now()


class PinAuth(SQLModel, table=True):
    """The single stored PIN hash; there is only ever one user."""
    id: Optional[int] = Field(default=None, primary_key=True)
    pin: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

from __future__ import annotations
from typing import Optional
import asyncio
import logging

from .schemas import NoteOut
from .session import NotesSession

log = logging.getLogger(__name__)


class NoteEditor:
    """
    Edits to one note, saved through the session after a quiet period.

    Every edit restarts the timer; ``close()`` must be called on teardown so
    no save fires into a session that is gone.
    """

    def __init__(self, session: NotesSession, note: NoteOut, delay: Optional[float] = None):
        self.session = session
        self.note_id = note.id
        self.title = note.title
        self.content = note.content
        self.folder_ids = [f.id for f in note.folders]
        self.delay = session.autosave_delay if delay is None else delay
        self._timer: Optional[asyncio.Task] = None
        self.saves = 0

    def set_title(self, title: str) -> None:
        self.title = title
        self._restart()

    def set_content(self, content: str) -> None:
        self.content = content
        self._restart()

    def toggle_folder(self, folder_id: int) -> None:
        # folder picks are saved explicitly, not on the timer
        if folder_id in self.folder_ids:
            self.folder_ids.remove(folder_id)
        else:
            self.folder_ids.append(folder_id)

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def _restart(self) -> None:
        self._cancel()
        self._timer = asyncio.create_task(self._save_later())

    def _cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _save_later(self) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self.save()
        except Exception:
            # nothing awaits this task, so the failure would vanish
            log.exception("Auto-save of note %s failed", self.note_id)

    async def save(self) -> Optional[NoteOut]:
        saved = await self.session.save_note(
            self.note_id, self.title, self.content, list(self.folder_ids)
        )
        if saved is not None:
            self.note_id = saved.id
            self.saves += 1
        return saved

    async def flush(self) -> Optional[NoteOut]:
        """Save now instead of waiting for the timer."""
        self._cancel()
        return await self.save()

    def close(self) -> None:
        self._cancel()

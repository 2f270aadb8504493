import logging
from typing import List, Optional

from gradchat.client.db.persistence import PersistenceClient
from gradchat.core.exceptions import NotFoundError, PersistenceError
from gradchat.model.note.note import NoteRecord
from gradchat.service.notice import NoticeBoard

logger = logging.getLogger(__name__)


class NoteService:
    def __init__(self, persistence: PersistenceClient, notices: NoticeBoard, user_id: Optional[str] = None) -> None:
        self._persistence = persistence
        self.notices = notices
        self.user_id = user_id

    async def list(self) -> List[NoteRecord]:
        if not self.user_id:
            return []
        try:
            return await self._persistence.list_notes(self.user_id)
        except PersistenceError:
            logger.exception("error loading notes user=%s", self.user_id)
            self.notices.error("Error", "Failed to load notes.")
            return []

    async def create(self, title: str, content: Optional[str] = None) -> Optional[NoteRecord]:
        if not self.user_id or not title or not title.strip():
            return None
        try:
            note = await self._persistence.create_note(self.user_id, title.strip(), content)
        except PersistenceError:
            logger.exception("error saving note user=%s", self.user_id)
            self.notices.error("Error", "Failed to save note. Please try again.")
            return None
        self.notices.info("Note Saved", "Your note has been saved successfully.")
        return note

    async def update(
        self, note_id: str, title: Optional[str] = None, content: Optional[str] = None
    ) -> Optional[NoteRecord]:
        if not self.user_id:
            return None
        if title is not None and not title.strip():
            return None
        try:
            note = await self._persistence.update_note(
                self.user_id, note_id, title.strip() if title else None, content
            )
        except NotFoundError:
            raise
        except PersistenceError:
            logger.exception("error updating note id=%s", note_id)
            self.notices.error("Error", "Failed to update note. Please try again.")
            return None
        self.notices.info("Note Updated", "Your note has been updated successfully.")
        return note

    async def delete(self, note_id: str) -> bool:
        if not self.user_id:
            return False
        try:
            await self._persistence.delete_note(self.user_id, note_id)
        except NotFoundError:
            raise
        except PersistenceError:
            logger.exception("error deleting note id=%s", note_id)
            self.notices.error("Error", "Failed to delete note. Please try again.")
            return False
        self.notices.info("Note Deleted", "Your note has been deleted.")
        return True

import logging
from typing import List, Optional

from gradchat.client.db.persistence import PersistenceClient
from gradchat.core.exceptions import PersistenceError
from gradchat.model.report.report import ReportRecord
from gradchat.service.notice import NoticeBoard

logger = logging.getLogger(__name__)


class ReportService:
    """Lets a user flag a question the assistant could not answer."""

    def __init__(self, persistence: PersistenceClient, notices: NoticeBoard, user_id: Optional[str] = None) -> None:
        self._persistence = persistence
        self.notices = notices
        self.user_id = user_id

    async def submit(self, question: str, comment: Optional[str] = None) -> Optional[ReportRecord]:
        if not self.user_id or not question or not question.strip():
            return None
        comment = comment if comment and comment.strip() else None
        try:
            report = await self._persistence.submit_report(self.user_id, question.strip(), comment)
        except PersistenceError:
            logger.exception("error submitting report user=%s", self.user_id)
            self.notices.error("Error", "Failed to submit report. Please try again.")
            return None
        self.notices.info("Report Submitted", "Your unanswered question has been reported for review.")
        return report

    async def list(self) -> List[ReportRecord]:
        if not self.user_id:
            return []
        try:
            return await self._persistence.list_reports(self.user_id)
        except PersistenceError:
            logger.exception("error loading reports user=%s", self.user_id)
            self.notices.error("Error", "Failed to load reports.")
            return []

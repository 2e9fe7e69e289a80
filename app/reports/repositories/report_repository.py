from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.repository import BaseRepository
from app.reports.models.report import Report


@dataclass(frozen=True)
class ReportRef:
    """The slice of a report the chat subsystem is allowed to depend on."""

    report_id: int
    owner_id: UUID
    title: str
    status: str


class ReportRepository(BaseRepository[Report]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, Report)

    def get_report(self, report_id: int) -> ReportRef | None:
        report = self.get_by_id(report_id)
        if report is None:
            return None
        return ReportRef(
            report_id=report.id,
            owner_id=report.user_id,
            title=report.title,
            status=report.status,
        )

"""
Report models — free-standing reports addressed to supervisors.

Models:
    - Report: submitted by any principal, answered by an addressee or admin
    - ReportRecipient: report ↔ addressed user
"""

from sqlalchemy import select

from branchpolicy.models import db
from branchpolicy.models.base import BranchModel, utcnow
from branchpolicy.services.identity import Resource, ResourceKind


REPORT_STATUSES = {"pending", "responded", "archived"}
REPORT_TYPES = {"general", "incident", "request", "progress"}


class Report(BranchModel):
    __tablename__ = "reports"
    __owner_column__ = "submitted_by_id"
    __department_column__ = "department_id"

    id = db.Column(db.Integer, primary_key=True)
    submitted_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # Submitter's department at submission time.
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    report_type = db.Column(db.String(30), default="general")
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    response = db.Column(db.Text, nullable=True)
    responded_by_id = db.Column(db.Integer, nullable=True)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    recipients = db.relationship(
        "ReportRecipient", backref="report", lazy="selectin", cascade="all, delete-orphan",
    )

    @classmethod
    def assigned_ids_select(cls, principal_id):
        return select(ReportRecipient.report_id).where(ReportRecipient.user_id == principal_id)

    @property
    def submitted_to_ids(self) -> list[int]:
        return sorted(r.user_id for r in self.recipients)

    def to_resource(self) -> Resource:
        return Resource(
            kind=ResourceKind.REPORT,
            id=self.id,
            branch_id=self.branch_id,
            owner_id=self.submitted_by_id,
            department_id=self.department_id,
            assignee_ids=frozenset(self.submitted_to_ids),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "submitted_by_id": self.submitted_by_id,
            "department_id": self.department_id,
            "title": self.title,
            "description": self.description,
            "report_type": self.report_type,
            "status": self.status,
            "response": self.response,
            "responded_by_id": self.responded_by_id,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "submitted_to_ids": self.submitted_to_ids,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }


class ReportRecipient(db.Model):
    __tablename__ = "report_recipients"
    __table_args__ = (
        db.UniqueConstraint("report_id", "user_id", name="uq_report_recipient"),
    )

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

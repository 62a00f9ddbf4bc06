"""
Goal models — goals, their assignees and their versioned progress reports.

Models:
    - Goal: department-scoped objective with progress and lifecycle status
    - GoalAssignment: goal ↔ user link
    - GoalReport: progress / completion report, versioned per goal
"""

from sqlalchemy import select

from branchpolicy.models import db
from branchpolicy.models.base import BranchModel, utcnow
from branchpolicy.services.goal_lifecycle import GoalSnapshot, GoalStatus


GOAL_PRIORITIES = {"low", "medium", "high"}


class Goal(BranchModel):
    __tablename__ = "goals"
    __department_column__ = "department_id"

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    priority = db.Column(db.String(20), default="medium")
    due_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=GoalStatus.PENDING.value, index=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    requires_report_on_completion = db.Column(db.Boolean, nullable=False, default=False)
    completion_report_submitted = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    assignments = db.relationship(
        "GoalAssignment", backref="goal", lazy="selectin", cascade="all, delete-orphan",
    )
    reports = db.relationship(
        "GoalReport", backref="goal", lazy="dynamic", cascade="all, delete-orphan",
        order_by="GoalReport.version",
    )

    @classmethod
    def assigned_ids_select(cls, principal_id):
        return select(GoalAssignment.goal_id).where(GoalAssignment.user_id == principal_id)

    @property
    def assignee_ids(self) -> list[int]:
        return sorted(a.user_id for a in self.assignments)

    def last_report_at(self):
        latest = self.reports.order_by(GoalReport.version.desc()).first()
        return latest.submitted_at if latest else None

    def to_resource(self, *, with_history=False) -> GoalSnapshot:
        return GoalSnapshot(
            id=self.id,
            branch_id=self.branch_id,
            owner_id=self.created_by_id,
            department_id=self.department_id,
            assignee_ids=frozenset(self.assignee_ids),
            status=self.status,
            progress=self.progress or 0,
            requires_report_on_completion=bool(self.requires_report_on_completion),
            completion_report_submitted=bool(self.completion_report_submitted),
            due_date=self.due_date,
            last_report_at=self.last_report_at() if with_history else None,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "department_id": self.department_id,
            "created_by_id": self.created_by_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "status": self.status,
            "progress": self.progress,
            "requires_report_on_completion": self.requires_report_on_completion,
            "completion_report_submitted": self.completion_report_submitted,
            "assignee_ids": self.assignee_ids,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Goal {self.id}: {self.title[:40]} [{self.status}]>"


class GoalAssignment(db.Model):
    __tablename__ = "goal_assignments"
    __table_args__ = (
        db.UniqueConstraint("goal_id", "user_id", name="uq_goal_assignment"),
    )

    id = db.Column(db.Integer, primary_key=True)
    goal_id = db.Column(db.Integer, db.ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by_id = db.Column(db.Integer, nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class GoalReport(db.Model):
    __tablename__ = "goal_reports"
    __table_args__ = (
        db.UniqueConstraint("goal_id", "version", name="uq_goal_report_version"),
    )

    id = db.Column(db.Integer, primary_key=True)
    goal_id = db.Column(db.Integer, db.ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    submitted_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    version = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    report_type = db.Column(db.String(30), default="progress")
    is_completion_report = db.Column(db.Boolean, nullable=False, default=False)
    progress_at_submission = db.Column(db.Integer, nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "goal_id": self.goal_id,
            "submitted_by_id": self.submitted_by_id,
            "version": self.version,
            "title": self.title,
            "description": self.description,
            "report_type": self.report_type,
            "is_completion_report": self.is_completion_report,
            "progress_at_submission": self.progress_at_submission,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }

"""
BranchModel — abstract base for branch-owned tables.

Every record the policy engine reasons about belongs to exactly one branch.
Subclasses declare how they map onto the engine's Resource snapshot:

    __owner_column__       column holding the creator / owner id
    __department_column__  column holding the department id (optional)
    assigned_ids_select()  classmethod returning a SELECT of record ids the
                           given principal is assigned to (optional)

``services.helpers.scoped_queries.apply_scope`` reads these to build the SQL
equivalent of ``ScopeSpec.contains``.
"""

from datetime import datetime, timezone

from branchpolicy.models import db


def utcnow():
    return datetime.now(timezone.utc)


class BranchModel(db.Model):
    """Abstract base for branch-scoped tables."""
    __abstract__ = True

    __owner_column__ = "created_by_id"
    __department_column__ = None

    branch_id = db.Column(
        db.Integer,
        db.ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_branch(cls, branch_id):
        """Return a query filtered by branch_id."""
        return cls.query.filter_by(branch_id=branch_id)

    @classmethod
    def assigned_ids_select(cls, principal_id):
        return None

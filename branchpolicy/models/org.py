"""
Organisation models — branches (sucursales), departments and users.

Models:
    - Branch: one deployment's registry entry; other sucursales are
      registered by a SUPER_ADMIN of the registering branch
    - Department: branch-owned grouping with at most one supervisor
    - User: the principal behind every request
"""

from sqlalchemy import select

from branchpolicy.models import db
from branchpolicy.models.base import BranchModel, utcnow
from branchpolicy.services.identity import DepartmentRef, Principal, Resource, ResourceKind


# ── Constants ────────────────────────────────────────────────────────────────

USER_STATUSES = {"PENDING", "ACTIVE", "INACTIVE"}


# ═══════════════════════════════════════════════════════════════
# 1. BRANCHES
# ═══════════════════════════════════════════════════════════════
class Branch(db.Model):
    __tablename__ = "branches"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(50), unique=True, nullable=True)
    server_url = db.Column(db.String(300), nullable=True)
    description = db.Column(db.Text, default="")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    # Branch whose SUPER_ADMIN manages this registry entry; null for a root branch.
    registry_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def managing_branch_id(self) -> int:
        return self.registry_branch_id or self.id

    def to_resource(self) -> Resource:
        return Resource(
            kind=ResourceKind.SUCURSAL,
            id=self.id,
            branch_id=self.managing_branch_id,
            owner_id=self.created_by_id,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "server_url": self.server_url,
            "description": self.description,
            "is_active": self.is_active,
            "registry_branch_id": self.registry_branch_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Branch {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. DEPARTMENTS
# ═══════════════════════════════════════════════════════════════
class Department(BranchModel):
    __tablename__ = "departments"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "name", name="uq_department_branch_name"),
    )
    __department_column__ = "id"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    # Plain integer: users ↔ departments reference each other.
    supervisor_id = db.Column(db.Integer, nullable=True, index=True)
    created_by_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    members = db.relationship("User", back_populates="department", lazy="dynamic",
                              foreign_keys="User.department_id")

    @classmethod
    def assigned_ids_select(cls, principal_id):
        return select(cls.id).where(cls.supervisor_id == principal_id)

    def to_resource(self) -> Resource:
        return Resource(
            kind=ResourceKind.DEPARTMENT,
            id=self.id,
            branch_id=self.branch_id,
            owner_id=self.created_by_id,
            department_id=self.id,
            assignee_ids=frozenset({self.supervisor_id}) if self.supervisor_id else frozenset(),
        )

    def to_ref(self) -> DepartmentRef:
        return DepartmentRef(self.id, self.branch_id, self.supervisor_id)

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "supervisor_id": self.supervisor_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_counts:
            d["member_count"] = self.members.filter_by(status="ACTIVE").count()
        return d

    def __repr__(self):
        return f"<Department {self.id}: {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 3. USERS
# ═══════════════════════════════════════════════════════════════
class User(BranchModel):
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "email", name="uq_user_branch_email"),
    )
    __owner_column__ = "id"
    __department_column__ = "department_id"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False)
    full_name = db.Column(db.String(200), default="")
    role = db.Column(db.String(30), nullable=False, default="USER")
    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by_id = db.Column(db.Integer, nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    department = db.relationship("Department", back_populates="members", foreign_keys=[department_id])

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"

    def to_principal(self) -> Principal:
        return Principal(self.id, self.role, self.branch_id, self.department_id)

    def to_resource(self) -> Resource:
        return Resource(
            kind=ResourceKind.USER,
            id=self.id,
            branch_id=self.branch_id,
            owner_id=self.id,
            department_id=self.department_id,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "status": self.status,
            "department_id": self.department_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"

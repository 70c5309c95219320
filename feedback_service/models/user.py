from flask_login import UserMixin
from sqlalchemy import func, CheckConstraint
from feedback_service.extensions import db, login_manager

# Keep simple text+CHECK for evolvable roles (no DB enum migration pain)
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_EMPLOYEE = "employee"
ROLE_CHOICES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_EMPLOYEE)

class User(db.Model, UserMixin):
    """Directory entry. Owned by the user directory; feedback code only reads it."""
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.String(20), nullable=False, server_default=ROLE_EMPLOYEE)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin','manager','employee')",
            name="ck_users_role_valid",
        ),
    )

    def get_id(self) -> str:
        return str(self.id)

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role!r}>"

@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None

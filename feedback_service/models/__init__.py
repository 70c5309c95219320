from .user import User, ROLE_ADMIN, ROLE_MANAGER, ROLE_EMPLOYEE, ROLE_CHOICES
from .team import Team, TeamMember
from .feedback import Feedback, SENTIMENTS, EDITABLE_FIELDS
from .feedback_history import FeedbackHistory, FeedbackSnapshot, AuditEntryImmutable

__all__ = [
    "User",
    "Team",
    "TeamMember",
    "Feedback",
    "FeedbackHistory",
    "FeedbackSnapshot",
    "AuditEntryImmutable",
    "SENTIMENTS",
    "EDITABLE_FIELDS",
    "ROLE_ADMIN",
    "ROLE_MANAGER",
    "ROLE_EMPLOYEE",
    "ROLE_CHOICES",
]

"""Progress Service models package.

Re-exports all models and enums so that:
  - ``from services.progress_service.models import Member`` works
  - Alembic env.py sees every table through a single import
  - SQLAlchemy's mapper registry sees every model class on import

IMPORTANT: Every model class AND enum must be listed here.
"""

from services.progress_service.models.audit import (  # noqa: F401
    ProgressAuditLog,
    ProgressEvent,
)
from services.progress_service.models.curriculum import (  # noqa: F401
    AssignableItem,
    CurriculumGroup,
    EventParticipation,
    ItemQuizQuestion,
)
from services.progress_service.models.enums import (  # noqa: F401
    AgeBracket,
    AnswerType,
    AuditAction,
    CompletionStatus,
    GroupKind,
    ItemKind,
    ItemScope,
    LedgerSource,
    MemberRole,
    ProgressEventType,
    ProgressStatus,
    RankingScope,
)
from services.progress_service.models.ledger import PointsLedgerEntry  # noqa: F401
from services.progress_service.models.member import Club, Member, Unit  # noqa: F401
from services.progress_service.models.progress import (  # noqa: F401
    ClassMilestone,
    ProgressRecord,
    SpecialtyCompletion,
)

__all__ = [
    # Enums
    "AgeBracket",
    "AnswerType",
    "AuditAction",
    "CompletionStatus",
    "GroupKind",
    "ItemKind",
    "ItemScope",
    "LedgerSource",
    "MemberRole",
    "ProgressEventType",
    "ProgressStatus",
    "RankingScope",
    # Members
    "Club",
    "Unit",
    "Member",
    # Curriculum
    "CurriculumGroup",
    "EventParticipation",
    "AssignableItem",
    "ItemQuizQuestion",
    # Progress
    "ProgressRecord",
    "SpecialtyCompletion",
    "ClassMilestone",
    # Ledger
    "PointsLedgerEntry",
    # Audit
    "ProgressAuditLog",
    "ProgressEvent",
]

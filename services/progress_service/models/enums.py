"""Enums for the Progress Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class MemberRole(str, enum.Enum):
    PATHFINDER = "pathfinder"
    COUNSELOR = "counselor"
    INSTRUCTOR = "instructor"
    DIRECTOR = "director"
    ADMIN = "admin"
    PARENT = "parent"


class GroupKind(str, enum.Enum):
    CLASS = "class"
    SPECIALTY = "specialty"
    REGIONAL_EVENT = "regional_event"


class ItemKind(str, enum.Enum):
    CLASS_REQUIREMENT = "class_requirement"
    SPECIALTY_REQUIREMENT = "specialty_requirement"
    EVENT_REQUIREMENT = "event_requirement"


class AnswerType(str, enum.Enum):
    NONE = "none"
    TEXT = "text"
    FILE = "file"
    BOTH = "both"
    QUIZ = "quiz"


class ItemScope(str, enum.Enum):
    GLOBAL = "global"
    REGION = "region"
    CLUB = "club"


class ProgressStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CompletionStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"


class LedgerSource(str, enum.Enum):
    REQUIREMENT = "requirement"
    SPECIALTY = "specialty"
    ACTIVITY = "activity"
    EVENT = "event"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    ATTENDANCE = "attendance"
    PURCHASE = "purchase"


class AuditAction(str, enum.Enum):
    DIRECT_AWARD = "direct_award"
    REVOKE = "revoke"
    DELETE_HISTORY = "delete_history"
    RESET_BALANCE = "reset_balance"
    RECOMPUTE_DRIFT = "recompute_drift"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    FORK_ITEM = "fork_item"
    RETIRE_FORK = "retire_fork"


class ProgressEventType(str, enum.Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVOKED = "revoked"
    SPECIALTY_COMPLETED = "specialty_completed"
    SPECIALTY_REOPENED = "specialty_reopened"
    CLASS_MILESTONE = "class_milestone"
    CLASS_COMPLETED = "class_completed"
    POINTS_AWARDED = "points_awarded"


class RankingScope(str, enum.Enum):
    GLOBAL = "global"
    UNION = "union"
    MISSION = "mission"
    CLUB = "club"
    UNIT = "unit"


class AgeBracket(str, enum.Enum):
    JUNIOR = "junior"
    SENIOR = "senior"

"""Progress Service schemas package.

Re-exports all schemas so that:
  - ``from services.progress_service.schemas import ProgressResponse`` works
  - Router files import from a single place

IMPORTANT: Every schema class must be listed here.
When adding a new schema, add its import and __all__ entry.
"""

from services.progress_service.schemas.admin import (  # noqa: F401
    AuditLogEntry,
    AuditLogListResponse,
    AwardSpecialtyRequest,
    DeleteHistoryResponse,
    ForkItemRequest,
    ItemResponse,
    PendingQueueResponse,
    RejectRequest,
    RetireForkRequest,
    RevokeRequest,
)
from services.progress_service.schemas.event import (  # noqa: F401
    ProgressEventListResponse,
    ProgressEventResponse,
)
from services.progress_service.schemas.ledger import (  # noqa: F401
    AdjustPointsRequest,
    BalanceResponse,
    BulkAwardRequest,
    BulkAwardResponse,
    BulkAwardResultItem,
    LedgerEntryResponse,
    LedgerHistoryResponse,
    RecomputeResponse,
    ResetBalanceRequest,
    ResetBalanceResponse,
)
from services.progress_service.schemas.progress import (  # noqa: F401
    AssignSpecialtyRequest,
    IsCompleteResponse,
    ProgressListResponse,
    ProgressResponse,
    SpecialtyCompletionResponse,
    SubmitProgressRequest,
)
from services.progress_service.schemas.ranking import (  # noqa: F401
    ClubRankingEntry,
    DailyScoreEntry,
    EventRankingEntry,
    MemberRankingEntry,
    UnitMemberContributionEntry,
    UnitRankingDetailsResponse,
    UnitRankingEntry,
)

__all__ = [
    # Admin
    "AuditLogEntry",
    "AuditLogListResponse",
    "AwardSpecialtyRequest",
    "DeleteHistoryResponse",
    "ForkItemRequest",
    "ItemResponse",
    "PendingQueueResponse",
    "RejectRequest",
    "RetireForkRequest",
    "RevokeRequest",
    # Events
    "ProgressEventListResponse",
    "ProgressEventResponse",
    # Ledger
    "AdjustPointsRequest",
    "BalanceResponse",
    "BulkAwardRequest",
    "BulkAwardResponse",
    "BulkAwardResultItem",
    "LedgerEntryResponse",
    "LedgerHistoryResponse",
    "RecomputeResponse",
    "ResetBalanceRequest",
    "ResetBalanceResponse",
    # Progress
    "AssignSpecialtyRequest",
    "IsCompleteResponse",
    "ProgressListResponse",
    "ProgressResponse",
    "SpecialtyCompletionResponse",
    "SubmitProgressRequest",
    # Rankings
    "ClubRankingEntry",
    "DailyScoreEntry",
    "EventRankingEntry",
    "MemberRankingEntry",
    "UnitMemberContributionEntry",
    "UnitRankingDetailsResponse",
    "UnitRankingEntry",
]

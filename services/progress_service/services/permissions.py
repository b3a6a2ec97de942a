"""Role and club-scope checks applied inside service operations."""

from typing import Optional

from libs.auth.models import AuthUser
from services.progress_service.models import Member
from services.progress_service.services.errors import NotAuthorized


def _ensure_same_club(actor: AuthUser, member: Member) -> None:
    if actor.is_cross_club or actor.club_id is None:
        return
    if actor.club_id != member.club_id:
        raise NotAuthorized("Member belongs to another club")


def ensure_reviewer(actor: AuthUser, member: Member) -> None:
    """Approve / reject / revoke / award: reviewer role, never on oneself."""
    if not actor.is_reviewer:
        raise NotAuthorized(f"Role '{actor.role}' may not review progress")
    if actor.member_id is not None and actor.member_id == member.id:
        raise NotAuthorized("Members cannot review their own progress")
    _ensure_same_club(actor, member)


def ensure_privileged(actor: AuthUser, member: Optional[Member] = None) -> None:
    if not actor.is_privileged:
        raise NotAuthorized(f"Role '{actor.role}' may not perform this operation")
    if member is not None:
        if actor.member_id is not None and actor.member_id == member.id:
            raise NotAuthorized("Administrative overrides on oneself are not allowed")
        _ensure_same_club(actor, member)


def ensure_can_submit(actor: AuthUser, member: Member) -> None:
    """Members answer for themselves; staff may enter answers on their behalf."""
    if actor.member_id is not None and actor.member_id == member.id:
        return
    if not actor.is_reviewer:
        raise NotAuthorized("Cannot submit progress for another member")
    _ensure_same_club(actor, member)


def ensure_can_view(actor: AuthUser, member: Member) -> None:
    if actor.member_id is not None and actor.member_id == member.id:
        return
    if not actor.is_reviewer:
        raise NotAuthorized("Cannot view another member's progress")
    _ensure_same_club(actor, member)

"""Integration tests for leaderboards and the internal event feed."""

import pytest
from libs.auth.models import AuthUser
from services.progress_service.models import GroupKind, ItemKind
from tests.factories import (
    ClubFactory,
    GroupFactory,
    ItemFactory,
    MemberFactory,
    UnitFactory,
)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_and_unit_leaderboards(progress_client, persist):
    club = ClubFactory.create()
    unit = UnitFactory.create(club_id=club.id, name="Falcons")
    top = MemberFactory.create(
        club_id=club.id, unit_id=unit.id, name="Top", points_balance=90
    )
    low = MemberFactory.create(
        club_id=club.id, unit_id=unit.id, name="Low", points_balance=10
    )
    await persist(club, unit, top, low)

    response = await progress_client.get(
        "/rankings/members", params={"scope": "club", "scope_key": str(club.id)}
    )
    assert response.status_code == 200, response.text
    assert [r["name"] for r in response.json()] == ["Top", "Low"]

    response = await progress_client.get(
        "/rankings/units", params={"club_id": str(club.id)}
    )
    assert response.json()[0]["average_points"] == 50.0

    response = await progress_client.get(f"/rankings/units/{unit.id}")
    members = response.json()["members"]
    assert [m["contribution_pct"] for m in members] == [90.0, 10.0]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_scoped_ranking_without_key_is_bad_request(progress_client):
    response = await progress_client.get("/rankings/members", params={"scope": "unit"})
    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_club_leaderboard_and_recent_scores(progress_client, persist):
    club = ClubFactory.create(name="Pioneers", mission="East")
    await persist(club, MemberFactory.create(club_id=club.id, points_balance=12))

    response = await progress_client.get("/rankings/clubs", params={"mission": "East"})
    assert response.status_code == 200
    assert response.json()[0]["name"] == "Pioneers"

    response = await progress_client.get(
        f"/rankings/clubs/{club.id}/recent-scores", params={"days": 5}
    )
    assert response.status_code == 200
    scores = response.json()
    assert len(scores) == 5
    assert all(s["points"] == 0 for s in scores)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_event_leaderboard_unknown_event(progress_client, persist):
    group = GroupFactory.create(kind=GroupKind.CLASS)
    await persist(group)

    response = await progress_client.get(f"/rankings/events/{group.id}")
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Internal event feed
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_event_feed_is_service_only_and_paginates(
    progress_client, persist, acting_as
):
    club = ClubFactory.create()
    member = MemberFactory.create(club_id=club.id)
    group = GroupFactory.create(kind=GroupKind.CLASS)
    item = ItemFactory.create(group_id=group.id, kind=ItemKind.CLASS_REQUIREMENT)
    await persist(club, member, group, item)

    acting_as(
        AuthUser(user_id="pf", role="pathfinder", club_id=club.id, member_id=member.id)
    )
    await progress_client.post(
        f"/progress/items/{item.id}/submit", json={"answer_text": "done"}
    )
    acting_as(AuthUser(user_id="counselor-1", role="counselor", club_id=club.id))
    await progress_client.post(f"/admin/progress/{member.id}/{item.id}/approve")

    response = await progress_client.get("/internal/progress/events")
    assert response.status_code == 403

    acting_as(AuthUser(user_id="notifier", role="service_role"))
    response = await progress_client.get(
        "/internal/progress/events", params={"limit": 1}
    )
    assert response.status_code == 200, response.text
    page = response.json()
    assert [e["event_type"] for e in page["events"]] == ["submitted"]

    response = await progress_client.get(
        "/internal/progress/events", params={"after": page["next_after"]}
    )
    types = {e["event_type"] for e in response.json()["events"]}
    assert {"approved", "class_completed"} <= types

    response = await progress_client.get(
        "/internal/progress/events", params={"after": 10_000}
    )
    assert response.json() == {"events": [], "next_after": 10_000}

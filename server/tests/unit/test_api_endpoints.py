"""End-to-end tests of the RPC endpoints through the ASGI app."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from club_outings.models import Member, MemberRole
from club_outings.services.notification_service import NotificationTemplate


def new_member(role: MemberRole = MemberRole.MEMBER, first_name: str = "Remy") -> Member:
    """A member that only exists in its token until its first request."""
    return Member(
        id=uuid4(),
        email=f"{first_name.lower()}-{uuid4().hex[:6]}@club.example",
        first_name=first_name,
        last_name="Diver",
        role=role,
    )


async def create_outing(client, headers, data) -> dict:
    response = await client.post("/v1/outing/create", json=data, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
async def test_outing_lifecycle(test_client, organizer, headers_for, sample_outing_data):
    headers = headers_for(organizer)
    outing = await create_outing(test_client, headers, sample_outing_data)

    assert outing["title"] == "Night dive at the quarry"
    assert outing["confirmed_count"] == 1
    assert outing["seats_left"] == 3
    assert outing["organizer_name"] == "Olivia Test"
    assert outing["date_time"].startswith("2030-06-10T19:00:00")

    response = await test_client.post("/v1/outing/get", json={"outing_id": outing["id"]}, headers=headers)
    assert response.status_code == 200
    assert response.json()["id"] == outing["id"]

    response = await test_client.post(
        "/v1/outing/update",
        json={"outing_id": outing["id"], "max_participants": 6, "location": "Carrière de Vodelée"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["seats_left"] == 5
    assert response.json()["location"] == "Carrière de Vodelée"

    response = await test_client.post("/v1/outing/archive", json={"outing_id": outing["id"]}, headers=headers)
    assert response.json()["is_archived"] is True

    response = await test_client.post(
        "/v1/outing/report",
        json={"outing_id": outing["id"], "session_report": "All divers back, 9m visibility"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["session_report"] == "All divers back, 9m visibility"


@pytest.mark.asyncio
async def test_search_hides_staff_only_from_members(test_client, organizer, headers_for, sample_outing_data):
    await create_outing(test_client, headers_for(organizer), sample_outing_data)
    await create_outing(
        test_client,
        headers_for(organizer),
        {**sample_outing_data, "title": "Instructor refresher", "is_staff_only": True},
    )

    member_view = await test_client.post("/v1/outing/search", json={}, headers=headers_for(new_member()))
    staff_view = await test_client.post("/v1/outing/search", json={}, headers=headers_for(organizer))

    assert [o["title"] for o in member_view.json()["items"]] == ["Night dive at the quarry"]
    assert len(staff_view.json()["items"]) == 2
    assert member_view.json()["next_cursor"] is None


@pytest.mark.asyncio
async def test_member_cannot_create_outing(test_client, headers_for, sample_outing_data):
    response = await test_client.post(
        "/v1/outing/create", json=sample_outing_data, headers=headers_for(new_member())
    )

    assert response.status_code == 403
    assert response.headers["content-type"] == "application/problem+json"
    assert response.json()["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_invalid_payload_lists_violations(test_client, organizer, headers_for, sample_outing_data):
    response = await test_client.post(
        "/v1/outing/create",
        json={**sample_outing_data, "max_participants": 0, "title": ""},
        headers=headers_for(organizer),
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    paths = {violation["path"] for violation in body["violations"]}
    assert {"body.max_participants", "body.title"} <= paths


@pytest.mark.asyncio
async def test_passenger_cannot_offer_seats(test_client, headers_for):
    response = await test_client.post(
        "/v1/reservation/create",
        json={"outing_id": str(uuid4()), "carpool_option": "passenger", "carpool_seats": 2},
        headers=headers_for(new_member()),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reservation_flow_with_waitlist(
    test_client, organizer, headers_for, sample_outing_data, dispatcher
):
    outing = await create_outing(
        test_client, headers_for(organizer), {**sample_outing_data, "max_participants": 2}
    )
    alice, bob = new_member(first_name="Alice"), new_member(first_name="Bob")

    response = await test_client.post(
        "/v1/reservation/create", json={"outing_id": outing["id"]}, headers=headers_for(alice)
    )
    assert response.json()["status"] == "confirmed"

    response = await test_client.post(
        "/v1/reservation/create",
        json={"outing_id": outing["id"], "carpool_option": "driver", "carpool_seats": 3},
        headers=headers_for(bob),
    )
    assert response.json()["status"] == "waitlisted"
    assert response.json()["carpool_seats"] == 3

    response = await test_client.post(
        "/v1/reservation/create", json={"outing_id": outing["id"]}, headers=headers_for(alice)
    )
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_RESERVATION"
    assert response.json()["retryable"] is False

    roster = await test_client.post(
        "/v1/reservation/list", json={"outing_id": outing["id"]}, headers=headers_for(alice)
    )
    assert [e["first_name"] for e in roster.json()["confirmed"]] == ["Olivia", "Alice"]
    assert [(e["first_name"], e["waitlist_position"]) for e in roster.json()["waitlist"]] == [("Bob", 1)]

    response = await test_client.post(
        "/v1/reservation/cancel", json={"outing_id": outing["id"]}, headers=headers_for(alice)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["cancelled"]["status"] == "cancelled"
    assert body["promoted"]["member_id"] == str(bob.id)

    response = await test_client.post(
        "/v1/reservation/cancel", json={"outing_id": outing["id"]}, headers=headers_for(alice)
    )
    assert response.status_code == 409
    assert response.json()["code"] == "ALREADY_CANCELLED"

    mine = await test_client.post("/v1/reservation/mine", headers=headers_for(bob))
    items = mine.json()["items"]
    assert len(items) == 1
    assert items[0]["reservation"]["status"] == "confirmed"
    assert items[0]["outing_title"] == "Night dive at the quarry"

    assert dispatcher.recipients(NotificationTemplate.PROMOTION) == [bob.email]


@pytest.mark.asyncio
async def test_presence_is_marked_by_organizer(test_client, organizer, headers_for, sample_outing_data):
    outing = await create_outing(test_client, headers_for(organizer), sample_outing_data)
    diver = new_member()
    reservation = (await test_client.post(
        "/v1/reservation/create", json={"outing_id": outing["id"]}, headers=headers_for(diver)
    )).json()

    denied = await test_client.post(
        "/v1/reservation/presence",
        json={"reservation_id": reservation["id"], "is_present": True},
        headers=headers_for(diver),
    )
    assert denied.status_code == 403

    marked = await test_client.post(
        "/v1/reservation/presence",
        json={"reservation_id": reservation["id"], "is_present": True},
        headers=headers_for(organizer),
    )
    assert marked.status_code == 200
    assert marked.json()["is_present"] is True


@pytest.mark.asyncio
async def test_carpool_flow(test_client, organizer, headers_for, sample_outing_data, dispatcher):
    outing = await create_outing(test_client, headers_for(organizer), sample_outing_data)
    driver, rider, latecomer = new_member(first_name="Dora"), new_member(), new_member()

    response = await test_client.post(
        "/v1/carpool/create",
        json={
            "outing_id": outing["id"],
            "departure_time": "2030-06-10T17:30:00Z",
            "meeting_point": "Gare du Midi",
            "available_seats": 1,
        },
        headers=headers_for(driver),
    )
    assert response.status_code == 200
    carpool = response.json()
    assert carpool["driver_name"] == "Dora Diver"
    assert carpool["seats_left"] == 1

    booked = await test_client.post(
        "/v1/carpool/book",
        json={"carpool_id": carpool["id"], "outing_id": outing["id"]},
        headers=headers_for(rider),
    )
    assert booked.status_code == 200
    assert booked.json()["seats_left"] == 0
    assert [p["passenger_id"] for p in booked.json()["passengers"]] == [str(rider.id)]

    full = await test_client.post(
        "/v1/carpool/book",
        json={"carpool_id": carpool["id"], "outing_id": outing["id"]},
        headers=headers_for(latecomer),
    )
    assert full.status_code == 409
    assert full.json()["code"] == "CARPOOL_FULL"

    outing_view = await test_client.post(
        "/v1/outing/get", json={"outing_id": outing["id"]}, headers=headers_for(rider)
    )
    assert outing_view.json()["carpool_count"] == 1
    assert outing_view.json()["carpool_seats_offered"] == 1

    listing = await test_client.post(
        "/v1/carpool/list", json={"outing_id": outing["id"]}, headers=headers_for(latecomer)
    )
    assert [c["id"] for c in listing.json()["items"]] == [carpool["id"]]

    deleted = await test_client.post(
        "/v1/carpool/delete", json={"carpool_id": carpool["id"]}, headers=headers_for(driver)
    )
    assert deleted.status_code == 200
    assert deleted.json()["displaced_passengers"] == 1
    assert dispatcher.recipients(NotificationTemplate.CARPOOL_CANCELLED) == [rider.email]


@pytest.mark.asyncio
async def test_cancel_outing_endpoint(test_client, organizer, headers_for, sample_outing_data, dispatcher):
    outing = await create_outing(test_client, headers_for(organizer), sample_outing_data)
    diver = new_member()
    await test_client.post("/v1/reservation/create", json={"outing_id": outing["id"]}, headers=headers_for(diver))

    response = await test_client.post(
        "/v1/outing/cancel",
        json={"outing_id": outing["id"], "reason": "Quarry closed"},
        headers=headers_for(organizer),
    )
    assert response.status_code == 200
    assert response.json()["cancelled_reservations"] == 2

    gone = await test_client.post("/v1/outing/get", json={"outing_id": outing["id"]}, headers=headers_for(diver))
    assert gone.status_code == 404
    assert gone.json()["code"] == "NOT_FOUND"
    assert diver.email in dispatcher.recipients(NotificationTemplate.OUTING_CANCELLED)


@pytest.mark.asyncio
async def test_authentication_failures(test_client, token_for):
    member = new_member()

    missing = await test_client.post("/v1/outing/search", json={})
    assert missing.status_code == 401

    forged = await test_client.post(
        "/v1/outing/search",
        json={},
        headers={"Authorization": f"Bearer {token_for(member, secret='not-the-secret')}"},
    )
    assert forged.status_code == 401
    assert forged.json()["code"] == "NOT_AUTHENTICATED"

    wrong_scheme = await test_client.post(
        "/v1/outing/search", json={}, headers={"Authorization": f"Basic {token_for(member)}"}
    )
    assert wrong_scheme.status_code == 401


@pytest.mark.asyncio
async def test_tokens_must_carry_an_unexpired_exp(test_client, token_for):
    member = new_member()

    no_expiry = await test_client.post(
        "/v1/reservation/mine",
        headers={"Authorization": f"Bearer {token_for(member, exp=None)}"},
    )
    assert no_expiry.status_code == 401
    assert no_expiry.json()["code"] == "NOT_AUTHENTICATED"

    stale_token = token_for(member, exp=datetime.now(timezone.utc) - timedelta(minutes=5))
    expired = await test_client.post(
        "/v1/reservation/mine", headers={"Authorization": f"Bearer {stale_token}"}
    )
    assert expired.status_code == 401


@pytest.mark.asyncio
async def test_token_refreshes_member_profile(test_client, test_session, headers_for):
    member = new_member(first_name="Before")
    await test_client.post("/v1/outing/search", json={}, headers=headers_for(member))

    await test_client.post(
        "/v1/outing/search",
        json={},
        headers=headers_for(member, first_name="After", roles=["member", "organizer"]),
    )

    stored = await test_session.get(Member, member.id, populate_existing=True)
    assert stored.first_name == "After"
    assert stored.role == MemberRole.ORGANIZER

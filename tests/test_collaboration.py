from datetime import timedelta

from sqlalchemy import func, select, update

from pixinity.background import drain
from pixinity.database import async_session_maker
from pixinity.models import CollectionCollaborator, CollaboratorStatus, Notification
from pixinity.services import collaboration
from pixinity.utils import aware, now_tz


async def make_collection(actor, **body):
    resp = await actor.client.post("/api/collections", json={"name": "Coastlines", **body})
    assert resp.status_code == 201, resp.text
    return resp.json()["collection"]


async def invitation(collection_id: int, email: str) -> CollectionCollaborator:
    async with async_session_maker() as db:
        return await db.scalar(
            select(CollectionCollaborator)
            .where(CollectionCollaborator.collection_id == collection_id, CollectionCollaborator.email == email)
            .order_by(CollectionCollaborator.id.desc())
        )


async def invitation_count(collection_id: int) -> int:
    async with async_session_maker() as db:
        return await db.scalar(
            select(func.count()).select_from(CollectionCollaborator).where(
                CollectionCollaborator.collection_id == collection_id
            )
        )


async def join(actor, identifier, code):
    return await actor.client.post(f"/api/collections/{identifier}/join", json={"otpCode": code})


async def test_create_invites_pending_rows_with_six_digit_codes(alice, bob):
    collection = await make_collection(
        alice, isCollaborative=True, collaboratorEmails=["bob@example.com", "newcomer@example.com"]
    )

    assert [c["status"] for c in collection["collaborators"]] == ["pending", "pending"]
    by_email = {c["email"]: c for c in collection["collaborators"]}
    assert by_email["bob@example.com"]["userId"] == bob.id
    assert by_email["newcomer@example.com"]["userId"] is None
    assert "otpCode" not in by_email["bob@example.com"]

    row = await invitation(collection["id"], "bob@example.com")
    assert len(row.otp_code) == 6 and row.otp_code.isdigit()
    remaining = aware(row.otp_expires_at) - now_tz()
    assert timedelta(hours=23, minutes=59) < remaining <= timedelta(hours=24)


async def test_non_collaborative_collection_ignores_collaborator_emails(alice):
    collection = await make_collection(alice, collaboratorEmails=["bob@example.com"])

    assert collection["collaborators"] is None
    assert await invitation_count(collection["id"]) == 0


async def test_invitee_without_account_registers_then_joins(alice, register):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["b@example.com"])
    code = (await invitation(collection["id"], "b@example.com")).otp_code

    b = await register("bee", email="b@example.com")
    resp = await join(b, collection["uuid"], code)

    assert resp.status_code == 200, resp.text
    joined = resp.json()["collaborator"]
    assert joined["status"] == "accepted"
    assert joined["userId"] == b.id
    assert joined["respondedAt"] is not None

    await drain()
    async with async_session_maker() as db:
        notes = (await db.execute(select(Notification).where(Notification.user_id == alice.id))).scalars().all()
    assert [n.type for n in notes] == ["collaboration_accepted"]


async def test_private_collection_rejects_outsider_before_checking_code(alice, carol):
    collection = await make_collection(
        alice, isPrivate=True, isCollaborative=True, collaboratorEmails=["a@example.com"]
    )
    code = (await invitation(collection["id"], "a@example.com")).otp_code

    with_right_code = await join(carol, collection["uuid"], code)
    with_wrong_code = await join(carol, collection["uuid"], "000000" if code != "000000" else "111111")

    assert with_right_code.status_code == 403
    assert with_wrong_code.status_code == 403
    assert (await invitation(collection["id"], "a@example.com")).status == CollaboratorStatus.pending


async def test_join_requires_collaborative_flag(alice, bob):
    collection = await make_collection(alice)

    resp = await join(bob, collection["uuid"], "123456")

    assert resp.status_code == 403
    assert resp.json() == {"error": "This collection is not collaborative"}


async def test_wrong_code_is_invalid(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    code = (await invitation(collection["id"], "bob@example.com")).otp_code
    wrong = f"{(int(code) + 1) % 1_000_000:06d}"

    resp = await join(bob, collection["uuid"], wrong)

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid invitation code"}


async def test_expired_code_reports_expired_not_invalid(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    row = await invitation(collection["id"], "bob@example.com")
    async with async_session_maker() as db:
        await db.execute(
            update(CollectionCollaborator)
            .where(CollectionCollaborator.id == row.id)
            .values(otp_expires_at=now_tz() - timedelta(minutes=1))
        )
        await db.commit()

    resp = await join(bob, collection["uuid"], row.otp_code)

    assert resp.status_code == 410
    assert "expired" in resp.json()["error"].lower()


async def test_code_bound_to_another_account_is_denied(alice, bob, carol):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    code = (await invitation(collection["id"], "bob@example.com")).otp_code

    resp = await join(carol, collection["uuid"], code)

    assert resp.status_code == 403
    assert resp.json() == {"error": "This invitation is for another user"}


async def test_code_is_single_use(alice, register):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["open@example.com"])
    code = (await invitation(collection["id"], "open@example.com")).otp_code
    first = await register("first", email="open@example.com")
    second = await register("second")

    assert (await join(first, collection["uuid"], code)).status_code == 200
    resp = await join(second, collection["uuid"], code)

    assert resp.status_code == 400


async def test_join_accepts_numeric_identifier(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    code = (await invitation(collection["id"], "bob@example.com")).otp_code

    resp = await join(bob, collection["id"], code)

    assert resp.status_code == 200


async def test_join_requires_session(alice, anon):
    collection = await make_collection(alice, isCollaborative=True)

    resp = await anon.post(f"/api/collections/{collection['uuid']}/join", json={"otpCode": "123456"})

    assert resp.status_code == 401


async def test_resend_replaces_code_and_resets_expiry(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    row = await invitation(collection["id"], "bob@example.com")
    async with async_session_maker() as db:
        await db.execute(
            update(CollectionCollaborator)
            .where(CollectionCollaborator.id == row.id)
            .values(otp_expires_at=now_tz() + timedelta(hours=1))
        )
        await db.commit()

    resp = await alice.client.post(f"/api/collections/{collection['uuid']}/collaborators/{row.id}/resend")
    assert resp.status_code == 200, resp.text

    fresh = await invitation(collection["id"], "bob@example.com")
    assert fresh.id == row.id
    assert aware(fresh.otp_expires_at) - now_tz() > timedelta(hours=23)
    assert fresh.otp_code != row.otp_code
    assert (await join(bob, collection["uuid"], row.otp_code)).status_code == 400
    assert (await join(bob, collection["uuid"], fresh.otp_code)).status_code == 200


async def test_resend_of_accepted_invitation_is_not_found(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    row = await invitation(collection["id"], "bob@example.com")
    await join(bob, collection["uuid"], row.otp_code)

    resp = await alice.client.post(f"/api/collections/{collection['uuid']}/collaborators/{row.id}/resend")

    assert resp.status_code == 404
    assert resp.json() == {"error": "This invitation has already been accepted or declined"}


async def test_only_owner_resends_or_removes(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    row = await invitation(collection["id"], "bob@example.com")
    base = f"/api/collections/{collection['uuid']}/collaborators/{row.id}"

    assert (await bob.client.post(f"{base}/resend")).status_code == 403
    assert (await bob.client.delete(base)).status_code == 403


async def test_edit_skips_emails_already_pending_or_accepted(alice, bob):
    collection = await make_collection(
        alice, isCollaborative=True, collaboratorEmails=["bob@example.com", "pending@example.com"]
    )
    code = (await invitation(collection["id"], "bob@example.com")).otp_code
    await join(bob, collection["uuid"], code)
    before = await invitation(collection["id"], "pending@example.com")

    resp = await alice.client.put(
        f"/api/collections/{collection['uuid']}",
        json={"collaboratorEmails": ["BOB@example.com", "pending@example.com", "fresh@example.com"]},
    )

    assert resp.status_code == 200, resp.text
    assert await invitation_count(collection["id"]) == 3
    after = await invitation(collection["id"], "pending@example.com")
    assert (after.id, after.otp_code) == (before.id, before.otp_code)
    assert (await invitation(collection["id"], "fresh@example.com")).status == CollaboratorStatus.pending


async def test_removed_collaborator_loses_private_access(alice, bob):
    collection = await make_collection(
        alice, isPrivate=True, isCollaborative=True, collaboratorEmails=["bob@example.com"]
    )
    row = await invitation(collection["id"], "bob@example.com")
    # a private collection admits only its owner through join; accept on bob's behalf
    async with async_session_maker() as db:
        await db.execute(
            update(CollectionCollaborator)
            .where(CollectionCollaborator.id == row.id)
            .values(status=CollaboratorStatus.accepted, responded_at=now_tz())
        )
        await db.commit()
    assert (await bob.client.get(f"/api/collections/{collection['uuid']}")).status_code == 200

    resp = await alice.client.delete(f"/api/collections/{collection['uuid']}/collaborators/{row.id}")

    assert resp.status_code == 200
    assert await invitation_count(collection["id"]) == 0
    assert (await bob.client.get(f"/api/collections/{collection['uuid']}")).status_code == 403


async def test_remove_unknown_collaborator_is_not_found(alice):
    collection = await make_collection(alice, isCollaborative=True)

    resp = await alice.client.delete(f"/api/collections/{collection['uuid']}/collaborators/9999")

    assert resp.status_code == 404


async def test_collaborator_list_open_to_members_only(alice, bob, carol):
    collection = await make_collection(
        alice, isCollaborative=True, collaboratorEmails=["bob@example.com", "later@example.com"]
    )
    code = (await invitation(collection["id"], "bob@example.com")).otp_code
    await join(bob, collection["uuid"], code)
    path = f"/api/collections/{collection['uuid']}/collaborators"

    as_collaborator = await bob.client.get(path)
    as_visitor = await carol.client.get(path)

    assert as_collaborator.status_code == 200
    assert {c["status"] for c in as_collaborator.json()["collaborators"]} == {"accepted", "pending"}
    assert as_visitor.status_code == 403


async def test_visitor_detail_shows_only_accepted_collaborators(alice, bob, carol):
    collection = await make_collection(
        alice, isCollaborative=True, collaboratorEmails=["bob@example.com", "later@example.com"]
    )
    code = (await invitation(collection["id"], "bob@example.com")).otp_code
    await join(bob, collection["uuid"], code)

    detail = (await carol.client.get(f"/api/collections/{collection['uuid']}")).json()["collection"]

    assert [c["user"]["username"] for c in detail["collaborators"]] == ["bob"]
    assert all("email" not in c for c in detail["collaborators"])
    owner_view = (await alice.client.get(f"/api/collections/{collection['uuid']}")).json()["collection"]
    assert {c["email"] for c in owner_view["collaborators"]} == {"bob@example.com", "later@example.com"}


async def test_anonymous_detail_hides_collaborator_emails(alice, bob, anon):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    code = (await invitation(collection["id"], "bob@example.com")).otp_code
    await join(bob, collection["uuid"], code)

    detail = (await anon.get(f"/api/collections/{collection['uuid']}")).json()["collection"]

    assert [c["status"] for c in detail["collaborators"]] == ["accepted"]
    assert "email" not in detail["collaborators"][0]


async def test_accepted_collaborator_cannot_accept_twice(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob@example.com"])
    first = (await invitation(collection["id"], "bob@example.com")).otp_code
    await join(bob, collection["uuid"], first)
    async with async_session_maker() as db:
        db.add(
            CollectionCollaborator(
                collection_id=collection["id"],
                email="bob@example.com",
                otp_code="424242",
                otp_expires_at=now_tz() + timedelta(hours=1),
            )
        )
        await db.commit()

    resp = await join(bob, collection["uuid"], "424242")

    assert resp.status_code == 409


async def test_racing_second_acceptance_is_a_conflict(alice, bob, monkeypatch):
    collection = await make_collection(
        alice, isCollaborative=True, collaboratorEmails=["bob@example.com", "bob.work@example.com"]
    )
    first = (await invitation(collection["id"], "bob@example.com")).otp_code
    second = (await invitation(collection["id"], "bob.work@example.com")).otp_code
    assert (await join(bob, collection["uuid"], first)).status_code == 200

    # both redemptions passed the membership check before either committed
    async def _not_yet(db, collection_id, user_id):
        return False

    monkeypatch.setattr(collaboration, "is_accepted_collaborator", _not_yet)
    resp = await join(bob, collection["uuid"], second)

    assert resp.status_code == 409
    assert (await invitation(collection["id"], "bob.work@example.com")).status == CollaboratorStatus.pending


async def test_edit_skips_account_email_of_existing_collaborator(alice, bob):
    collection = await make_collection(alice, isCollaborative=True, collaboratorEmails=["bob.work@example.com"])
    code = (await invitation(collection["id"], "bob.work@example.com")).otp_code
    assert (await join(bob, collection["uuid"], code)).status_code == 200

    resp = await alice.client.put(
        f"/api/collections/{collection['uuid']}", json={"collaboratorEmails": ["Bob@Example.com"]}
    )

    assert resp.status_code == 200
    assert await invitation_count(collection["id"]) == 1

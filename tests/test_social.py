from sqlalchemy import select

from conftest import upload
from pixinity.background import drain
from pixinity.database import async_session_maker
from pixinity.models import Notification


async def notification_types(user_id: int) -> list[str]:
    await drain()
    async with async_session_maker() as db:
        rows = await db.execute(select(Notification.type).where(Notification.user_id == user_id).order_by(Notification.id))
        return list(rows.scalars())


# ---------------------------
# likes & saves
# ---------------------------
async def test_like_toggles_back_to_original_state(alice, bob):
    (photo,) = await upload(alice)
    path = f"/api/photos/{photo['id']}"

    assert (await bob.client.post(f"{path}/like")).json() == {"liked": True, "likesCount": 1}
    assert (await bob.client.get(f"{path}/like-status")).json() == {"liked": True, "likesCount": 1}
    assert (await bob.client.post(f"{path}/like")).json() == {"liked": False, "likesCount": 0}
    assert (await bob.client.get(f"{path}/like-status")).json() == {"liked": False, "likesCount": 0}


async def test_like_notifies_owner_but_not_self(alice, bob):
    (photo,) = await upload(alice)

    await alice.client.post(f"/api/photos/{photo['id']}/like")
    await bob.client.post(f"/api/photos/{photo['id']}/like")

    assert await notification_types(alice.id) == ["like"]


async def test_liked_photos_list(alice, bob):
    first, second = await upload(alice, count=2)
    await bob.client.post(f"/api/photos/{first['id']}/like")

    liked = (await alice.client.get(f"/api/users/{bob.id}/liked-photos")).json()

    assert [p["id"] for p in liked["photos"]] == [first["id"]]
    assert liked["total"] == 1
    assert second["id"] not in {p["id"] for p in liked["photos"]}


async def test_like_requires_session(alice, anon):
    (photo,) = await upload(alice)

    resp = await anon.post(f"/api/photos/{photo['id']}/like")

    assert resp.status_code == 401


async def test_saves_are_private_to_the_saver(alice, bob):
    (photo,) = await upload(alice)
    path = f"/api/photos/{photo['id']}"

    assert (await bob.client.post(f"{path}/save")).json() == {"saved": True}
    assert (await bob.client.get(f"{path}/save-status")).json() == {"saved": True}
    assert (await alice.client.get(f"{path}/save-status")).json() == {"saved": False}

    saved = await bob.client.get(f"/api/users/{bob.id}/saved-photos")
    assert [p["id"] for p in saved.json()["photos"]] == [photo["id"]]
    assert (await alice.client.get(f"/api/users/{bob.id}/saved-photos")).status_code == 403

    assert (await bob.client.post(f"{path}/save")).json() == {"saved": False}
    assert (await bob.client.get(f"/api/users/{bob.id}/saved-photos")).json()["total"] == 0


# ---------------------------
# follows
# ---------------------------
async def test_follow_updates_counters_and_lists(alice, bob):
    resp = await bob.client.post(f"/api/users/{alice.id}/follow")

    assert resp.json() == {"following": True, "followersCount": 1}
    assert (await bob.client.get(f"/api/users/{alice.id}/follow-status")).json() == {"following": True}
    assert (await bob.client.get(f"/api/users/{alice.id}")).json()["user"]["followersCount"] == 1
    assert (await bob.client.get(f"/api/users/{bob.id}")).json()["user"]["followingCount"] == 1

    followers = (await bob.client.get(f"/api/users/{alice.id}/followers")).json()
    following = (await bob.client.get(f"/api/users/{bob.id}/following")).json()
    assert [u["username"] for u in followers["users"]] == ["bob"]
    assert [u["username"] for u in following["users"]] == ["alice"]
    assert await notification_types(alice.id) == ["follow"]


async def test_unfollow_restores_counters(alice, bob):
    await bob.client.post(f"/api/users/{alice.id}/follow")

    resp = await bob.client.post(f"/api/users/{alice.id}/follow")

    assert resp.json() == {"following": False, "followersCount": 0}
    assert (await bob.client.get(f"/api/users/{alice.id}/followers")).json()["total"] == 0


async def test_cannot_follow_self_or_missing_user(alice):
    self_follow = await alice.client.post(f"/api/users/{alice.id}/follow")
    missing = await alice.client.post("/api/users/999999/follow")

    assert self_follow.status_code == 400
    assert self_follow.json() == {"error": "You cannot follow yourself"}
    assert missing.status_code == 404


# ---------------------------
# photo comments
# ---------------------------
async def test_comment_and_reply_on_photo(alice, bob):
    (photo,) = await upload(alice)
    path = f"/api/photos/{photo['id']}/comments"

    top = await bob.client.post(path, json={"content": "  Gorgeous light  "})
    assert top.status_code == 201
    comment = top.json()["comment"]
    assert comment["content"] == "Gorgeous light"
    assert comment["user"]["username"] == "bob"

    reply = await alice.client.post(path, json={"content": "Thank you", "parentId": comment["id"]})
    nested = await bob.client.post(path, json={"content": "Deeper", "parentId": reply.json()["comment"]["id"]})
    assert reply.status_code == 201
    assert nested.status_code == 400

    listing = (await bob.client.get(path)).json()
    assert listing["total"] == 1
    assert listing["comments"][0]["replyCount"] == 1
    replies = (await bob.client.get(f"/api/photos/comments/{comment['id']}/replies")).json()["replies"]
    assert [r["content"] for r in replies] == ["Thank you"]
    assert await notification_types(alice.id) == ["comment"]


async def test_comment_like_toggle(alice, bob):
    (photo,) = await upload(alice)
    comment = (
        await bob.client.post(f"/api/photos/{photo['id']}/comments", json={"content": "Nice"})
    ).json()["comment"]

    first = (await alice.client.post(f"/api/photos/comments/{comment['id']}/like")).json()
    second = (await alice.client.post(f"/api/photos/comments/{comment['id']}/like")).json()

    assert first == {"liked": True, "likeCount": 1}
    assert second == {"liked": False, "likeCount": 0}


async def test_comment_validation(alice, bob):
    (photo,) = await upload(alice)
    path = f"/api/photos/{photo['id']}/comments"

    assert (await bob.client.post(path, json={"content": "   "})).status_code == 400
    assert (await bob.client.post(path, json={"content": "x" * 1001})).status_code == 400
    assert (await bob.client.post(path, json={"content": "Hi", "parentId": 424242})).status_code == 400


async def test_no_comments_on_drafts(alice, bob):
    (draft,) = await upload(alice, status="draft")
    path = f"/api/photos/{draft['id']}/comments"

    own = await alice.client.post(path, json={"content": "Note to self"})
    other = await bob.client.post(path, json={"content": "Sneaky"})

    assert own.status_code == 400
    assert own.json() == {"error": "Cannot comment on draft photos"}
    assert other.status_code == 404


# ---------------------------
# profiles
# ---------------------------
async def test_profile_hides_email_from_others(alice, bob, anon):
    as_self = (await alice.client.get("/api/users/username/ALICE")).json()["user"]
    as_other = (await bob.client.get(f"/api/users/{alice.id}")).json()["user"]
    as_anon = (await anon.get("/api/users/username/alice")).json()["user"]

    assert as_self["email"] == "alice@example.com"
    assert "email" not in as_other
    assert "email" not in as_anon
    assert as_other["firstName"] == "Alice"


async def test_profile_counters_follow_live_uploads(alice, anon):
    await upload(alice, count=2)
    await upload(alice, status="draft")

    profile = (await anon.get(f"/api/users/{alice.id}")).json()["user"]

    assert profile["uploadsCount"] == 2


async def test_update_own_profile_only(alice, bob):
    mine = await alice.client.put(f"/api/users/{alice.id}", json={"bio": "  Coastal light  ", "location": "Bergen"})
    theirs = await bob.client.put(f"/api/users/{alice.id}", json={"bio": "hijacked"})

    assert mine.status_code == 200
    assert mine.json()["user"]["bio"] == "Coastal light"
    assert mine.json()["user"]["location"] == "Bergen"
    assert theirs.status_code == 403


async def test_update_profile_rejects_taken_username(alice, bob):
    resp = await bob.client.put(f"/api/users/{bob.id}", json={"username": "Alice"})

    assert resp.status_code == 409


async def test_unknown_profile(anon):
    assert (await anon.get("/api/users/username/nobody")).status_code == 404
    assert (await anon.get("/api/users/999999")).status_code == 404

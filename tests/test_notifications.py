from conftest import upload
from pixinity.background import drain


async def seed(alice, bob, count: int = 2) -> None:
    """Give alice ``count`` unread notifications from bob."""
    photos = await upload(alice, count=count)
    for photo in photos:
        await bob.client.post(f"/api/photos/{photo['id']}/like")
    await drain()


async def test_list_newest_first_with_unread_count(alice, bob):
    await seed(alice, bob)

    listing = (await alice.client.get("/api/notifications")).json()

    assert listing["total"] == 2
    assert listing["unreadCount"] == 2
    assert listing["hasMore"] is False
    first, second = listing["notifications"]
    assert first["id"] > second["id"]
    assert first["type"] == "like"
    assert first["isRead"] is False
    assert first["actionUrl"].startswith("/photos/")
    assert "bob" in first["message"]


async def test_mark_one_read(alice, bob):
    await seed(alice, bob)
    target = (await alice.client.get("/api/notifications")).json()["notifications"][0]

    resp = await alice.client.patch(f"/api/notifications/{target['id']}/read")

    assert resp.status_code == 200
    listing = (await alice.client.get("/api/notifications")).json()
    assert listing["unreadCount"] == 1
    assert {n["id"]: n["isRead"] for n in listing["notifications"]}[target["id"]] is True
    unread = (await alice.client.get("/api/notifications", params={"unread_only": True})).json()
    assert target["id"] not in [n["id"] for n in unread["notifications"]]
    assert unread["total"] == 1


async def test_mark_all_read(alice, bob):
    await seed(alice, bob, count=3)

    resp = await alice.client.patch("/api/notifications/mark-all-read")
    again = await alice.client.patch("/api/notifications/mark-all-read")

    assert resp.json()["updated"] == 3
    assert again.json()["updated"] == 0
    assert (await alice.client.get("/api/notifications")).json()["unreadCount"] == 0


async def test_delete(alice, bob):
    await seed(alice, bob)
    target = (await alice.client.get("/api/notifications")).json()["notifications"][0]

    resp = await alice.client.delete(f"/api/notifications/{target['id']}")

    assert resp.status_code == 200
    assert (await alice.client.get("/api/notifications")).json()["total"] == 1


async def test_other_users_notifications_are_not_found(alice, bob):
    await seed(alice, bob)
    target = (await alice.client.get("/api/notifications")).json()["notifications"][0]

    assert (await bob.client.patch(f"/api/notifications/{target['id']}/read")).status_code == 404
    assert (await bob.client.delete(f"/api/notifications/{target['id']}")).status_code == 404
    assert (await bob.client.get("/api/notifications")).json()["total"] == 0


async def test_pagination(alice, bob):
    await seed(alice, bob, count=3)

    page = (await alice.client.get("/api/notifications", params={"limit": 2})).json()

    assert len(page["notifications"]) == 2
    assert page["hasMore"] is True


async def test_requires_session(anon):
    assert (await anon.get("/api/notifications")).status_code == 401

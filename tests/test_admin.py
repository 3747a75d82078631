import pytest
from sqlalchemy import func, select

from conftest import Actor, upload
from pixinity.database import async_session_maker
from pixinity.models import Photo, User, UserRole
from pixinity.services.admin import seed_super_admin


@pytest.fixture
async def root(db, make_client):
    await seed_super_admin(db)
    client = make_client()
    resp = await client.post("/api/auth/login", json={"email": "root@example.com", "password": "rootpass123"})
    assert resp.status_code == 200, resp.text
    user = resp.json()["user"]
    return Actor(client=client, id=user["id"], username=user["username"], email=user["email"])


async def make_admin(root, actor) -> None:
    resp = await root.client.post(f"/api/admin/users/{actor.id}/toggle-admin")
    assert resp.json() == {"role": "admin"}


async def test_seeded_super_admin(root):
    me = (await root.client.get("/api/auth/me")).json()["user"]

    assert me["role"] == "super_admin"
    assert me["username"] == "root"
    assert me["isVerified"] is True


async def test_seed_is_idempotent(root, db):
    await seed_super_admin(db)

    count = await db.scalar(select(func.count()).select_from(User).where(User.role == UserRole.super_admin))
    assert count == 1


async def test_seed_promotes_existing_account(register, db):
    existing = await register("rooty", email="root@example.com")

    await seed_super_admin(db)

    me = (await existing.client.get("/api/auth/me")).json()["user"]
    assert me["role"] == "super_admin"


async def test_admin_routes_reject_regular_users(alice, anon):
    assert (await alice.client.get("/api/admin/users")).status_code == 403
    assert (await alice.client.get("/api/admin/users/stats")).status_code == 403
    assert (await anon.get("/api/admin/users")).status_code == 401


async def test_stats(root, alice, register):
    await register("acme", role="company")

    stats = (await root.client.get("/api/admin/users/stats")).json()

    assert stats["totalUsers"] == 3
    assert stats["adminUsers"] == 1
    assert stats["photographers"] == 1
    assert stats["companies"] == 1
    assert stats["verifiedUsers"] == 1
    assert stats["newUsersThisWeek"] == 3


async def test_list_search_and_role_filter(root, alice, bob):
    everyone = (await root.client.get("/api/admin/users", params={"sort": "username_asc"})).json()
    found = (await root.client.get("/api/admin/users", params={"search": "ali"})).json()
    supers = (await root.client.get("/api/admin/users", params={"role": "super_admin"})).json()
    bogus = await root.client.get("/api/admin/users", params={"role": "wizard"})

    assert [u["username"] for u in everyone["users"]] == ["alice", "bob", "root"]
    assert everyone["users"][0]["email"] == "alice@example.com"
    assert [u["username"] for u in found["users"]] == ["alice"]
    assert [u["username"] for u in supers["users"]] == ["root"]
    assert bogus.status_code == 400


async def test_get_and_update_user(root, alice, bob):
    fetched = await root.client.get(f"/api/admin/users/{alice.id}")
    updated = await root.client.put(
        f"/api/admin/users/{alice.id}", json={"firstName": "Alicia", "role": "company", "isActive": False}
    )
    clash = await root.client.put(f"/api/admin/users/{alice.id}", json={"email": "bob@example.com"})

    assert fetched.json()["user"]["username"] == "alice"
    assert updated.status_code == 200
    user = updated.json()["user"]
    assert (user["firstName"], user["role"], user["isActive"]) == ("Alicia", "company", False)
    assert clash.status_code == 409
    # a deactivated account no longer authenticates
    assert (await alice.client.get("/api/auth/me")).status_code == 401
    assert (await root.client.get("/api/admin/users/999999")).status_code == 404


async def test_toggle_verification(root, alice):
    first = await root.client.post(f"/api/admin/users/{alice.id}/toggle-verification")
    second = await root.client.post(f"/api/admin/users/{alice.id}/toggle-verification")

    assert first.json() == {"isVerified": True}
    assert second.json() == {"isVerified": False}


async def test_toggle_admin_rules(root, alice, bob):
    await make_admin(root, alice)

    # alice is an admin now, but only the super admin changes roles
    assert (await alice.client.post(f"/api/admin/users/{bob.id}/toggle-admin")).status_code == 403
    assert (await root.client.post(f"/api/admin/users/{root.id}/toggle-admin")).status_code == 403
    assert (await alice.client.get("/api/admin/users/stats")).status_code == 200

    demoted = await root.client.post(f"/api/admin/users/{alice.id}/toggle-admin")
    assert demoted.json() == {"role": "photographer"}
    assert (await alice.client.get("/api/admin/users/stats")).status_code == 403


async def test_update_cannot_change_admin_role(root, alice):
    await make_admin(root, alice)

    resp = await root.client.put(f"/api/admin/users/{alice.id}", json={"role": "company"})

    assert resp.status_code == 400


async def test_admin_cannot_touch_other_admins_or_super_admin(root, alice, bob):
    await make_admin(root, alice)
    await make_admin(root, bob)

    assert (await alice.client.delete(f"/api/admin/users/{bob.id}")).status_code == 403
    assert (await alice.client.put(f"/api/admin/users/{bob.id}", json={"firstName": "X"})).status_code == 403
    assert (await alice.client.delete(f"/api/admin/users/{root.id}")).status_code == 403
    assert (await root.client.delete(f"/api/admin/users/{root.id}")).status_code == 400


async def test_super_admin_can_delete_an_admin(root, alice):
    await make_admin(root, alice)

    resp = await root.client.delete(f"/api/admin/users/{alice.id}")

    assert resp.status_code == 200


async def test_delete_cascades_to_content(root, alice, bob, anon):
    await make_admin(root, bob)
    photos = await upload(alice, count=2)
    collection = (await alice.client.post("/api/collections", json={"name": "Gone soon"})).json()["collection"]

    resp = await bob.client.delete(f"/api/admin/users/{alice.id}")

    assert resp.status_code == 200
    async with async_session_maker() as db:
        left = await db.scalar(select(func.count()).select_from(Photo).where(Photo.id.in_([p["id"] for p in photos])))
    assert left == 0
    assert (await anon.get(f"/api/collections/{collection['uuid']}")).status_code == 404
    assert (await anon.get(f"/api/users/{alice.id}")).status_code == 404
    assert (await alice.client.get("/api/auth/me")).status_code == 401

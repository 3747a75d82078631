from conftest import upload


async def test_analytics_are_private(alice, bob, anon):
    assert (await bob.client.get(f"/api/analytics/user/{alice.id}")).status_code == 403
    assert (await anon.get(f"/api/analytics/user/{alice.id}")).status_code == 401


async def test_empty_account(alice):
    data = (await alice.client.get(f"/api/analytics/user/{alice.id}")).json()

    assert data["period"] == 30
    assert data["overview"]["totalPhotos"] == 0
    assert data["topPhotos"] == []
    assert data["viewsOverTime"] == []
    assert data["categoryStats"] == []


async def test_totals_and_top_photos(alice, bob, anon):
    first, second = await upload(alice, count=2, category="Nature")
    await upload(alice, status="draft")
    for client in (bob.client, anon):
        await client.get(f"/api/photos/{first['id']}")
    await bob.client.post(f"/api/photos/{second['id']}/like")
    await bob.client.post(f"/api/photos/{second['id']}/download")
    await bob.client.post(f"/api/users/{alice.id}/follow")

    data = (await alice.client.get(f"/api/analytics/user/{alice.id}", params={"period": 7})).json()

    overview = data["overview"]
    assert data["period"] == 7
    assert overview["totalPhotos"] == 2
    assert (overview["totalViews"], overview["totalLikes"], overview["totalDownloads"]) == (2, 1, 1)
    # views + 2 * likes + 3 * downloads
    assert [(p["id"], p["engagementScore"]) for p in data["topPhotos"]] == [(second["id"], 5), (first["id"], 2)]
    assert sum(day["count"] for day in data["viewsOverTime"]) == 2
    assert sum(day["count"] for day in data["likesOverTime"]) == 1
    assert sum(day["count"] for day in data["downloadsOverTime"]) == 1
    assert sum(day["count"] for day in data["followersOverTime"]) == 1
    assert data["categoryStats"] == [
        {"category": "Nature", "photoCount": 2, "totalViews": 2, "totalLikes": 1, "totalDownloads": 1}
    ]


async def test_period_bounds(alice):
    assert (await alice.client.get(f"/api/analytics/user/{alice.id}", params={"period": 0})).status_code == 400
    assert (await alice.client.get(f"/api/analytics/user/{alice.id}", params={"period": 366})).status_code == 400

import io
import os
import tempfile
from dataclasses import dataclass

import pytest

_TMP = tempfile.mkdtemp(prefix="pixinity-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP}/test.db"
os.environ["SECRET"] = "test-secret-for-the-suite-only"
os.environ["EMAIL_TRANSPORT"] = "dummy"
os.environ["RUN_DB_CREATE_ALL"] = "1"
os.environ["STATIC_ROOT"] = os.path.join(_TMP, "static")
os.environ["COOKIE_SECURE"] = "0"
os.environ["SUPER_ADMIN_EMAIL"] = "root@example.com"
os.environ["SUPER_ADMIN_PASSWORD"] = "rootpass123"
os.environ["SUPER_ADMIN_USERNAME"] = "root"

from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402

from pixinity.background import drain  # noqa: E402
from pixinity.database import Base, async_session_maker, engine  # noqa: E402
from pixinity.main import app  # noqa: E402
from pixinity.services.photos import seed_categories  # noqa: E402

BASE_URL = "http://testserver"


@dataclass
class Actor:
    client: AsyncClient
    id: int
    username: str
    email: str


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with async_session_maker() as db:
        await seed_categories(db)
    yield
    await drain(timeout=5)
    await engine.dispose()


@pytest.fixture
async def db():
    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def make_client():
    clients = []

    def _make() -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()


@pytest.fixture
def anon(make_client):
    return make_client()


@pytest.fixture
def register(make_client):
    async def _register(username: str, email: str | None = None, password: str = "secret123", **extra) -> Actor:
        client = make_client()
        email = email or f"{username}@example.com"
        resp = await client.post(
            "/api/auth/register",
            json={"email": email, "username": username, "password": password, **extra},
        )
        assert resp.status_code == 201, resp.text
        user = resp.json()["user"]
        return Actor(client=client, id=user["id"], username=username, email=email)

    return _register


@pytest.fixture
async def alice(register):
    return await register("alice", firstName="Alice", lastName="Lens")


@pytest.fixture
async def bob(register):
    return await register("bob")


@pytest.fixture
async def carol(register):
    return await register("carol")


def image_bytes(fmt: str = "JPEG", size=(64, 48), color=(180, 40, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, fmt)
    return buf.getvalue()


async def upload(actor: Actor, *, status: str = "live", title: str = "Harbour at dusk", count: int = 1, **form) -> list[dict]:
    files = [("files", (f"shot{i}.jpg", image_bytes(), "image/jpeg")) for i in range(count)]
    resp = await actor.client.post(
        "/api/photos/upload",
        files=files,
        data={"status": status, "title": title, **form},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["photos"]

import random

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from loop.config import Settings
from loop.core.events import ALL_EVENTS, EventBus
from loop.core.locks import GroupLockRegistry
from loop.main import create_app
from loop.modules.groups.service import GroupService
from loop.modules.media.service import MediaService
from loop.modules.media.storage import MediaStorage
from loop.modules.members.service import MembershipService
from loop.modules.profiles.service import ProfileService
from tests.fakes import FakeSupabase

USERS = ("alice", "bob", "carol", "dave")


@pytest.fixture
def settings():
    return Settings(
        supabase_url="https://fake.supabase.co",
        supabase_key="test-key",
        environment="test",
        rate_limit="1000/minute",
    )


@pytest.fixture
def fake():
    db = FakeSupabase()
    for name in USERS:
        db.seed("profiles", id=f"user-{name}", username=name, first_name=name.title())
        db.auth.tokens[f"token-{name}"] = f"user-{name}"
    return db


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def published(event_bus):
    received = []
    event_bus.subscribe(ALL_EVENTS, received.append)
    return received


@pytest.fixture
def locks():
    return GroupLockRegistry()


@pytest.fixture
def storage(fake, settings):
    return MediaStorage(fake, settings.media_bucket)


@pytest.fixture
def members(fake, locks, event_bus):
    return MembershipService(fake, locks, event_bus, ProfileService(fake))


@pytest.fixture
def groups(fake, members, storage, event_bus, settings):
    return GroupService(fake, members, storage, event_bus, settings, rng=random.Random(1234))


@pytest.fixture
def media(fake, storage, members, event_bus, settings):
    return MediaService(fake, storage, members, event_bus, settings)


@pytest.fixture
def app(settings, fake):
    return create_app(settings, supabase=fake)


@pytest_asyncio.fixture
async def api_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

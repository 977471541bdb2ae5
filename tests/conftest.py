import os

os.environ["ENV"] = "test"
os.environ["PORTAL_API_KEY"] = "portal-test-key"
os.environ["WHATSAPP_VERIFY_TOKEN"] = "verify-me"
os.environ["WHATSAPP_ACCESS_TOKEN"] = "test-access-token"
os.environ["WHATSAPP_PHONE_NUMBER_ID"] = "1098765432"
os.environ["AUTO_CLOSE_ENABLED"] = "false"
os.environ["APPOINTMENT_SYNC_ENABLED"] = "false"

import itertools  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import inbox_relay.models  # noqa: E402,F401
from inbox_relay.adapters.whatsapp import WhatsAppAdapter  # noqa: E402
from inbox_relay.core.broadcaster import Broadcaster  # noqa: E402
from inbox_relay.db import Base, db_manager, get_db  # noqa: E402
from inbox_relay.schemas.messaging import OutboundSendResult  # noqa: E402

pytest_plugins = [
    "tests.fixtures.conversation_fixtures",
]

PORTAL_HEADERS = {"X-API-Key": "portal-test-key"}


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    db_manager.bind(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    session = db_manager.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def broadcaster():
    return Broadcaster(queue_size=10)


@pytest.fixture
def transport():
    """WhatsApp adapter with the network send replaced; each call returns a fresh wamid."""
    adapter = WhatsAppAdapter(
        access_token="test-access-token",
        phone_number_id="1098765432",
        verify_token="verify-me",
    )
    counter = itertools.count(1)

    async def fake_send(outbound):
        n = next(counter)
        return OutboundSendResult(
            platform_message_id=f"wamid.out{n}",
            response={"messages": [{"id": f"wamid.out{n}"}]},
        )

    adapter.send = AsyncMock(side_effect=fake_send)
    return adapter


@pytest.fixture
def client(db, transport, broadcaster):
    from inbox_relay.main import create_app

    app = create_app(testing=True, transport=transport)
    app.state.broadcaster = broadcaster

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def portal_headers():
    return dict(PORTAL_HEADERS)

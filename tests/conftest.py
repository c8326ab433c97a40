"""
Pytest configuration and fixtures for testing.

This file provides reusable test fixtures for:
- A recording stub of the platform's HTTP surface (httpx.MockTransport)
- Client storage, policy store, services and flows wired to that stub
- FastAPI test client with the client registry overridden
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from athletes_profile.core.context import ClientContext, ClientRegistry
from athletes_profile.core.deps import get_registry
from athletes_profile.core.platform import PlatformClient
from athletes_profile.core.preferences import SessionPolicyStore
from athletes_profile.core.storage import MemoryStorage
from athletes_profile.schemas.registration import FileUpload, RegistrationDraft
from athletes_profile.services.athletes import AthleteService
from athletes_profile.services.password_reset import PasswordResetFlow
from athletes_profile.services.profiles import ProfileService
from athletes_profile.services.registration import RegistrationFlow
from athletes_profile.services.session_manager import SessionManager
from main import app
from tests.helpers import ANON_KEY, PLATFORM_URL, PlatformStub


@pytest.fixture
def stub():
    return PlatformStub()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def policy(storage):
    return SessionPolicyStore(storage)


@pytest.fixture
def platform(stub, storage):
    return PlatformClient(PLATFORM_URL, ANON_KEY, storage, transport=httpx.MockTransport(stub.handler))


@pytest.fixture
def profiles(platform, policy):
    return ProfileService(platform, policy)


@pytest.fixture
def registration_flow(platform, policy, profiles):
    return RegistrationFlow(platform, policy, profiles)


@pytest.fixture
def reset_flow(platform, policy):
    return PasswordResetFlow(platform, policy)


@pytest.fixture
def session_manager(platform, policy, profiles):
    manager = SessionManager(platform, policy, profiles)
    yield manager
    manager.close()


@pytest.fixture
def athlete_service(platform):
    return AthleteService(platform)


@pytest.fixture
def id_picture():
    return FileUpload(filename="card.PNG", content_type="image/png", content=b"\x89PNG-id-card")


@pytest.fixture
def valid_draft(id_picture):
    """A registration form that passes every precondition"""
    return RegistrationDraft(
        full_name="Jamie Rivera",
        student_id="2021-00123",
        email="jamie@example.com",
        course="BS Computer Science",
        year_level="3rd Year",
        sport="Basketball",
        position="Guard",
        password="secret123",
        confirm_password="secret123",
        id_picture=id_picture,
    )


@pytest.fixture
def client_storages():
    """Storage of every client context the test client creates, by client id"""
    return {}


@pytest.fixture
def client_registry(stub, client_storages):
    """Client registry whose contexts talk to the platform stub"""
    def factory(client_id: str) -> ClientContext:
        storage = client_storages.setdefault(client_id, MemoryStorage())
        platform = PlatformClient(PLATFORM_URL, ANON_KEY, storage, transport=httpx.MockTransport(stub.handler))
        return ClientContext(client_id, platform, SessionPolicyStore(storage))

    test_registry = ClientRegistry(factory=factory)
    yield test_registry
    test_registry.close_all()


@pytest.fixture
def client(client_registry):
    """
    FastAPI test client using the stub-backed client registry.
    """
    app.dependency_overrides[get_registry] = lambda: client_registry

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()

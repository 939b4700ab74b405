"""Shared fixtures: in-memory store, fake billing and token clients, catalog."""

import pytest

from config import OAuthProviderSettings
from providers import build_default_catalog
from tests.fakes import FakeBilling, FakeIdentityStore, FakeTokenClient


@pytest.fixture
def oauth_settings():
    return OAuthProviderSettings(
        google_client_id="google-client",
        google_client_secret="google-secret",
        microsoft_client_id="ms-client",
        microsoft_client_secret="ms-secret",
    )


@pytest.fixture
def catalog(oauth_settings):
    return build_default_catalog(oauth_settings)


@pytest.fixture
def store():
    return FakeIdentityStore()


@pytest.fixture
def billing():
    return FakeBilling()


@pytest.fixture
def token_client():
    return FakeTokenClient()

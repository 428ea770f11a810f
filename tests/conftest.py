"""Shared fixtures for tests."""

import pytest

from mock_registry import MockRegistry
from registry_client import RegistryClient


def make_client(registry: MockRegistry, **kwargs) -> RegistryClient:
    """RegistryClient wired to a mock registry's transport."""
    kwargs.setdefault("username", registry.username)
    kwargs.setdefault("password", registry.password)
    return RegistryClient(registry.url, transport=registry.transport(), **kwargs)


@pytest.fixture
def registry() -> MockRegistry:
    """Registry with two repositories and three tags."""
    mock = MockRegistry("https://registry.test")
    mock.push_image("library/alpine", "3.19")
    mock.push_image("library/alpine", "3.20")
    mock.push_image("team/api", "v1")
    return mock


@pytest.fixture
def secured_registry() -> MockRegistry:
    """Registry requiring Basic credentials."""
    mock = MockRegistry("https://secure.test", username="admin", password="s3cret")
    mock.push_image("private/app", "1.0")
    return mock


@pytest.fixture
def client(registry) -> RegistryClient:
    return make_client(registry)


@pytest.fixture
def client_for():
    """Factory building clients against any mock registry."""
    return make_client

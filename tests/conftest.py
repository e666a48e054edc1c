from unittest.mock import AsyncMock

import pytest

from helpers.builders import three_step_schema
from helpers.fakes import FakeCamera, MockGateway
from helpers.loader import load_store


@pytest.fixture(scope="session")
def store():
    """The shipped form definitions, loaded once."""
    return load_store()


@pytest.fixture
def schema():
    return three_step_schema()


@pytest.fixture
def gateway():
    """Fresh MockGateway for each test."""
    return MockGateway()


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def mock_db():
    """AsyncMock standing in for AsyncSession — flush/commit are no-ops."""
    return AsyncMock()

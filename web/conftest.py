import pytest

from apps.core.access import Principal, Role


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.HTTP_RETRY_BACKOFF_BASE = 0
    settings.HTTP_RETRY_MAX_SLEEP = 0


@pytest.fixture
def alice():
    return Principal(id="alice")


@pytest.fixture
def bob():
    return Principal(id="bob")


@pytest.fixture
def admin():
    return Principal(id="root", role=Role.ADMIN)

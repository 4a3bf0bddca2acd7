import pytest

from tests.mocks import FakeClock, make_context, make_host


@pytest.fixture
def host(tmp_path):
    """Sandboxed Debian-like host rooted at tmp_path."""
    return make_host(tmp_path / "root")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ctx(host, clock):
    return make_context(host, clock)

import pytest

from hcra.config import AuthConfig
from tests.helpers import SECRET


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(secret=SECRET, io_timeout=5.0)

import pytest

from cubeset.config import config


@pytest.fixture(autouse=True)
def reset_config():
    yield
    config.reset()


@pytest.fixture
def workdir(tmpdir):
    config.set({"workdir": str(tmpdir)})
    return str(tmpdir)

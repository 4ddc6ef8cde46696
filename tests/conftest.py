import pytest

from interview_engine.interview.testing import create_mock_session_setup, cleanup_test_files


@pytest.fixture
def workdir(tmp_path):
    return str(tmp_path)


@pytest.fixture
def setup(workdir):
    env = create_mock_session_setup(workdir=workdir)
    yield env
    cleanup_test_files(workdir)

"""
Root conftest.py — sys.path, env vars, shared fixtures.

Sets up the test environment so all production code can be imported
without cloud credentials. Every cloud collaborator is a fake from
tests/factories/fakes.py.
"""

import os
import sys

import pytest

# Add project root to sys.path so 'core', 'jobs', 'config', etc. are importable
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


@pytest.fixture(autouse=True, scope="session")
def set_minimal_env_vars():
    """
    Set minimal environment variables so get_config() never reaches for
    real cloud settings.
    """
    defaults = {
        "ENVIRONMENT": "dev",
        "STORAGE_ACCOUNT_NAME": "teststorage",
        "DEPLOYMENT_CONTAINER": "otp-default",
        "AWS_DEFAULT_REGION": "us-east-1",
        "EC2_DEPLOYMENT_ENABLED": "true",
    }
    for key, value in defaults.items():
        os.environ.setdefault(key, value)


@pytest.fixture
def owner():
    from core.models import JobOwner
    return JobOwner(user_id="auth0|tester", email="tester@example.org")


@pytest.fixture
def fast_config():
    from tests.factories.model_factories import fast_deployment_config
    return fast_deployment_config()


@pytest.fixture
def storage_config():
    from tests.factories.model_factories import make_storage_config
    return make_storage_config()


# ============================================================================
# Fakes for every cloud collaborator
# ============================================================================

@pytest.fixture
def events():
    """Shared fleet mutation log for compute + load balancer fakes."""
    return []


@pytest.fixture
def storage():
    from tests.factories.fakes import FakeObjectStorage
    return FakeObjectStorage()


@pytest.fixture
def compute(events):
    from tests.factories.fakes import FakeCompute
    return FakeCompute(events)


@pytest.fixture
def load_balancer(events):
    from tests.factories.fakes import FakeLoadBalancer
    return FakeLoadBalancer(events)


@pytest.fixture
def status_client():
    from tests.factories.fakes import FakeStatusClient
    return FakeStatusClient()


@pytest.fixture
def url_checker():
    from tests.factories.fakes import FakeUrlChecker
    return FakeUrlChecker()


@pytest.fixture
def deployment_repository():
    from infrastructure.deployment_repository import InMemoryDeploymentRepository
    return InMemoryDeploymentRepository()

"""
Pytest configuration and shared fixtures for the test suite.
"""

import logging
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Make the package and the test helpers importable without installation
tests_path = Path(__file__).parent
src_path = tests_path.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(tests_path))

from locator_healing.core.audit_trail import AuditTrail  # noqa: E402
from locator_healing.core.metrics import MetricsCollector  # noqa: E402
from locator_healing.core.models.healing_models import (  # noqa: E402
    StepFailure,
    TestExecution,
    TestStep,
)
from locator_healing.services.stores import InMemoryHealingStore, TEST_STEPS  # noqa: E402


@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return InMemoryHealingStore()


@pytest.fixture
def audit_trail(tmp_path):
    """Audit trail writing into a temporary directory."""
    return AuditTrail(str(tmp_path / "audit"))


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def execution():
    return TestExecution(
        id="exec-1",
        project_id="proj-1",
        test_case_id="tc-login",
        initiated_by="ci-runner",
    )


@pytest.fixture
def failed_step():
    return TestStep(
        id="step-1",
        action="click",
        element="#submit-btn",
        description="Submit the login form",
    )


@pytest.fixture
def failure():
    return StepFailure(
        error_message="Element not found: #submit-btn",
        page_url="http://localhost:8080/login",
    )


@pytest_asyncio.fixture
async def stored_step(store, failed_step):
    """The failed step persisted in the ``test_steps`` collection."""
    await store.insert(TEST_STEPS, {
        "id": failed_step.id,
        "action": failed_step.action,
        "element": failed_step.element,
        "description": failed_step.description,
    })
    return failed_step


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

"""
Global pytest configuration and fixtures.
"""
import datetime as dt
import os
from types import SimpleNamespace
from typing import Dict

import pytest

from psa_engine.config import PsaEngineConfig, reload_config
from psa_engine.models import Budget, Project, Service, User
from psa_engine.models.enums import BudgetType, ProjectStatus
from psa_engine.store import InMemoryRecordStore
from psa_engine.store.record_store import BUDGETS, PROJECTS, SERVICES, USERS


@pytest.fixture(scope="session")
def test_env_vars() -> Dict[str, str]:
    """Test environment variables for configuration."""
    return {
        'ENVIRONMENT': 'testing',
        'DEBUG': 'true',
        'LOG_LEVEL': 'DEBUG',
        'INVOICE_NUMBER_PREFIX': 'INV',
        'INVOICE_SEQUENCE_WIDTH': '5',
        'PAYMENT_TERMS_DAYS': '30',
        'MAX_REVISION_CYCLES': '3',
        'RECEIPT_REQUIRED_THRESHOLD': '2500',
        'MAX_MARKUP_RATE': '0.5',
        'BUDGET_WARNING_THRESHOLD': '0.75',
        'BUDGET_OVERRUN_THRESHOLD': '0.90',
    }


@pytest.fixture
def mock_env(test_env_vars, monkeypatch):
    """Mock environment variables for testing."""
    for key, value in test_env_vars.items():
        monkeypatch.setenv(key, value)

    # Clear the global config to force reload with test values
    import psa_engine.config.settings
    psa_engine.config.settings._config = None

    yield test_env_vars

    # Clean up
    psa_engine.config.settings._config = None


@pytest.fixture
def test_config(mock_env) -> PsaEngineConfig:
    """Test configuration instance."""
    return reload_config()


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: dt.datetime):
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **delta) -> dt.datetime:
        self.now = self.now + dt.timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    """Clock frozen at 2024-03-15 10:00."""
    return FrozenClock(dt.datetime(2024, 3, 15, 10, 0))


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def seeded_project(store) -> SimpleNamespace:
    """An active time-and-materials project with a $10,000 budget.

    Users: a consultant (cost $50/hr), a manager (cost $80/hr) and a
    finance user. One "Development" service billed at $150/hr.
    """
    org = "org_acme"
    consultant = store.insert(
        USERS,
        User(organization_id=org, name="Casey Consultant", cost_rate=5000,
             bill_rate=15000).to_record(),
    )
    manager = store.insert(
        USERS,
        User(organization_id=org, name="Morgan Manager", cost_rate=8000).to_record(),
    )
    finance = store.insert(
        USERS, User(organization_id=org, name="Finley Finance").to_record()
    )

    project_id = store.insert(
        PROJECTS,
        Project(
            organization_id=org,
            company_id="cmp_globex",
            name="Website Redesign",
            status=ProjectStatus.ACTIVE,
            manager_id=manager,
            start_date=dt.datetime(2024, 1, 1),
            end_date=dt.datetime(2024, 3, 31),
        ).to_record(),
    )
    budget_id = store.insert(
        BUDGETS,
        Budget(
            project_id=project_id,
            organization_id=org,
            type=BudgetType.TIME_AND_MATERIALS,
            total_amount=1_000_000,
        ).to_record(),
    )
    store.patch(PROJECTS, project_id, {"budget_id": budget_id})
    service_id = store.insert(
        SERVICES,
        Service(budget_id=budget_id, name="Development", rate=15000).to_record(),
    )

    return SimpleNamespace(
        org=org,
        project_id=project_id,
        budget_id=budget_id,
        service_id=service_id,
        consultant=consultant,
        manager=manager,
        finance=finance,
    )


@pytest.fixture(autouse=True)
def cleanup_test_files():
    """Clean up any test files created during testing."""
    yield

    # Remove test coverage files in case they're created
    test_files = ['coverage.xml', '.coverage']
    for file in test_files:
        if os.path.exists(file):
            os.remove(file)


# Pytest configuration for different test types
def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "cli: mark test as exercising the command-line interface"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on location."""
    for item in items:
        path = str(item.fspath).replace(os.sep, "/")
        if "tests/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in path:
            item.add_marker(pytest.mark.integration)

        if "tests/unit/cli/" in path:
            item.add_marker(pytest.mark.cli)

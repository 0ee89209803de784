"""
Shared fixtures for the production billing tests.

Provides a fresh store and services per test, plus builders for orders
whose runs are already configured.
"""

import pytest

from app import create_app
from services.billing_service import BillingService
from services.run_service import RunService
from services.store import BillingStore
from run_fields import FIELDS_BY_PROCESS


# Fixtures

@pytest.fixture
def store():
    """Create an empty billing store."""
    return BillingStore()


@pytest.fixture
def run_service(store):
    return RunService(store, max_images=2)


@pytest.fixture
def billing_service(store):
    return BillingService(store, currency="INR", allow_refinalize=True)


@pytest.fixture
def make_order(run_service):
    """
    Build an order with one configured run per process name.

    Pass ``configure=False`` to leave the runs PENDING.
    """
    def _make(*process_names, quantity=100, code="ORD1/26-27", configure=True):
        names = process_names or ("Allover Sublimation",)
        order = run_service.create_order(quantity=quantity, code=code, process_names=names)
        for process in order.processes:
            run = run_service.add_run(order.id, process.id)
            if configure:
                run_service.configure_run(
                    order.id, process.id, run.id, FIELDS_BY_PROCESS[process.name]
                )
        return run_service.get_order(order.id)

    return _make


@pytest.fixture
def app():
    """Create a Flask app with the testing configuration."""
    return create_app("config.TestingConfig")


@pytest.fixture
def client(app):
    return app.test_client()

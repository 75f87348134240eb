"""
Pytest fixtures for contract engine tests.
"""

import pytest

from api_contracts import SchemaEngine, SchemaMode
from api_contracts.flask_adapter import create_app

from sample_api import build_service


@pytest.fixture
def engine():
    """Fresh schema engine with its own registry."""
    return SchemaEngine()


@pytest.fixture
def service():
    """Sample service in WARN mode."""
    return build_service(mode=SchemaMode.WARN)


@pytest.fixture
def strict_service():
    """Sample service in STRICT mode."""
    return build_service(mode=SchemaMode.STRICT)


@pytest.fixture
def app(service):
    """Create test Flask application."""
    app = create_app(service)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()

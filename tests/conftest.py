"""Test configuration and fixtures."""

import os
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest

from domera import create_app
from domera.constants import ROLE_MANAGEMENT, ROLE_RESIDENT
from domera.extensions import db as _db
from domera.services import apartment_service, auth_service, building_service, company_service

MANAGER_EMAIL = 'verwaltung@example.com'
RESIDENT_EMAIL = 'bewohner@example.com'
PASSWORD = 'geheim123'


@pytest.fixture
def app(tmp_path):
    """Create application for testing."""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(db_fd)

    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SECRET_KEY': 'test-secret-key',
        'JWT_SECRET_KEY': 'test-jwt-secret-key-with-enough-length',
        'MAIL_SUPPRESS_SEND': True,
        'APP_BASE_URL': 'https://app.domera.test',
        'UPLOAD_ROOT': str(tmp_path / 'uploads'),
    })

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()

    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def client(app):
    """Test client for making requests."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """CLI test runner."""
    return app.test_cli_runner()


@pytest.fixture
def db(app):
    """Database fixture."""
    return _db


@pytest.fixture
def estate(app):
    """Verwaltung mit Firma, Gebäude (Ablesefenster ab dem 1.) und Wohnung 12."""
    manager = auth_service.register_user(MANAGER_EMAIL, PASSWORD, role=ROLE_MANAGEMENT,
                                         display_name='Verwaltung Nord', commit=False)
    company = company_service.register_company_for_user(manager, 'Hausverwaltung Nord',
                                                        'Hauptstraße 5, Hamburg', '+49 40 1234')
    building = building_service.create_building(company.id, 'Haus Nord', 'Hauptstraße 5, Hamburg',
                                                manager=manager, water_submission_open_day=1)
    apartment = apartment_service.create_apartment(company.id, building.id, '12')
    return SimpleNamespace(manager=manager, company=company, building=building, apartment=apartment)


@pytest.fixture
def resident(estate):
    user = auth_service.register_user(RESIDENT_EMAIL, PASSWORD, role=ROLE_RESIDENT,
                                      apartment_id=estate.apartment.id, display_name='Anna Bewohnerin')
    apartment_service.assign_resident(estate.apartment.id, user.id)
    return user


def login(client, email, password=PASSWORD):
    response = client.post('/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return client


@pytest.fixture
def manager_client(client, estate):
    return login(client, MANAGER_EMAIL)


@pytest.fixture
def resident_client(app, resident):
    return login(app.test_client(), RESIDENT_EMAIL)

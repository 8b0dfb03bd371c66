from urllib.parse import parse_qs, urlparse

from conftest import MANAGER_EMAIL, PASSWORD, login
from domera.extensions import mail


def _register(client, email='chef@example.com'):
    return client.post('/auth/register', json={
        'email': email,
        'password': PASSWORD,
        'display_name': 'Chefin',
        'company_name': 'Verwaltung West',
        'address': 'Westring 10, Köln',
        'phone': '+49 221 555',
    })


def test_register_creates_company_and_session(client):
    response = _register(client)
    assert response.status_code == 201
    data = response.get_json()
    assert data['user']['role'] == 'ManagementCompany'
    assert data['company']['owner_uid'] == data['user']['id']

    me = client.get('/auth/me')
    assert me.status_code == 200
    assert me.get_json()['company_id'] == data['company']['id']


def test_register_duplicate_email(client):
    _register(client)
    response = _register(client.application.test_client(), email='CHEF@example.com')
    assert response.status_code == 409
    assert 'bereits registriert' in response.get_json()['error']


def test_register_rolls_back_without_company_data(client):
    response = client.post('/auth/register', json={'email': 'halb@example.com', 'password': PASSWORD,
                                                   'company_name': 'X GmbH'})
    assert response.status_code == 400
    assert _register(client, email='halb@example.com').status_code == 201


def test_login_errors(client, estate):
    response = client.post('/auth/login', json={'email': 'kaputt', 'password': ''})
    assert response.status_code == 400
    assert set(response.get_json()['fields']) == {'email', 'password'}

    response = client.post('/auth/login', json={'email': MANAGER_EMAIL, 'password': 'falsch123'})
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Ungültige Anmeldedaten'


def test_inactive_user_cannot_login(client, estate, db):
    estate.manager.is_active = False
    db.session.commit()
    response = client.post('/auth/login', json={'email': MANAGER_EMAIL, 'password': PASSWORD})
    assert response.status_code == 403


def test_protected_routes_need_login(client):
    response = client.get('/api/dashboard')
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Anmeldung erforderlich'


def test_api_login_issues_bearer_token(client, estate):
    response = client.post('/auth/api-login', json={'email': MANAGER_EMAIL, 'password': PASSWORD})
    assert response.status_code == 200
    token = response.get_json()['access_token']

    fresh = client.application.test_client()
    me = fresh.get('/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    assert me.get_json()['email'] == MANAGER_EMAIL


def test_logout(manager_client):
    assert manager_client.post('/auth/logout').status_code == 200
    assert manager_client.get('/auth/me').status_code == 401


def test_profile_update_merges_notifications(manager_client):
    response = manager_client.patch('/auth/me', json={
        'display_name': ' Neue Leitung ',
        'notifications': {'meter_reminder': False, 'unbekannt': True},
    })
    data = response.get_json()
    assert data['display_name'] == 'Neue Leitung'
    assert data['notifications'] == {
        'email': True, 'meter_reminder': False, 'payment_reminder': True, 'general': True,
    }


def test_change_password(manager_client):
    response = manager_client.post('/auth/change-password', json={
        'current_password': 'falsch', 'new_password': 'neuesPasswort'})
    assert response.status_code == 403

    response = manager_client.post('/auth/change-password', json={
        'current_password': PASSWORD, 'new_password': 'neuesPasswort'})
    assert response.status_code == 200
    login(manager_client.application.test_client(), MANAGER_EMAIL, 'neuesPasswort')


def test_password_reset_flow(client, estate):
    with mail.record_messages() as outbox:
        response = client.post('/auth/password-reset', json={'email': MANAGER_EMAIL.upper()})
    assert response.status_code == 200
    assert len(outbox) == 1
    assert outbox[0].subject == 'Passwort zurücksetzen - Domera'

    link = next(line for line in outbox[0].body.splitlines() if line.startswith('https://'))
    assert link.startswith('https://app.domera.test/reset-password/confirm?oobCode=')
    code = parse_qs(urlparse(link).query)['oobCode'][0]

    response = client.post('/auth/password-reset/confirm', json={'oob_code': code, 'new_password': 'frisch123'})
    assert response.status_code == 200
    login(client.application.test_client(), MANAGER_EMAIL, 'frisch123')

    # Nach der Änderung ist der Link verbraucht
    response = client.post('/auth/password-reset/confirm', json={'oob_code': code, 'new_password': 'nochmal123'})
    assert response.status_code == 400


def test_password_reset_unknown_email_looks_the_same(client, estate):
    with mail.record_messages() as outbox:
        known = client.post('/auth/password-reset', json={'email': MANAGER_EMAIL})
        unknown = client.post('/auth/password-reset', json={'email': 'niemand@example.com'})

    assert known.get_json() == unknown.get_json()
    assert len(outbox) == 1


def test_password_reset_rejects_garbage_code(client):
    response = client.post('/auth/password-reset/confirm', json={'oob_code': 'abc', 'new_password': 'frisch123'})
    assert response.status_code == 400


def test_status_and_health(client):
    assert client.get('/auth/status').get_json()['status'] == 'OK'
    health = client.get('/health').get_json()
    assert health['database'] == 'connected'

import io
from datetime import datetime

from conftest import PASSWORD, login
from domera.extensions import mail
from domera.services import auth_service, invitation_service, meter_service


def _water_ids(apartment_id):
    return [m['id'] for m in meter_service.get_water_meters_by_apartment(apartment_id)]


def test_dashboard_per_role(manager_client, resident_client):
    management = manager_client.get('/api/dashboard').get_json()
    assert management['apartments_count'] == 1
    assert management['residents_count'] == 1

    resident = resident_client.get('/api/dashboard').get_json()
    assert resident['submission_open_day'] == 1
    assert resident['days_until_submission_open'] == 0


def test_company_routes(manager_client, estate):
    response = manager_client.get(f'/api/companies/{estate.company.id}')
    assert response.get_json()['name'] == 'Hausverwaltung Nord'

    response = manager_client.patch(f'/api/companies/{estate.company.id}', json={'phone': '+49 40 9999'})
    assert response.get_json()['phone'] == '+49 40 9999'

    users = manager_client.get(f'/api/companies/{estate.company.id}/users').get_json()
    assert [u['email'] for u in users] == [estate.manager.email]

    assert manager_client.post('/api/companies', json={'name': 'Zweite'}).status_code == 409


def test_foreign_company_is_hidden(client, estate):
    other = auth_service.register_user('andere@example.com', PASSWORD)
    login(client, other.email)
    assert client.get(f'/api/companies/{estate.company.id}').status_code == 403
    assert client.post('/api/companies', json={
        'name': 'Andere GmbH', 'address': 'Weg 1, Bonn', 'phone': '0228 1'}).status_code == 201
    assert client.get(f'/api/buildings/{estate.building.id}').status_code == 403


def test_building_routes(manager_client, estate):
    buildings = manager_client.get('/api/buildings').get_json()
    assert [b['id'] for b in buildings] == [estate.building.id]

    response = manager_client.post('/api/buildings', json={'name': 'Haus Süd', 'address': 'Südweg 2, Hamburg'})
    assert response.status_code == 409

    response = manager_client.patch(f'/api/buildings/{estate.building.id}', json={
        'water_submission_open_day': 40, 'water_meter_templates': ['Kalt']})
    data = response.get_json()
    assert data['water_submission_open_day'] == 25
    assert data['water_meter_templates'] == ['Kalt']

    assert manager_client.delete(f'/api/buildings/{estate.building.id}').status_code == 409
    apartments = manager_client.get(f'/api/buildings/{estate.building.id}/apartments').get_json()
    assert [a['number'] for a in apartments] == ['12']


def test_resident_cannot_manage_buildings(resident_client, estate):
    assert resident_client.post('/api/buildings', json={'name': 'X', 'address': 'Y'}).status_code == 403
    assert resident_client.get('/api/buildings').get_json() == []


def test_apartment_routes(manager_client, estate):
    response = manager_client.post('/api/apartments', json={'building_id': estate.building.id, 'number': '14'})
    assert response.status_code == 201
    created = response.get_json()
    assert created['account_status'] == 'notAssigned'

    assert manager_client.post('/api/apartments', json={
        'building_id': estate.building.id, 'number': '14'}).status_code == 409

    listed = manager_client.get('/api/apartments').get_json()
    assert sorted(a['number'] for a in listed) == ['12', '14']

    response = manager_client.patch(f"/api/apartments/{created['id']}", json={'number': '14a'})
    assert response.get_json()['number'] == '14a'
    assert manager_client.delete(f"/api/apartments/{created['id']}").status_code == 200


def test_resident_sees_only_own_apartment(resident_client, estate):
    listed = resident_client.get('/api/apartments').get_json()
    assert [a['id'] for a in listed] == [estate.apartment.id]
    assert listed[0]['account_status'] == 'activated'

    assert resident_client.delete(f'/api/apartments/{estate.apartment.id}').status_code == 403


def test_tenant_access(resident_client, estate, app):
    guest = auth_service.register_user('gast@example.com', PASSWORD)
    response = resident_client.post(f'/api/apartments/{estate.apartment.id}/tenants', json={
        'email': 'gast@example.com', 'permissions': ['viewDocuments']})
    assert response.status_code == 201

    guest_client = login(app.test_client(), guest.email)
    listed = guest_client.get('/api/apartments').get_json()
    assert [a['id'] for a in listed] == [estate.apartment.id]

    cold_id, hot_id = _water_ids(estate.apartment.id)
    response = guest_client.post('/api/meter-readings/submit', json={
        'apartment_id': estate.apartment.id, 'values': {cold_id: 1, hot_id: 1}})
    assert response.status_code == 403

    assert guest_client.delete(f'/api/apartments/{estate.apartment.id}/tenants/{guest.id}').status_code == 200
    assert guest_client.get(f'/api/apartments/{estate.apartment.id}').status_code == 403


def test_assign_and_unassign_resident(manager_client, estate):
    user = auth_service.register_user('mieter@example.com', PASSWORD)
    response = manager_client.put(f'/api/apartments/{estate.apartment.id}/resident', json={'user_id': user.id})
    assert response.get_json()['resident_id'] == user.id

    assert manager_client.delete(f'/api/apartments/{estate.apartment.id}').status_code == 409
    response = manager_client.delete(f'/api/apartments/{estate.apartment.id}/resident')
    assert response.get_json()['resident_id'] is None


def test_meter_routes(manager_client, resident_client, estate):
    meters = resident_client.get(f'/api/meters?apartment_id={estate.apartment.id}').get_json()
    assert [m['display_name'] for m in meters] == ['ХВС', 'ГВС']
    assert all(m['can_edit_meta'] for m in meters)

    response = manager_client.post('/api/meters', json={
        'apartment_id': estate.apartment.id, 'type': 'electricity', 'serial_number': 'EL-1',
        'check_due_date': '2099-01-01'})
    assert response.status_code == 201
    meter_id = response.get_json()['id']
    assert response.get_json()['can_edit_meta'] is False

    response = resident_client.patch(f'/api/meters/{meter_id}', json={'serial_number': 'EL-2'})
    assert response.status_code == 403

    response = manager_client.patch(f'/api/meters/{meter_id}', json={'serial_number': 'EL-2', 'force': True})
    assert response.get_json()['serial_number'] == 'EL-2'

    response = manager_client.put(f'/api/meters/{meter_id}/check-date', json={
        'check_due_date': '2100-02-03', 'force': True})
    assert response.get_json()['check_due_date'] == '2100-02-03'

    assert resident_client.delete(f'/api/meters/{meter_id}').status_code == 403
    assert manager_client.delete(f'/api/meters/{meter_id}').status_code == 200


def test_reading_routes(resident_client, manager_client, estate):
    apartment_id = estate.apartment.id
    cold_id, hot_id = _water_ids(apartment_id)

    window = resident_client.get(f'/api/meter-readings/window?apartment_id={apartment_id}').get_json()
    assert window == {'open_day': 1, 'allowed': True, 'days_until_open': 0, 'can_submit': True}

    response = resident_client.post('/api/meter-readings/submit', json={
        'apartment_id': apartment_id, 'values': {cold_id: 10.5, hot_id: 2}, 'serials': {hot_id: 'HW-1'}})
    assert response.status_code == 201
    readings = response.get_json()['readings']
    assert len(readings) == 2

    again = resident_client.post('/api/meter-readings/submit', json={
        'apartment_id': apartment_id, 'values': {cold_id: 11, hot_id: 3}})
    assert again.status_code == 409

    now = datetime.utcnow()
    listed = manager_client.get(f'/api/meter-readings?month={now.month}&year={now.year}').get_json()
    assert len(listed) == 2
    last = resident_client.get('/api/meter-readings/last',
                               query_string={'apartment_id': apartment_id, 'meter_id': cold_id})
    assert last.get_json()['current_value'] == 10.5

    reading_id = readings[0]['id']
    assert resident_client.patch(f'/api/meter-readings/{apartment_id}/{reading_id}',
                                 json={'current_value': 1}).status_code == 403
    assert manager_client.patch(f'/api/meter-readings/{apartment_id}/{reading_id}',
                                json={'current_value': 10.75}).status_code == 200

    assert resident_client.delete(f'/api/meter-readings/{apartment_id}/{reading_id}').status_code == 200
    assert len(resident_client.get(f'/api/meter-readings?apartment_id={apartment_id}').get_json()) == 1


def test_submit_without_values(resident_client, estate):
    response = resident_client.post('/api/meter-readings/submit', json={'apartment_id': estate.apartment.id})
    assert response.status_code == 400


def test_reading_exports(manager_client, resident_client, estate):
    cold_id, hot_id = _water_ids(estate.apartment.id)
    resident_client.post('/api/meter-readings/submit', json={
        'apartment_id': estate.apartment.id, 'values': {cold_id: 1, hot_id: 2}})

    response = manager_client.get('/api/meter-readings/export/csv')
    assert response.status_code == 200
    assert response.headers['Content-Disposition'].startswith('attachment; filename=zaehlerstaende_')
    assert response.data.decode('utf-8-sig').splitlines()[0].startswith('"Wohnung";"Gebäude"')

    response = manager_client.get('/api/meter-readings/export/xlsx')
    assert response.status_code == 200
    assert response.data[:2] == b'PK'

    assert resident_client.get('/api/meter-readings/export/csv').status_code == 403


def test_invitation_routes(manager_client, estate, app):
    with mail.record_messages() as outbox:
        response = manager_client.post('/api/invitations/send', json={
            'apartment_id': estate.apartment.id, 'email': 'neu@example.com', 'legal_basis_confirmed': True})
    assert response.status_code == 201
    assert len(outbox) == 1
    assert set(response.get_json()) == {'invitation', 'invitation_link', 'login_link', 'existing_account'}
    token = response.get_json()['invitation']['token']

    visitor = app.test_client()
    public = visitor.get(f'/api/invitations/{token}').get_json()
    assert public['email'] == 'neu@example.com'
    assert 'token' not in public

    assert visitor.post('/api/invitations/accept', json={'token': token, 'password': PASSWORD}).status_code == 400
    response = visitor.post('/api/invitations/accept', json={'token': token, 'password': PASSWORD, 'consent': True})
    assert response.status_code == 200
    assert visitor.get('/auth/me').get_json()['apartment_id'] == estate.apartment.id

    apartment = manager_client.get(f'/api/apartments/{estate.apartment.id}').get_json()
    assert apartment['account_status'] == 'activated'


def test_invitation_revocation_routes(manager_client, estate, app):
    invitation, _ = invitation_service.create_invitation(
        estate.company.id, estate.apartment.id, 'neu@example.com', True)

    assert manager_client.get(f'/api/apartments/{estate.apartment.id}').get_json()['account_status'] == 'pending'
    response = manager_client.post(f'/api/invitations/{invitation.id}/revoke')
    assert response.get_json()['status'] == 'revoked'
    assert app.test_client().get(f'/api/invitations/{invitation.token}').status_code == 404

    invitation_service.create_invitation(estate.company.id, estate.apartment.id, 'zwei@example.com', True)
    response = manager_client.post(f'/api/apartments/{estate.apartment.id}/invitations/revoke-pending')
    assert response.get_json() == {'revoked': 1}


def test_send_invitation_requires_legal_basis(manager_client, estate):
    response = manager_client.post('/api/invitations/send', json={
        'apartment_id': estate.apartment.id, 'email': 'neu@example.com'})
    assert response.status_code == 400


def test_invoice_routes(manager_client, resident_client, estate):
    response = manager_client.post('/api/invoices', json={
        'apartment_id': estate.apartment.id, 'month': 3, 'year': 2024, 'amount': 512.4})
    assert response.status_code == 201
    invoice = response.get_json()
    assert invoice['status'] == 'pending'
    assert invoice['building_id'] == estate.building.id

    assert manager_client.post('/api/invoices', json={
        'apartment_id': estate.apartment.id, 'month': 13, 'year': 2024, 'amount': 1}).status_code == 400

    own = resident_client.get('/api/invoices').get_json()
    assert [i['id'] for i in own] == [invoice['id']]

    response = manager_client.patch(f"/api/invoices/{invoice['id']}", json={'status': 'paid'})
    assert response.get_json()['status'] == 'paid'
    assert resident_client.patch(f"/api/invoices/{invoice['id']}", json={'status': 'pending'}).status_code == 403

    upload = manager_client.post(f"/api/invoices/{invoice['id']}/pdf", data={
        'file': (io.BytesIO(b'%PDF-1.4 test'), 'rechnung.pdf')}, content_type='multipart/form-data')
    assert upload.status_code == 200
    assert upload.get_json()['pdf_path'].endswith('rechnung.pdf')

    rejected = manager_client.post(f"/api/invoices/{invoice['id']}/pdf", data={
        'file': (io.BytesIO(b'hallo'), 'notiz.txt')}, content_type='multipart/form-data')
    assert rejected.status_code == 400

    download = resident_client.get(f"/api/invoices/{invoice['id']}/pdf")
    assert download.status_code == 200
    assert download.data == b'%PDF-1.4 test'
    download.close()

    assert manager_client.delete(f"/api/invoices/{invoice['id']}/pdf").get_json()['pdf_path'] is None
    assert resident_client.get(f"/api/invoices/{invoice['id']}/pdf").status_code == 404
    assert manager_client.delete(f"/api/invoices/{invoice['id']}").status_code == 200


def test_project_routes(manager_client, resident_client):
    response = manager_client.post('/api/projects', json={'title': 'Dachsanierung', 'description': 'Neues Dach'})
    assert response.status_code == 201
    project_id = response.get_json()['id']

    assert manager_client.post('/api/projects', json={'title': 'Ohne Text'}).status_code == 400
    assert manager_client.patch(f'/api/projects/{project_id}', json={'status': 'fertig'}).status_code == 400
    assert manager_client.patch(f'/api/projects/{project_id}',
                                json={'status': 'in-progress'}).get_json()['status'] == 'in-progress'

    assert [p['title'] for p in resident_client.get('/api/projects').get_json()] == ['Dachsanierung']
    assert resident_client.get(f'/api/projects/{project_id}').status_code == 200
    assert resident_client.delete(f'/api/projects/{project_id}').status_code == 403
    assert manager_client.delete(f'/api/projects/{project_id}').status_code == 200


def test_news_routes(manager_client, resident_client, estate):
    general = manager_client.post('/api/news', json={'title': 'Sommerfest', 'body': 'Am Samstag im Hof'})
    assert general.status_code == 201
    local = manager_client.post('/api/news', json={
        'title': 'Wasser', 'body': 'Abstellung am Montag', 'building_id': estate.building.id})
    assert local.status_code == 201
    assert manager_client.post('/api/news', json={
        'title': 'X', 'body': 'Y', 'building_id': 'fehlt'}).status_code == 404

    titles = sorted(n['title'] for n in resident_client.get('/api/news').get_json())
    assert titles == ['Sommerfest', 'Wasser']

    news_id = general.get_json()['id']
    assert manager_client.patch(f'/api/news/{news_id}', json={'title': 'Hoffest'}).get_json()['title'] == 'Hoffest'
    assert manager_client.delete(f'/api/news/{news_id}').status_code == 200
    assert resident_client.get(f'/api/news/{news_id}').status_code == 404


def test_unknown_route_returns_json(client):
    response = client.get('/api/gibt-es-nicht')
    assert response.status_code == 404
    assert response.get_json() == {'error': 'Resource not found'}

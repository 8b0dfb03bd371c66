import pytest

from domera.constants import ACCOUNT_ACTIVATED, ACCOUNT_NOT_ASSIGNED, ACCOUNT_PENDING, ROLE_MANAGEMENT
from domera.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from domera.models import Apartment, RevisionLog
from domera.services import apartment_service, auth_service, building_service, company_service


def test_company_registration_makes_user_management(app):
    user = auth_service.register_user('neu@example.com', 'geheim123', commit=False)
    company = company_service.register_company_for_user(user, 'Neue Verwaltung', 'Ringstraße 1', '0123')

    assert user.company_id == company.id
    assert user.role == ROLE_MANAGEMENT
    assert company.owner_uid == user.id
    assert company.email == 'neu@example.com'


def test_company_registration_needs_contact_data(app):
    user = auth_service.register_user('neu@example.com', 'geheim123')
    with pytest.raises(ValidationError):
        company_service.register_company_for_user(user, 'Neue Verwaltung', '', '0123')
    with pytest.raises(ValidationError):
        company_service.register_company_for_user(user, 'Neue Verwaltung', 'Ringstraße 1', ' ')


def test_one_building_per_company(estate):
    with pytest.raises(ConflictError):
        building_service.create_building(estate.company.id, 'Haus Süd', 'Südstraße 9, Hamburg')

    assert estate.company.buildings == [{'id': estate.building.id, 'name': 'Haus Nord'}]
    assert estate.building.managed_by['manager_email'] == estate.manager.email


def test_building_rename_updates_company_list(estate):
    building_service.update_building(estate.building.id, {'name': 'Haus Elbe'})
    assert estate.company.buildings[0]['name'] == 'Haus Elbe'


def test_building_with_apartments_cannot_be_deleted(estate):
    with pytest.raises(ConflictError):
        building_service.delete_building(estate.building.id)

    apartment_service.delete_apartment(estate.apartment.id)
    building_service.delete_building(estate.building.id)
    assert estate.company.buildings == []


def test_apartment_numbers_unique_per_building_ignoring_case(estate):
    apartment_service.create_apartment(estate.company.id, estate.building.id, 'Кв-1')

    with pytest.raises(ConflictError):
        apartment_service.create_apartment(estate.company.id, estate.building.id, 'кв-1')
    with pytest.raises(ConflictError):
        apartment_service.create_apartment(estate.company.id, estate.building.id, ' 12 ')
    with pytest.raises(ConflictError):
        apartment_service.update_apartment(estate.apartment.id, {'number': 'КВ-1'})


def test_apartment_is_listed_in_building(estate):
    second = apartment_service.create_apartment(estate.company.id, estate.building.id, '13')
    assert estate.building.apartment_ids == [estate.apartment.id, second.id]
    assert second.all_company_ids() == [estate.company.id]


def test_apartment_needs_own_building(estate):
    other = auth_service.register_user('andere@example.com', 'geheim123', commit=False)
    other_company = company_service.register_company_for_user(other, 'Andere GmbH', 'Weg 12345', '0456')

    with pytest.raises(PermissionDenied):
        apartment_service.create_apartment(other_company.id, estate.building.id, '99')
    with pytest.raises(NotFoundError):
        apartment_service.create_apartment(estate.company.id, 'fehlt', '99')


def test_company_apartments_backfilled_from_buildings(estate, db):
    apartment = estate.apartment
    apartment.company_ids = []
    estate.building.apartment_ids = []
    db.session.commit()

    found = apartment_service.get_apartments_by_company(estate.company.id)

    assert [a.id for a in found] == [apartment.id]
    assert apartment.company_ids == [estate.company.id]
    assert estate.building.apartment_ids == [apartment.id]


def test_legacy_company_column_is_honoured(estate, db):
    apartment = estate.apartment
    apartment.company_ids = []
    apartment.company_id = estate.company.id
    db.session.commit()

    assert apartment_service.get_apartments_by_company(estate.company.id) == [apartment]
    assert apartment.all_company_ids() == [estate.company.id]


def test_populate_apartment_ids(estate, db):
    estate.building.apartment_ids = []
    db.session.commit()

    assert building_service.populate_apartment_ids() == 1
    assert estate.building.apartment_ids == [estate.apartment.id]
    assert building_service.populate_apartment_ids() == 0


def test_resident_blocks_apartment_deletion(estate, resident):
    assert estate.apartment.resident_id == resident.id
    with pytest.raises(ConflictError):
        apartment_service.delete_apartment(estate.apartment.id)

    apartment_service.unassign_resident(estate.apartment.id)
    apartment_service.delete_apartment(estate.apartment.id)
    assert Apartment.query.count() == 0
    assert estate.building.apartment_ids == []


def test_tenants(estate, resident):
    guest = auth_service.register_user('gast@example.com', 'geheim123', display_name='Gast')

    tenant = apartment_service.add_tenant(estate.apartment.id, 'GAST@example.com', ['submitMeter', 'unbekannt'])
    assert tenant['user_id'] == guest.id
    assert tenant['permissions'] == ['submitMeter']

    with pytest.raises(ConflictError):
        apartment_service.add_tenant(estate.apartment.id, 'gast@example.com')
    with pytest.raises(NotFoundError):
        apartment_service.add_tenant(estate.apartment.id, 'niemand@example.com')

    apartment_service.remove_tenant(estate.apartment.id, guest.id)
    assert estate.apartment.tenants == []
    with pytest.raises(NotFoundError):
        apartment_service.remove_tenant(estate.apartment.id, guest.id)


def test_account_status(estate):
    assert apartment_service.get_account_status(estate.apartment) == ACCOUNT_NOT_ASSIGNED
    assert apartment_service.get_account_status(estate.apartment, object()) == ACCOUNT_PENDING
    estate.apartment.resident_id = 'u1'
    assert apartment_service.get_account_status(estate.apartment) == ACCOUNT_ACTIVATED


def test_changes_are_written_to_revision_log(estate):
    logs = RevisionLog.query.filter_by(table_name='buildings').all()
    assert any(log.action == 'insert' and log.record_id == estate.building.id for log in logs)
    assert all('password_hash' not in (log.changes or '') for log in RevisionLog.query.all())

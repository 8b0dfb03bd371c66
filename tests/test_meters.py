from datetime import date, datetime

import pytest

from domera.errors import PermissionDenied, ValidationError
from domera.services import meter_service


def _water(apartment_id):
    return meter_service.get_water_meters_by_apartment(apartment_id)


def test_virtual_meters_follow_building_templates(estate):
    meters = _water(estate.apartment.id)

    assert [m['name'] for m in meters] == ['cwm', 'hwm']
    assert all(m['virtual'] for m in meters)
    assert meters[0]['id'] == f'house-water-{estate.apartment.id}-хвс'
    assert [meter_service.get_meter_display_name(m) for m in meters] == ['ХВС', 'ГВС']


def test_persisted_meter_replaces_virtual_meter(estate):
    cold = _water(estate.apartment.id)[0]
    meter_service.update_meter(cold['id'], {
        'apartment_id': estate.apartment.id,
        'type': 'water',
        'name': cold['name'],
        'serial_number': 'CW-100',
    })

    meters = _water(estate.apartment.id)
    assert len(meters) == 2
    persisted = next(m for m in meters if m['id'] == cold['id'])
    assert persisted['virtual'] is False
    assert persisted['serial_number'] == 'CW-100'


def test_meter_name_codes():
    assert meter_service.meter_name_code('Горячая вода') == 'hwm'
    assert meter_service.meter_name_code('ХВС') == 'cwm'
    assert meter_service.meter_name_code('Warmwasser') == 'hwm'
    assert meter_service.meter_name_code('Kaltwasser') == 'cwm'
    assert meter_service.meter_name_code('Strom') == 'Strom'
    assert meter_service.meter_name_code('') is None


def test_display_name_falls_back_to_serial():
    assert meter_service.get_meter_display_name({'id': 'm1', 'name': '', 'serial_number': 'SN-1'}) == 'SN-1'
    assert meter_service.get_meter_display_name({'id': 'm1', 'name': None}) == 'm1'
    assert meter_service.is_hot_meter({'name': 'hwm'})


def test_meta_can_be_added_once_then_waits_for_due_date():
    assert meter_service.can_edit_meter_meta({'serial_number': 'SN-1', 'check_due_date': None})
    meter = {'serial_number': 'SN-1', 'check_due_date': '2030-01-01'}
    assert not meter_service.can_edit_meter_meta(meter, now=datetime(2029, 11, 1))
    assert meter_service.can_edit_meter_meta(meter, now=datetime(2029, 12, 2))
    assert not meter_service.can_edit_meter_meta(None)


def test_serial_change_requires_check_date(estate):
    meter = meter_service.create_meter(estate.apartment.id, serial_number='SN-1')

    with pytest.raises(PermissionDenied):
        meter_service.update_meter(meter.id, {'serial_number': 'SN-2'})

    updated = meter_service.update_meter(meter.id, {'serial_number': 'SN-2'}, force=True)
    assert updated.serial_number == 'SN-2'


def test_serial_change_allowed_near_check_date(estate):
    meter = meter_service.create_meter(estate.apartment.id, serial_number='SN-1', check_due_date='2030-01-01')

    with pytest.raises(PermissionDenied):
        meter_service.update_meter(meter.id, {'serial_number': 'SN-2'}, now=datetime(2029, 6, 1))

    updated = meter_service.update_meter(meter.id, {'serial_number': 'SN-2'}, now=datetime(2029, 12, 20))
    assert updated.serial_number == 'SN-2'


def test_check_date_is_normalized(estate):
    meter = meter_service.create_meter(estate.apartment.id, serial_number='SN-1')
    updated = meter_service.set_meter_check_date(meter.id, '2031-05-07T00:00:00')
    assert updated.check_due_date == date(2031, 5, 7)

    with pytest.raises(ValidationError):
        meter_service.set_meter_check_date(meter.id, 'irgendwann')


def test_resident_cannot_edit_locked_meter(estate, resident):
    meter = meter_service.create_meter(estate.apartment.id, serial_number='SN-1', check_due_date='2030-01-01')

    with pytest.raises(PermissionDenied):
        meter_service.edit_meter_meta(meter.id, {'serial_number': 'SN-9'}, resident,
                                      force=True, now=datetime(2029, 1, 1))

    updated = meter_service.edit_meter_meta(meter.id, {'serial_number': 'SN-9'}, estate.manager,
                                            force=True, now=datetime(2029, 1, 1))
    assert updated.serial_number == 'SN-9'


def test_check_date_on_virtual_meter_creates_it(estate, resident):
    hot = _water(estate.apartment.id)[1]

    meter = meter_service.edit_meter_check_date(hot['id'], estate.apartment.id, '2032-02-01', resident)

    assert meter.id == hot['id']
    assert meter.apartment_id == estate.apartment.id
    assert meter.name == 'hwm'
    assert meter.check_due_date == date(2032, 2, 1)
    assert len(_water(estate.apartment.id)) == 2


def test_unknown_meter_type_is_rejected(estate):
    with pytest.raises(ValidationError):
        meter_service.create_meter(estate.apartment.id, meter_type='gas')

"""Gebäude einer Verwaltungsgesellschaft (maximal eines pro Firma)."""

from flask import current_app

from domera.constants import DEFAULT_SUBMISSION_OPEN_DAY, DEFAULT_WATER_METER_TEMPLATES
from domera.errors import ConflictError, NotFoundError, ValidationError
from domera.extensions import db
from domera.models import Apartment, Building
from domera.services.company_service import get_company
from domera.utils.validation import validate_building_form


def normalize_open_day(value):
    if isinstance(value, bool):
        return DEFAULT_SUBMISSION_OPEN_DAY
    try:
        day = int(value)
    except (TypeError, ValueError):
        return DEFAULT_SUBMISSION_OPEN_DAY
    return day if 1 <= day <= 31 else DEFAULT_SUBMISSION_OPEN_DAY


def normalize_templates(templates):
    if isinstance(templates, (list, tuple)):
        cleaned = [str(t).strip() for t in templates if t and str(t).strip()]
        if cleaned:
            return cleaned
    return list(DEFAULT_WATER_METER_TEMPLATES)


def get_water_templates(building):
    if building is None:
        return list(DEFAULT_WATER_METER_TEMPLATES)
    return normalize_templates(building.water_meter_templates)


def get_submission_open_day(building):
    if building is None:
        return DEFAULT_SUBMISSION_OPEN_DAY
    return normalize_open_day(building.water_submission_open_day)


def get_building(building_id):
    if not building_id:
        return None
    return db.session.get(Building, building_id)


def require_building(building_id):
    building = get_building(building_id)
    if not building:
        raise NotFoundError('Gebäude nicht gefunden')
    return building


def get_buildings_by_company(company_id):
    return Building.query.filter_by(company_id=company_id).order_by(Building.created_at).all()


def create_building(company_id, name, address, manager=None, water_meter_templates=None,
                    water_submission_open_day=None):
    ok, errors = validate_building_form(name, address)
    if not ok:
        raise ValidationError('; '.join(errors.values()))

    company = get_company(company_id)
    if not company:
        raise NotFoundError('Verwaltungsgesellschaft nicht gefunden')
    if get_buildings_by_company(company_id):
        raise ConflictError('Eine Verwaltungsgesellschaft kann nur ein Gebäude verwalten')

    building = Building(
        company_id=company_id,
        name=name.strip(),
        address=address.strip(),
        managed_by={
            'company_id': company_id,
            'company_name': company.name,
            'manager_uid': getattr(manager, 'id', None),
            'manager_email': getattr(manager, 'email', None),
        },
        apartment_ids=[],
        water_meter_templates=normalize_templates(water_meter_templates),
        water_submission_open_day=normalize_open_day(water_submission_open_day),
    )
    db.session.add(building)
    db.session.flush()

    company.buildings = list(company.buildings or []) + [{'id': building.id, 'name': building.name}]
    db.session.commit()
    current_app.logger.info(f"Gebäude {building.id} für Firma {company_id} angelegt")
    return building


def update_building(building_id, data):
    building = require_building(building_id)

    if 'name' in data or 'address' in data:
        name = data.get('name', building.name)
        address = data.get('address', building.address)
        ok, errors = validate_building_form(name, address)
        if not ok:
            raise ValidationError('; '.join(errors.values()))
        building.name = name.strip()
        building.address = address.strip()
    if 'water_meter_templates' in data:
        building.water_meter_templates = normalize_templates(data['water_meter_templates'])
    if 'water_submission_open_day' in data:
        building.water_submission_open_day = normalize_open_day(data['water_submission_open_day'])

    # Name in der Kurzliste der Firma nachziehen
    company = get_company(building.company_id)
    if company:
        company.buildings = [
            {'id': entry.get('id'), 'name': building.name} if entry.get('id') == building.id else entry
            for entry in (company.buildings or [])
        ]

    db.session.commit()
    return building


def delete_building(building_id):
    building = require_building(building_id)
    if Apartment.query.filter_by(building_id=building.id).count():
        raise ConflictError('Gebäude mit Wohnungen kann nicht gelöscht werden')

    company = get_company(building.company_id)
    if company:
        company.buildings = [b for b in (company.buildings or []) if b.get('id') != building.id]
    db.session.delete(building)
    db.session.commit()


def populate_apartment_ids():
    """Setzt ``apartment_ids`` aller Gebäude aus den vorhandenen Wohnungen neu.

    Liefert die Anzahl geänderter Gebäude.
    """
    updated = 0
    for building in Building.query.all():
        ids = [a.id for a in Apartment.query.filter_by(building_id=building.id).order_by(Apartment.created_at)]
        if ids != list(building.apartment_ids or []):
            building.apartment_ids = ids
            updated += 1
    db.session.commit()
    return updated

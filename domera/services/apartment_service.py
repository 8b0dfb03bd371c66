"""Wohnungen: Anlage, Zuordnung von Bewohnern und Mieterzugriffe."""

from datetime import datetime

from flask import current_app
from sqlalchemy import String, cast, or_

from domera.constants import (
    ACCOUNT_ACTIVATED,
    ACCOUNT_NOT_ASSIGNED,
    ACCOUNT_PENDING,
    DEFAULT_TENANT_PERMISSIONS,
    TENANT_PERMISSIONS,
)
from domera.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from domera.extensions import db
from domera.models import Apartment, Building
from domera.services.auth_service import get_user_by_email
from domera.utils.validation import validate_apartment_number


def get_apartment(apartment_id):
    if not apartment_id:
        return None
    return db.session.get(Apartment, apartment_id)


def require_apartment(apartment_id):
    apartment = get_apartment(apartment_id)
    if not apartment:
        raise NotFoundError('Wohnung nicht gefunden')
    return apartment


def get_apartments_by_building(building_id):
    return Apartment.query.filter_by(building_id=building_id).order_by(Apartment.number).all()


def _number_taken(building_id, number, ignore_id=None):
    # In Python vergleichen: SQLite-lower() kennt nur ASCII
    wanted = number.strip().casefold()
    return any(
        (a.number or '').strip().casefold() == wanted
        for a in get_apartments_by_building(building_id)
        if a.id != ignore_id
    )


def create_apartment(company_id, building_id, number):
    if not company_id:
        raise ValidationError('Verwaltungsgesellschaft ist erforderlich')
    ok, error = validate_apartment_number(number)
    if not ok:
        raise ValidationError(error)
    number = number.strip()

    building = db.session.get(Building, building_id) if building_id else None
    if not building:
        raise NotFoundError('Gebäude nicht gefunden')
    if building.company_id != company_id:
        raise PermissionDenied('Das Gebäude gehört nicht zu dieser Verwaltungsgesellschaft')
    if _number_taken(building_id, number):
        raise ConflictError(f'Wohnung {number} existiert in diesem Gebäude bereits')

    apartment = Apartment(
        building_id=building_id,
        number=number,
        company_ids=[company_id],
        tenants=[],
        water_readings=[],
    )
    db.session.add(apartment)
    db.session.flush()

    ids = list(building.apartment_ids or [])
    if apartment.id not in ids:
        building.apartment_ids = ids + [apartment.id]
    db.session.commit()
    current_app.logger.info(f"Wohnung {apartment.id} ({number}) in Gebäude {building_id} angelegt")
    return apartment


def get_apartments_by_company(company_id):
    """Wohnungen einer Firma.

    Sucht zuerst über ``company_ids`` bzw. die alte ``company_id``-Spalte.
    Wird nichts gefunden, werden die Gebäude der Firma herangezogen und
    deren ``apartment_ids`` sowie die Firmenzuordnung der Wohnungen nachgetragen.
    """
    if not company_id:
        return []

    apartments = Apartment.query.filter(or_(
        cast(Apartment.company_ids, String).contains(f'"{company_id}"'),
        Apartment.company_id == company_id,
    )).order_by(Apartment.number).all()
    if apartments:
        return apartments

    loaded = []
    for building in Building.query.filter_by(company_id=company_id).all():
        found = get_apartments_by_building(building.id)
        if not found:
            continue
        building.apartment_ids = [a.id for a in found]
        for apartment in found:
            ids = list(apartment.company_ids or [])
            if company_id not in ids:
                apartment.company_ids = ids + [company_id]
        loaded.extend(found)

    if loaded:
        db.session.commit()
        current_app.logger.info(f"Wohnungszuordnung für Firma {company_id} nachgetragen ({len(loaded)})")
    return loaded


def assign_resident(apartment_id, user_id, commit=True):
    apartment = require_apartment(apartment_id)
    apartment.resident_id = user_id
    if commit:
        db.session.commit()
    return apartment


def unassign_resident(apartment_id):
    apartment = require_apartment(apartment_id)
    apartment.resident_id = None
    db.session.commit()
    return apartment


def update_apartment(apartment_id, data):
    apartment = require_apartment(apartment_id)

    if 'number' in data:
        ok, error = validate_apartment_number(data['number'])
        if not ok:
            raise ValidationError(error)
        number = data['number'].strip()
        if _number_taken(apartment.building_id, number, ignore_id=apartment.id):
            raise ConflictError(f'Wohnung {number} existiert in diesem Gebäude bereits')
        apartment.number = number

    db.session.commit()
    return apartment


def delete_apartment(apartment_id):
    apartment = require_apartment(apartment_id)
    if apartment.resident_id:
        raise ConflictError('Wohnung mit zugeordnetem Bewohner kann nicht gelöscht werden')

    building = db.session.get(Building, apartment.building_id)
    if building:
        building.apartment_ids = [i for i in (building.apartment_ids or []) if i != apartment.id]
    db.session.delete(apartment)
    db.session.commit()


def add_tenant(apartment_id, email, permissions=None):
    user = get_user_by_email(email)
    if not user:
        raise NotFoundError('Kein Benutzer mit dieser E-Mail-Adresse gefunden')
    apartment = require_apartment(apartment_id)

    tenants = list(apartment.tenants or [])
    if any(t.get('user_id') == user.id for t in tenants):
        raise ConflictError('Dieser Benutzer hat bereits Zugriff')

    permissions = [p for p in (permissions or DEFAULT_TENANT_PERMISSIONS) if p in TENANT_PERMISSIONS]
    tenant = {
        'user_id': user.id,
        'name': user.display_name or 'Unbekannt',
        'email': user.email,
        'permissions': permissions,
        'invited_at': datetime.utcnow().isoformat(),
    }
    apartment.tenants = tenants + [tenant]
    db.session.commit()
    return tenant


def remove_tenant(apartment_id, user_id):
    apartment = require_apartment(apartment_id)
    tenants = list(apartment.tenants or [])
    remaining = [t for t in tenants if t.get('user_id') != user_id]
    if len(remaining) == len(tenants):
        raise NotFoundError('Mieter nicht gefunden')
    apartment.tenants = remaining
    db.session.commit()


def get_account_status(apartment, pending_invitation=None):
    if apartment.resident_id:
        return ACCOUNT_ACTIVATED
    if pending_invitation is not None:
        return ACCOUNT_PENDING
    return ACCOUNT_NOT_ASSIGNED

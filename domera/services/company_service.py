from flask import current_app

from domera.constants import ROLE_MANAGEMENT
from domera.errors import NotFoundError, ValidationError
from domera.extensions import db
from domera.models import Company

_UPDATABLE_FIELDS = ('name', 'address', 'phone', 'email')


def create_company(name, owner_uid, address=None, phone=None, email=None, commit=True):
    name = (name or '').strip()
    if not name:
        raise ValidationError('Firmenname ist erforderlich')
    if not owner_uid:
        raise ValidationError('Eigentümer ist erforderlich')

    company = Company(
        name=name,
        owner_uid=owner_uid,
        address=address,
        phone=phone,
        email=email,
        buildings=[],
    )
    db.session.add(company)
    if commit:
        db.session.commit()
    return company


def get_company(company_id):
    if not company_id:
        return None
    return db.session.get(Company, company_id)


def require_company(company_id):
    company = get_company(company_id)
    if not company:
        raise NotFoundError('Verwaltungsgesellschaft nicht gefunden')
    return company


def update_company(company_id, data):
    company = require_company(company_id)
    for field in _UPDATABLE_FIELDS:
        if field in data:
            setattr(company, field, data[field])
    if not (company.name or '').strip():
        raise ValidationError('Firmenname ist erforderlich')
    db.session.commit()
    return company


def register_company_for_user(user, name, address, phone, email=None):
    """Legt die Firma an und macht den Benutzer zur Verwaltung."""
    if not (address or '').strip():
        raise ValidationError('Adresse ist erforderlich')
    if not (phone or '').strip():
        raise ValidationError('Telefonnummer ist erforderlich')

    company = create_company(name, user.id, address=address.strip(), phone=phone.strip(),
                             email=email or user.email, commit=False)
    db.session.flush()
    user.company_id = company.id
    user.role = ROLE_MANAGEMENT
    db.session.commit()
    current_app.logger.info(f"Firma {company.id} für Benutzer {user.id} registriert")
    return company

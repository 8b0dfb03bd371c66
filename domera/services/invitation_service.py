"""Einladungen von Bewohnern.

Jede Einladung trägt DSGVO-Metadaten (Rechtsgrundlage, Zweck,
Aufbewahrungsfrist). Angenommen wird sie entweder mit einem neuen Konto
oder aus einem bestehenden, angemeldeten Bewohnerkonto heraus.
"""

import secrets
from datetime import datetime, timedelta
from urllib.parse import quote

from flask import current_app

from domera.constants import (
    INVITATION_LAWFUL_BASIS,
    INVITATION_PROCESSING_PURPOSE,
    INVITATION_RETENTION_DAYS,
    PRIVACY_NOTICE_VERSION,
    ROLE_MANAGEMENT,
    ROLE_RESIDENT,
    TENANT_PERMISSIONS,
)
from domera.errors import NotFoundError, PermissionDenied, ValidationError
from domera.extensions import db
from domera.models import Invitation
from domera.services import mail_service
from domera.services.apartment_service import assign_resident, require_apartment
from domera.services.auth_service import get_user_by_email, get_user_by_id, register_user
from domera.utils.validation import normalize_email, validate_email


def generate_token():
    return secrets.token_hex(16)


def _base_url(base_url=None):
    return (base_url or current_app.config['APP_BASE_URL']).rstrip('/')


def build_invitation_link(token, base_url=None):
    return f"{_base_url(base_url)}/accept-invitation?token={quote(token, safe='')}"


def build_login_link(invitation_link, base_url=None):
    return f"{_base_url(base_url)}/login?redirect={quote(invitation_link, safe='')}"


def create_invitation(company_id, apartment_id, email, legal_basis_confirmed, invited_by_uid=None,
                      privacy_notice_version=PRIVACY_NOTICE_VERSION, base_url=None, permissions=None,
                      now=None):
    """Legt eine Einladung an und liefert ``(invitation, link)``."""
    email = normalize_email(email)
    if not validate_email(email):
        raise ValidationError('Ungültiges E-Mail-Format')
    if not legal_basis_confirmed:
        raise ValidationError('Die Rechtsgrundlage für die Verarbeitung personenbezogener Daten ist nicht bestätigt')
    if permissions is not None:
        unknown = [p for p in permissions if p not in TENANT_PERMISSIONS]
        if unknown:
            raise ValidationError(f"Unbekannte Berechtigungen: {', '.join(unknown)}")

    now = now or datetime.utcnow()
    expiry_hours = current_app.config.get('INVITATION_EXPIRY_HOURS', 72)
    expires_at = now + timedelta(hours=expiry_hours)
    retention_until = expires_at + timedelta(days=INVITATION_RETENTION_DAYS)

    invitation = Invitation(
        company_id=company_id,
        apartment_id=apartment_id,
        email=email,
        status='pending',
        token=generate_token(),
        created_at=now,
        expires_at=expires_at,
        invited_by_uid=invited_by_uid,
        permissions=list(permissions) if permissions is not None else None,
        gdpr={
            'lawful_basis': INVITATION_LAWFUL_BASIS,
            'processing_purpose': INVITATION_PROCESSING_PURPOSE,
            'legal_basis_confirmed_at': now.isoformat(),
            'privacy_notice_version': privacy_notice_version or PRIVACY_NOTICE_VERSION,
            'retention_until': retention_until.isoformat(),
        },
    )
    db.session.add(invitation)
    db.session.commit()
    current_app.logger.info(f"Einladung {invitation.id} für Wohnung {apartment_id} angelegt")
    return invitation, build_invitation_link(invitation.token, base_url)


def get_invitation_by_token(token, now=None):
    """Gültige Einladung zum Token oder ``None`` (unbekannt, abgelaufen, widerrufen)."""
    if not token or not isinstance(token, str):
        return None
    invitation = Invitation.query.filter_by(token=token).first()
    if not invitation:
        return None
    if invitation.expires_at and invitation.expires_at < (now or datetime.utcnow()):
        current_app.logger.info(f"Einladung {invitation.id} ist abgelaufen")
        return None
    if invitation.status == 'revoked':
        return None
    return invitation


def get_invitation_by_email(email):
    return (
        Invitation.query.filter_by(email=normalize_email(email))
        .order_by(Invitation.created_at.desc())
        .first()
    )


def get_pending_invitation_for_apartment(apartment_id, now=None):
    now = now or datetime.utcnow()
    return (
        Invitation.query.filter(
            Invitation.apartment_id == apartment_id,
            Invitation.status == 'pending',
            Invitation.expires_at >= now,
        )
        .order_by(Invitation.created_at.desc())
        .first()
    )


def _mark_accepted(invitation, now):
    invitation.status = 'accepted'
    invitation.accepted_at = now
    gdpr = dict(invitation.gdpr or {})
    gdpr['data_subject_consent_at'] = now.isoformat()
    invitation.gdpr = gdpr


def accept_invitation(token, password, consent, now=None):
    """Neues Bewohnerkonto über die Einladung anlegen."""
    if not consent:
        raise ValidationError('Die Einwilligung zur Datenverarbeitung ist erforderlich')
    invitation = get_invitation_by_token(token, now)
    if not invitation:
        raise ValidationError('Einladung ist ungültig oder abgelaufen')

    now = now or datetime.utcnow()
    user = register_user(invitation.email, password, ROLE_RESIDENT,
                         apartment_id=invitation.apartment_id, commit=False)
    user.privacy_consent = True
    db.session.flush()
    _mark_accepted(invitation, now)
    assign_resident(invitation.apartment_id, user.id, commit=False)
    db.session.commit()
    current_app.logger.info(f"Einladung {invitation.id} angenommen, Bewohner {user.id} angelegt")
    return user


def accept_invitation_for_user(token, user_id, consent, now=None):
    """Einladung aus einem bestehenden, angemeldeten Konto annehmen.

    Eine bereits angenommene Einladung darf erneut angenommen werden.
    """
    if not consent:
        raise ValidationError('Die Einwilligung zur Datenverarbeitung ist erforderlich')
    if not user_id:
        raise PermissionDenied('Anmeldung erforderlich', status_code=401)
    invitation = get_invitation_by_token(token, now)
    if not invitation:
        raise ValidationError('Einladung ist ungültig oder abgelaufen')

    user = get_user_by_id(user_id)
    if not user:
        raise NotFoundError('Benutzer nicht gefunden')
    if normalize_email(user.email) != normalize_email(invitation.email):
        raise PermissionDenied('Die Einladung gilt für eine andere E-Mail-Adresse. Bitte mit dem passenden Konto anmelden.')
    if user.role == ROLE_MANAGEMENT:
        raise PermissionDenied('Eine Bewohner-Einladung kann nicht mit einem Verwaltungskonto angenommen werden')

    now = now or datetime.utcnow()
    user.role = ROLE_RESIDENT
    user.apartment_id = invitation.apartment_id
    user.privacy_consent = True
    _mark_accepted(invitation, now)
    assign_resident(invitation.apartment_id, user.id, commit=False)
    db.session.commit()
    return user


def revoke_invitation(invitation_id, now=None):
    invitation = db.session.get(Invitation, invitation_id) if invitation_id else None
    if not invitation:
        raise NotFoundError('Einladung nicht gefunden')
    invitation.status = 'revoked'
    invitation.revoked_at = now or datetime.utcnow()
    db.session.commit()
    return invitation


def revoke_pending_for_apartment(apartment_id, now=None):
    now = now or datetime.utcnow()
    pending = Invitation.query.filter_by(apartment_id=apartment_id, status='pending').all()
    for invitation in pending:
        invitation.status = 'revoked'
        invitation.revoked_at = now
    db.session.commit()
    return len(pending)


def send_invitation(apartment_id, email, legal_basis_confirmed, invited_by_uid=None, base_url=None):
    """Einladung anlegen und passende E-Mail (neues/bestehendes Konto) versenden."""
    if not apartment_id or not email:
        raise ValidationError('apartment_id und email sind erforderlich')
    apartment = require_apartment(apartment_id)
    company_ids = apartment.all_company_ids()
    if not company_ids:
        raise ValidationError('Der Wohnung ist keine Verwaltungsgesellschaft zugeordnet')

    invitation, link = create_invitation(
        company_ids[0], apartment_id, email,
        legal_basis_confirmed=legal_basis_confirmed,
        invited_by_uid=invited_by_uid,
        base_url=base_url,
    )
    existing_account = get_user_by_email(invitation.email) is not None
    login_link = build_login_link(link, base_url)
    mail_service.send_invitation_email(invitation.email, link, login_link, existing_account)

    return {
        'invitation': invitation,
        'invitation_link': link,
        'login_link': login_link,
        'existing_account': existing_account,
    }

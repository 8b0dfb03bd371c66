"""Benutzerkonten: Registrierung, Anmeldung, Profil und Passwort-Reset."""

from datetime import datetime
from urllib.parse import urlencode

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import func

from domera.constants import ROLE_RESIDENT, USER_ROLES
from domera.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from domera.extensions import db
from domera.models import User
from domera.utils.validation import normalize_email, validate_email, validate_password

_RESET_SALT = 'domera-password-reset'

DEFAULT_NOTIFICATIONS = {
    'email': True,
    'meter_reminder': True,
    'payment_reminder': True,
    'general': True,
}


def _ensure_valid_password(password):
    ok, errors = validate_password(password)
    if not ok:
        raise ValidationError(errors[0])


def get_user_by_id(user_id):
    if not user_id:
        return None
    return db.session.get(User, user_id)


def get_user_by_email(email):
    email = normalize_email(email)
    if not email:
        return None
    return User.query.filter(func.lower(User.email) == email).first()


def get_users_by_company(company_id):
    return User.query.filter_by(company_id=company_id).order_by(User.email).all()


def register_user(email, password, role=ROLE_RESIDENT, company_id=None, apartment_id=None,
                  display_name=None, commit=True):
    email = normalize_email(email)
    if not validate_email(email):
        raise ValidationError('Ungültige E-Mail-Adresse')
    _ensure_valid_password(password)
    if role not in USER_ROLES:
        raise ValidationError(f'Unbekannte Rolle: {role}')
    if get_user_by_email(email):
        raise ConflictError('Diese E-Mail-Adresse ist bereits registriert')

    user = User(
        email=email,
        role=role,
        company_id=company_id,
        apartment_id=apartment_id,
        display_name=display_name,
        notifications=dict(DEFAULT_NOTIFICATIONS),
    )
    user.set_password(password)
    db.session.add(user)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    current_app.logger.info(f"Benutzer registriert: {user.id} ({role})")
    return user


def authenticate(email, password):
    user = get_user_by_email(email)
    if not user or not password or not user.check_password(password):
        raise PermissionDenied('Ungültige Anmeldedaten', status_code=401)
    if user.is_active is False:
        raise PermissionDenied('Konto ist inaktiv. Bitte Verwaltung kontaktieren.')
    user.last_login = datetime.utcnow()
    db.session.commit()
    return user


def update_user_profile(user_id, display_name=None, notifications=None, privacy_consent=None):
    user = get_user_by_id(user_id)
    if not user:
        raise NotFoundError('Benutzer nicht gefunden')

    if display_name is not None:
        user.display_name = display_name.strip() or None
    if notifications is not None:
        merged = dict(DEFAULT_NOTIFICATIONS)
        merged.update(user.notifications or {})
        for key, value in notifications.items():
            if key in DEFAULT_NOTIFICATIONS:
                merged[key] = bool(value)
        user.notifications = merged
    if privacy_consent is not None:
        user.privacy_consent = bool(privacy_consent)

    db.session.commit()
    return user


def change_password(user, current_password, new_password):
    if not user.check_password(current_password or ''):
        raise PermissionDenied('Aktuelles Passwort ist falsch')
    _ensure_valid_password(new_password)
    user.set_password(new_password)
    db.session.commit()


def _reset_serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=_RESET_SALT)


def build_password_reset_link(user, base_url=None):
    base_url = (base_url or current_app.config['APP_BASE_URL']).rstrip('/')
    # Hash-Anteil im Token, damit ein Link nach Passwortänderung ungültig wird
    code = _reset_serializer().dumps({'uid': user.id, 'h': user.password_hash[-12:]})
    return f"{base_url}/reset-password/confirm?{urlencode({'oobCode': code})}"


def issue_password_reset(email, base_url=None):
    """Liefert den Reset-Link oder ``None`` für unbekannte Adressen."""
    email = normalize_email(email)
    if not validate_email(email):
        raise ValidationError('Ungültige E-Mail-Adresse')
    user = get_user_by_email(email)
    if not user:
        current_app.logger.info("Passwort-Reset für unbekannte Adresse angefordert")
        return None
    return build_password_reset_link(user, base_url)


def confirm_password_reset(code, new_password):
    max_age = current_app.config.get('PASSWORD_RESET_MAX_AGE', 3600)
    try:
        payload = _reset_serializer().loads(code or '', max_age=max_age)
    except SignatureExpired:
        raise ValidationError('Der Link zum Zurücksetzen ist abgelaufen')
    except BadSignature:
        raise ValidationError('Ungültiger Link zum Zurücksetzen')

    user = get_user_by_id(payload.get('uid'))
    if not user or user.password_hash[-12:] != payload.get('h'):
        raise ValidationError('Ungültiger Link zum Zurücksetzen')

    _ensure_valid_password(new_password)
    user.set_password(new_password)
    db.session.commit()
    return user

from functools import wraps

from flask import Blueprint, g, jsonify, session
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from domera.constants import ROLE_ACCOUNTANT, ROLE_MANAGEMENT, ROLE_RESIDENT
from domera.errors import PermissionDenied
from domera.extensions import db
from domera.models import User

main_bp = Blueprint('main', __name__)


def resolve_user_id():
    user_id = session.get('user_id')
    if user_id:
        return user_id
    # API-Clients schicken ein Bearer-Token statt Session-Cookie
    if verify_jwt_in_request(optional=True):
        return get_jwt_identity()
    return None


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = resolve_user_id()
        if not user_id:
            return jsonify({'error': 'Anmeldung erforderlich'}), 401

        user = db.session.get(User, user_id)
        if not user or not user.is_active:
            session.clear()
            return jsonify({'error': 'Ihr Konto ist inaktiv oder existiert nicht mehr'}), 401

        g.current_user = user
        g.current_user_id = user.id
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if g.current_user.role not in roles:
                return jsonify({'error': 'Keine Berechtigung'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


management_required = roles_required(ROLE_MANAGEMENT)


def current_user():
    return g.get('current_user')


def is_management(user):
    return user is not None and user.role == ROLE_MANAGEMENT


def ensure_company_access(user, company_id):
    """Verwaltung und Buchhaltung sehen nur ihre eigene Firma."""
    if user.role in (ROLE_MANAGEMENT, ROLE_ACCOUNTANT) and user.company_id and user.company_id == company_id:
        return
    raise PermissionDenied('Kein Zugriff auf diese Verwaltungsgesellschaft')


def has_apartment_access(user, apartment):
    if user.role in (ROLE_MANAGEMENT, ROLE_ACCOUNTANT):
        return bool(user.company_id) and user.company_id in apartment.all_company_ids()
    if user.role == ROLE_RESIDENT and user.apartment_id == apartment.id:
        return True
    return any(t.get('user_id') == user.id for t in apartment.tenants or [])


def ensure_apartment_access(user, apartment):
    if not has_apartment_access(user, apartment):
        raise PermissionDenied('Kein Zugriff auf diese Wohnung')


def ensure_apartment_management(user, apartment):
    if not is_management(user) or user.company_id not in apartment.all_company_ids():
        raise PermissionDenied('Nur die zuständige Verwaltung darf diese Wohnung bearbeiten')


def user_company_ids(user):
    """Firmen, deren Inhalte (Projekte, News) der Benutzer lesen darf."""
    if user.company_id:
        return [user.company_id]
    if user.apartment_id:
        from domera.services.apartment_service import get_apartment
        apartment = get_apartment(user.apartment_id)
        if apartment:
            return apartment.all_company_ids()
    return []


@main_bp.route('/api/dashboard')
@login_required
def dashboard():
    """Kennzahlen für die Startseite je nach Rolle."""
    from domera.services.apartment_service import get_apartments_by_company, get_apartment
    from domera.services.building_service import get_buildings_by_company
    from domera.services.reading_service import days_until_submission_open, get_readings_by_apartment
    from domera.services.building_service import get_building, get_submission_open_day

    user = current_user()
    if user.role in (ROLE_MANAGEMENT, ROLE_ACCOUNTANT) and user.company_id:
        apartments = get_apartments_by_company(user.company_id)
        return jsonify({
            'role': user.role,
            'buildings_count': len(get_buildings_by_company(user.company_id)),
            'apartments_count': len(apartments),
            'residents_count': sum(1 for a in apartments if a.resident_id),
        })

    apartment = get_apartment(user.apartment_id)
    if not apartment:
        return jsonify({'role': user.role, 'apartment': None})
    open_day = get_submission_open_day(get_building(apartment.building_id))
    return jsonify({
        'role': user.role,
        'apartment': apartment.to_dict(),
        'readings_count': len(get_readings_by_apartment(apartment.id)),
        'submission_open_day': open_day,
        'days_until_submission_open': days_until_submission_open(open_day),
    })

from flask import Blueprint, current_app, jsonify, request, session
from flask_jwt_extended import create_access_token

from domera.constants import ROLE_MANAGEMENT
from domera.routes.main import current_user, login_required
from domera.services import auth_service, company_service, mail_service
from domera.utils.validation import validate_login_form

auth_bp = Blueprint('auth', __name__)


def _credentials():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password')
    ok, errors = validate_login_form(email, password)
    return ok, errors, email, password


@auth_bp.route('/login', methods=['POST'])
def web_login():
    ok, errors, email, password = _credentials()
    if not ok:
        return jsonify({'error': 'Ungültige Eingaben', 'fields': errors}), 400

    user = auth_service.authenticate(email, password)
    session['user_id'] = user.id
    session['role'] = user.role
    current_app.logger.info(f"LOGIN SUCCESS for user {user.id}")
    return jsonify({'user': user.to_dict()})


# API Login (für mobile Apps etc.)
@auth_bp.route('/api-login', methods=['POST'])
def api_login():
    ok, errors, email, password = _credentials()
    if not ok:
        return jsonify({'error': 'Ungültige Eingaben', 'fields': errors}), 400

    user = auth_service.authenticate(email, password)
    access_token = create_access_token(identity=str(user.id))
    return jsonify({
        'access_token': access_token,
        'user': user.to_dict(),
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'message': 'Successfully logged out'}), 200


@auth_bp.route('/register', methods=['POST'])
def register():
    """Registrierung einer Verwaltungsgesellschaft samt Inhaberkonto."""
    data = request.get_json(silent=True) or {}
    user = auth_service.register_user(
        data.get('email'),
        data.get('password'),
        role=ROLE_MANAGEMENT,
        display_name=data.get('display_name'),
        commit=False,
    )
    company = company_service.register_company_for_user(
        user,
        data.get('company_name'),
        data.get('address'),
        data.get('phone'),
    )
    session['user_id'] = user.id
    session['role'] = user.role
    return jsonify({'user': user.to_dict(), 'company': company.to_dict()}), 201


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user().to_dict())


@auth_bp.route('/me', methods=['PATCH'])
@login_required
def update_me():
    data = request.get_json(silent=True) or {}
    user = auth_service.update_user_profile(
        current_user().id,
        display_name=data.get('display_name'),
        notifications=data.get('notifications'),
        privacy_consent=data.get('privacy_consent'),
    )
    return jsonify(user.to_dict())


@auth_bp.route('/change-password', methods=['POST'])
@login_required
def change_password():
    data = request.get_json(silent=True) or {}
    auth_service.change_password(current_user(), data.get('current_password'), data.get('new_password'))
    return jsonify({'message': 'Passwort geändert'})


@auth_bp.route('/password-reset', methods=['POST'])
def password_reset():
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    link = auth_service.issue_password_reset(email)
    if link:
        mail_service.send_password_reset_email(email.strip().lower(), link)
    # Gleiche Antwort für bekannte und unbekannte Adressen
    return jsonify({'message': 'Falls ein Konto existiert, wurde eine E-Mail versendet'})


@auth_bp.route('/password-reset/confirm', methods=['POST'])
def password_reset_confirm():
    data = request.get_json(silent=True) or {}
    auth_service.confirm_password_reset(data.get('oob_code'), data.get('new_password'))
    return jsonify({'message': 'Passwort wurde zurückgesetzt'})


@auth_bp.route('/status')
def status():
    return jsonify({'status': 'OK', 'service': 'Domera API'})

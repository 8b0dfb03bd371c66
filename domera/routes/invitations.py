from flask import Blueprint, current_app, jsonify, request, session

from domera.errors import NotFoundError, ValidationError
from domera.extensions import db
from domera.models import Invitation
from domera.routes.main import (
    current_user,
    ensure_apartment_management,
    management_required,
    resolve_user_id,
)
from domera.services import apartment_service, invitation_service

invitations_bp = Blueprint('invitations', __name__)


def _public_invitation(invitation):
    # Ohne Token und interne IDs des Einladenden
    return {
        'email': invitation.email,
        'apartment_id': invitation.apartment_id,
        'status': invitation.status,
        'expires_at': invitation.to_dict()['expires_at'],
        'gdpr': dict(invitation.gdpr or {}),
    }


@invitations_bp.route('/send', methods=['POST'])
@management_required
def send_invitation():
    data = request.get_json(silent=True) or {}
    apartment = apartment_service.require_apartment(data.get('apartment_id'))
    ensure_apartment_management(current_user(), apartment)

    result = invitation_service.send_invitation(
        apartment.id,
        data.get('email'),
        legal_basis_confirmed=bool(data.get('legal_basis_confirmed')),
        invited_by_uid=current_user().id,
    )
    current_app.logger.info(f"Einladung für Wohnung {apartment.id} versendet")
    return jsonify({
        'invitation': result['invitation'].to_dict(),
        'invitation_link': result['invitation_link'],
        'login_link': result['login_link'],
        'existing_account': result['existing_account'],
    }), 201


@invitations_bp.route('/<token>', methods=['GET'])
def get_invitation(token):
    invitation = invitation_service.get_invitation_by_token(token)
    if not invitation:
        raise NotFoundError('Einladung ist ungültig oder abgelaufen')
    return jsonify(_public_invitation(invitation))


@invitations_bp.route('/accept', methods=['POST'])
def accept_invitation():
    """Annahme mit neuem Konto oder, wenn angemeldet, mit dem bestehenden."""
    data = request.get_json(silent=True) or {}
    token = data.get('token')
    consent = bool(data.get('consent'))

    user_id = resolve_user_id()
    if user_id:
        user = invitation_service.accept_invitation_for_user(token, user_id, consent)
    else:
        if not data.get('password'):
            raise ValidationError('Passwort ist erforderlich')
        user = invitation_service.accept_invitation(token, data.get('password'), consent)
        session['user_id'] = user.id
    session['role'] = user.role
    return jsonify({'message': 'Einladung angenommen', 'user': user.to_dict()})


@invitations_bp.route('/<invitation_id>/revoke', methods=['POST'])
@management_required
def revoke_invitation(invitation_id):
    invitation = db.session.get(Invitation, invitation_id)
    if not invitation:
        raise NotFoundError('Einladung nicht gefunden')
    ensure_apartment_management(current_user(), apartment_service.require_apartment(invitation.apartment_id))
    invitation = invitation_service.revoke_invitation(invitation_id)
    return jsonify(invitation.to_dict())

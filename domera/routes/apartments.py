from flask import Blueprint, jsonify, request
from sqlalchemy import String, cast, or_

from domera.constants import ROLE_ACCOUNTANT, ROLE_MANAGEMENT
from domera.errors import ValidationError
from domera.models import Apartment
from domera.routes.main import (
    current_user,
    ensure_apartment_access,
    ensure_apartment_management,
    has_apartment_access,
    login_required,
    management_required,
)
from domera.services import apartment_service, auth_service, invitation_service

apartments_bp = Blueprint('apartments', __name__)


def _apartment_payload(apartment):
    data = apartment.to_dict()
    pending = invitation_service.get_pending_invitation_for_apartment(apartment.id)
    data['account_status'] = apartment_service.get_account_status(apartment, pending)
    return data


@apartments_bp.route('', methods=['GET'])
@login_required
def list_apartments():
    user = current_user()
    if user.role in (ROLE_MANAGEMENT, ROLE_ACCOUNTANT):
        building_id = request.args.get('building_id')
        if building_id:
            apartments = [
                a for a in apartment_service.get_apartments_by_building(building_id)
                if has_apartment_access(user, a)
            ]
        else:
            apartments = apartment_service.get_apartments_by_company(user.company_id)
    else:
        # Bewohner: eigene Wohnung plus Wohnungen mit Mieterzugriff
        candidates = Apartment.query.filter(or_(
            Apartment.id == user.apartment_id,
            cast(Apartment.tenants, String).contains(f'"{user.id}"'),
        )).all()
        apartments = [a for a in candidates if has_apartment_access(user, a)]
    return jsonify([_apartment_payload(a) for a in apartments])


@apartments_bp.route('', methods=['POST'])
@management_required
def create_apartment():
    data = request.get_json(silent=True) or {}
    apartment = apartment_service.create_apartment(
        current_user().company_id,
        data.get('building_id'),
        data.get('number'),
    )
    return jsonify(_apartment_payload(apartment)), 201


@apartments_bp.route('/<apartment_id>', methods=['GET'])
@login_required
def get_apartment(apartment_id):
    apartment = apartment_service.require_apartment(apartment_id)
    ensure_apartment_access(current_user(), apartment)
    return jsonify(_apartment_payload(apartment))


@apartments_bp.route('/<apartment_id>', methods=['PATCH'])
@management_required
def update_apartment(apartment_id):
    ensure_apartment_management(current_user(), apartment_service.require_apartment(apartment_id))
    apartment = apartment_service.update_apartment(apartment_id, request.get_json(silent=True) or {})
    return jsonify(_apartment_payload(apartment))


@apartments_bp.route('/<apartment_id>', methods=['DELETE'])
@management_required
def delete_apartment(apartment_id):
    ensure_apartment_management(current_user(), apartment_service.require_apartment(apartment_id))
    apartment_service.delete_apartment(apartment_id)
    return jsonify({'message': 'Wohnung gelöscht'})


@apartments_bp.route('/<apartment_id>/resident', methods=['PUT'])
@management_required
def assign_resident(apartment_id):
    ensure_apartment_management(current_user(), apartment_service.require_apartment(apartment_id))
    data = request.get_json(silent=True) or {}
    if not auth_service.get_user_by_id(data.get('user_id')):
        raise ValidationError('Unbekannter Benutzer')
    apartment = apartment_service.assign_resident(apartment_id, data['user_id'])
    return jsonify(_apartment_payload(apartment))


@apartments_bp.route('/<apartment_id>/resident', methods=['DELETE'])
@management_required
def unassign_resident(apartment_id):
    ensure_apartment_management(current_user(), apartment_service.require_apartment(apartment_id))
    apartment = apartment_service.unassign_resident(apartment_id)
    return jsonify(_apartment_payload(apartment))


@apartments_bp.route('/<apartment_id>/tenants', methods=['POST'])
@login_required
def add_tenant(apartment_id):
    apartment = apartment_service.require_apartment(apartment_id)
    user = current_user()
    # Verwaltung oder der Bewohner selbst dürfen Mitbewohner freigeben
    if user.apartment_id != apartment.id:
        ensure_apartment_management(user, apartment)
    data = request.get_json(silent=True) or {}
    tenant = apartment_service.add_tenant(apartment_id, data.get('email'), data.get('permissions'))
    return jsonify(tenant), 201


@apartments_bp.route('/<apartment_id>/tenants/<user_id>', methods=['DELETE'])
@login_required
def remove_tenant(apartment_id, user_id):
    apartment = apartment_service.require_apartment(apartment_id)
    user = current_user()
    if user.apartment_id != apartment.id and user.id != user_id:
        ensure_apartment_management(user, apartment)
    apartment_service.remove_tenant(apartment_id, user_id)
    return jsonify({'message': 'Zugriff entfernt'})


@apartments_bp.route('/<apartment_id>/invitations/revoke-pending', methods=['POST'])
@management_required
def revoke_pending_invitations(apartment_id):
    ensure_apartment_management(current_user(), apartment_service.require_apartment(apartment_id))
    count = invitation_service.revoke_pending_for_apartment(apartment_id)
    return jsonify({'revoked': count})

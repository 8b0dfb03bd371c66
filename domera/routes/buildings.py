from flask import Blueprint, jsonify, request

from domera.routes.main import current_user, ensure_company_access, login_required, management_required
from domera.services import apartment_service, building_service

buildings_bp = Blueprint('buildings', __name__)


def _owned_building(building_id):
    building = building_service.require_building(building_id)
    ensure_company_access(current_user(), building.company_id)
    return building


@buildings_bp.route('', methods=['GET'])
@login_required
def list_buildings():
    user = current_user()
    if not user.company_id:
        return jsonify([])
    return jsonify([b.to_dict() for b in building_service.get_buildings_by_company(user.company_id)])


@buildings_bp.route('', methods=['POST'])
@management_required
def create_building():
    data = request.get_json(silent=True) or {}
    user = current_user()
    building = building_service.create_building(
        user.company_id,
        data.get('name'),
        data.get('address'),
        manager=user,
        water_meter_templates=data.get('water_meter_templates'),
        water_submission_open_day=data.get('water_submission_open_day'),
    )
    return jsonify(building.to_dict()), 201


@buildings_bp.route('/<building_id>', methods=['GET'])
@login_required
def get_building(building_id):
    return jsonify(_owned_building(building_id).to_dict())


@buildings_bp.route('/<building_id>', methods=['PATCH'])
@management_required
def update_building(building_id):
    _owned_building(building_id)
    building = building_service.update_building(building_id, request.get_json(silent=True) or {})
    return jsonify(building.to_dict())


@buildings_bp.route('/<building_id>', methods=['DELETE'])
@management_required
def delete_building(building_id):
    _owned_building(building_id)
    building_service.delete_building(building_id)
    return jsonify({'message': 'Gebäude gelöscht'})


@buildings_bp.route('/<building_id>/apartments', methods=['GET'])
@login_required
def building_apartments(building_id):
    _owned_building(building_id)
    return jsonify([a.to_dict() for a in apartment_service.get_apartments_by_building(building_id)])

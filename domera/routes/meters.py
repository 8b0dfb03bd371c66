from flask import Blueprint, jsonify, request

from domera.errors import NotFoundError, ValidationError
from domera.routes.main import (
    current_user,
    ensure_apartment_access,
    ensure_apartment_management,
    login_required,
    management_required,
)
from domera.services import apartment_service, meter_service

meters_bp = Blueprint('meters', __name__)


def _meter_apartment(meter_id, apartment_id=None):
    meter = meter_service.get_meter(meter_id)
    apartment_id = meter.apartment_id if meter else apartment_id
    if not apartment_id:
        raise NotFoundError('Zähler nicht gefunden')
    return apartment_service.require_apartment(apartment_id)


def _with_edit_flag(meter):
    data = dict(meter) if isinstance(meter, dict) else meter.to_dict()
    data['display_name'] = meter_service.get_meter_display_name(meter)
    data['can_edit_meta'] = meter_service.can_edit_meter_meta(meter)
    return data


@meters_bp.route('', methods=['GET'])
@login_required
def list_meters():
    apartment_id = request.args.get('apartment_id')
    if not apartment_id:
        raise ValidationError('apartment_id ist erforderlich')
    ensure_apartment_access(current_user(), apartment_service.require_apartment(apartment_id))
    return jsonify([_with_edit_flag(m) for m in meter_service.get_meters_by_apartment(apartment_id)])


@meters_bp.route('', methods=['POST'])
@management_required
def create_meter():
    data = request.get_json(silent=True) or {}
    ensure_apartment_management(current_user(), apartment_service.require_apartment(data.get('apartment_id')))
    meter = meter_service.create_meter(
        data.get('apartment_id'),
        meter_type=data.get('type', 'water'),
        serial_number=data.get('serial_number'),
        name=meter_service.meter_name_code(data.get('name')),
        check_due_date=data.get('check_due_date'),
    )
    return jsonify(_with_edit_flag(meter)), 201


@meters_bp.route('/<meter_id>', methods=['PATCH'])
@login_required
def update_meter(meter_id):
    """Zählernummer, Eichdatum oder Name speichern (auch für virtuelle Zähler)."""
    data = request.get_json(silent=True) or {}
    apartment = _meter_apartment(meter_id, data.get('apartment_id'))
    ensure_apartment_access(current_user(), apartment)

    force = bool(data.pop('force', False))
    data['apartment_id'] = apartment.id
    meter = meter_service.edit_meter_meta(meter_id, data, current_user(), force=force)
    return jsonify(_with_edit_flag(meter))


@meters_bp.route('/<meter_id>/check-date', methods=['PUT'])
@login_required
def set_check_date(meter_id):
    data = request.get_json(silent=True) or {}
    apartment = _meter_apartment(meter_id, data.get('apartment_id'))
    ensure_apartment_access(current_user(), apartment)

    meter = meter_service.edit_meter_check_date(
        meter_id,
        apartment.id,
        data.get('check_due_date'),
        current_user(),
        force=bool(data.get('force')),
    )
    return jsonify(_with_edit_flag(meter))


@meters_bp.route('/<meter_id>', methods=['DELETE'])
@management_required
def delete_meter(meter_id):
    ensure_apartment_management(current_user(), _meter_apartment(meter_id))
    meter_service.delete_meter(meter_id)
    return jsonify({'message': 'Zähler gelöscht'})

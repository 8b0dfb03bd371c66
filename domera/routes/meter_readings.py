from flask import Blueprint, Response, jsonify, request

from domera.constants import ROLE_ACCOUNTANT, ROLE_MANAGEMENT
from domera.errors import PermissionDenied, ValidationError
from domera.routes.main import (
    current_user,
    ensure_apartment_access,
    ensure_apartment_management,
    login_required,
    roles_required,
)
from domera.services import apartment_service, building_service, reading_service

meter_readings_bp = Blueprint('meter_readings', __name__)


def _period_args():
    month = request.args.get('month', type=int)
    year = request.args.get('year', type=int)
    if (month is None) != (year is None):
        raise ValidationError('month und year nur gemeinsam angeben')
    return month, year


@meter_readings_bp.route('', methods=['GET'])
@login_required
def list_readings():
    """Zählerstände einer Wohnung oder (Verwaltung) der ganzen Firma."""
    user = current_user()
    apartment_id = request.args.get('apartment_id')
    month, year = _period_args()

    if apartment_id:
        ensure_apartment_access(user, apartment_service.require_apartment(apartment_id))
        if month is not None:
            readings = reading_service.get_readings_by_apartment_and_period(apartment_id, month, year)
        else:
            readings = reading_service.get_readings_by_apartment(apartment_id)
    elif user.role in (ROLE_MANAGEMENT, ROLE_ACCOUNTANT) and user.company_id:
        readings = reading_service.get_readings_by_company(user.company_id)
        if month is not None:
            readings = [r for r in readings if r.get('month') == month and r.get('year') == year]
    else:
        raise ValidationError('apartment_id ist erforderlich')
    return jsonify(readings)


@meter_readings_bp.route('/last', methods=['GET'])
@login_required
def last_reading():
    apartment_id = request.args.get('apartment_id')
    meter_id = request.args.get('meter_id')
    if not apartment_id or not meter_id:
        raise ValidationError('apartment_id und meter_id sind erforderlich')
    ensure_apartment_access(current_user(), apartment_service.require_apartment(apartment_id))
    return jsonify(reading_service.get_last_reading(apartment_id, meter_id))


@meter_readings_bp.route('/window', methods=['GET'])
@login_required
def submission_window():
    apartment = apartment_service.require_apartment(request.args.get('apartment_id'))
    ensure_apartment_access(current_user(), apartment)
    open_day = building_service.get_submission_open_day(building_service.get_building(apartment.building_id))
    return jsonify({
        'open_day': open_day,
        'allowed': reading_service.is_submission_allowed(open_day),
        'days_until_open': reading_service.days_until_submission_open(open_day),
        'can_submit': reading_service.can_user_submit(current_user(), apartment),
    })


@meter_readings_bp.route('/submit', methods=['POST'])
@login_required
def submit_readings():
    data = request.get_json(silent=True) or {}
    values = data.get('values')
    if not isinstance(values, dict) or not values:
        raise ValidationError('Keine Zählerstände übermittelt')
    created = reading_service.submit_water_readings(
        current_user(),
        data.get('apartment_id'),
        values,
        serials=data.get('serials') or {},
    )
    return jsonify({'message': 'Zählerstände gespeichert', 'readings': created}), 201


@meter_readings_bp.route('/<apartment_id>/<reading_id>', methods=['PATCH'])
@roles_required(ROLE_MANAGEMENT)
def update_reading(apartment_id, reading_id):
    ensure_apartment_management(current_user(), apartment_service.require_apartment(apartment_id))
    reading_service.update_meter_reading(apartment_id, reading_id, request.get_json(silent=True) or {})
    return jsonify({'message': 'Zählerstand aktualisiert'})


@meter_readings_bp.route('/<apartment_id>/<reading_id>', methods=['DELETE'])
@login_required
def delete_reading(apartment_id, reading_id):
    user = current_user()
    apartment = apartment_service.require_apartment(apartment_id)
    ensure_apartment_access(user, apartment)
    if not reading_service.can_user_submit(user, apartment):
        raise PermissionDenied('Keine Berechtigung zum Löschen von Zählerständen')
    reading_service.delete_meter_reading(apartment_id, reading_id)
    return jsonify({'message': 'Zählerstand gelöscht'})


def _company_export_rows():
    user = current_user()
    apartments = apartment_service.get_apartments_by_company(user.company_id)
    building_id = request.args.get('building_id')
    if building_id:
        apartments = [a for a in apartments if a.building_id == building_id]
    return reading_service.build_export_rows(apartments)


@meter_readings_bp.route('/export/csv', methods=['GET'])
@roles_required(ROLE_MANAGEMENT, ROLE_ACCOUNTANT)
def export_csv():
    content = reading_service.export_csv(_company_export_rows())
    filename = reading_service.export_filename('csv')
    return Response(
        content.encode('utf-8-sig'),
        mimetype='text/csv; charset=utf-8',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@meter_readings_bp.route('/export/xlsx', methods=['GET'])
@roles_required(ROLE_MANAGEMENT, ROLE_ACCOUNTANT)
def export_xlsx():
    content = reading_service.export_xlsx(_company_export_rows())
    filename = reading_service.export_filename('xlsx')
    return Response(
        content,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )

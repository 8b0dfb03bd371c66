from flask import Blueprint, jsonify, request, send_from_directory

from domera.constants import ROLE_ACCOUNTANT, ROLE_MANAGEMENT
from domera.errors import PermissionDenied, ValidationError
from domera.routes.main import (
    current_user,
    ensure_apartment_access,
    ensure_apartment_management,
    ensure_company_access,
    login_required,
    roles_required,
)
from domera.services import apartment_service, invoice_service

invoices_bp = Blueprint('invoices', __name__)


def _accessible_invoice(invoice_id):
    invoice = invoice_service.require_invoice(invoice_id)
    ensure_apartment_access(current_user(), apartment_service.require_apartment(invoice.apartment_id))
    return invoice


def _managed_invoice(invoice_id):
    invoice = invoice_service.require_invoice(invoice_id)
    user = current_user()
    if user.role == ROLE_ACCOUNTANT:
        ensure_company_access(user, invoice.company_id)
    else:
        ensure_apartment_management(user, apartment_service.require_apartment(invoice.apartment_id))
    return invoice


@invoices_bp.route('', methods=['GET'])
@login_required
def list_invoices():
    user = current_user()
    apartment_id = request.args.get('apartment_id')
    building_id = request.args.get('building_id')

    if apartment_id:
        ensure_apartment_access(user, apartment_service.require_apartment(apartment_id))
        invoices = invoice_service.get_invoices_by_apartment(apartment_id)
    elif user.role in (ROLE_MANAGEMENT, ROLE_ACCOUNTANT) and user.company_id:
        if building_id:
            invoices = [
                i for i in invoice_service.get_invoices_by_building(building_id)
                if i.company_id == user.company_id
            ]
        else:
            invoices = invoice_service.get_invoices_by_company(user.company_id)
    elif user.apartment_id:
        invoices = invoice_service.get_invoices_by_apartment(user.apartment_id)
    else:
        invoices = []
    return jsonify([i.to_dict() for i in invoices])


@invoices_bp.route('', methods=['POST'])
@roles_required(ROLE_MANAGEMENT, ROLE_ACCOUNTANT)
def create_invoice():
    data = request.get_json(silent=True) or {}
    user = current_user()
    apartment = apartment_service.require_apartment(data.get('apartment_id'))
    if user.company_id not in apartment.all_company_ids():
        raise PermissionDenied('Kein Zugriff auf diese Wohnung')

    invoice = invoice_service.create_invoice(
        user.company_id,
        apartment.id,
        data.get('month'),
        data.get('year'),
        data.get('amount'),
        status=data.get('status', 'pending'),
    )
    return jsonify(invoice.to_dict()), 201


@invoices_bp.route('/<invoice_id>', methods=['GET'])
@login_required
def get_invoice(invoice_id):
    return jsonify(_accessible_invoice(invoice_id).to_dict())


@invoices_bp.route('/<invoice_id>', methods=['PATCH'])
@roles_required(ROLE_MANAGEMENT, ROLE_ACCOUNTANT)
def update_invoice(invoice_id):
    _managed_invoice(invoice_id)
    data = request.get_json(silent=True) or {}
    if set(data) == {'status'}:
        invoice = invoice_service.update_invoice_status(invoice_id, data['status'])
    else:
        invoice = invoice_service.update_invoice(invoice_id, data)
    return jsonify(invoice.to_dict())


@invoices_bp.route('/<invoice_id>', methods=['DELETE'])
@roles_required(ROLE_MANAGEMENT, ROLE_ACCOUNTANT)
def delete_invoice(invoice_id):
    _managed_invoice(invoice_id)
    invoice_service.delete_invoice(invoice_id)
    return jsonify({'message': 'Rechnung gelöscht'})


@invoices_bp.route('/<invoice_id>/pdf', methods=['POST'])
@roles_required(ROLE_MANAGEMENT, ROLE_ACCOUNTANT)
def upload_pdf(invoice_id):
    _managed_invoice(invoice_id)
    if 'file' not in request.files:
        raise ValidationError('Keine Datei ausgewählt')
    invoice = invoice_service.attach_invoice_pdf(invoice_id, request.files['file'])
    return jsonify(invoice.to_dict())


@invoices_bp.route('/<invoice_id>/pdf', methods=['GET'])
@login_required
def download_pdf(invoice_id):
    invoice = _accessible_invoice(invoice_id)
    directory, filename = invoice_service.invoice_pdf_location(invoice)
    return send_from_directory(directory, filename, mimetype='application/pdf', as_attachment=True)


@invoices_bp.route('/<invoice_id>/pdf', methods=['DELETE'])
@roles_required(ROLE_MANAGEMENT, ROLE_ACCOUNTANT)
def delete_pdf(invoice_id):
    _managed_invoice(invoice_id)
    invoice = invoice_service.delete_invoice_pdf(invoice_id)
    return jsonify(invoice.to_dict())

from flask import Blueprint, jsonify, request

from domera.errors import ConflictError
from domera.routes.main import current_user, ensure_company_access, login_required, management_required
from domera.services import auth_service, company_service

companies_bp = Blueprint('companies', __name__)


@companies_bp.route('', methods=['POST'])
@login_required
def create_company():
    """Bestehendes Konto registriert eine eigene Verwaltungsgesellschaft."""
    user = current_user()
    if user.company_id:
        raise ConflictError('Dieses Konto ist bereits einer Verwaltungsgesellschaft zugeordnet')
    data = request.get_json(silent=True) or {}
    company = company_service.register_company_for_user(
        user,
        data.get('name'),
        data.get('address'),
        data.get('phone'),
        email=data.get('email'),
    )
    return jsonify(company.to_dict()), 201


@companies_bp.route('/<company_id>', methods=['GET'])
@login_required
def get_company(company_id):
    ensure_company_access(current_user(), company_id)
    return jsonify(company_service.require_company(company_id).to_dict())


@companies_bp.route('/<company_id>', methods=['PATCH'])
@management_required
def update_company(company_id):
    ensure_company_access(current_user(), company_id)
    company = company_service.update_company(company_id, request.get_json(silent=True) or {})
    return jsonify(company.to_dict())


@companies_bp.route('/<company_id>/users', methods=['GET'])
@management_required
def company_users(company_id):
    ensure_company_access(current_user(), company_id)
    return jsonify([u.to_dict() for u in auth_service.get_users_by_company(company_id)])

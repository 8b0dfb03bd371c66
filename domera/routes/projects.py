from flask import Blueprint, jsonify, request

from domera.errors import PermissionDenied
from domera.routes.main import (
    current_user,
    ensure_company_access,
    login_required,
    management_required,
    user_company_ids,
)
from domera.services import project_service

projects_bp = Blueprint('projects', __name__)


def _owned_project(project_id):
    project = project_service.require_project(project_id)
    ensure_company_access(current_user(), project.company_id)
    return project


@projects_bp.route('', methods=['GET'])
@login_required
def list_projects():
    projects = []
    for company_id in user_company_ids(current_user()):
        projects.extend(project_service.get_projects_by_company(company_id))
    return jsonify([p.to_dict() for p in projects])


@projects_bp.route('', methods=['POST'])
@management_required
def create_project():
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(
        current_user().company_id,
        data.get('title'),
        data.get('description'),
        status=data.get('status', 'planned'),
    )
    return jsonify(project.to_dict()), 201


@projects_bp.route('/<project_id>', methods=['GET'])
@login_required
def get_project(project_id):
    project = project_service.require_project(project_id)
    if project.company_id not in user_company_ids(current_user()):
        raise PermissionDenied('Kein Zugriff auf dieses Projekt')
    return jsonify(project.to_dict())


@projects_bp.route('/<project_id>', methods=['PATCH'])
@management_required
def update_project(project_id):
    _owned_project(project_id)
    project = project_service.update_project(project_id, request.get_json(silent=True) or {})
    return jsonify(project.to_dict())


@projects_bp.route('/<project_id>', methods=['DELETE'])
@management_required
def delete_project(project_id):
    _owned_project(project_id)
    project_service.delete_project(project_id)
    return jsonify({'message': 'Projekt gelöscht'})

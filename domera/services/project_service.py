from domera.constants import PROJECT_STATUSES
from domera.errors import NotFoundError, ValidationError
from domera.extensions import db
from domera.models import Project


def _require_text(value, label):
    value = (value or '').strip()
    if not value:
        raise ValidationError(f'{label} ist erforderlich')
    return value


def _check_status(status):
    if status not in PROJECT_STATUSES:
        raise ValidationError(f'Unbekannter Projektstatus: {status}')
    return status


def create_project(company_id, title, description, status='planned'):
    project = Project(
        company_id=company_id,
        title=_require_text(title, 'Titel'),
        description=_require_text(description, 'Beschreibung'),
        status=_check_status(status),
    )
    db.session.add(project)
    db.session.commit()
    return project


def get_project(project_id):
    if not project_id:
        return None
    return db.session.get(Project, project_id)


def require_project(project_id):
    project = get_project(project_id)
    if not project:
        raise NotFoundError('Projekt nicht gefunden')
    return project


def get_projects_by_company(company_id):
    return Project.query.filter_by(company_id=company_id).order_by(Project.created_at.desc()).all()


def update_project(project_id, data):
    project = require_project(project_id)
    if 'title' in data:
        project.title = _require_text(data['title'], 'Titel')
    if 'description' in data:
        project.description = _require_text(data['description'], 'Beschreibung')
    if 'status' in data:
        project.status = _check_status(data['status'])
    db.session.commit()
    return project


def delete_project(project_id):
    project = require_project(project_id)
    db.session.delete(project)
    db.session.commit()

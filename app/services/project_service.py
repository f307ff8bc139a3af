"""Project service."""
from app.exceptions import NotFoundError, ValidationError
from app.models import Project
from app.services.references import validate_references

PROJECT_STATUSES = ('active', 'completed', 'on_hold', 'cancelled')


def list_projects(session, organization_id: int, client_id: int = None):
    query = session.query(Project).filter(Project.organization_id == organization_id)
    if client_id:
        query = query.filter(Project.client_id == client_id)
    return query.order_by(Project.name).all()


def get_project(session, organization_id: int, project_id: int) -> Project:
    project = session.query(Project).filter(
        Project.id == project_id,
        Project.organization_id == organization_id
    ).first()
    if not project:
        raise NotFoundError(f'Project {project_id} not found')
    return project


def _apply(project: Project, payload: dict, session, organization_id: int) -> None:
    if 'name' in payload:
        name = (payload.get('name') or '').strip()
        if not name:
            raise ValidationError('Project name is required', field='name')
        project.name = name
    if 'description' in payload:
        project.description = (payload.get('description') or '').strip() or None
    if 'status' in payload:
        status = payload.get('status')
        if status not in PROJECT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PROJECT_STATUSES)}", field='status')
        project.status = status
    if 'client_id' in payload:
        client_id = payload.get('client_id')
        validate_references(session, organization_id, client_id=client_id)
        project.client_id = client_id


def create_project(session, organization_id: int, payload: dict) -> Project:
    payload = payload or {}
    if not (payload.get('name') or '').strip():
        raise ValidationError('Project name is required', field='name')

    project = Project(organization_id=organization_id, status='active')
    _apply(project, payload, session, organization_id)
    try:
        session.add(project)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return project


def update_project(session, organization_id: int, project_id: int, payload: dict) -> Project:
    project = get_project(session, organization_id, project_id)
    try:
        _apply(project, payload or {}, session, organization_id)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return project

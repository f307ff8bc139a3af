"""Clients and projects blueprints."""
from flask import Blueprint, request, g, jsonify

from app.database import get_session
from app.middleware import require_login, require_organization
from app.serializers import client_to_dict, project_to_dict
from app.services import client_service, project_service

clients_bp = Blueprint('clients', __name__, url_prefix='/clients')
projects_bp = Blueprint('projects', __name__, url_prefix='/projects')


@clients_bp.route('', methods=['GET'])
@require_login
@require_organization
def list_clients():
    clients = client_service.list_clients(get_session(), g.organization_id)
    return jsonify([client_to_dict(c) for c in clients])


@clients_bp.route('', methods=['POST'])
@require_login
@require_organization
def create_client():
    client = client_service.create_client(get_session(), g.organization_id, request.get_json(silent=True))
    return jsonify(client_to_dict(client)), 201


@clients_bp.route('/<int:client_id>', methods=['GET'])
@require_login
@require_organization
def view_client(client_id):
    return jsonify(client_to_dict(client_service.get_client(get_session(), g.organization_id, client_id)))


@clients_bp.route('/<int:client_id>', methods=['PATCH'])
@require_login
@require_organization
def update_client(client_id):
    client = client_service.update_client(
        get_session(), g.organization_id, client_id, request.get_json(silent=True)
    )
    return jsonify(client_to_dict(client))


@projects_bp.route('', methods=['GET'])
@require_login
@require_organization
def list_projects():
    client_id = request.args.get('client_id', type=int)
    projects = project_service.list_projects(get_session(), g.organization_id, client_id=client_id)
    return jsonify([project_to_dict(p) for p in projects])


@projects_bp.route('', methods=['POST'])
@require_login
@require_organization
def create_project():
    project = project_service.create_project(get_session(), g.organization_id, request.get_json(silent=True))
    return jsonify(project_to_dict(project)), 201


@projects_bp.route('/<int:project_id>', methods=['GET'])
@require_login
@require_organization
def view_project(project_id):
    return jsonify(project_to_dict(project_service.get_project(get_session(), g.organization_id, project_id)))


@projects_bp.route('/<int:project_id>', methods=['PATCH'])
@require_login
@require_organization
def update_project(project_id):
    project = project_service.update_project(
        get_session(), g.organization_id, project_id, request.get_json(silent=True)
    )
    return jsonify(project_to_dict(project))

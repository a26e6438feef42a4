from flask import Blueprint, request, current_app
from flask_login import login_required, current_user

from ..auth import admin_required
from ..services.engine import get_engine
from ..utils import api_response, error_response, read_csv_upload

clients_bp = Blueprint('clients', __name__, url_prefix='/api/client')


@clients_bp.route('', methods=['GET'])
@login_required
def get_clients():
    engine = get_engine()
    if current_user.is_admin:
        return api_response([c.to_json() for c in engine.clients.list()])
    return api_response(engine.clients.get(current_user.client_id).to_json())


@clients_bp.route('', methods=['POST'])
@admin_required
def create_client():
    client = get_engine().clients.create(request.get_json(silent=True) or {})
    return api_response(client.to_json(), 201)


@clients_bp.route('/csv', methods=['POST'])
@admin_required
def import_clients():
    content = read_csv_upload(request)
    if not content:
        return error_response("No CSV file uploaded", 400)

    created, errors = get_engine().clients.import_csv(content)
    current_app.logger.info(f"Client CSV import: {len(created)} created, {len(errors)} rejected")
    return api_response({
        'created': [c.to_json() for c in created],
        'errors': errors,
    }, 201 if created else 200)


@clients_bp.route('/<int:client_id>', methods=['GET'])
@admin_required
def get_client(client_id):
    return api_response(get_engine().clients.get(client_id).to_json())


@clients_bp.route('/<int:client_id>/questionnaires', methods=['GET'])
@login_required
def client_questionnaires(client_id):
    if not current_user.is_admin and current_user.client_id != client_id:
        return error_response("Forbidden", 403)
    records = get_engine().questionnaires.list_for_client(client_id)
    return api_response([r.to_json() for r in records])


@clients_bp.route('/<int:client_id>/questionnaires', methods=['PUT'])
@admin_required
def set_client_questionnaires(client_id):
    data = request.get_json(silent=True) or {}
    client = get_engine().clients.set_available_sections(client_id, data.get('availableSections'))
    current_app.logger.info(f"Client {client.client_number} sections set to {client.available_sections}")
    return api_response(client.to_json())


@clients_bp.route('/<int:client_id>', methods=['DELETE'])
@admin_required
def delete_client(client_id):
    get_engine().clients.delete(client_id)
    return api_response({'message': "Client deleted successfully"})

from flask import Blueprint, request, session, current_app
from flask_login import login_required, current_user

from ..auth import admin_required
from ..schemas import require_section
from ..services.engine import get_engine
from ..services.questionnaire_service import SessionSubmissionGuard
from ..utils import api_response, error_response

questionnaires_bp = Blueprint('questionnaires', __name__, url_prefix='/api/questionnaire')


def _admin_client_id(raw):
    if raw is None or raw == '':
        return None, error_response("Client ID is required", 400)
    try:
        return int(raw), None
    except (TypeError, ValueError):
        return None, error_response("Invalid client ID", 400)


def _section_closed(section):
    return section not in current_user.record.available_sections


@questionnaires_bp.route('', methods=['GET'])
@login_required
def list_questionnaires():
    if current_user.is_admin:
        client_id, error = _admin_client_id(request.args.get('clientId'))
        if error:
            return error
    else:
        client_id = current_user.client_id
    records = get_engine().questionnaires.list_for_client(client_id)
    return api_response([r.to_json() for r in records])


@questionnaires_bp.route('/<section>', methods=['GET'])
@login_required
def get_questionnaire(section):
    require_section(section)
    if current_user.is_admin:
        client_id, error = _admin_client_id(request.args.get('clientId'))
        if error:
            return error
    else:
        if _section_closed(section):
            return error_response("Section not available for this client", 403)
        client_id = current_user.client_id

    record = get_engine().questionnaires.get_or_create_draft(client_id, section)
    return api_response(record.to_json())


@questionnaires_bp.route('/<section>', methods=['POST'])
@login_required
def submit_questionnaire(section):
    require_section(section)
    payload = request.get_json(silent=True) or {}
    engine = get_engine()

    if current_user.is_admin:
        client_id, error = _admin_client_id(payload.get('clientId'))
        if error:
            return error
        record = engine.questionnaires.submit(client_id, section, payload.get('data'))
    else:
        if _section_closed(section):
            return error_response("Section not available for this client", 403)
        record = engine.questionnaires.submit(
            current_user.client_id,
            section,
            payload.get('data'),
            guard=SessionSubmissionGuard(session),
            require_available=True,
        )

    current_app.logger.info(f"Questionnaire {record.id} ({section}) submitted for client {record.client_id}")
    return api_response(record.to_json(), 201)


@questionnaires_bp.route('/<section>/history', methods=['GET'])
@admin_required
def questionnaire_history(section):
    require_section(section)
    client_id, error = _admin_client_id(request.args.get('clientId'))
    if error:
        return error

    engine = get_engine()
    client = engine.clients.get(client_id)
    records = engine.questionnaires.history(client_id, section)
    return api_response({
        'client': client.to_json(),
        'questionnaires': [r.to_json() for r in records],
        'section': section,
    })

from flask import Blueprint, request, current_app

from ..auth import admin_required, login_client
from ..errors import ValidationError
from ..services.engine import get_engine
from ..utils import api_response, error_response

links_bp = Blueprint('links', __name__, url_prefix='/api')


@links_bp.route('/generate-link', methods=['POST'])
@admin_required
def generate_link():
    data = request.get_json(silent=True) or {}
    client_id = data.get('clientId')
    if not isinstance(client_id, int) or isinstance(client_id, bool):
        raise ValidationError("clientId must be an integer", field='clientId')

    links = get_engine().links
    section = data.get('section')
    token = links.issue_link(client_id, section)
    # ProxyFix makes host_url honour X-Forwarded-Proto/Host
    link = links.build_link(token, section, request.host_url)
    return api_response({'link': link, 'token': token})


@links_bp.route('/verify-token', methods=['POST'])
def verify_token():
    token = (request.get_json(silent=True) or {}).get('token')
    if not token:
        return error_response("Token is required", 400)

    client, section = get_engine().links.redeem(token)
    login_client(client)
    current_app.logger.info(f"Client {client.client_number} signed in by link for {section}")
    return api_response({
        'success': True,
        'section': section,
        'client': client.to_json(),
        'hasAvailableSections': bool(client.available_sections),
    })

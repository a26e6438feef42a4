from flask import Blueprint, Response, request, current_app
from flask_login import login_required

from ..auth import admin_required
from ..services.engine import get_engine
from ..utils import api_response, error_response, read_csv_upload

templates_bp = Blueprint('templates', __name__, url_prefix='/api/question-templates')


@templates_bp.route('', methods=['GET'])
@login_required
def list_templates():
    templates = get_engine().templates.list_active()
    return api_response([t.to_json() for t in templates])


@templates_bp.route('/<section>', methods=['GET'])
def get_template(section):
    # Public: the form needs its questions before the client signs in
    return api_response(get_engine().templates.get_active(section).to_json())


@templates_bp.route('/<section>/versions', methods=['GET'])
@admin_required
def template_versions(section):
    return api_response(get_engine().templates.version_info(section))


@templates_bp.route('/<section>/versions/<int:version>', methods=['GET'])
@admin_required
def template_version(section, version):
    return api_response(get_engine().templates.get_version(section, version).to_json())


@templates_bp.route('', methods=['POST'])
@admin_required
def create_template():
    template = get_engine().templates.create(request.get_json(silent=True) or {})
    current_app.logger.info(f"Template {template.id} created for {template.section}")
    return api_response(template.to_json(), 201)


@templates_bp.route('/<template_id>', methods=['PUT'])
@admin_required
def update_template(template_id):
    template = get_engine().templates.update(template_id, request.get_json(silent=True) or {})
    current_app.logger.info(f"Template {template.id} saved as v{template.version}")
    return api_response(template.to_json())


@templates_bp.route('/<template_id>', methods=['DELETE'])
@admin_required
def delete_template(template_id):
    return api_response({'success': get_engine().templates.delete(template_id)})


# --- CSV ---

@templates_bp.route('/<section>/csv', methods=['POST'])
@admin_required
def import_template_csv(section):
    content = read_csv_upload(request)
    if not content:
        return error_response("No CSV file uploaded", 400)

    template, warnings = get_engine().templates.import_csv(section, content)
    return api_response({'template': template.to_json(), 'warnings': warnings}, 201)


@templates_bp.route('/<section>/csv', methods=['GET'])
@admin_required
def export_template_csv(section):
    csv_text = get_engine().templates.export_csv(section)
    return Response(
        csv_text,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={section}-template.csv'},
    )

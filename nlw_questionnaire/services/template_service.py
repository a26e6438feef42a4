import logging
import os

from ..errors import ConflictError, NotFoundError, ValidationError
from ..schemas import SECTION_RISK_TOLERANCE, SECTION_TITLES, parse_template, require_section
from .csv_service import normalize, parse_csv, template_to_csv

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_CSV = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'data', 'default_risk_tolerance_template.csv'
)


class TemplateService:
    """Admin-facing template operations on top of a TemplateStore."""

    def __init__(self, store):
        self.store = store

    def list_active(self):
        return self.store.list_active()

    def get_active(self, section):
        require_section(section)
        template = self.store.get_active(section)
        if template is None:
            raise NotFoundError("Template not found")
        return template

    def get_version(self, section, version):
        require_section(section)
        template = self.store.get_version(section, version)
        if template is None:
            raise NotFoundError(f"Version {version} of {section} not found")
        return template

    def version_info(self, section):
        require_section(section)
        current = self.store.get_active(section)
        return {
            'current': {
                'id': current.id,
                'version': current.version,
                'title': current.title,
                'createdAt': current.created_at.isoformat() if current.created_at else None,
            } if current else None,
            'history': [
                {
                    'version': t.version,
                    'title': t.title,
                    'createdAt': t.created_at.isoformat() if t.created_at else None,
                }
                for t in self.store.list_history(section)
            ],
            'latestVersion': self.store.latest_version(section),
        }

    def create(self, payload):
        return self.store.create(parse_template(payload))

    def update(self, template_id, payload):
        """Edit-and-resave: stores the body as the next version of the template's section."""
        body = parse_template(payload)
        if body.id != template_id:
            raise ValidationError("Template ID in URL does not match ID in request body", field='id')
        existing = self.store.get(template_id)
        if existing is None:
            raise NotFoundError("Template not found")
        if body.section and body.section != existing.section:
            raise ValidationError("Template section cannot change", field='section')
        return self.update_section(existing.section, body)

    def update_section(self, section, template):
        require_section(section)
        updated = self.store.update(section, template)
        if updated is None:
            raise ConflictError(f"Section '{section}' has no template to update; create one first")
        return updated

    def delete(self, template_id):
        if not self.store.delete(template_id):
            raise NotFoundError("Template not found")
        logger.info(f"Template {template_id} deactivated")
        return True

    # --- CSV ---

    def import_csv(self, section, content, title=None):
        """
        Create the section's template from CSV, or store it as the next version
        when one is already active. Returns (template, warnings).
        """
        require_section(section)
        result = normalize(parse_csv(content), section)
        if not result.template.questions:
            raise ValidationError("CSV contains no valid questions", field='file')

        update = {'id': section}
        if title:
            update['title'] = title
        template = result.template.model_copy(update=update)

        if self.store.get_active(section) is None:
            stored = self.store.create(template)
        else:
            stored = self.update_section(section, template)
        logger.info(f"Imported {len(stored.questions)} questions into {section} v{stored.version}")
        return stored, result.warnings

    def export_csv(self, section):
        return template_to_csv(self.get_active(section))

    def setup_default_templates(self, csv_path=None):
        """Seeds the risk tolerance template from CSV if the section has none."""
        if self.store.get_active(SECTION_RISK_TOLERANCE) is not None:
            return None
        csv_path = csv_path or DEFAULT_TEMPLATE_CSV
        if not os.path.exists(csv_path):
            logger.warning(f"Default template CSV not found at {csv_path}")
            return None
        with open(csv_path, 'rb') as f:
            content = f.read()
        template, _ = self.import_csv(
            SECTION_RISK_TOLERANCE, content, title=SECTION_TITLES[SECTION_RISK_TOLERANCE]
        )
        logger.info(f"Default risk tolerance template created with {len(template.questions)} questions")
        return template

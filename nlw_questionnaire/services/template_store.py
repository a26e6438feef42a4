import logging

from sqlalchemy import func

from ..errors import ValidationError
from ..models import db, QuestionTemplateVersion
from ..schemas import Template, require_section
from ..utils import KeyedLock, get_now
from .storage import sql_transaction

logger = logging.getLogger(__name__)


class TemplateStore:
    """
    Versioned template repository. Every version is immutable; each section has
    at most one active version. Versions per section run 1, 2, 3... with no gaps.
    """

    def __init__(self, locks=None):
        self._locks = locks or KeyedLock()

    def get(self, template_id):
        raise NotImplementedError

    def get_active(self, section):
        raise NotImplementedError

    def get_version(self, section, version):
        raise NotImplementedError

    def list_history(self, section):
        raise NotImplementedError

    def list_active(self):
        raise NotImplementedError

    def latest_version(self, section):
        raise NotImplementedError

    def create(self, template):
        raise NotImplementedError

    def update(self, section, body):
        raise NotImplementedError

    def delete(self, template_id):
        raise NotImplementedError

    # --- shared rules ---

    def _section_of(self, template):
        if not template.section:
            raise ValidationError("Template section is required", field='section')
        return require_section(template.section)

    def _check_create(self, template, section):
        if self.get(template.id) is not None:
            raise ValidationError("Template ID already exists", field='id')
        if self.get_active(section) is not None:
            raise ValidationError(
                f"Section '{section}' already has an active template; update it instead",
                field='section',
            )
        expected = self.latest_version(section) + 1
        if template.version is not None and template.version != expected:
            raise ValidationError(f"Template version must be {expected}", field='version')
        return expected


class MemoryTemplateStore(TemplateStore):

    def __init__(self, locks=None):
        super().__init__(locks)
        self._active = {}   # section -> Template
        self._history = {}  # section -> [Template], ascending by version

    def get(self, template_id):
        for template in self._active.values():
            if template.id == template_id:
                return template.model_copy(deep=True)
        return None

    def get_active(self, section):
        template = self._active.get(section)
        return template.model_copy(deep=True) if template else None

    def get_version(self, section, version):
        for template in self._history.get(section, []):
            if template.version == version:
                return template.model_copy(deep=True)
        return None

    def list_history(self, section):
        return [t.model_copy(deep=True) for t in self._history.get(section, [])]

    def list_active(self):
        return [t.model_copy(deep=True) for t in self._active.values()]

    def latest_version(self, section):
        history = self._history.get(section)
        return history[-1].version if history else 0

    def create(self, template):
        section = self._section_of(template)
        with self._locks.hold(('template', section)):
            version = self._check_create(template, section)
            stored = template.model_copy(deep=True, update={
                'section': section,
                'version': version,
                'created_at': template.created_at or get_now(),
            })
            self._store(section, stored)
        logger.info(f"Created template {stored.id} v{stored.version} for {section}")
        return stored.model_copy(deep=True)

    def update(self, section, body):
        with self._locks.hold(('template', section)):
            current = self._active.get(section)
            if current is None:
                return None
            stored = body.model_copy(deep=True, update={
                'id': current.id,
                'section': section,
                'version': self.latest_version(section) + 1,
                'created_at': get_now(),
            })
            self._store(section, stored)
        logger.info(f"Template {stored.id} for {section} now at v{stored.version}")
        return stored.model_copy(deep=True)

    def delete(self, template_id):
        for section, template in list(self._active.items()):
            if template.id == template_id:
                del self._active[section]
                return True
        return False

    def _store(self, section, template):
        self._active[section] = template
        self._history.setdefault(section, []).append(template)


class SqlTemplateStore(TemplateStore):

    def get(self, template_id):
        row = QuestionTemplateVersion.query.filter_by(template_id=template_id, active=True).first()
        return _to_template(row)

    def get_active(self, section):
        row = QuestionTemplateVersion.query.filter_by(section=section, active=True).first()
        return _to_template(row)

    def get_version(self, section, version):
        row = QuestionTemplateVersion.query.filter_by(section=section, version=version).first()
        return _to_template(row)

    def list_history(self, section):
        rows = QuestionTemplateVersion.query.filter_by(section=section)\
            .order_by(QuestionTemplateVersion.version.asc()).all()
        return [_to_template(row) for row in rows]

    def list_active(self):
        rows = QuestionTemplateVersion.query.filter_by(active=True)\
            .order_by(QuestionTemplateVersion.section.asc()).all()
        return [_to_template(row) for row in rows]

    def latest_version(self, section):
        latest = db.session.query(func.max(QuestionTemplateVersion.version))\
            .filter(QuestionTemplateVersion.section == section).scalar()
        return latest or 0

    def create(self, template):
        section = self._section_of(template)
        with self._locks.hold(('template', section)):
            version = self._check_create(template, section)
            with sql_transaction():
                row = _to_row(template, section, version, template.created_at or get_now())
                db.session.add(row)
        logger.info(f"Created template {template.id} v{version} for {section}")
        return _to_template(row)

    def update(self, section, body):
        with self._locks.hold(('template', section)):
            current = QuestionTemplateVersion.query.filter_by(section=section, active=True).first()
            if current is None:
                return None
            version = self.latest_version(section) + 1
            # unique (section, version) rejects a racing writer from another process
            with sql_transaction():
                current.active = False
                row = _to_row(body.model_copy(update={'id': current.template_id}), section, version, get_now())
                db.session.add(row)
        logger.info(f"Template {row.template_id} for {section} now at v{version}")
        return _to_template(row)

    def delete(self, template_id):
        rows = QuestionTemplateVersion.query.filter_by(template_id=template_id, active=True).all()
        if not rows:
            return False
        with sql_transaction():
            for row in rows:
                row.active = False
        return True


def _to_row(template, section, version, created_at):
    return QuestionTemplateVersion(
        template_id=template.id,
        section=section,
        version=version,
        title=template.title,
        description=template.description,
        questions=[q.model_dump(mode='json') for q in template.questions],
        active=True,
        created_at=created_at,
    )


def _to_template(row):
    if row is None:
        return None
    return Template(
        id=row.template_id,
        section=row.section,
        title=row.title,
        description=row.description,
        version=row.version,
        questions=row.questions or [],
        created_at=row.created_at,
    )

"""
Storage collaborators for the submission engine.

Each store has a volatile in-memory implementation and a Flask-SQLAlchemy one;
the app picks one set at startup (STORAGE_BACKEND). Every write is a single
transaction: any failure rolls it back. Driver errors surface as StorageError,
a write that lost a race on a client row as ConflictError.
"""
import logging
import threading
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, NotFoundError, StorageError
from ..models import db, Admin, Client, Questionnaire
from ..schemas import SECTION_TYPES, ClientRecord, QuestionnaireRecord
from ..utils import get_now

logger = logging.getLogger(__name__)


@contextmanager
def sql_transaction():
    try:
        yield db.session
        db.session.commit()
    except StaleDataError as e:
        db.session.rollback()
        logger.warning(f"Concurrent update rejected: {e}")
        raise ConflictError("Record was changed by another request, please retry") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Storage failure: {e}")
        raise StorageError() from e
    except Exception:
        db.session.rollback()
        raise


def canonical_sections(sections):
    """Dedupe and order section tags the way SECTION_TYPES lists them."""
    wanted = set(sections or [])
    return [s for s in SECTION_TYPES if s in wanted]


def _newest_first(records):
    return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)


# ==========================================
# QUESTIONNAIRES
# ==========================================

class QuestionnaireStore:

    def create(self, client_id, section, completed=False, data=None, score=None,
               risk_profile=None, template_version=1):
        raise NotImplementedError

    def get(self, questionnaire_id):
        raise NotImplementedError

    def get_latest_by_client_and_section(self, client_id, section):
        history = self.list_history_by_client_and_section(client_id, section)
        return history[0] if history else None

    def list_history_by_client_and_section(self, client_id, section):
        raise NotImplementedError

    def list_by_client(self, client_id):
        raise NotImplementedError


class MemoryQuestionnaireStore(QuestionnaireStore):

    def __init__(self):
        self._records = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create(self, client_id, section, completed=False, data=None, score=None,
               risk_profile=None, template_version=1):
        with self._lock:
            now = get_now()
            record = QuestionnaireRecord(
                id=self._next_id,
                client_id=client_id,
                section=section,
                completed=completed,
                data=dict(data or {}),
                score=score,
                risk_profile=risk_profile,
                template_version=template_version,
                created_at=now,
                updated_at=now,
            )
            self._records[record.id] = record
            self._next_id += 1
        return record.model_copy(deep=True)

    def get(self, questionnaire_id):
        record = self._records.get(questionnaire_id)
        return record.model_copy(deep=True) if record else None

    def list_history_by_client_and_section(self, client_id, section):
        matches = [r for r in self._records.values()
                   if r.client_id == client_id and r.section == section]
        return [r.model_copy(deep=True) for r in _newest_first(matches)]

    def list_by_client(self, client_id):
        matches = [r for r in self._records.values() if r.client_id == client_id]
        return [r.model_copy(deep=True) for r in _newest_first(matches)]

    def delete_by_client(self, client_id):
        with self._lock:
            for questionnaire_id in [i for i, r in self._records.items() if r.client_id == client_id]:
                del self._records[questionnaire_id]


class SqlQuestionnaireStore(QuestionnaireStore):

    def create(self, client_id, section, completed=False, data=None, score=None,
               risk_profile=None, template_version=1):
        now = get_now()
        with sql_transaction():
            row = Questionnaire(
                client_id=client_id,
                section=section,
                completed=completed,
                data=dict(data or {}),
                score=score,
                risk_profile=risk_profile,
                template_version=template_version,
                created_at=now,
                updated_at=now,
            )
            db.session.add(row)
        return _to_record(row)

    def get(self, questionnaire_id):
        return _to_record(db.session.get(Questionnaire, questionnaire_id))

    def get_latest_by_client_and_section(self, client_id, section):
        row = Questionnaire.query.filter_by(client_id=client_id, section=section)\
            .order_by(Questionnaire.created_at.desc(), Questionnaire.id.desc()).first()
        return _to_record(row)

    def list_history_by_client_and_section(self, client_id, section):
        rows = Questionnaire.query.filter_by(client_id=client_id, section=section)\
            .order_by(Questionnaire.created_at.desc(), Questionnaire.id.desc()).all()
        return [_to_record(row) for row in rows]

    def list_by_client(self, client_id):
        rows = Questionnaire.query.filter_by(client_id=client_id)\
            .order_by(Questionnaire.created_at.desc(), Questionnaire.id.desc()).all()
        return [_to_record(row) for row in rows]


def _to_record(row):
    if row is None:
        return None
    return QuestionnaireRecord(
        id=row.id,
        client_id=row.client_id,
        section=row.section,
        completed=bool(row.completed),
        data=row.data or {},
        score=row.score,
        risk_profile=row.risk_profile,
        template_version=row.template_version or 1,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ==========================================
# CLIENTS
# ==========================================

class ClientStore:

    def get(self, client_id):
        raise NotImplementedError

    def get_by_number(self, client_number):
        raise NotImplementedError

    def list(self):
        raise NotImplementedError

    def create(self, client):
        raise NotImplementedError

    def update_available_sections(self, client_id, sections):
        raise NotImplementedError

    def complete_section(self, client_id, section, require_open=False, **record):
        """
        Atomically store a completed questionnaire and close `section` for the
        client. Returns (client, record). With `require_open` the section must
        still be open when the write happens, otherwise ConflictError.
        """
        raise NotImplementedError

    def delete(self, client_id):
        raise NotImplementedError


class MemoryClientStore(ClientStore):

    def __init__(self, questionnaires=None):
        self._clients = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self._questionnaires = questionnaires

    def get(self, client_id):
        client = self._clients.get(client_id)
        return client.model_copy(deep=True) if client else None

    def get_by_number(self, client_number):
        for client in self._clients.values():
            if client.client_number == client_number:
                return client.model_copy(deep=True)
        return None

    def list(self):
        return [c.model_copy(deep=True) for c in self._clients.values()]

    def create(self, client):
        with self._lock:
            record = ClientRecord(
                id=self._next_id,
                client_number=client.client_number,
                first_name=client.first_name,
                name=client.first_name,
                available_sections=canonical_sections(client.available_sections),
                created_at=get_now(),
            )
            self._clients[record.id] = record
            self._next_id += 1
        return record.model_copy(deep=True)

    def update_available_sections(self, client_id, sections):
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                return None
            client.available_sections = canonical_sections(sections)
        return client.model_copy(deep=True)

    def complete_section(self, client_id, section, require_open=False, **record):
        with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                raise NotFoundError("Client not found")
            if require_open and section not in client.available_sections:
                raise ConflictError("Section not available for this client", field='section')
            stored = self._questionnaires.create(client_id, section, completed=True, **record)
            client.available_sections = [s for s in client.available_sections if s != section]
        return client.model_copy(deep=True), stored

    def delete(self, client_id):
        with self._lock:
            if client_id not in self._clients:
                return False
            del self._clients[client_id]
        if self._questionnaires is not None:
            self._questionnaires.delete_by_client(client_id)
        return True


class SqlClientStore(ClientStore):

    def get(self, client_id):
        return _to_client(db.session.get(Client, client_id))

    def get_by_number(self, client_number):
        return _to_client(Client.query.filter_by(client_number=client_number).first())

    def list(self):
        return [_to_client(row) for row in Client.query.order_by(Client.id.asc()).all()]

    def create(self, client):
        with sql_transaction():
            row = Client(
                client_number=client.client_number,
                first_name=client.first_name,
                name=client.first_name,
                available_sections=canonical_sections(client.available_sections),
                created_at=get_now(),
            )
            db.session.add(row)
        return _to_client(row)

    def update_available_sections(self, client_id, sections):
        row = db.session.get(Client, client_id)
        if row is None:
            return None
        with sql_transaction():
            # JSON column: assign a new list so the change is tracked
            row.available_sections = canonical_sections(sections)
        return _to_client(row)

    def complete_section(self, client_id, section, require_open=False, **record):
        now = get_now()
        with sql_transaction():
            row = db.session.get(Client, client_id, with_for_update=True, populate_existing=True)
            if row is None:
                raise NotFoundError("Client not found")
            sections = list(row.available_sections or [])
            if require_open and section not in sections:
                raise ConflictError("Section not available for this client", field='section')
            row.available_sections = [s for s in sections if s != section]
            # bumped even when the section was already closed
            row.sections_version = row.sections_version + 1
            questionnaire = Questionnaire(
                client_id=client_id,
                section=section,
                completed=True,
                data=dict(record.get('data') or {}),
                score=record.get('score'),
                risk_profile=record.get('risk_profile'),
                template_version=record.get('template_version', 1),
                created_at=now,
                updated_at=now,
            )
            db.session.add(questionnaire)
        return _to_client(row), _to_record(questionnaire)

    def delete(self, client_id):
        row = db.session.get(Client, client_id)
        if row is None:
            return False
        with sql_transaction():
            db.session.delete(row)
        return True


def _to_client(row):
    if row is None:
        return None
    return ClientRecord(
        id=row.id,
        client_number=row.client_number,
        first_name=row.first_name,
        name=row.name,
        available_sections=list(row.available_sections or []),
        created_at=row.created_at,
    )


# ==========================================
# ADMINS
# ==========================================

class AdminStore:

    def get(self, admin_id):
        raise NotImplementedError

    def get_by_username(self, username):
        raise NotImplementedError

    def create(self, username, password_hash, name):
        raise NotImplementedError


class MemoryAdminStore(AdminStore):

    def __init__(self):
        self._admins = {}

    def get(self, admin_id):
        return self._admins.get(admin_id)

    def get_by_username(self, username):
        for admin in self._admins.values():
            if admin['username'] == username:
                return admin
        return None

    def create(self, username, password_hash, name):
        admin = {
            'id': len(self._admins) + 1,
            'username': username,
            'password_hash': password_hash,
            'name': name,
        }
        self._admins[admin['id']] = admin
        return admin


class SqlAdminStore(AdminStore):

    def get(self, admin_id):
        return _to_admin(db.session.get(Admin, admin_id))

    def get_by_username(self, username):
        return _to_admin(Admin.query.filter_by(username=username).first())

    def create(self, username, password_hash, name):
        with sql_transaction():
            row = Admin(username=username, password_hash=password_hash, name=name)
            db.session.add(row)
        return _to_admin(row)


def _to_admin(row):
    if row is None:
        return None
    return {'id': row.id, 'username': row.username, 'password_hash': row.password_hash, 'name': row.name}

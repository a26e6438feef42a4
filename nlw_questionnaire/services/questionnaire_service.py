"""
Submission lifecycle: drafts, append-only completed records, auto-deactivation
of the submitted section and the completion notification.
"""
import logging
import threading

from ..errors import ConflictError, NotFoundError
from ..schemas import SCORED_SECTIONS, require_section, validate_answers
from ..utils import KeyedLock
from . import scoring_service

logger = logging.getLogger(__name__)

SESSION_GUARD_KEY = 'submitted_sections'


# ==========================================
# SESSION GUARD
# ==========================================

class SubmissionGuard:
    """Remembers which sections were already submitted in the current session."""

    def has_submitted(self, section):
        raise NotImplementedError

    def mark_submitted(self, section):
        raise NotImplementedError


class MemorySubmissionGuard(SubmissionGuard):

    def __init__(self):
        self.sections = set()

    def has_submitted(self, section):
        return section in self.sections

    def mark_submitted(self, section):
        self.sections.add(section)


class SessionSubmissionGuard(SubmissionGuard):
    """Backed by the Flask session; cleared on login and logout."""

    def __init__(self, session):
        self.session = session

    def has_submitted(self, section):
        return bool(self.session.get(SESSION_GUARD_KEY, {}).get(section))

    def mark_submitted(self, section):
        submitted = dict(self.session.get(SESSION_GUARD_KEY, {}))
        submitted[section] = True
        self.session[SESSION_GUARD_KEY] = submitted

    @staticmethod
    def reset(session):
        session.pop(SESSION_GUARD_KEY, None)


# ==========================================
# NOTIFICATION
# ==========================================

class NotificationDispatcher:
    """Fire-and-forget delivery: failures are logged, never raised to the caller."""

    def __init__(self, sink, run_async=True):
        self.sink = sink
        self.run_async = run_async

    def dispatch(self, client, section):
        if self.run_async:
            thread = threading.Thread(target=self._deliver, args=(client, section), daemon=True)
            thread.start()
            return thread
        self._deliver(client, section)
        return None

    def _deliver(self, client, section):
        try:
            self.sink.notify_completion(client, section)
        except Exception as e:
            logger.error(f"Completion notification failed for client {client.client_number} ({section}): {e}")


# ==========================================
# SERVICE
# ==========================================

class QuestionnaireService:

    def __init__(self, templates, questionnaires, clients, dispatcher, locks=None):
        self.templates = templates
        self.questionnaires = questionnaires
        self.clients = clients
        self.dispatcher = dispatcher
        self._locks = locks or KeyedLock()

    def _require_client(self, client_id):
        client = self.clients.get(client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    def get_or_create_draft(self, client_id, section):
        require_section(section)
        self._require_client(client_id)
        with self._locks.hold(('submission', client_id, section)):
            record = self.questionnaires.get_latest_by_client_and_section(client_id, section)
            if record is None:
                record = self.questionnaires.create(client_id, section, completed=False, data={})
                logger.info(f"Draft {record.id} created for client {client_id} ({section})")
        return record

    def submit(self, client_id, section, raw_answers, guard=None, require_available=False):
        """
        Validate, score and store a completed submission, then close the section
        for the client. Raises ConflictError when the session already submitted
        this section or (with `require_available`) when it is no longer open.
        """
        require_section(section)
        with self._locks.hold(('submission', client_id, section)):
            if guard is not None and guard.has_submitted(section):
                raise ConflictError(
                    "This questionnaire has already been submitted in this session. "
                    "Please log out and log back in to submit again."
                )

            client = self._require_client(client_id)
            if require_available and section not in client.available_sections:
                raise ConflictError("Section not available for this client", field='section')

            data = validate_answers(section, raw_answers)

            template_version = 1
            score = risk_profile = None
            if section in SCORED_SECTIONS:
                template = self.templates.get_active(section)
                if template is not None:
                    template_version = template.version
                score, risk_profile = scoring_service.score(template, data)

            # the store re-checks availability in the same transaction as the write
            client, record = self.clients.complete_section(
                client_id,
                section,
                require_open=require_available,
                data=data,
                score=score,
                risk_profile=risk_profile,
                template_version=template_version,
            )

            if guard is not None:
                guard.mark_submitted(section)

        logger.info(f"Client {client_id} completed {section} (record {record.id}, score {score})")
        self.dispatcher.dispatch(client, section)
        return record

    def history(self, client_id, section):
        require_section(section)
        return self.questionnaires.list_history_by_client_and_section(client_id, section)

    def current(self, client_id, section):
        require_section(section)
        return self.questionnaires.get_latest_by_client_and_section(client_id, section)

    def list_for_client(self, client_id):
        return self.questionnaires.list_by_client(client_id)

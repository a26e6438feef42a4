from flask import current_app

from ..utils import KeyedLock
from .client_service import ClientService
from .email_service import build_notification_sink
from .link_service import LinkService
from .questionnaire_service import NotificationDispatcher, QuestionnaireService
from .storage import (
    MemoryAdminStore, MemoryClientStore, MemoryQuestionnaireStore,
    SqlAdminStore, SqlClientStore, SqlQuestionnaireStore,
)
from .template_service import TemplateService
from .template_store import MemoryTemplateStore, SqlTemplateStore

BACKENDS = ('sql', 'memory')


class Engine:
    """Stores and services wired together for one app instance."""

    def __init__(self, template_store, questionnaire_store, client_store, admin_store,
                 sink, link_secret, link_max_age_days=30, run_async=True, locks=None):
        self.locks = locks or KeyedLock()
        self.template_store = template_store
        self.questionnaire_store = questionnaire_store
        self.client_store = client_store
        self.admin_store = admin_store
        self.sink = sink

        self.templates = TemplateService(template_store)
        self.clients = ClientService(client_store)
        self.questionnaires = QuestionnaireService(
            template_store, questionnaire_store, client_store,
            NotificationDispatcher(sink, run_async=run_async),
            locks=self.locks,
        )
        self.links = LinkService(link_secret, client_store, max_age_days=link_max_age_days)


def build_engine(app):
    backend = app.config['STORAGE_BACKEND']
    if backend not in BACKENDS:
        raise ValueError(f"STORAGE_BACKEND must be one of {', '.join(BACKENDS)}, got '{backend}'")

    locks = KeyedLock()
    if backend == 'memory':
        questionnaire_store = MemoryQuestionnaireStore()
        stores = (
            MemoryTemplateStore(locks),
            questionnaire_store,
            MemoryClientStore(questionnaires=questionnaire_store),
            MemoryAdminStore(),
        )
    else:
        stores = (SqlTemplateStore(locks), SqlQuestionnaireStore(), SqlClientStore(), SqlAdminStore())

    app.logger.info(f"Questionnaire engine using '{backend}' storage")
    return Engine(
        *stores,
        sink=build_notification_sink(app),
        link_secret=app.config['LINK_SECRET'],
        link_max_age_days=app.config['LINK_MAX_AGE_DAYS'],
        run_async=app.config['NOTIFY_ASYNC'],
        locks=locks,
    )


def get_engine():
    return current_app.engine

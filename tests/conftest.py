import pytest
from flask import Flask

from nlw_questionnaire.app import create_app
from nlw_questionnaire.models import db
from nlw_questionnaire.schemas import ClientCreate, Template
from nlw_questionnaire.services.email_service import LogNotificationSink
from nlw_questionnaire.services.engine import Engine
from nlw_questionnaire.services.storage import (
    MemoryAdminStore, MemoryClientStore, MemoryQuestionnaireStore,
    SqlAdminStore, SqlClientStore, SqlQuestionnaireStore,
)
from nlw_questionnaire.services.template_store import MemoryTemplateStore, SqlTemplateStore

ADMIN_USERNAME = 'admin'
ADMIN_PASSWORD = 'correct-horse'


def make_template(section='riskTolerance', template_id=None, title='Risk Tolerance', questions=None):
    """Two-question template: q1 options a=5/b=10, q2 options c=1/d=20."""
    if questions is None:
        questions = [
            {'id': '1', 'text': 'Q1', 'options': [
                {'id': 'a', 'text': 'Low', 'value': 5},
                {'id': 'b', 'text': 'High', 'value': 10},
            ]},
            {'id': '2', 'text': 'Q2', 'options': [
                {'id': 'c', 'text': 'Low', 'value': 1},
                {'id': 'd', 'text': 'High', 'value': 20},
            ]},
        ]
    return Template(id=template_id or section, section=section, title=title, questions=questions)


@pytest.fixture
def template():
    return make_template()


@pytest.fixture
def db_app():
    """Bare Flask app with an in-memory SQLite database for the SQL stores."""
    app = Flask(__name__)
    app.config.update(SQLALCHEMY_DATABASE_URI='sqlite://', SQLALCHEMY_TRACK_MODIFICATIONS=False)
    db.init_app(app)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(params=['memory', 'sql'])
def stores(request):
    """Every store of one backend, keyed by name."""
    if request.param == 'memory':
        yield memory_stores()
        return

    request.getfixturevalue('db_app')
    yield {
        'templates': SqlTemplateStore(),
        'questionnaires': SqlQuestionnaireStore(),
        'clients': SqlClientStore(),
        'admins': SqlAdminStore(),
    }


def make_engine(stores):
    """An engine over `stores` with its own lock registry, like one worker process."""
    return Engine(
        stores['templates'],
        stores['questionnaires'],
        stores['clients'],
        stores['admins'],
        sink=LogNotificationSink(),
        link_secret='test-link-secret',
        run_async=False,
    )


def memory_stores():
    questionnaires = MemoryQuestionnaireStore()
    return {
        'templates': MemoryTemplateStore(),
        'questionnaires': questionnaires,
        'clients': MemoryClientStore(questionnaires=questionnaires),
        'admins': MemoryAdminStore(),
    }


@pytest.fixture
def engine(stores):
    return make_engine(stores)


@pytest.fixture
def client_record(engine):
    return engine.client_store.create(ClientCreate(
        client_number='1234567',
        first_name='Jane',
        available_sections=['riskTolerance', 'clientUpdate'],
    ))


# --- HTTP ---

@pytest.fixture(params=['memory', 'sql'])
def app(request):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'STORAGE_BACKEND': request.param,
        'NOTIFY_ASYNC': False,
        'RESEND_API_KEY': None,
        'DEFAULT_TEMPLATE_CSV': None,
        'DEFAULT_ADMIN_USERNAME': ADMIN_USERNAME,
        'DEFAULT_ADMIN_PASSWORD': ADMIN_PASSWORD,
    })
    # No app context held across requests: Flask would reuse it, sharing `g`
    # (and Flask-Login's cached user) between test clients.
    yield app
    with app.app_context():
        if request.param == 'sql':
            db.session.remove()
            db.drop_all()


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def admin_http(app):
    http = app.test_client()
    response = http.post('/api/admin/login', json={'username': ADMIN_USERNAME, 'password': ADMIN_PASSWORD})
    assert response.status_code == 200
    return http


@pytest.fixture
def api_client(admin_http):
    """A client created through the admin API, open for riskTolerance and clientUpdate."""
    response = admin_http.post('/api/client', json={
        'clientNumber': '7654321',
        'firstName': 'Sam',
        'availableSections': ['riskTolerance', 'clientUpdate'],
    })
    assert response.status_code == 201
    return response.get_json()


@pytest.fixture
def client_http(app, api_client):
    http = app.test_client()
    response = http.post('/api/client/login', json={'clientNumber': api_client['clientNumber']})
    assert response.status_code == 200
    return http

from functools import wraps

from flask import Blueprint, request, session, current_app
from flask_login import UserMixin, login_user, logout_user, login_required, current_user
from werkzeug.security import generate_password_hash, check_password_hash

from .services.engine import get_engine
from .services.questionnaire_service import SessionSubmissionGuard
from .utils import api_response, error_response

auth = Blueprint('auth', __name__)

KIND_CLIENT = 'client'
KIND_ADMIN = 'admin'


class Principal(UserMixin):
    """Logged-in client or admin. The session id is `<kind>:<record id>`."""

    def __init__(self, kind, record):
        self.kind = kind
        self.record = record

    @property
    def record_id(self):
        return self.record['id'] if self.kind == KIND_ADMIN else self.record.id

    def get_id(self):
        return f"{self.kind}:{self.record_id}"

    @property
    def is_admin(self):
        return self.kind == KIND_ADMIN

    @property
    def client_id(self):
        return self.record.id if self.kind == KIND_CLIENT else None

    def to_json(self):
        if self.is_admin:
            return {'id': self.record['id'], 'type': KIND_ADMIN,
                    'username': self.record['username'], 'name': self.record['name']}
        return dict(self.record.to_json(), type=KIND_CLIENT)


def load_principal(user_id):
    kind, _, raw_id = (user_id or '').partition(':')
    try:
        record_id = int(raw_id)
    except ValueError:
        return None
    engine = get_engine()
    if kind == KIND_CLIENT:
        client = engine.client_store.get(record_id)
        return Principal(KIND_CLIENT, client) if client else None
    if kind == KIND_ADMIN:
        admin = engine.admin_store.get(record_id)
        return Principal(KIND_ADMIN, admin) if admin else None
    return None


def admin_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            return error_response("Forbidden - Admin access required", 403)
        return f(*args, **kwargs)
    return decorated_function


def create_admin(username, password, name=None):
    return get_engine().admin_store.create(username, generate_password_hash(password), name or username)


def login_client(client):
    """Starts a fresh client session; the submission guard starts empty."""
    SessionSubmissionGuard.reset(session)
    login_user(Principal(KIND_CLIENT, client))


@auth.route('/api/client/login', methods=['POST'])
def client_login():
    data = request.get_json(silent=True) or {}
    client_number = str(data.get('clientNumber') or '').strip()

    if len(client_number) != 7 or not client_number.isdigit():
        return error_response("Client number must be exactly 7 digits", 400)

    # Clients sign in with their number; a password, when sent, must repeat it
    password = data.get('password')
    if password is not None and str(password).strip() != client_number:
        return error_response("Invalid client number", 401)

    client = get_engine().client_store.get_by_number(client_number)
    if client is None:
        current_app.logger.info(f"Client login failed for {client_number}")
        return error_response("Invalid client number", 401)

    login_client(client)
    current_app.logger.info(f"Client {client_number} logged in")
    return api_response(current_user.to_json())


@auth.route('/api/admin/login', methods=['POST'])
def admin_login():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''

    admin = get_engine().admin_store.get_by_username(username)
    if not admin or not check_password_hash(admin['password_hash'], password):
        current_app.logger.warning(f"Admin login failed for '{username}'")
        return error_response("Invalid username or password", 401)

    SessionSubmissionGuard.reset(session)
    login_user(Principal(KIND_ADMIN, admin))
    return api_response(current_user.to_json())


@auth.route('/api/logout', methods=['POST'])
@login_required
def logout():
    SessionSubmissionGuard.reset(session)
    logout_user()
    return api_response({'success': True})


@auth.route('/api/user', methods=['GET'])
@login_required
def user():
    return api_response(current_user.to_json())

import os

import click
from dotenv import load_dotenv
from flask import Flask, request
from flask_login import LoginManager
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .errors import QuestionnaireError
from .models import db
from .utils import error_response

load_dotenv()  # Load env vars before anything else


def _database_url():
    database_url = os.environ.get('DATABASE_URL', 'sqlite:///questionnaire.db')
    # Normalize Postgres URL
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def create_app(test_config=None):
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    # --- CONFIGURATION ---
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'nlw-questionnaire-dev-key')
    app.config['LINK_SECRET'] = os.environ.get('LINK_SECRET') or app.config['SECRET_KEY']
    app.config['LINK_MAX_AGE_DAYS'] = int(os.environ.get('LINK_MAX_AGE_DAYS', 30))
    app.config['SQLALCHEMY_DATABASE_URI'] = _database_url()
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['STORAGE_BACKEND'] = os.environ.get('STORAGE_BACKEND', 'sql')
    app.config['NOTIFY_ASYNC'] = True

    # Email (Resend)
    app.config['RESEND_API_KEY'] = os.environ.get('RESEND_API_KEY')
    app.config['EMAIL_FROM'] = os.environ.get('EMAIL_FROM', 'info@wealthconcierge.ca')
    app.config['EMAIL_NAME'] = os.environ.get('EMAIL_NAME', 'Northern Light Wealth')
    app.config['ADMIN_NOTIFY_EMAIL'] = os.environ.get('ADMIN_NOTIFY_EMAIL', 'info@wealthconcierge.ca')

    # Seeding
    app.config['DEFAULT_ADMIN_USERNAME'] = os.environ.get('DEFAULT_ADMIN_USERNAME')
    app.config['DEFAULT_ADMIN_PASSWORD'] = os.environ.get('DEFAULT_ADMIN_PASSWORD')
    app.config['DEFAULT_TEMPLATE_CSV'] = os.environ.get('DEFAULT_TEMPLATE_CSV')

    if test_config:
        app.config.update(test_config)
        if 'LINK_SECRET' not in test_config and 'SECRET_KEY' in test_config:
            app.config['LINK_SECRET'] = test_config['SECRET_KEY']

    # --- INITIALIZE EXTENSIONS ---
    db.init_app(app)
    Migrate(app, db)

    from .services.engine import build_engine
    app.engine = build_engine(app)

    from .auth import auth as auth_blueprint, load_principal
    login_manager = LoginManager()
    login_manager.init_app(app)
    login_manager.user_loader(load_principal)

    @login_manager.unauthorized_handler
    def unauthorized():
        return error_response("Unauthorized", 401)

    # --- ERROR HANDLERS ---
    @app.errorhandler(QuestionnaireError)
    def questionnaire_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__} on {request.path}: {error.message}")
        return error.to_dict(), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        if request.path.startswith('/api/'):
            return error_response(error.description, error.code)
        return error

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.exception(f"Unhandled error on {request.path}")
        return error_response("Internal server error", 500)

    # --- REGISTER BLUEPRINTS ---
    from .routes.clients import clients_bp
    from .routes.links import links_bp
    from .routes.questionnaires import questionnaires_bp
    from .routes.templates import templates_bp

    app.register_blueprint(auth_blueprint)
    app.register_blueprint(clients_bp)
    app.register_blueprint(links_bp)
    app.register_blueprint(questionnaires_bp)
    app.register_blueprint(templates_bp)

    register_commands(app)

    # --- TABLE CREATION & SEEDING ---
    with app.app_context():
        if app.config['STORAGE_BACKEND'] == 'sql':
            db.create_all()
        seed_defaults(app)

    return app


def seed_defaults(app):
    """Default risk tolerance template and, when configured, a first admin."""
    from .auth import create_admin

    engine = app.engine
    template = engine.templates.setup_default_templates(app.config.get('DEFAULT_TEMPLATE_CSV'))
    if template is not None:
        app.logger.info(f"Seeded {template.section} template v{template.version}")

    username = app.config.get('DEFAULT_ADMIN_USERNAME')
    password = app.config.get('DEFAULT_ADMIN_PASSWORD')
    if username and password and engine.admin_store.get_by_username(username) is None:
        create_admin(username, password, name='Administrator')
        app.logger.info(f"Seeded admin '{username}'")


def register_commands(app):

    @app.cli.command('seed-templates')
    def seed_templates():
        """Create the default risk tolerance template if it is missing."""
        template = app.engine.templates.setup_default_templates(app.config.get('DEFAULT_TEMPLATE_CSV'))
        if template is None:
            click.echo("Risk tolerance template already present, nothing to do.")
        else:
            click.echo(f"Created {template.section} v{template.version} ({len(template.questions)} questions).")

    @app.cli.command('import-template')
    @click.argument('section')
    @click.argument('csv_path', type=click.Path(exists=True, dir_okay=False))
    def import_template(section, csv_path):
        """Import a template CSV for SECTION as a new version."""
        with open(csv_path, 'rb') as f:
            template, warnings = app.engine.templates.import_csv(section, f.read())
        for warning in warnings:
            click.echo(f"warning: {warning}")
        click.echo(f"Stored {template.section} v{template.version} ({len(template.questions)} questions).")

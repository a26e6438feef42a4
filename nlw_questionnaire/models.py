from flask_sqlalchemy import SQLAlchemy

from .utils import get_now

db = SQLAlchemy()


class Client(db.Model):
    __tablename__ = 'clients'

    id = db.Column(db.Integer, primary_key=True)
    client_number = db.Column(db.String(7), unique=True, nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    available_sections = db.Column(db.JSON, nullable=False, default=list)  # list of section tags
    created_at = db.Column(db.DateTime, default=get_now)
    # bumped on every UPDATE; a write based on a stale read matches no row
    sections_version = db.Column(db.Integer, nullable=False)

    questionnaires = db.relationship('Questionnaire', backref='client', lazy=True,
                                     cascade='all, delete-orphan')

    __mapper_args__ = {'version_id_col': sections_version}


class Admin(db.Model):
    __tablename__ = 'admins'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=get_now)


class Questionnaire(db.Model):
    """Append-only submission record. Completed rows are never updated."""
    __tablename__ = 'questionnaires'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False, index=True)
    section = db.Column(db.String(32), nullable=False)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    data = db.Column(db.JSON, nullable=True)
    score = db.Column(db.Integer, nullable=True)
    risk_profile = db.Column(db.String(50), nullable=True)
    template_version = db.Column(db.Integer, default=1, nullable=False)
    created_at = db.Column(db.DateTime, default=get_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_now, onupdate=get_now, nullable=False)

    __table_args__ = (db.Index('ix_questionnaire_client_section', 'client_id', 'section', 'created_at'),)


class QuestionTemplateVersion(db.Model):
    """One immutable template version. `active` marks the section's current pointer."""
    __tablename__ = 'question_template_versions'

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.String(100), nullable=False, index=True)
    section = db.Column(db.String(32), nullable=False)
    version = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    questions = db.Column(db.JSON, nullable=False)  # [{id, text, options: [{id, text, value}]}]
    active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=get_now, nullable=False)

    __table_args__ = (db.UniqueConstraint('section', 'version', name='unique_section_version'),)

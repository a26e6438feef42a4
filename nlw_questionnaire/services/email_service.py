import logging
from datetime import datetime

import resend
from flask import render_template

from ..errors import NotificationError
from ..schemas import SECTION_TITLES

logger = logging.getLogger(__name__)


class NotificationSink:
    """Receives completion events. Implementations raise NotificationError on failure."""

    def notify_completion(self, client, section):
        raise NotImplementedError


class LogNotificationSink(NotificationSink):
    """Used when no email provider is configured."""

    def __init__(self):
        self.sent = []

    def notify_completion(self, client, section):
        self.sent.append((client.client_number, section))
        logger.info(
            f"Questionnaire completed: {section} by client {client.name} ({client.client_number})"
        )


class EmailNotificationSink(NotificationSink):
    """Emails the practice inbox through Resend when a client completes a section."""

    def __init__(self, app, api_key, recipient, from_email, from_name):
        self.app = app
        self.api_key = api_key
        self.recipient = recipient
        self.from_full = f"{from_name} <{from_email}>"
        self.from_name = from_name

    def notify_completion(self, client, section):
        section_title = SECTION_TITLES.get(section, section)
        subject = f"Questionnaire Completed: {section_title}"

        # runs off the request thread
        with self.app.app_context():
            html_content = render_template(
                'emails/questionnaire_completed.html',
                client=client,
                section_title=section_title,
                app_name=self.from_name,
                now=datetime.now(),
            )

        resend.api_key = self.api_key
        params = {
            "from": self.from_full,
            "to": [self.recipient],
            "subject": subject,
            "html": html_content,
        }
        try:
            response = resend.Emails.send(params)
        except Exception as e:
            raise NotificationError(f"Resend error: {e}") from e

        provider_id = None
        if isinstance(response, dict):
            provider_id = response.get('id')
        elif hasattr(response, 'id'):
            provider_id = response.id
        logger.info(f"Email notification sent to {self.recipient} for client {client.client_number} ({provider_id})")
        return provider_id


def build_notification_sink(app):
    api_key = app.config.get('RESEND_API_KEY')
    if not api_key:
        app.logger.info("RESEND_API_KEY not set. Email notifications are logged only.")
        return LogNotificationSink()
    return EmailNotificationSink(
        app,
        api_key=api_key,
        recipient=app.config['ADMIN_NOTIFY_EMAIL'],
        from_email=app.config['EMAIL_FROM'],
        from_name=app.config['EMAIL_NAME'],
    )

import logging
from urllib.parse import urlencode

from itsdangerous import URLSafeTimedSerializer, SignatureExpired, BadSignature

from ..errors import LinkError, NotFoundError
from ..schemas import SECTION_TYPES, require_section

logger = logging.getLogger(__name__)

LINK_SALT = 'questionnaire-link'
DEFAULT_MAX_AGE_DAYS = 30


class LinkService:
    """
    Signed capability links granting one client access to one section.
    Tokens are not stored; rotating the secret revokes all of them.
    """

    def __init__(self, secret, clients, max_age_days=DEFAULT_MAX_AGE_DAYS):
        self.serializer = URLSafeTimedSerializer(secret)
        self.clients = clients
        self.max_age = int(max_age_days) * 24 * 60 * 60

    def issue_link(self, client_id, section):
        require_section(section)
        client = self.clients.get(client_id)
        if client is None:
            raise NotFoundError("Client not found")
        token = self.serializer.dumps(
            {'cid': client.id, 'section': section, 'num': client.client_number}, salt=LINK_SALT
        )
        logger.info(f"Issued {section} link for client {client.client_number}")
        return token

    def redeem(self, token):
        """Returns (client, section) and grants the section if it is not open yet."""
        try:
            data = self.serializer.loads(token, salt=LINK_SALT, max_age=self.max_age)
        except SignatureExpired:
            logger.info("Rejected expired questionnaire link")
            raise LinkError()
        except BadSignature:
            logger.warning("Rejected questionnaire link with bad signature")
            raise LinkError()

        if not isinstance(data, dict) or not isinstance(data.get('cid'), int) or not data.get('section'):
            raise LinkError()
        section = data['section']
        if section not in SECTION_TYPES:
            raise LinkError()

        client = self.clients.get(data['cid'])
        if client is None or client.client_number != data.get('num'):
            raise LinkError()

        if section not in client.available_sections:
            client = self.clients.update_available_sections(
                client.id, client.available_sections + [section]
            )
            logger.info(f"Link granted {section} to client {client.client_number}")
        return client, section

    @staticmethod
    def build_link(token, section, base_url):
        return f"{base_url.rstrip('/')}/questionnaire/{section}?{urlencode({'token': token})}"

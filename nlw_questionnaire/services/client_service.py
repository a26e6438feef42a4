import logging

from ..errors import NotFoundError, ValidationError
from ..schemas import SECTION_RISK_TOLERANCE, SECTION_TYPES, parse_client
from .csv_service import parse_csv

logger = logging.getLogger(__name__)

CLIENT_CSV_DEFAULT_SECTIONS = [SECTION_RISK_TOLERANCE]


class ClientService:

    def __init__(self, clients):
        self.clients = clients

    def get(self, client_id):
        client = self.clients.get(client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    def list(self):
        return self.clients.list()

    def create(self, payload):
        data = parse_client(payload)
        if self.clients.get_by_number(data.client_number) is not None:
            raise ValidationError("Client number already exists", field='clientNumber')
        client = self.clients.create(data)
        logger.info(f"Client {client.client_number} created")
        return client

    def set_available_sections(self, client_id, sections):
        if not isinstance(sections, list):
            raise ValidationError("Available sections must be an array", field='availableSections')
        invalid = [s for s in sections if s not in SECTION_TYPES]
        if invalid:
            raise ValidationError(
                f"Invalid section type. Valid types are: {', '.join(SECTION_TYPES)}",
                field='availableSections',
            )
        client = self.clients.update_available_sections(client_id, sections)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    def delete(self, client_id):
        if not self.clients.delete(client_id):
            raise NotFoundError("Client not found")
        logger.info(f"Client {client_id} deleted with its questionnaire history")

    def import_csv(self, content):
        """
        Bulk-create clients from `client_number,first_name` rows. New clients get
        the risk tolerance section. Existing numbers and bad rows are reported.
        """
        created, errors = [], []
        for line, row in enumerate(parse_csv(content), start=2):
            payload = {
                'clientNumber': (row.get('client_number') or '').strip(),
                'firstName': (row.get('first_name') or '').strip(),
                'availableSections': list(CLIENT_CSV_DEFAULT_SECTIONS),
            }
            try:
                created.append(self.create(payload))
            except ValidationError as e:
                errors.append(f"Line {line}: {e.message}")

        if errors:
            logger.warning(f"Client CSV import: {len(errors)} rows rejected")
        return created, errors

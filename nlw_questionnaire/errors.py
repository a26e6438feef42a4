class QuestionnaireError(Exception):
    """Base error for the questionnaire engine. Carries a client-facing message."""

    status_code = 400

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self):
        payload = {'message': self.message}
        if self.field:
            payload['field'] = self.field
        return payload


class ValidationError(QuestionnaireError):
    status_code = 400


class LinkError(ValidationError):
    status_code = 401

    def __init__(self, message="Invalid or expired token", field=None):
        super().__init__(message, field)


class NotFoundError(QuestionnaireError):
    status_code = 404


class ConflictError(QuestionnaireError):
    status_code = 409


class StorageError(QuestionnaireError):
    status_code = 500

    def __init__(self, message="Storage error", field=None):
        super().__init__(message, field)


class NotificationError(QuestionnaireError):
    # Never reaches a caller: the dispatcher logs and drops it.
    status_code = 500

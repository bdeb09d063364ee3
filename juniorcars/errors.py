"""Error types shared by the CMS service layer and the JSON APIs."""


class CmsError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, details=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_envelope(self):
        payload = {'success': False, 'error': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationFailed(CmsError):
    status_code = 400
    default_message = 'Validation failed'


class BadRequest(CmsError):
    status_code = 400
    default_message = 'Bad request'


class Unauthorized(CmsError):
    status_code = 401
    default_message = 'Unauthorized'


class Forbidden(CmsError):
    status_code = 403
    default_message = 'Forbidden'


class NotFound(CmsError):
    status_code = 404
    default_message = 'Not found'


class Conflict(CmsError):
    status_code = 409
    default_message = 'Conflict'


class CmsClientError(Exception):
    """Raised by the service clients when the CMS call fails or reports failure."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

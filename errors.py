"""Errors raised by the portal's workflows.

Every error carries the message shown to the user and the HTTP status the
JSON API answers with. Views catch ``PortalError`` and flash ``message``.
"""


class PortalError(Exception):
    status_code = 500
    default_message = 'An unexpected error occurred'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = 400
    default_message = 'Invalid input'


class AuthError(PortalError):
    status_code = 401
    default_message = 'Invalid email or password'


class AuthorizationError(PortalError):
    status_code = 403
    # never says which rule rejected the request
    default_message = 'You are not allowed to perform this action'


class StorageError(PortalError):
    status_code = 502
    default_message = 'Failed to upload file'


class NetworkError(PortalError):
    status_code = 503
    default_message = 'The service is temporarily unavailable'

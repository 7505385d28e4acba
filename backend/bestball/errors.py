"""Error taxonomy for match operations.

Routes translate these into JSON error responses; the socket layer turns
them into ``error`` envelopes. Each carries the HTTP status it maps to.
"""


class MatchError(Exception):
    status_code = 500
    public_message = None

    def __init__(self, message=None):
        super().__init__(message or self.public_message or self.__class__.__name__)
        self.message = message or self.public_message or self.__class__.__name__

    def to_dict(self):
        return {'error': self.message}


class ValidationError(MatchError):
    status_code = 400


class InvalidTransition(ValidationError):
    status_code = 409


class MatchClosed(MatchError):
    status_code = 409
    public_message = 'Match is completed; scores can no longer be changed'


class AuthorizationError(MatchError):
    status_code = 403
    public_message = 'Unauthorized'


class NotFound(MatchError):
    status_code = 404


class StorageError(MatchError):
    """Storage collaborator failed. The cause is logged, never returned."""
    status_code = 500
    public_message = 'Internal server error'

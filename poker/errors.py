"""Errors raised by the session services.

Each error carries a ``type`` tag that is forwarded to clients in the
``error`` event so the UI can tell a bad password from a missing room.
"""


class SessionError(Exception):
    type = 'SessionError'
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'message': self.message, 'type': self.type}


class NotFound(SessionError):
    type = 'NotFound'
    status_code = 404


class InvalidPassword(SessionError):
    type = 'InvalidPassword'
    status_code = 401


class Unauthorized(SessionError):
    type = 'Unauthorized'
    status_code = 403


class InvalidEstimate(SessionError):
    type = 'InvalidEstimate'


class InvalidPayload(SessionError):
    type = 'InvalidPayload'

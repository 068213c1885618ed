"""
Error taxonomy shared by the recommendation and alerting services.

Services raise these internally; public operations catch them and return a
degraded or structured result instead of letting them reach the caller.
"""


class EngineError(Exception):
    """Base class for recoverable engine errors."""

    code = 'engine_error'

    def __init__(self, message: str = '', **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict:
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class NotFound(EngineError):
    """A referenced place, user or trip does not exist."""

    code = 'not_found'


class UpstreamUnavailable(EngineError):
    """The geocoder or the place search provider failed or is rate limited."""

    code = 'upstream_unavailable'


class InvalidInput(EngineError):
    """Input that cannot be used as given, e.g. out-of-range coordinates."""

    code = 'invalid_input'

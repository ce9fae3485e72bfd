"""
Error taxonomy for the alerting service.

Hot-path code (evaluation, dispatch, batching) collects these and returns
them to the caller. Rule CRUD raises them and the HTTP layer maps each
class to a status code.
"""


class AlertingError(Exception):
    """Base class for every error raised by the alerting service."""


class ValidationError(AlertingError):
    """A rule, its conditions, or an incoming event failed validation."""


class PermissionDeniedError(AlertingError):
    """The authorization gateway denied the requested scope."""


class DeliveryError(AlertingError):
    """A channel failed to deliver a message."""


class PersistenceError(AlertingError):
    """The rule store or audit trail could not be read or written."""


class ConfigurationError(AlertingError):
    """Required configuration (channel credentials, gateway URL) is missing."""


class RuleNotFoundError(AlertingError):
    """No live alert rule exists with the requested id."""


class AuthorizationGatewayError(AlertingError):
    """
    The authorization gateway answered with an error instead of a decision.

    The message carries the gateway's error text so callers can tell stale
    scope conditions apart from outages.
    """

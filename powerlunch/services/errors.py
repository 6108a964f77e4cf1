class PowerLunchError(Exception):
    """Base class for failures raised by the Power Lunch pipeline."""


class StoreUnavailable(PowerLunchError):
    """The registration store is not configured or cannot be reached."""


class OracleTransportFailure(PowerLunchError):
    """The matching oracle call itself failed (network, auth, rate limit, timeout)."""


class NoToolInvocation(PowerLunchError):
    """The oracle answered without invoking the required matching tool."""


class OracleOutputInvalid(PowerLunchError):
    """The oracle's proposal does not fit the request it was given."""


class CommitFailure(PowerLunchError):
    """The group/registration transaction was rejected and rolled back."""


class PushUnavailable(PowerLunchError):
    """The push delivery service is not configured."""


class GroupNotFound(PowerLunchError):
    """No group with the requested id exists under the conference."""

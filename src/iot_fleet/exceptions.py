"""
Fleet core exceptions.

Not-found conditions are never raised; lookups return None/False or a
{"status": "not_found"} result instead. Exceptions are reserved for input
rejected at the boundary and for capacity limits.
"""


class FleetError(Exception):
    """Base class for fleet core errors."""


class InvalidParameterError(FleetError, ValueError):
    """An argument is outside its accepted domain (e.g. a negative count)."""

    def __init__(self, parameter: str, value, reason: str):
        self.parameter = parameter
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {parameter}={value!r}: {reason}")


class DeviceLimitError(FleetError):
    """The fleet already holds the configured maximum number of devices."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Device limit reached ({limit} devices)")

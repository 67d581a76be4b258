"""
Query Engine Exceptions

Validation errors are raised before any store round trip. Execution errors
wrap the store failure and name the endpoint that issued the query.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base class for all query engine errors."""
    
    code = "ANALYTICS_ERROR"
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
    
    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an error response body."""
        return {
            "error": self.code,
            "detail": self.message,
            **({"context": self.details} if self.details else {}),
        }


class AnalyticsRequestError(AnalyticsError):
    """A request was rejected before any query was issued."""
    
    code = "INVALID_REQUEST"


class MissingParameterError(AnalyticsRequestError):
    """A required request parameter is absent or blank."""
    
    code = "MISSING_PARAMETER"
    
    def __init__(self, parameter: str):
        super().__init__(
            f"Missing required parameter: {parameter}",
            {"parameter": parameter},
        )
        self.parameter = parameter


class InvalidParameterError(AnalyticsRequestError):
    """A request parameter has an unusable value."""
    
    code = "INVALID_PARAMETER"
    
    def __init__(self, parameter: str, value: Any, reason: str):
        super().__init__(
            f"Invalid value for {parameter}: {value!r} ({reason})",
            {"parameter": parameter, "value": value},
        )
        self.parameter = parameter
        self.value = value


class UnknownEndpointError(AnalyticsRequestError):
    """The requested endpoint is not one the engine serves."""
    
    code = "UNKNOWN_ENDPOINT"
    
    def __init__(self, endpoint: str):
        super().__init__(f"Unknown endpoint: {endpoint}", {"endpoint": endpoint})
        self.endpoint = endpoint


class InvalidIntervalError(AnalyticsRequestError):
    """The interval token is not recognized."""
    
    code = "INVALID_INTERVAL"
    
    def __init__(self, interval: str, reason: str = "unrecognized interval"):
        super().__init__(f"Invalid interval {interval!r}: {reason}", {"interval": interval})
        self.interval = interval


class InvalidTimezoneError(AnalyticsRequestError):
    """The timezone is not a known IANA zone id."""
    
    code = "INVALID_TIMEZONE"
    
    def __init__(self, timezone: str):
        super().__init__(f"Unknown timezone: {timezone!r}", {"timezone": timezone})
        self.timezone = timezone


class UnknownFieldError(AnalyticsError, LookupError):
    """A logical field has no physical column. Indicates a programming error."""
    
    code = "UNKNOWN_FIELD"
    
    def __init__(self, field: Any):
        super().__init__(f"No physical column mapped for field {field!r}", {"field": str(field)})
        self.field = field


class QueryExecutionError(AnalyticsError):
    """The event store failed to execute a query."""
    
    code = "QUERY_FAILED"
    
    def __init__(self, endpoint: str, cause: Optional[BaseException] = None):
        reason = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Query for endpoint {endpoint!r} failed{reason}",
            {"endpoint": endpoint},
        )
        self.endpoint = endpoint

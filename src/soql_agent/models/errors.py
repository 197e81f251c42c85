from enum import Enum


class ErrorKind(str, Enum):
    """How the healing loop treats an execution error."""

    FATAL = "fatal"
    RECOVERABLE = "recoverable"
    UNKNOWN = "unknown"


class ErrorCategory(str, Enum):
    """Finer-grained error categories used for correction strategies."""

    AUTHENTICATION = "AUTHENTICATION"
    PERMISSION = "PERMISSION"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    STRUCTURAL = "STRUCTURAL"
    REFERENTIAL = "REFERENTIAL"
    UNKNOWN = "UNKNOWN"

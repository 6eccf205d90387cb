"""Custom exception types for the release KPI engine."""


class KPIEngineError(Exception):
    """Base exception for all recoverable KPI engine errors."""


class ConfigurationError(KPIEngineError):
    """Raised when runtime configuration values are missing or invalid."""


class InvalidUsageError(KPIEngineError):
    """Raised when a caller omits an argument the contract requires (e.g. a release context)."""


class DataValidationError(KPIEngineError):
    """Raised when consolidated input documents do not have the expected structure."""


class PersistenceError(KPIEngineError):
    """Raised when the KPI snapshot store cannot complete a read or write."""

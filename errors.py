"""Error taxonomy for the telemetry simulator and alerting pipeline."""


class AquaWatchError(RuntimeError):
    """Base class for all pipeline errors."""


class GenerationError(AquaWatchError):
    """Raised when a synthetic reading produces a non-finite value."""


class PersistenceError(AquaWatchError):
    """Raised when the persistence sink rejects or fails a write."""


class RecipientResolutionError(AquaWatchError):
    """Raised when the recipient directory lookup fails."""


class DispatchError(AquaWatchError):
    """Raised when a notification cannot be delivered."""


class SchedulerFatalError(AquaWatchError):
    """Raised when the scheduler cannot start because of bad configuration."""

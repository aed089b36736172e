"""Project-wide error types."""


class ProjectError(Exception):
    """Base for all Geni Takeoff errors."""


class ValidationError(ProjectError):
    """Invalid input data."""


class CalibrationConflictError(ProjectError):
    """A calibration already exists for the scope and replacing it was not confirmed."""


class PersistenceError(ProjectError):
    """Storage read or write failure."""


class AtomicWriteError(PersistenceError):
    """A multi-row write failed part way and was rolled back."""


class RenderError(ProjectError):
    """The document could not be opened or rendered."""


__all__ = [
    "AtomicWriteError",
    "CalibrationConflictError",
    "PersistenceError",
    "ProjectError",
    "RenderError",
    "ValidationError",
]

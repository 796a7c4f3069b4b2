"""Error taxonomy and explicit outcome values for the calibration engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar('T')


class ErrorKind(Enum):
    """Every way a calibration operation can fail."""
    CONFIGURATION = 'configuration'
    NO_DATA = 'no data'
    NO_OVERLAP = 'no overlap between lists'
    DEGENERATE_FIT = 'degenerate fit'
    OPEN_FAILURE = 'open failure'
    MALFORMED_HEADER = 'malformed header'
    MALFORMED_RECORD = 'malformed record'


class CalibrationError(Exception):
    """Base class for all recoverable calibration failures."""

    kind: ErrorKind = ErrorKind.NO_DATA

    def __init__(self, message: str = ''):
        self.message = message or self.kind.value
        super().__init__(self.message)


class ConfigurationError(CalibrationError):
    kind = ErrorKind.CONFIGURATION


class NoDataError(CalibrationError):
    kind = ErrorKind.NO_DATA


class NoOverlapError(CalibrationError):
    kind = ErrorKind.NO_OVERLAP


class DegenerateFitError(CalibrationError):
    kind = ErrorKind.DEGENERATE_FIT


class LoaderError(CalibrationError):
    """Raised by line list loaders."""


class ListOpenError(LoaderError):
    kind = ErrorKind.OPEN_FAILURE


class MalformedHeaderError(LoaderError):
    kind = ErrorKind.MALFORMED_HEADER


class MalformedRecordError(LoaderError):
    kind = ErrorKind.MALFORMED_RECORD


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a session operation: either a value or a CalibrationError.

    Use ``ok`` to branch, or ``unwrap()`` to get the value and re-raise the
    stored error on failure.
    """
    value: Optional[T] = None
    error: Optional[CalibrationError] = None

    def __post_init__(self):
        if self.error is not None and self.value is not None:
            raise ValueError("An Outcome cannot hold both a value and an error")

    @classmethod
    def success(cls, value: T) -> 'Outcome[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: CalibrationError) -> 'Outcome[T]':
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return None if self.error is None else self.error.kind

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value

"""Core calibration engine for FTS line lists.

Modules:
- line: line records and line lists with composable wavenumber correction
- matching: pairing measured lines with standard lines, amplitude selection
- fitting: least-squares fit of the wavenumber scale correction
- statistics: residual statistics, outlier rule, per-line error propagation
- settings: defaults and tunable calibration settings
- errors: error taxonomy and explicit outcome values
"""

from .errors import (
    ErrorKind,
    CalibrationError,
    ConfigurationError,
    NoDataError,
    NoOverlapError,
    DegenerateFitError,
    LoaderError,
    ListOpenError,
    MalformedHeaderError,
    MalformedRecordError,
    Outcome,
)
from .settings import CalibrationSettings, DATA_SCALE
from .line import LineRecord, LineList, centroid_error
from .matching import LinePair, find_common_lines, select_fitted_lines
from .fitting import FitResult, fit_correction, normalized_residuals
from .statistics import (
    ResidualStats,
    LineError,
    residual_statistics,
    find_outliers,
    propagate_line_error,
    propagate_errors,
)

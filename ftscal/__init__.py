"""
FTS Line List Calibration
-------------------
Wavenumber calibration of measured spectral line lists against a standard,
with outlier rejection and per-line error propagation.
"""

__version__ = "1.0.0"

# Import key components for easier access
from .calibrator import ListCalibrator, CalibrationReport, run_calibration
from .core import CalibrationSettings, LineList, LineRecord, Outcome, ErrorKind
from .data_loader import load_line_list, lines_from_frame, loader_from_config

__all__ = [
    'ListCalibrator',
    'CalibrationReport',
    'run_calibration',
    'CalibrationSettings',
    'LineList',
    'LineRecord',
    'Outcome',
    'ErrorKind',
    'load_line_list',
    'lines_from_frame',
    'loader_from_config',
]

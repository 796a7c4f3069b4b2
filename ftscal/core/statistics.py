"""Residual statistics, the outlier rule and per-line error propagation.

Following Whaling et al., JQSRT 53, 1 (1995), each calibrated wavenumber
carries two independent error components: the uncertainty in the fitted
scale correction, and the uncertainty in locating the line centre. The
latter is estimated both from the Brault equation, Mikrochim. Acta (Wien)
3, 215 (1987), and from the scatter of the fit residuals.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from .errors import NoDataError
from .line import LineRecord, centroid_error
from .settings import DATA_SCALE, DEF_POINT_SPACING

logger = logging.getLogger(__name__)


@dataclass
class ResidualStats:
    """Mean, population std dev and std error of residuals, in DATA_SCALE units."""
    mean: float = 0.0
    stddev: float = 0.0
    stderr: float = 0.0
    count: int = 0

    def to_relative(self) -> 'ResidualStats':
        return ResidualStats(
            mean=self.mean / DATA_SCALE,
            stddev=self.stddev / DATA_SCALE,
            stderr=self.stderr / DATA_SCALE,
            count=self.count,
        )

    def discard_threshold(self, discard_limit: float) -> float:
        return abs(self.mean) + discard_limit * self.stddev

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def residual_statistics(residuals: np.ndarray) -> ResidualStats:
    residuals = np.asarray(residuals, dtype=float)
    n = residuals.size
    if n == 0:
        raise NoDataError("No fitted lines to compute residual statistics from")
    mean = float(np.sum(residuals) / n)
    # second pass against the mean
    stddev = float(np.sqrt(np.sum((residuals - mean) ** 2) / n))
    return ResidualStats(mean=mean, stddev=stddev, stderr=stddev / np.sqrt(n), count=int(n))


def find_outliers(residuals: np.ndarray, stats: ResidualStats, discard_limit: float) -> List[int]:
    """Positions of residuals outside the discard band, highest position first.

    A residual r is an outlier when |r - mean| > |mean| + discard_limit * stddev.
    Positions come back in descending order so they can be deleted in place.
    """
    residuals = np.asarray(residuals, dtype=float)
    limit = stats.discard_threshold(discard_limit)
    return [i for i in range(residuals.size - 1, -1, -1) if abs(residuals[i] - stats.mean) > limit]


@dataclass(frozen=True)
class LineError:
    """Error budget for one calibrated line, all in cm^-1."""
    wavenumber: float
    scale_error: float
    stat_error: float
    brault_error: float
    combined_error: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def propagate_line_error(wavenumber: float,
                         width: float,
                         peak: float,
                         correction_error: float,
                         residual_stddev: float,
                         point_spacing: float = DEF_POINT_SPACING) -> LineError:
    """Combine the calibration and line-centre errors for a calibrated line.

    Args:
        wavenumber: Calibrated wavenumber (cm^-1)
        width: Calibrated line width (mK)
        peak: Peak amplitude, normalised to the noise level
        correction_error: Uncertainty in the scale correction
        residual_stddev: Residual standard deviation in DATA_SCALE units
        point_spacing: Spectrum point spacing (cm^-1)

    Returns:
        LineError; the combined error is the larger of the residual-scatter
        and the Brault estimates, each added in quadrature to the scale error.
    """
    scale_error = wavenumber * correction_error
    stat_error = wavenumber * residual_stddev / DATA_SCALE
    brault_error = centroid_error(width, peak, point_spacing)
    stat_total = float(np.hypot(scale_error, stat_error))
    brault_total = float(np.hypot(scale_error, brault_error))
    combined = float(np.fmax(stat_total, brault_total))
    return LineError(
        wavenumber=float(wavenumber),
        scale_error=float(scale_error),
        stat_error=float(stat_error),
        brault_error=float(brault_error),
        combined_error=combined,
    )


def propagate_errors(lines: Sequence[LineRecord],
                     correction_error: float,
                     residual_stddev: float,
                     point_spacing: float = DEF_POINT_SPACING) -> pd.DataFrame:
    """Vectorised ``propagate_line_error`` over calibrated lines.

    Lines with zero width or peak get a NaN Brault error and fall back to the
    residual-scatter estimate.
    """
    sigma = np.array([ln.wavenumber for ln in lines], dtype=float)
    width = np.array([ln.width for ln in lines], dtype=float)
    peak = np.array([ln.peak for ln in lines], dtype=float)

    scale_error = sigma * correction_error
    stat_error = sigma * residual_stddev / DATA_SCALE
    with np.errstate(divide='ignore', invalid='ignore'):
        points_in_fwhm = width / (1000.0 * point_spacing)
        brault_error = width / (1000.0 * np.sqrt(points_in_fwhm) * peak)
    invalid = (width <= 0.0) | (peak <= 0.0)
    brault_error = np.where(invalid, np.nan, brault_error)
    if np.any(invalid):
        logger.warning(f"{int(invalid.sum())} line(s) have zero width or peak; Brault error set to NaN")

    combined = np.fmax(np.hypot(scale_error, stat_error), np.hypot(scale_error, brault_error))
    return pd.DataFrame({
        'index': [ln.index for ln in lines],
        'wavenumber': sigma,
        'scale_error': scale_error,
        'stat_error': stat_error,
        'brault_error': brault_error,
        'combined_error': combined,
    })

"""Spectral line records and line lists.

A LineRecord stores the *uncorrected* wavenumber and width of a measured
line. The wavenumber correction factor is kept alongside and applied on
read, so a list can be recalibrated by swapping the factor instead of
re-reading the source data.
"""

import logging
import math
from dataclasses import dataclass, field, replace, asdict
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import MalformedRecordError
from .settings import DEF_POINT_SPACING

logger = logging.getLogger(__name__)


def centroid_error(width: float, peak: float, point_spacing: float = DEF_POINT_SPACING) -> float:
    """Brault estimate of the uncertainty in locating a line centre (cm^-1).

    dσ = FWHM / (sqrt(N) * SNR), where N is the number of points in the FWHM.
    The width is given in mK and the peak must be normalised to the noise for
    the estimate to be meaningful.
    """
    if width <= 0.0 or peak <= 0.0 or point_spacing <= 0.0:
        logger.warning(
            f"Centroid error undefined for width={width}, peak={peak}, spacing={point_spacing}"
        )
        return float('nan')
    points_in_fwhm = width / (1000.0 * point_spacing)
    return width / (1000.0 * math.sqrt(points_in_fwhm) * peak)


@dataclass(frozen=True)
class LineRecord:
    """One measured spectral line.

    ``wavenumber_raw`` and ``width_raw`` never include the wavenumber
    correction; use ``wavenumber`` and ``width`` for corrected values.
    """
    index: int
    wavenumber_raw: float            # cm^-1, uncorrected
    peak: float = 0.0                # peak amplitude
    width_raw: float = 0.0           # mK, uncorrected
    damping: float = 0.0
    eqwidth: float = 0.0
    itn: int = 0                     # fit iterations
    hold: int = 0                    # hold flag
    tags: str = '.'
    epstot: float = 0.0
    epsevn: float = 0.0
    epsodd: float = 0.0
    epsran: float = 0.0
    identification: str = ''
    wavenumber_correction: float = 0.0
    air_correction: float = 0.0
    intensity_calibration: float = 0.0
    source: str = ''

    def __post_init__(self):
        for name in ('wavenumber_raw', 'peak', 'width_raw', 'eqwidth'):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0.0:
                raise MalformedRecordError(
                    f"Line {self.index}: {name} must be a non-negative number, got {value}"
                )

    @classmethod
    def from_corrected(cls, index: int, wavenumber: float, width: float = 0.0,
                       wavenumber_correction: float = 0.0, **kwargs) -> 'LineRecord':
        """Create a line from values that already include ``wavenumber_correction``.

        The correction is divided back out so the stored values are uncorrected.
        """
        scale = 1.0 + wavenumber_correction
        if scale <= 0.0:
            raise MalformedRecordError(
                f"Line {index}: wavenumber correction {wavenumber_correction} must be greater than -1"
            )
        return cls(
            index=index,
            wavenumber_raw=wavenumber / scale,
            width_raw=width / scale,
            wavenumber_correction=wavenumber_correction,
            **kwargs,
        )

    @property
    def wavenumber(self) -> float:
        return self.wavenumber_raw * (1.0 + self.wavenumber_correction)

    @property
    def width(self) -> float:
        return self.width_raw * (1.0 + self.wavenumber_correction)

    @property
    def wavelength(self) -> float:
        """Vacuum wavelength in nm."""
        sigma = self.wavenumber
        return 1.0e7 / sigma if sigma > 0.0 else float('inf')

    def with_correction(self, correction: float) -> 'LineRecord':
        return replace(self, wavenumber_correction=correction)

    def centroid_error(self, point_spacing: float = DEF_POINT_SPACING) -> float:
        return centroid_error(self.width, self.peak, point_spacing)

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        d['wavenumber'] = self.wavenumber
        d['width'] = self.width
        d['wavelength'] = self.wavelength
        return d


@dataclass(frozen=True)
class LineList:
    """An ordered line list with its header-level correction factors."""
    lines: Tuple[LineRecord, ...] = field(default_factory=tuple)
    source: str = ''
    wavenumber_correction: float = 0.0
    air_correction: float = 0.0
    intensity_calibration: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, 'lines', tuple(self.lines))

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[LineRecord]:
        return iter(self.lines)

    def __getitem__(self, i: int) -> LineRecord:
        return self.lines[i]

    def wavenumbers(self) -> np.ndarray:
        return np.array([ln.wavenumber for ln in self.lines], dtype=float)

    def peaks(self) -> np.ndarray:
        return np.array([ln.peak for ln in self.lines], dtype=float)

    def is_sorted(self) -> bool:
        sigma = self.wavenumbers()
        return bool(np.all(np.diff(sigma) >= 0.0)) if sigma.size > 1 else True

    def with_correction(self, correction: float) -> 'LineList':
        """Copy of the list with ``correction`` applied to every line."""
        return replace(
            self,
            lines=tuple(ln.with_correction(correction) for ln in self.lines),
            wavenumber_correction=correction,
        )

    def to_frame(self, columns: Optional[List[str]] = None) -> pd.DataFrame:
        df = pd.DataFrame([ln.to_dict() for ln in self.lines])
        if df.empty:
            df = pd.DataFrame(columns=['index', 'wavenumber', 'peak', 'width'])
        if columns is not None:
            df = df[columns]
        return df

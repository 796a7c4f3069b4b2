"""
Wavenumber calibration of a measured line list against a standard list.

The calibrated wavenumbers are given by sigma_cal = sigma_measured * (1 + eps).
Lines common to both lists and above an amplitude threshold are fitted for
eps; lines whose residual lies too far from the mean are discarded and the
fit repeated until no further lines are removed.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

import numpy as np
import pandas as pd

from config.config_loader import load_config
from .core.errors import CalibrationError, NoDataError, Outcome
from .core.fitting import FitResult, fit_correction, normalized_residuals
from .core.line import LineList
from .core.matching import LinePair, find_common_lines, select_fitted_lines
from .core.settings import CalibrationSettings, DATA_SCALE
from .core.statistics import ResidualStats, find_outliers, propagate_errors, residual_statistics
from .data_loader import LineListLoader, loader_from_config

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class CalibrationReport:
    """Plain-data summary of a finished calibration, for external writers."""
    line_list_name: str
    standard_list_name: str
    settings: Dict[str, Any]
    correction: float
    correction_error: float
    reduced_chi2: float
    residual_mean: float
    residual_stddev: float
    residual_stderr: float
    n_common: int
    n_fitted: int
    n_discarded: int
    converged: bool
    calibrated: LineList = field(repr=False, default_factory=LineList)
    line_errors: pd.DataFrame = field(repr=False, default_factory=pd.DataFrame)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'line_list': self.line_list_name,
            'standard_list': self.standard_list_name,
            'settings': dict(self.settings),
            'correction': self.correction,
            'correction_error': self.correction_error,
            'reduced_chi2': self.reduced_chi2,
            'residual_mean': self.residual_mean,
            'residual_stddev': self.residual_stddev,
            'residual_stderr': self.residual_stderr,
            'n_common': self.n_common,
            'n_fitted': self.n_fitted,
            'n_discarded': self.n_discarded,
            'converged': self.converged,
        }

    def to_frame(self) -> pd.DataFrame:
        return self.line_errors.copy()


class ListCalibrator:
    """Calibration session for one measured list against one standard list.

    Every public operation returns an Outcome. A failed operation leaves the
    session exactly as it was before the call.
    """

    def __init__(self, settings: Optional[CalibrationSettings] = None, config: Optional[Dict] = None):
        if settings is None:
            if config is None:
                config = load_config()
            settings = CalibrationSettings.from_config(config)
        self.settings = settings.checked()
        self.loader = loader_from_config(config)
        self.line_list: Optional[LineList] = None
        self.standard_list: Optional[LineList] = None
        self.common_lines: List[LinePair] = []
        self.fitted_lines: List[LinePair] = []
        self.discarded_lines: List[LinePair] = []
        self.correction = 0.0
        self.correction_error = 0.0
        self.fit: Optional[FitResult] = None
        self.stats = ResidualStats()

    @classmethod
    def create(cls, settings: Optional[CalibrationSettings] = None,
               config: Optional[Dict] = None) -> Outcome['ListCalibrator']:
        try:
            return Outcome.success(cls(settings=settings, config=config))
        except CalibrationError as e:
            logger.error(f"Invalid calibration settings: {e}")
            return Outcome.failure(e)

    # ----------------------
    # Session bookkeeping
    # ----------------------

    def _snapshot(self) -> Tuple:
        return (self.line_list, self.standard_list, list(self.common_lines), list(self.fitted_lines),
                list(self.discarded_lines), self.correction, self.correction_error, self.fit, self.stats)

    def _restore(self, snapshot: Tuple):
        (self.line_list, self.standard_list, self.common_lines, self.fitted_lines,
         self.discarded_lines, self.correction, self.correction_error, self.fit, self.stats) = snapshot

    def _run(self, operation: Callable[[], T]) -> Outcome[T]:
        snapshot = self._snapshot()
        try:
            # settings are mutable between operations
            self.settings.checked()
            return Outcome.success(operation())
        except CalibrationError as e:
            self._restore(snapshot)
            logger.error(f"Calibration step failed ({e.kind.value}): {e}")
            return Outcome.failure(e)

    def _require_lists(self) -> Tuple[LineList, LineList]:
        if self.line_list is None or self.standard_list is None:
            raise NoDataError("Both the line list and the standard list must be loaded")
        return self.line_list, self.standard_list

    def _require_fit(self) -> FitResult:
        if self.fit is None:
            raise NoDataError("No correction has been fitted yet")
        return self.fit

    def _pair_wavenumbers(self, pairs: List[LinePair]) -> Tuple[np.ndarray, np.ndarray]:
        """Uncorrected measured and standard wavenumbers for ``pairs``."""
        measured, standard = self._require_lists()
        meas = np.array([p.measured(measured.lines).wavenumber_raw for p in pairs], dtype=float)
        std = np.array([p.standard(standard.lines).wavenumber for p in pairs], dtype=float)
        return meas, std

    @staticmethod
    def _sorted(lines: LineList) -> LineList:
        if lines.is_sorted():
            return lines
        logger.warning(f"Line list {lines.source or '<unnamed>'} is not sorted by wavenumber; sorting it")
        return LineList(
            lines=tuple(sorted(lines.lines, key=lambda ln: ln.wavenumber)),
            source=lines.source,
            wavenumber_correction=lines.wavenumber_correction,
            air_correction=lines.air_correction,
            intensity_calibration=lines.intensity_calibration,
        )

    def _reset_matches(self):
        self.common_lines = []
        self.fitted_lines = []
        self.discarded_lines = []
        self.fit = None
        self.stats = ResidualStats()
        self.correction = 0.0
        self.correction_error = 0.0

    # ----------------------
    # Loading
    # ----------------------

    def load_line_list(self, source, loader: Optional[LineListLoader] = None) -> Outcome[LineList]:
        def _load():
            self.line_list = self._sorted((loader or self.loader)(source))
            self._reset_matches()
            return self.line_list
        return self._run(_load)

    def load_standard_list(self, source, loader: Optional[LineListLoader] = None) -> Outcome[LineList]:
        def _load():
            self.standard_list = self._sorted((loader or self.loader)(source))
            self._reset_matches()
            return self.standard_list
        return self._run(_load)

    def set_lists(self, line_list: LineList, standard_list: LineList) -> 'ListCalibrator':
        """Attach already loaded lists to the session."""
        self.line_list = self._sorted(line_list)
        self.standard_list = self._sorted(standard_list)
        self._reset_matches()
        return self

    # ----------------------
    # Matching and selection
    # ----------------------

    def find_common_lines(self) -> Outcome[List[LinePair]]:
        def _match():
            measured, standard = self._require_lists()
            pairs = find_common_lines(measured.lines, standard.lines, self.settings.tolerance)
            self._reset_matches()
            self.common_lines = pairs
            logger.info(f"Found {len(pairs)} lines common to {measured.source or 'the line list'} "
                        f"and {standard.source or 'the standard list'}")
            return list(pairs)
        return self._run(_match)

    def find_fitted_lines(self) -> Outcome[List[LinePair]]:
        def _select():
            measured, _ = self._require_lists()
            fitted = select_fitted_lines(self.common_lines, measured.lines, self.settings.amplitude_threshold)
            self.fitted_lines = fitted
            self.discarded_lines = []
            return list(fitted)
        return self._run(_select)

    # ----------------------
    # Fitting and outlier rejection
    # ----------------------

    def _find_correction(self) -> FitResult:
        meas, std = self._pair_wavenumbers(self.fitted_lines)
        result = fit_correction(
            meas, std,
            initial=self.correction,
            tol=self.settings.solver_tolerance,
            max_iterations=self.settings.max_iterations,
        )
        self.correction = result.correction
        self.correction_error = result.correction_error
        self.fit = result
        self.stats = residual_statistics(normalized_residuals(meas, std, self.correction))
        rel = self.stats.to_relative()
        logger.info(f"dSig/Sig Mean Residual: {rel.mean:.6e}, StdDev: {rel.stddev:.6e}, StdErr: {rel.stderr:.6e}")
        return result

    def _remove_bad_lines(self) -> int:
        self._require_fit()
        measured, _ = self._require_lists()
        meas, std = self._pair_wavenumbers(self.fitted_lines)
        residuals = normalized_residuals(meas, std, self.correction)
        limit = self.stats.discard_threshold(self.settings.discard_limit)
        outliers = find_outliers(residuals, self.stats, self.settings.discard_limit)
        for i in outliers:
            pair = self.fitted_lines.pop(i)
            line = pair.measured(measured.lines)
            logger.info(
                f"Removing line {line.index}: {line.wavenumber:.6f}K "
                f"(residual dSig/Sig = {residuals[i] / DATA_SCALE:.6e}, "
                f"limit = {self.stats.mean / DATA_SCALE:.6e} +/- {limit / DATA_SCALE:.6e})"
            )
            self.discarded_lines.append(pair)
        return len(outliers)

    def find_correction(self) -> Outcome[FitResult]:
        """Fit the correction to the current fitted subset, starting from the current estimate."""
        return self._run(self._find_correction)

    def remove_bad_lines(self) -> Outcome[int]:
        """Move lines outside the discard band from the fitted to the discarded subset."""
        return self._run(self._remove_bad_lines)

    def _refine(self) -> FitResult:
        selected = len(self.fitted_lines) + len(self.discarded_lines)
        while True:
            result = self._find_correction()
            removed = self._remove_bad_lines()
            if len(self.fitted_lines) + len(self.discarded_lines) != selected:
                raise RuntimeError("Fitted and discarded subsets no longer partition the selected lines")
            if not removed:
                break
            logger.info(f"Removed {removed} bad line{'s' if removed > 1 else ''} from the fit. Refining the calibration...")
        logger.info(f"All lines are within {self.settings.discard_limit} standard deviations of the mean. "
                    f"Calibration complete.")
        return result

    def refine(self) -> Outcome[FitResult]:
        """Fit, discard outliers and refit until no line is discarded."""
        return self._run(self._refine)

    # ----------------------
    # Results
    # ----------------------

    def calibrated_lines(self) -> Outcome[LineList]:
        def _calibrated():
            self._require_fit()
            measured, _ = self._require_lists()
            return measured.with_correction(self.correction)
        return self._run(_calibrated)

    def line_errors(self) -> Outcome[pd.DataFrame]:
        def _errors():
            self._require_fit()
            measured, _ = self._require_lists()
            return propagate_errors(
                measured.with_correction(self.correction).lines,
                self.correction_error,
                self.stats.stddev,
                self.settings.point_spacing,
            )
        return self._run(_errors)

    def residual_frame(self) -> Outcome[pd.DataFrame]:
        """Residuals of every fitted and discarded line, before and after correction."""
        def _frame():
            self._require_fit()
            measured, _ = self._require_lists()
            rows = []
            for status, pairs in (('fitted', self.fitted_lines), ('discarded', self.discarded_lines)):
                if not pairs:
                    continue
                meas, std = self._pair_wavenumbers(pairs)
                raw = normalized_residuals(meas, std, 0.0)
                corrected = normalized_residuals(meas, std, self.correction)
                for k, pair in enumerate(pairs):
                    rows.append({
                        'index': pair.measured(measured.lines).index,
                        'standard_wavenumber': std[k],
                        'residual_uncorrected': raw[k] / DATA_SCALE,
                        'residual': corrected[k] / DATA_SCALE,
                        'status': status,
                    })
            return pd.DataFrame(rows, columns=['index', 'standard_wavenumber', 'residual_uncorrected',
                                               'residual', 'status'])
        return self._run(_frame)

    def report(self) -> Outcome[CalibrationReport]:
        def _report():
            fit = self._require_fit()
            measured, standard = self._require_lists()
            calibrated = measured.with_correction(self.correction)
            errors = propagate_errors(calibrated.lines, self.correction_error,
                                      self.stats.stddev, self.settings.point_spacing)
            rel = self.stats.to_relative()
            return CalibrationReport(
                line_list_name=measured.source,
                standard_list_name=standard.source,
                settings=self.settings.to_dict(),
                correction=self.correction,
                correction_error=self.correction_error,
                reduced_chi2=fit.reduced_chi2,
                residual_mean=rel.mean,
                residual_stddev=rel.stddev,
                residual_stderr=rel.stderr,
                n_common=len(self.common_lines),
                n_fitted=len(self.fitted_lines),
                n_discarded=len(self.discarded_lines),
                converged=fit.converged,
                calibrated=calibrated,
                line_errors=errors,
            )
        return self._run(_report)


def run_calibration(line_list: LineList,
                    standard_list: LineList,
                    settings: Optional[CalibrationSettings] = None,
                    config: Optional[Dict] = None) -> Outcome[CalibrationReport]:
    """Run: match → select → fit/reject loop → report.

    Returns the first failure encountered; no partially calibrated state is
    returned on failure.
    """
    created = ListCalibrator.create(settings=settings, config=config)
    if not created.ok:
        return Outcome.failure(created.error)
    session = created.value.set_lists(line_list, standard_list)

    for step in (session.find_common_lines, session.find_fitted_lines, session.refine):
        outcome = step()
        if not outcome.ok:
            return Outcome.failure(outcome.error)

    report = session.report()
    if report.ok:
        logger.info(f"Optimal dSig/Sig : {report.value.correction:.6e} +/- {report.value.correction_error:.6e}")
    return report

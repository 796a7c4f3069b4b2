"""Least-squares fit of the wavenumber scale correction."""

import logging
from dataclasses import dataclass, asdict
from typing import Dict

import numpy as np
from scipy.optimize import least_squares

from .errors import DegenerateFitError
from .settings import DATA_SCALE, SOLVER_MAX_ITERATIONS, SOLVER_TOL

logger = logging.getLogger(__name__)

N_PARAMETERS = 1


@dataclass
class FitResult:
    """Outcome of a single scale-correction fit."""
    correction: float
    correction_error: float
    chi2: float
    reduced_chi2: float
    scale_factor: float      # chi / sqrt(dof)
    n_lines: int
    dof: int
    converged: bool
    evaluations: int
    message: str = ''

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def normalized_residuals(measured: np.ndarray, standard: np.ndarray, correction: float) -> np.ndarray:
    """dSig/Sig of each corrected line against its standard, times DATA_SCALE."""
    measured = np.asarray(measured, dtype=float)
    standard = np.asarray(standard, dtype=float)
    return (measured * (1.0 + correction) - standard) * DATA_SCALE / standard


def fit_correction(measured: np.ndarray,
                   standard: np.ndarray,
                   initial: float = 0.0,
                   tol: float = SOLVER_TOL,
                   max_iterations: int = SOLVER_MAX_ITERATIONS) -> FitResult:
    """Find the correction eps minimising the normalized residuals.

    The calibrated wavenumbers are sigma_cal = sigma_measured * (1 + eps).
    A Levenberg-Marquardt solver is started from ``initial`` so that repeated
    fits during outlier rejection resume from the previous estimate.

    Args:
        measured: Uncorrected wavenumbers of the fitted lines
        standard: Standard wavenumbers, same order as ``measured``
        initial: Starting estimate of eps
        tol: Absolute and relative step tolerance on eps
        max_iterations: Solver evaluation cap. Hitting it is not an error.

    Returns:
        FitResult with eps, its uncertainty scaled by chi/sqrt(dof), and
        goodness-of-fit figures.
    """
    measured = np.asarray(measured, dtype=float)
    standard = np.asarray(standard, dtype=float)
    n_lines = int(measured.size)
    if n_lines <= N_PARAMETERS:
        raise DegenerateFitError(
            f"Cannot fit {N_PARAMETERS} parameter to {n_lines} line(s); at least {N_PARAMETERS + 1} are needed"
        )

    # The model is linear in eps, so the Jacobian does not depend on it
    jacobian = (measured * DATA_SCALE / standard).reshape(-1, 1)

    def _residuals(p: np.ndarray) -> np.ndarray:
        return normalized_residuals(measured, standard, p[0])

    def _jac(p: np.ndarray) -> np.ndarray:
        return jacobian

    res = least_squares(
        _residuals, x0=np.array([float(initial)]), jac=_jac, method='lm',
        xtol=tol, ftol=tol, max_nfev=max_iterations,
    )
    converged = res.status > 0
    if not converged:
        logger.warning(f"Correction fit stopped after {res.nfev} evaluations without converging: {res.message}")

    try:
        cov = np.linalg.inv(jacobian.T @ jacobian)
    except np.linalg.LinAlgError as e:
        raise DegenerateFitError(f"Fit covariance is singular: {e}") from e

    chi = float(np.linalg.norm(res.fun))
    dof = n_lines - N_PARAMETERS
    c = chi / np.sqrt(dof)
    correction = float(res.x[0])
    correction_error = float(c * np.sqrt(cov[0, 0]))

    result = FitResult(
        correction=correction,
        correction_error=correction_error,
        chi2=chi ** 2,
        reduced_chi2=chi ** 2 / dof,
        scale_factor=float(c),
        n_lines=n_lines,
        dof=dof,
        converged=bool(converged),
        evaluations=int(res.nfev),
        message=str(res.message),
    )
    logger.info(
        f"Correction factor: {correction:.6e} +/- {correction_error:.6e} "
        f"(reduced chi^2 = {result.reduced_chi2:.4g}, lines fitted = {n_lines}, c = {c:.4g})"
    )
    return result

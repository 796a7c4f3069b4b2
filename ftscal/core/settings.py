"""Calibration defaults and tunable settings."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import numpy as np

from .errors import ConfigurationError

# Residuals are reported as dSig/Sig scaled by this factor
DATA_SCALE = 1.0e6

DEF_DISCRIMINATOR = 0.1     # cm^-1
DEF_PEAK_THRESHOLD = 50.0   # equivalent to SNR if spectrum normalised
DEF_DISCARD_LIMIT = 2.0     # times the residual std dev
DEF_POINT_SPACING = 0.03    # cm^-1

SOLVER_TOL = 1.0e-12
SOLVER_MAX_ITERATIONS = 500


@dataclass
class CalibrationSettings:
    tolerance: float = DEF_DISCRIMINATOR
    amplitude_threshold: float = DEF_PEAK_THRESHOLD
    discard_limit: float = DEF_DISCARD_LIMIT
    point_spacing: float = DEF_POINT_SPACING
    solver_tolerance: float = SOLVER_TOL
    max_iterations: int = SOLVER_MAX_ITERATIONS

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None, **overrides) -> 'CalibrationSettings':
        """Build settings from a configuration mapping.

        Args:
            config: Mapping as returned by ``config.config_loader.load_config``.
                    Missing sections or keys fall back to the built-in defaults.
            **overrides: Explicit values that take precedence over the mapping.
                         ``None`` values are ignored.

        Returns:
            CalibrationSettings instance (not yet validated).
        """
        config = config or {}
        cal_cfg = config.get('calibration', {}) or {}
        solver_cfg = config.get('solver', {}) or {}
        try:
            settings = cls(
                tolerance=float(cal_cfg.get('tolerance', DEF_DISCRIMINATOR)),
                amplitude_threshold=float(cal_cfg.get('amplitude_threshold', DEF_PEAK_THRESHOLD)),
                discard_limit=float(cal_cfg.get('discard_limit', DEF_DISCARD_LIMIT)),
                point_spacing=float(cal_cfg.get('point_spacing', DEF_POINT_SPACING)),
                solver_tolerance=float(solver_cfg.get('tolerance', SOLVER_TOL)),
                max_iterations=int(solver_cfg.get('max_iterations', SOLVER_MAX_ITERATIONS)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Calibration settings must be numeric: {e}") from e
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(settings, key):
                raise ConfigurationError(f"Unknown calibration setting: {key}")
            setattr(settings, key, value)
        return settings

    def validate(self) -> List[str]:
        errs = []
        if self.tolerance < 0.0:
            errs.append("Match tolerance must not be negative")
        if self.amplitude_threshold < 0.0:
            errs.append("Amplitude threshold must not be negative")
        if self.discard_limit < 0.0:
            errs.append("Discard limit must not be negative")
        if self.point_spacing <= 0.0:
            errs.append("Point spacing must be positive")
        if self.solver_tolerance < np.finfo(float).eps:
            errs.append("Solver tolerance must not be below machine epsilon")
        if self.max_iterations < 1:
            errs.append("Solver iteration cap must be at least 1")
        return errs

    def checked(self) -> 'CalibrationSettings':
        errs = self.validate()
        if errs:
            raise ConfigurationError("; ".join(errs))
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

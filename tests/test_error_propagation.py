import numpy as np
import pytest

from ftscal.core.line import LineRecord
from ftscal.core.settings import DATA_SCALE
from ftscal.core.statistics import propagate_errors, propagate_line_error


def test_error_components_for_known_line():
    err = propagate_line_error(
        wavenumber=10000.0, width=30.0, peak=100.0,
        correction_error=1.0e-8, residual_stddev=0.05, point_spacing=0.03,
    )
    assert err.scale_error == pytest.approx(1.0e-4)
    assert err.stat_error == pytest.approx(10000.0 * 0.05 / DATA_SCALE)
    assert err.brault_error == pytest.approx(3.0e-4)
    assert err.combined_error == pytest.approx(np.hypot(1.0e-4, 5.0e-4))


def test_brault_term_dominates_for_weak_lines():
    err = propagate_line_error(
        wavenumber=10000.0, width=30.0, peak=2.0,
        correction_error=1.0e-8, residual_stddev=0.05, point_spacing=0.03,
    )
    assert err.brault_error == pytest.approx(0.015)
    assert err.combined_error == pytest.approx(np.hypot(1.0e-4, 0.015))


def test_combined_error_never_below_its_terms():
    rng = np.random.default_rng(11)
    for _ in range(200):
        err = propagate_line_error(
            wavenumber=rng.uniform(1000.0, 50000.0),
            width=rng.uniform(1.0, 500.0),
            peak=rng.uniform(1.0, 1.0e4),
            correction_error=rng.uniform(0.0, 1.0e-6),
            residual_stddev=rng.uniform(0.0, 5.0),
            point_spacing=rng.uniform(0.005, 0.1),
        )
        stat_total = np.hypot(err.scale_error, err.stat_error)
        brault_total = np.hypot(err.scale_error, err.brault_error)
        for term in (err.scale_error, err.stat_error, err.brault_error, stat_total, brault_total):
            assert err.combined_error >= term * (1.0 - 1e-12)


def test_missing_width_falls_back_to_residual_scatter():
    err = propagate_line_error(
        wavenumber=10000.0, width=0.0, peak=100.0,
        correction_error=1.0e-8, residual_stddev=0.05, point_spacing=0.03,
    )
    assert np.isnan(err.brault_error)
    assert err.combined_error == pytest.approx(np.hypot(1.0e-4, 5.0e-4))


def test_vectorised_errors_match_single_line_results():
    lines = [
        LineRecord(index=1, wavenumber_raw=12000.0, peak=150.0, width_raw=45.0, wavenumber_correction=2e-6),
        LineRecord(index=2, wavenumber_raw=15000.0, peak=3.0, width_raw=80.0, wavenumber_correction=2e-6),
        LineRecord(index=3, wavenumber_raw=18000.0, peak=0.0, width_raw=60.0, wavenumber_correction=2e-6),
    ]
    df = propagate_errors(lines, correction_error=5.0e-9, residual_stddev=0.2, point_spacing=0.02)
    assert list(df['index']) == [1, 2, 3]
    for row, line in zip(df.itertuples(index=False), lines):
        single = propagate_line_error(line.wavenumber, line.width, line.peak, 5.0e-9, 0.2, 0.02)
        assert row.wavenumber == pytest.approx(single.wavenumber)
        assert row.scale_error == pytest.approx(single.scale_error)
        assert row.stat_error == pytest.approx(single.stat_error)
        assert row.combined_error == pytest.approx(single.combined_error)
        if np.isnan(single.brault_error):
            assert np.isnan(row.brault_error)
        else:
            assert row.brault_error == pytest.approx(single.brault_error)

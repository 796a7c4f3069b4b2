import numpy as np
import pytest

from ftscal import run_calibration
from ftscal.calibrator import CalibrationReport, ListCalibrator
from ftscal.core.errors import ConfigurationError, DegenerateFitError, ErrorKind, Outcome
from ftscal.core.line import LineList, LineRecord
from ftscal.core.settings import CalibrationSettings


def _list(wavenumbers, peaks=None, source='', width=40.0):
    peaks = peaks if peaks is not None else [100.0] * len(wavenumbers)
    return LineList(
        lines=[LineRecord(index=i + 1, wavenumber_raw=w, peak=p, width_raw=width)
               for i, (w, p) in enumerate(zip(wavenumbers, peaks))],
        source=source,
    )


def example_lists():
    standard = _list([10000.000, 10001.000], source='standard.csv')
    measured = _list([9999.950, 10000.949], source='measured.csv')
    return measured, standard


def test_example_scenario_end_to_end():
    measured, standard = example_lists()
    outcome = run_calibration(measured, standard, settings=CalibrationSettings())
    assert outcome.ok, f"calibration failed: {outcome.error}"
    report = outcome.value
    assert isinstance(report, CalibrationReport)
    assert report.n_common == 2 and report.n_fitted == 2 and report.n_discarded == 0
    assert 4.9e-6 < report.correction < 5.2e-6
    assert np.isfinite(report.correction_error) and report.correction_error > 0.0

    calibrated = report.calibrated
    assert calibrated.wavenumber_correction == report.correction
    assert np.allclose(calibrated.wavenumbers(), measured.wavenumbers() * (1.0 + report.correction), rtol=1e-14)
    assert np.allclose(calibrated.wavenumbers(), standard.wavenumbers(), atol=1e-3)

    df = report.to_frame()
    assert list(df['index']) == [1, 2]
    assert (df['combined_error'] >= df['scale_error']).all()

    meta = report.to_dict()
    assert meta['line_list'] == 'measured.csv' and meta['standard_list'] == 'standard.csv'
    assert meta['settings']['tolerance'] == 0.1
    assert meta['converged'] is True


def test_weak_line_fails_with_degenerate_fit():
    measured = _list([9999.95], peaks=[10.0])
    standard = _list([10000.0])
    outcome = run_calibration(measured, standard, settings=CalibrationSettings(amplitude_threshold=50.0))
    assert not outcome.ok
    assert outcome.kind is ErrorKind.DEGENERATE_FIT
    with pytest.raises(DegenerateFitError):
        outcome.unwrap()


def test_disjoint_lists_fail_with_no_overlap():
    outcome = run_calibration(_list([100.0, 200.0]), _list([150.0, 250.0]), settings=CalibrationSettings())
    assert outcome.kind is ErrorKind.NO_OVERLAP


def test_empty_list_fails_with_no_data():
    outcome = run_calibration(_list([]), _list([150.0]), settings=CalibrationSettings())
    assert outcome.kind is ErrorKind.NO_DATA


@pytest.mark.parametrize('field', ['tolerance', 'amplitude_threshold', 'discard_limit'])
def test_negative_settings_rejected_before_any_work(field):
    settings = CalibrationSettings(**{field: -1.0})
    with pytest.raises(ConfigurationError):
        ListCalibrator(settings=settings)
    created = ListCalibrator.create(settings=settings)
    assert created.kind is ErrorKind.CONFIGURATION
    measured, standard = example_lists()
    assert run_calibration(measured, standard, settings=settings).kind is ErrorKind.CONFIGURATION


def test_default_session_reads_configuration_file():
    session = ListCalibrator()
    assert session.settings.tolerance == pytest.approx(0.1)
    assert session.settings.amplitude_threshold == pytest.approx(50.0)
    assert session.settings.discard_limit == pytest.approx(2.0)
    assert session.settings.point_spacing == pytest.approx(0.03)


def test_operations_before_loading_report_no_data():
    session = ListCalibrator(settings=CalibrationSettings())
    for op in (session.find_common_lines, session.find_correction, session.remove_bad_lines,
               session.calibrated_lines, session.line_errors, session.report):
        outcome = op()
        assert isinstance(outcome, Outcome)
        assert outcome.kind is ErrorKind.NO_DATA, op.__name__


def test_failed_operation_keeps_previous_results():
    measured, standard = example_lists()
    session = ListCalibrator(settings=CalibrationSettings()).set_lists(measured, standard)
    session.find_common_lines().unwrap()
    session.find_fitted_lines().unwrap()
    session.refine().unwrap()
    correction = session.correction
    fitted = list(session.fitted_lines)

    session.settings.discard_limit = 0.0
    outcome = session.refine()
    assert outcome.kind is ErrorKind.DEGENERATE_FIT
    assert session.correction == correction
    assert session.fitted_lines == fitted
    assert session.discarded_lines == []


def test_residual_frame_lists_fitted_and_discarded_lines():
    standard_wn = 15000.0 + 40.0 * np.arange(8)
    rel = np.array([0.02, -0.02, 0.01, -0.01, 0.03, -0.03, 0.0, 6.0]) * 1e-6
    measured = _list(list(standard_wn * (1.0 + rel) / (1.0 + 2.0e-6)))
    standard = _list(list(standard_wn))
    session = ListCalibrator(settings=CalibrationSettings()).set_lists(measured, standard)
    session.find_common_lines().unwrap()
    session.find_fitted_lines().unwrap()
    session.refine().unwrap()

    df = session.residual_frame().unwrap()
    assert len(df) == 8
    assert list(df.loc[df['status'] == 'discarded', 'index']) == [8]
    fitted = df[df['status'] == 'fitted']
    assert (fitted['residual'].abs() < 1e-7).all()
    assert (fitted['residual_uncorrected'] - fitted['residual']).abs().min() > 1e-6

    errors = session.line_errors().unwrap()
    assert len(errors) == len(measured)
    calibrated = session.calibrated_lines().unwrap()
    assert calibrated.wavenumber_correction == session.correction


def test_unsorted_lists_are_sorted_on_attach():
    measured, standard = example_lists()
    reversed_measured = LineList(lines=list(reversed(measured.lines)), source=measured.source)
    session = ListCalibrator(settings=CalibrationSettings()).set_lists(reversed_measured, standard)
    assert session.line_list.is_sorted()
    assert len(session.find_common_lines().unwrap()) == 2


@pytest.mark.parametrize('field, value', [('discard_limit', -1.0), ('solver_tolerance', 1e-20)])
def test_settings_changed_after_creation_are_rechecked(field, value):
    measured, standard = example_lists()
    session = ListCalibrator(settings=CalibrationSettings()).set_lists(measured, standard)
    session.find_common_lines().unwrap()
    session.find_fitted_lines().unwrap()
    fitted = list(session.fitted_lines)

    setattr(session.settings, field, value)
    outcome = session.refine()
    assert outcome.kind is ErrorKind.CONFIGURATION
    assert session.fitted_lines == fitted
    assert session.fit is None

    setattr(session.settings, field, getattr(CalibrationSettings(), field))
    assert session.refine().ok

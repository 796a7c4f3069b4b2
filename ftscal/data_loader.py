"""
Line list loading boundary.

Instrument-specific list formats are read by external collaborators; this
module defines what the calibration core expects from them and provides a
tabular adapter for line lists already held as CSV or DataFrames.
"""
import logging
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

import numpy as np
import pandas as pd

from .core.errors import ConfigurationError, ListOpenError, MalformedHeaderError, MalformedRecordError
from .core.line import LineList, LineRecord

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['index', 'wavenumber', 'peak']

# column -> (LineRecord field, converter, default)
OPTIONAL_COLUMNS = {
    'width': ('width', float, 0.0),
    'damping': ('damping', float, 0.0),
    'eqwidth': ('eqwidth', float, 0.0),
    'itn': ('itn', int, 0),
    'hold': ('hold', int, 0),
    'tags': ('tags', str, '.'),
    'epstot': ('epstot', float, 0.0),
    'epsevn': ('epsevn', float, 0.0),
    'epsodd': ('epsodd', float, 0.0),
    'epsran': ('epsran', float, 0.0),
    'identification': ('identification', str, ''),
}


class LineListLoader(Protocol):
    """Anything that turns a source into a wavenumber-sorted LineList.

    Implementations report failures with ListOpenError, MalformedHeaderError
    or MalformedRecordError.
    """

    def __call__(self, source: Union[str, Path]) -> LineList:
        ...


def lines_from_frame(frame: pd.DataFrame,
                     source: str = '',
                     wavenumber_correction: float = 0.0,
                     air_correction: float = 0.0,
                     intensity_calibration: float = 0.0,
                     required_columns: Optional[List[str]] = None) -> LineList:
    """
    Build a LineList from a table of lines.

    Args:
        frame: One row per line. Must contain the required columns
               (index, wavenumber, peak); other known columns are optional.
        source: Name recorded on every line and on the list
        wavenumber_correction: Correction already applied to the wavenumbers
                               and widths in ``frame``; it is divided back out.
        air_correction: Header-level air correction factor
        intensity_calibration: Header-level intensity calibration factor
        required_columns: Override the set of mandatory columns

    Returns:
        LineList sorted by ascending wavenumber
    """
    required = required_columns or REQUIRED_COLUMNS
    columns = [str(c).strip().lower() for c in frame.columns]
    missing = [c for c in required if c not in columns]
    if missing:
        raise MalformedHeaderError(f"Line list {source or '<frame>'} is missing columns: {', '.join(missing)}")
    df = frame.copy()
    df.columns = columns

    records: List[LineRecord] = []
    for row_no, row in enumerate(df.to_dict('records'), start=1):
        kwargs: Dict[str, object] = {}
        try:
            index = int(row['index'])
            wavenumber = float(row['wavenumber'])
            peak = float(row['peak'])
            for column, (name, convert, default) in OPTIONAL_COLUMNS.items():
                value = row.get(column, default)
                if value is None or (isinstance(value, float) and np.isnan(value)):
                    value = default
                kwargs[name] = convert(value)
        except (TypeError, ValueError) as e:
            raise MalformedRecordError(f"Error reading row {row_no} in {source or '<frame>'}: {e}") from e
        if not np.isfinite(wavenumber):
            raise MalformedRecordError(f"Error reading row {row_no} in {source or '<frame>'}: wavenumber is not a number")
        width = kwargs.pop('width')
        try:
            records.append(LineRecord.from_corrected(
                index=index,
                wavenumber=wavenumber,
                width=width,
                wavenumber_correction=wavenumber_correction,
                peak=peak,
                air_correction=air_correction,
                intensity_calibration=intensity_calibration,
                source=source,
                **kwargs,
            ))
        except MalformedRecordError as e:
            raise MalformedRecordError(f"Error reading row {row_no} in {source or '<frame>'}: {e}") from e

    records.sort(key=lambda ln: ln.wavenumber)
    return LineList(
        lines=tuple(records),
        source=source,
        wavenumber_correction=wavenumber_correction,
        air_correction=air_correction,
        intensity_calibration=intensity_calibration,
    )


def load_line_list(file_path: Union[str, Path],
                   wavenumber_correction: float = 0.0,
                   air_correction: float = 0.0,
                   intensity_calibration: float = 0.0,
                   required_columns: Optional[List[str]] = None,
                   **kwargs) -> LineList:
    """
    Load a line list from a delimited text file with a header row.

    Args:
        file_path: Path to the file
        wavenumber_correction: Correction already applied to the file values
        air_correction: Header-level air correction factor
        intensity_calibration: Header-level intensity calibration factor
        required_columns: Override the set of mandatory columns
        **kwargs: Additional arguments to pass to pd.read_csv

    Returns:
        LineList sorted by ascending wavenumber
    """
    path = Path(file_path)
    if not path.is_file():
        logger.error(f"Cannot read {path}. Check the file exists and has read permissions.")
        raise ListOpenError(f"Cannot read {path}")
    try:
        data = pd.read_csv(path, **kwargs)
    except pd.errors.EmptyDataError as e:
        raise MalformedHeaderError(f"Line list {path} has no header: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Error loading data from {path}: {str(e)}")
        raise ListOpenError(f"Cannot read {path}: {e}") from e
    except pd.errors.ParserError as e:
        raise MalformedRecordError(f"Line list {path} could not be parsed: {e}") from e

    lines = lines_from_frame(
        data,
        source=str(path),
        wavenumber_correction=wavenumber_correction,
        air_correction=air_correction,
        intensity_calibration=intensity_calibration,
        required_columns=required_columns,
    )
    logger.info(f"Successfully loaded {len(lines)} lines from {path}")
    return lines


def loader_from_config(config: Optional[Dict[str, Any]] = None) -> LineListLoader:
    """CSV loader preconfigured from the ``data`` section of a config mapping."""
    data_cfg = (config or {}).get('data', {}) or {}
    try:
        factors = {
            name: float(data_cfg.get(name, 0.0))
            for name in ('wavenumber_correction', 'air_correction', 'intensity_calibration')
        }
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Line list header factors must be numeric: {e}") from e
    if factors['wavenumber_correction'] <= -1.0:
        raise ConfigurationError(
            f"Wavenumber correction must be greater than -1, got {factors['wavenumber_correction']}"
        )
    return partial(load_line_list, required_columns=data_cfg.get('required_columns') or None, **factors)

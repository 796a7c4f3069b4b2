"""Pairing of measured lines with calibration standard lines."""

import logging
from typing import List, NamedTuple, Sequence

from .errors import NoDataError, NoOverlapError
from .line import LineRecord

logger = logging.getLogger(__name__)


class LinePair(NamedTuple):
    """Indices of a matched line in the measured and standard lists."""
    list_index: int
    standard_index: int

    def measured(self, lines: Sequence[LineRecord]) -> LineRecord:
        return lines[self.list_index]

    def standard(self, lines: Sequence[LineRecord]) -> LineRecord:
        return lines[self.standard_index]


def find_common_lines(measured: Sequence[LineRecord],
                      standard: Sequence[LineRecord],
                      tolerance: float) -> List[LinePair]:
    """Find lines common to both lists.

    Both lists must be sorted by ascending wavenumber. The lists are walked
    together; a pair is formed when the two current lines are closer than
    ``tolerance``, otherwise the pointer at the lower wavenumber moves on.
    Matching is greedy: the first candidate met in sort order wins.

    Args:
        measured: Uncalibrated line list
        standard: Calibration standard line list
        tolerance: Maximum allowed wavenumber difference (cm^-1), exclusive

    Returns:
        Pairs in ascending wavenumber order
    """
    if len(measured) == 0 or len(standard) == 0:
        raise NoDataError("Cannot match lines: one of the line lists is empty")

    logger.debug("Lines common to both experimental and reference line lists.")
    logger.debug("Index\tWavenumber (K)\tPeak Height\tRef Wavenumber (K)")

    pairs: List[LinePair] = []
    i_list = 0
    i_std = 0
    while i_list < len(measured) and i_std < len(standard):
        meas = measured[i_list]
        std = standard[i_std]
        difference = std.wavenumber - meas.wavenumber
        if abs(difference) < tolerance:
            pairs.append(LinePair(i_list, i_std))
            logger.debug(f"{meas.index}\t{meas.wavenumber:.6f}\t{meas.peak:.2f}\t{std.wavenumber:.6f}")
            i_list += 1
            i_std += 1
        elif std.wavenumber < meas.wavenumber:
            logger.debug(f"Reference line {std.index} ({std.wavenumber:.6f}K) is absent from the experiment.")
            i_std += 1
        else:
            i_list += 1

    if not pairs:
        logger.error("No common lines were found between the experimental and reference line lists.")
        raise NoOverlapError("No common lines were found between the experimental and reference line lists")
    return pairs


def select_fitted_lines(pairs: Sequence[LinePair],
                        measured: Sequence[LineRecord],
                        threshold: float) -> List[LinePair]:
    """Keep the pairs whose measured line has a peak amplitude >= ``threshold``."""
    if len(pairs) == 0:
        raise NoDataError("No common lines to select from")

    fitted = [p for p in pairs if p.measured(measured).peak >= threshold]

    logger.debug(f"Common lines of amplitude {threshold} or greater.")
    for p in fitted:
        line = p.measured(measured)
        logger.debug(f"{line.index}\t{line.wavenumber:.6f}\t{line.peak:.2f}")
    logger.info(f"{len(fitted)} of {len(pairs)} common lines pass the amplitude threshold")
    return fitted

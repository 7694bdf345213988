"""
Smoothing stage for position sources: trailing four-point cubic Bezier.
"""

import numpy as np

from .source import Source, PipelineContext
from ..sensors.types import Validity
from ..math.utils import bezier_weights
from ..logging_config import get_logger

logger = get_logger(__name__)

class BezierSmoother:
    """
    Moves each position sample onto a cubic Bezier through its neighbours.

    For sample i the control points are samples i-2 .. i+1 (p1..p4, the
    first two already smoothed). The curve parameter

        t = (t2 - t1) / (t4 - t1) + quality * (t3 - t2) / (t4 - t1)

    gives a point B and a time out_time on the curve; the sample moves to
    p1 + (B - p1) * (t3 - t1) / (out_time - t1), i.e. B rescaled back to the
    sample's own time. quality 0 smooths hardest, 1 leaves the path closest
    to the raw samples.
    """

    def __init__(self, quality: float):
        self.quality = quality

    def smooth_point(self, times, points) -> np.ndarray:
        """
        Smoothed third point of a four-point window.

        Args:
            times: Four corrected times
            points: 4x2 array of (latitude, longitude)

        Returns:
            New position of the third point; unchanged for degenerate windows
        """
        t1, t2, t3, t4 = [float(t) for t in times]
        points = np.asarray(points, dtype=float)

        span = t4 - t1
        if span <= 0:
            return points[2]

        t = (t2 - t1) / span + self.quality * (t3 - t2) / span
        weights = bezier_weights(t)
        curve_point = weights @ points
        out_time = weights @ np.array([t1, t2, t3, t4])

        if out_time - t1 <= 0:
            return points[2]

        return points[0] + (curve_point - points[0]) * (t3 - t1) / (out_time - t1)

    def run(self, source: Source, context: PipelineContext) -> bool:
        """
        Smooth every aligned sample whose window is complete.

        The last sample is taken as is once no more samples will arrive.

        Returns:
            True if preprocessed_count advanced
        """
        log = source.log
        start = source.preprocessed_count
        closed = source.raw_finished and source.aligned_count == source.assembled_count

        while source.preprocessed_count < source.aligned_count:
            index = source.preprocessed_count
            validity = int(log.get(index, "validity"))

            if index >= 2 and validity == Validity.ASSEMBLED:
                if index + 1 >= source.aligned_count and not closed:
                    break
                if index + 1 < source.aligned_count:
                    self._smooth(log, index)

            if validity == Validity.ASSEMBLED:
                log.update(index, validity=int(Validity.SMOOTHED))
            source.preprocessed_count = index + 1

        smoothed = source.preprocessed_count - start
        if smoothed:
            logger.debug("samples_smoothed", source=source.source_id, count=smoothed)
        return smoothed > 0

    def _smooth(self, log, index: int):
        low, high = index - 2, index + 2
        validity = log.column("validity", low, high)
        if np.any(validity == Validity.INVALID):
            return

        times = log.column("corrected_time", low, high)
        points = np.column_stack([log.column("latitude", low, high),
                                  log.column("longitude", low, high)])

        latitude, longitude = self.smooth_point(times, points)
        log.update(index, latitude=latitude, longitude=longitude)

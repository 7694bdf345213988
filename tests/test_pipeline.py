#!/usr/bin/env python3
"""
Unit tests for the individual pipeline stages.
"""

import unittest
import numpy as np
import math
import sys
import os

# Add package to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from navfusion.pipeline import (Source, SourceSnapshot, BezierSmoother, DistanceSimplifier,
                                HeadingSimplifier, find_bracket, external_estimate, corrected_time,
                                Getter, Overseer)
from navfusion.pipeline.simplifier import TrackSimplifier
from navfusion.errors import PipelineError
from navfusion.sensors.record_log import DATETIME_DTYPE
from navfusion.sensors.types import (Parameter, SourceKind, SourceDescriptor, Sample2D,
                                     TimeCorrectionEntry, Validity, QueryStatus)
from navfusion.math.utils import planar_distance
from navfusion.math.constants import EARTH_RADIUS_M, US_PER_DAY

US = 1000000
LAT0 = 48.0
LON0 = 11.0

def offset_position(north, east):
    """Coordinates of a point given in meters from (LAT0, LON0)."""
    latitude = LAT0 + math.degrees(north / EARTH_RADIUS_M)
    longitude = LON0 + math.degrees(east / (EARTH_RADIUS_M * math.cos(math.radians(LAT0))))
    return (latitude, longitude)

def make_source(points, validity=Validity.SMOOTHED, computed=False, closed=True, step_us=US):
    """Source whose log already holds aligned samples."""
    if computed:
        descriptor = SourceDescriptor("cog", Parameter.TRACK, "gnss", SourceKind.COMPUTED)
    else:
        descriptor = SourceDescriptor("gnss", Parameter.LATLONG, "gnss")

    source = Source(descriptor, block_size=64)
    for index, (latitude, longitude) in enumerate(points):
        time = index * step_us
        source.log.append(Sample2D(db_time=time, corrected_time=time, latitude=latitude,
                                   longitude=longitude, validity=validity))

    count = len(points)
    source.raw_cursor = count
    source.aligned_count = count
    source.preprocessed_count = count
    source.raw_finished = closed
    return source

class RecordingMixin:
    """Remembers every anchor chosen after the first one of a segment."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.anchors = []

    def _finish_segment(self, source, last):
        self.anchors.append(last)
        super()._finish_segment(source, last)

class RecordingDistanceSimplifier(RecordingMixin, DistanceSimplifier):
    pass

class RecordingHeadingSimplifier(RecordingMixin, HeadingSimplifier):
    pass

class TestBinarySearch(unittest.TestCase):
    """Test bracket search."""

    def test_bracketing_pair(self):
        times = np.array([0, 10, 20, 30])

        self.assertEqual(find_bracket(times, 15), (1, 2))
        self.assertEqual(find_bracket(times, 1), (0, 1))
        self.assertEqual(find_bracket(times, 29), (2, 3))

    def test_exact_hits(self):
        times = np.array([0, 10, 20, 30])

        for index, time in enumerate(times):
            self.assertEqual(find_bracket(times, time), (index, index))

    def test_outside(self):
        times = np.array([0, 10, 20, 30])

        self.assertIsNone(find_bracket(times, -1))
        self.assertIsNone(find_bracket(times, 31))
        self.assertIsNone(find_bracket(np.array([], dtype=np.int64), 0))

    def test_against_linear_scan(self):
        times = np.cumsum(np.random.default_rng(3).integers(1, 100, 200))

        for time in range(int(times[0]), int(times[-1]), 37):
            left, right = find_bracket(times, time)
            self.assertLessEqual(times[left], time)
            self.assertGreaterEqual(times[right], time)
            self.assertLessEqual(right - left, 1)

class TestTimeCorrection(unittest.TestCase):
    """Test corrected time and external estimates."""

    def make_snapshot(self, entries, finalized):
        rows = np.zeros(8, dtype=DATETIME_DTYPE)
        for index, (db_time, date, time_of_day, shift) in enumerate(entries):
            rows[index] = (db_time, date, time_of_day, shift, int(Validity.SIMPLIFIED))
        return SourceSnapshot(rows, len(entries), len(entries), finalized)

    def test_corrected_time_same_day(self):
        entry = TimeCorrectionEntry(db_time=0, external_date=10 * US_PER_DAY,
                                    external_time_of_day=23 * 3600 * US + 30 * 60 * US,
                                    drift_shift=5 * US, validity=Validity.SIMPLIFIED)
        sample_time = 23 * 3600 * US + 40 * 60 * US

        self.assertEqual(corrected_time(sample_time, entry), 10 * US_PER_DAY + sample_time + 5 * US)

    def test_corrected_time_rollover(self):
        """Test that an early sample paired with a late external time moves to the next day."""
        entry = TimeCorrectionEntry(db_time=0, external_date=10 * US_PER_DAY,
                                    external_time_of_day=23 * 3600 * US + 59 * 60 * US,
                                    drift_shift=5 * US, validity=Validity.SIMPLIFIED)
        sample_time = 10 * 60 * US

        self.assertEqual(corrected_time(sample_time, entry), 11 * US_PER_DAY + sample_time + 5 * US)

    def test_corrected_time_late_sample_after_midnight(self):
        """Test that a late sample paired with an early external time stays on the previous day."""
        entry = TimeCorrectionEntry(db_time=0, external_date=11 * US_PER_DAY,
                                    external_time_of_day=500000,
                                    drift_shift=100000, validity=Validity.SIMPLIFIED)
        sample_time = 86399 * US

        self.assertEqual(corrected_time(sample_time, entry), 10 * US_PER_DAY + sample_time + 100000)

    def test_estimate_between_entries(self):
        """Test the midpoint of absolute times and the smaller drift shift."""
        snapshot = self.make_snapshot([(100 * US, US_PER_DAY, 90 * US, 7 * US),
                                       (110 * US, US_PER_DAY, 100 * US, 3 * US)], finalized=False)

        status, entry = external_estimate(snapshot, 105 * US)

        self.assertEqual(status, QueryStatus.OK)
        self.assertEqual(entry.external_date, US_PER_DAY)
        self.assertEqual(entry.external_time_of_day, 95 * US)
        self.assertEqual(entry.drift_shift, 3 * US)

    def test_estimate_edges(self):
        entries = [(100 * US, US_PER_DAY, 90 * US, 7 * US), (110 * US, US_PER_DAY, 100 * US, 3 * US)]

        status, entry = external_estimate(self.make_snapshot(entries, False), 50 * US)
        self.assertEqual(status, QueryStatus.OK)
        self.assertEqual(entry.external_time_of_day, 90 * US)

        status, entry = external_estimate(self.make_snapshot(entries, False), 120 * US)
        self.assertEqual(status, QueryStatus.NOT_YET_AVAILABLE)
        self.assertIsNone(entry)

        status, entry = external_estimate(self.make_snapshot(entries, True), 120 * US)
        self.assertEqual(status, QueryStatus.OK)
        self.assertEqual(entry.external_time_of_day, 100 * US)

    def test_estimate_without_entries(self):
        self.assertEqual(external_estimate(self.make_snapshot([], False), 0)[0],
                         QueryStatus.NOT_YET_AVAILABLE)
        self.assertEqual(external_estimate(self.make_snapshot([], True), 0)[0],
                         QueryStatus.OUT_OF_RANGE)

class TestBezierSmoother(unittest.TestCase):
    """Test the four-point smoother."""

    def test_colinear_evenly_timed_points_unchanged(self):
        points = np.array([[0.0, 0.0], [1.0, 2.0], [2.0, 4.0], [3.0, 6.0]])

        for quality in (0.0, 0.5, 1.0):
            smoothed = BezierSmoother(quality).smooth_point([0, 1, 2, 3], points)
            np.testing.assert_array_almost_equal(smoothed, points[2])

    def test_constant_velocity_uneven_timing_unchanged(self):
        times = np.array([0.0, 3.0, 4.0, 9.0])
        velocity = np.array([0.5, -0.25])
        points = np.outer(times, velocity) + np.array([48.0, 11.0])

        smoothed = BezierSmoother(0.3).smooth_point(times, points)
        np.testing.assert_array_almost_equal(smoothed, points[2])

    def test_degenerate_window(self):
        points = np.array([[0.0, 0.0], [1.0, 0.0], [5.0, 5.0], [3.0, 0.0]])
        smoothed = BezierSmoother(0.5).smooth_point([7, 7, 7, 7], points)
        np.testing.assert_array_equal(smoothed, points[2])

    def test_zigzag_is_pulled_in(self):
        points = np.array([[0.0, 1.0], [1.0, -1.0], [2.0, 1.0], [3.0, -1.0]])
        smoothed = BezierSmoother(0.5).smooth_point([0, 1, 2, 3], points)

        self.assertAlmostEqual(smoothed[0], 2.0)
        self.assertAlmostEqual(smoothed[1], -1.0 / 3.0)

    def test_last_sample_waits_until_closed(self):
        points = [offset_position(index * 2.0, 0.0) for index in range(6)]
        source = make_source(points, validity=Validity.ASSEMBLED, closed=False)
        source.preprocessed_count = 0
        smoother = BezierSmoother(0.5)

        self.assertTrue(smoother.run(source, None))
        self.assertEqual(source.preprocessed_count, 5)
        self.assertFalse(smoother.run(source, None))

        source.raw_finished = True
        self.assertTrue(smoother.run(source, None))
        self.assertEqual(source.preprocessed_count, 6)
        self.assertTrue(all(source.log[i].validity == Validity.SMOOTHED for i in range(6)))

    def test_invalid_and_fixed_samples_not_moved(self):
        points = [offset_position(index * 2.0, 3.0 if index % 2 else -3.0) for index in range(8)]
        source = make_source(points, validity=Validity.ASSEMBLED)
        source.preprocessed_count = 0
        source.log.update(3, validity=int(Validity.INVALID))
        source.log.update(7, validity=int(Validity.USER_FIXED))

        BezierSmoother(0.5).run(source, None)

        # Windows holding the invalid sample pass their sample through
        for index in (2, 4, 5):
            self.assertEqual(source.log[index].longitude, points[index][1])
        self.assertNotAlmostEqual(source.log[6].longitude, points[6][1], places=7)

        self.assertEqual(source.log[3].validity, Validity.INVALID)
        self.assertEqual(source.log[7].validity, Validity.USER_FIXED)
        self.assertEqual(source.log[7].position, points[7])
        self.assertEqual(source.preprocessed_count, 8)

class TestDistanceSimplifier(unittest.TestCase):
    """Test distance-threshold simplification."""

    def random_track(self, count=300, seed=7):
        rng = np.random.default_rng(seed)
        north = np.cumsum(rng.uniform(0.2, 1.5, count))
        east = rng.normal(0.0, 0.3, count)
        return [offset_position(n, e) for n, e in zip(north, east)]

    def check_anchor_spacing(self, threshold):
        points = self.random_track()
        source = make_source(points)
        simplifier = RecordingDistanceSimplifier(threshold)

        self.assertTrue(simplifier.run(source, None))

        anchors = [0] + simplifier.anchors
        self.assertEqual(anchors[-1], len(points) - 1)
        # Every anchor but the closing one is farther than the threshold from its predecessor
        for first, second in zip(anchors[:-2], anchors[1:-1]):
            self.assertGreater(planar_distance(*points[first], *points[second]), threshold)

        self.assertEqual(source.processed_count, len(points))
        self.assertTrue(source.check_invariant())
        self.assertTrue(all(sample.validity == Validity.SIMPLIFIED for sample in source.log))

    def test_quality_zero_spacing(self):
        self.check_anchor_spacing(10.0)

    def test_quality_one_spacing(self):
        self.check_anchor_spacing(1.0)

    def test_intermediate_samples_projected(self):
        """Test linear time interpolation between anchors."""
        points = [offset_position(0.0, 0.0), offset_position(1.0, 2.0),
                  offset_position(2.0, -2.0), offset_position(12.0, 0.0)]
        source = make_source(points)

        DistanceSimplifier(10.0).run(source, None)

        for index in (1, 2):
            expected = np.array(points[0]) + (np.array(points[3]) - np.array(points[0])) * index / 3.0
            np.testing.assert_array_almost_equal(source.log[index].position, expected, decimal=10)
        self.assertEqual(source.log[3].position, points[3])

    def test_waits_for_more_samples(self):
        points = [offset_position(index * 0.5, 0.0) for index in range(10)]
        source = make_source(points, closed=False)

        self.assertTrue(DistanceSimplifier(10.0).run(source, None))
        self.assertEqual(source.processed_count, 1)
        self.assertFalse(DistanceSimplifier(10.0).run(source, None))

        source.raw_finished = True
        self.assertTrue(DistanceSimplifier(10.0).run(source, None))
        self.assertEqual(source.processed_count, 10)

    def test_invalid_sample_splits_segment(self):
        points = [offset_position(index * 0.1, 0.0) for index in range(10)]
        source = make_source(points)
        source.log.update(5, validity=int(Validity.INVALID))
        simplifier = RecordingDistanceSimplifier(10.0)

        simplifier.run(source, None)

        self.assertEqual(simplifier.anchors, [4, 9])
        self.assertEqual(source.log[5].validity, Validity.INVALID)
        self.assertEqual(source.processed_count, 10)
        for index in (0, 1, 4, 6, 9):
            self.assertEqual(source.log[index].validity, Validity.SIMPLIFIED)

    def test_user_fixed_sample_is_anchor(self):
        points = [offset_position(index * 0.1, 0.0) for index in range(10)]
        source = make_source(points)
        source.log.update(3, latitude=50.0, longitude=12.0, validity=int(Validity.USER_FIXED))
        simplifier = RecordingDistanceSimplifier(10.0)

        simplifier.run(source, None)

        self.assertEqual(simplifier.anchors[0], 3)
        self.assertEqual(source.log[3].position, (50.0, 12.0))

class TestHeadingSimplifier(unittest.TestCase):
    """Test minimum heading deviation simplification."""

    def test_straight_track_takes_farthest_candidates(self):
        points = [offset_position(index * 6.0, 0.0) for index in range(30)]
        source = make_source(points, computed=True)
        simplifier = RecordingHeadingSimplifier(1.0, 50.0)

        simplifier.run(source, None)

        self.assertEqual(simplifier.anchors, [8, 16, 24, 29])
        self.assertEqual(source.processed_count, 30)

    def test_smallest_bearing_change_wins(self):
        points = [
            offset_position(0.0, 0.0),
            offset_position(60.0, 0.0),              # beyond the radius: next anchor
            offset_position(74.14, 14.14),           # 20 m at 45 degrees
            offset_position(75.0, 0.0),              # 15 m straight on
            offset_position(160.0, 0.0),             # beyond the radius
        ]
        source = make_source(points, computed=True)
        simplifier = RecordingHeadingSimplifier(1.0, 50.0)

        simplifier.run(source, None)

        self.assertEqual(simplifier.anchors, [1, 3, 4])
        expected = (np.array(points[1]) + np.array(points[3])) / 2.0
        np.testing.assert_array_almost_equal(source.log[2].position, expected, decimal=10)

    def test_close_candidates_ignored(self):
        points = [
            offset_position(0.0, 0.0),
            offset_position(60.0, 0.0),
            offset_position(74.14, 14.14),
            offset_position(75.0, 0.0),
            offset_position(160.0, 0.0),
        ]
        source = make_source(points, computed=True)
        simplifier = RecordingHeadingSimplifier(16.0, 50.0)

        simplifier.run(source, None)

        self.assertEqual(simplifier.anchors[:2], [1, 2])

    def test_waits_for_sample_beyond_radius(self):
        points = [offset_position(index * 6.0, 0.0) for index in range(5)]
        source = make_source(points, computed=True, closed=False)

        HeadingSimplifier(1.0, 50.0).run(source, None)
        self.assertEqual(source.processed_count, 1)

class TestTrackSimplifier(unittest.TestCase):
    """Test the shared simplifier base."""

    def test_base_cannot_be_instantiated(self):
        with self.assertRaises(TypeError):
            TrackSimplifier(5.0)

    def test_variants_are_track_simplifiers(self):
        self.assertIsInstance(DistanceSimplifier(5.0), TrackSimplifier)
        self.assertIsInstance(HeadingSimplifier(5.0, 50.0), TrackSimplifier)

class TestOverseer(unittest.TestCase):
    """Test the progress index check of the pipeline driver."""

    def setUp(self):
        self.overseer = Overseer(Getter(10000))
        self.overseer.stages = lambda source, context: ()

    def test_ordered_indices_pass(self):
        source = make_source([offset_position(0.0, 0.0), offset_position(5.0, 0.0)])

        self.assertFalse(self.overseer.advance([source], None))

    def test_out_of_order_indices_raise(self):
        source = make_source([offset_position(0.0, 0.0), offset_position(5.0, 0.0)])
        source.processed_count = 3

        with self.assertRaises(PipelineError):
            self.overseer.advance([source], None)

if __name__ == '__main__':
    unittest.main(verbosity=2)

"""Tests for the crop filter and the chromatographic median filter."""

import logging

import numpy as np
import pytest

from lcmsfast.exceptions import ComputationError, TaskCanceled, ValidationError
from lcmsfast.filters import (
    ChromatographicMedianFilter,
    CropFilter,
    CropFilterParams,
    MedianFilterParams,
    crop_file,
    crop_scan,
    median_filter_file,
    median_filter_scans,
)
from lcmsfast.methods import run_method
from lcmsfast.project import Project
from lcmsfast.scans import RawDataFile, RawScan
from lcmsfast.tasks import CancellationToken, TaskExecutor


def _single_point_file(file_id, intensities, mz=300.0, rt_step=1.0):
    scans = [
        RawScan(i, 1, i * rt_step, np.array([mz]), np.array([value]))
        for i, value in enumerate(intensities)
    ]
    return RawDataFile(file_id, scans)


@pytest.fixture
def alternating_file():
    """MS1 and MS2 scans alternating every 50 s from 0 to 700 s."""
    mz = np.array([50.0, 100.0, 150.0, 200.0, 250.0])
    scans = [
        RawScan(i, 1 if i % 2 == 0 else 2, 50.0 * i, mz, np.full(5, 10.0 * (i + 1)))
        for i in range(15)
    ]
    return RawDataFile("x", scans)


class TestCropFilter:
    """Test the m/z x RT crop."""

    def test_crop_scan_inclusive(self):
        scan = RawScan(0, 1, 0.0, np.array([99.0, 100.0, 150.0, 200.0, 201.0]), np.ones(5))
        cropped = crop_scan(scan, 100.0, 200.0)
        np.testing.assert_array_equal(cropped.mz, [100.0, 150.0, 200.0])
        assert cropped.rt == scan.rt

    def test_default_window(self, alternating_file):
        result = crop_file(alternating_file, CropFilterParams())

        assert result.file_id == "x cropped"
        assert result.parent == "x"
        assert len(result) == 7
        assert all(scan.ms_level == 1 for scan in result)
        assert [scan.rt for scan in result] == [0.0, 100.0, 200.0, 300.0, 400.0, 500.0, 600.0]
        for scan in result:
            np.testing.assert_array_equal(scan.mz, [100.0, 150.0, 200.0, 250.0])

    def test_all_points_inside_window(self, alternating_file):
        result = CropFilter().run(alternating_file, CropFilterParams(min_mz=100.0, max_mz=200.0))

        for scan in result:
            assert scan.ms_level == 1
            assert 0.0 <= scan.rt <= 600.0
            assert np.all((scan.mz >= 100.0) & (scan.mz <= 200.0))

    def test_inverted_window_runs_nothing(self, alternating_file):
        project = Project()
        with TaskExecutor(max_workers=1) as executor:
            with pytest.raises(ValidationError, match="Minimum M/Z"):
                run_method(
                    CropFilter(), [alternating_file],
                    CropFilterParams(min_mz=200.0, max_mz=100.0), executor, project,
                )
        assert project.file_ids == []
        assert project.history == []

    def test_input_unchanged(self, alternating_file):
        crop_file(alternating_file, CropFilterParams(min_mz=120.0, max_mz=200.0))
        assert len(alternating_file) == 15
        assert len(alternating_file[0]) == 5

    def test_ms2_level(self, alternating_file):
        result = crop_file(alternating_file, CropFilterParams(ms_level=2, min_rt=100.0))
        assert [scan.rt for scan in result] == [150.0, 250.0, 350.0, 450.0, 550.0]

    def test_empty_scans_are_kept(self, alternating_file):
        result = crop_file(alternating_file, CropFilterParams(min_mz=300.0, max_mz=400.0))
        assert len(result) == 7
        assert all(len(scan) == 0 for scan in result)

    def test_empty_window_warns(self, alternating_file, caplog):
        params = CropFilterParams(min_rt=610.0, max_rt=640.0)
        with caplog.at_level(logging.WARNING):
            result = crop_file(alternating_file, params)
        assert len(result) == 0
        assert "contains no MS1 scans" in caplog.text

    def test_cancellation(self, alternating_file):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(TaskCanceled):
            CropFilter().run(alternating_file, CropFilterParams(), token)


class TestMedianFilterScans:
    """Test the flat-array median kernel."""

    def test_closest_point_in_neighbour(self):
        mz = np.array([300.0, 299.95, 300.02, 300.0])
        intensity = np.array([40.0, 10.0, 50.0, 60.0])
        offsets = np.array([0, 1, 3, 4], dtype=np.int64)

        filtered = median_filter_scans(mz, intensity, offsets, 1, 2, 1, 0.1)

        # Scan 1, point 300.02 sees [40, 50, 60]
        assert filtered[1] == 50.0

    def test_no_match_counts_as_zero(self):
        mz = np.array([300.0, 300.0, 500.0, 300.0])
        intensity = np.array([100.0, 100.0, 1000.0, 100.0])
        offsets = np.array([0, 1, 3, 4], dtype=np.int64)

        filtered = median_filter_scans(mz, intensity, offsets, 0, 3, 1, 0.1)

        np.testing.assert_array_equal(filtered, [100.0, 100.0, 0.0, 100.0])


class TestMedianFilterFile:
    """Test the whole-file median filter."""

    def test_spike_removed(self):
        raw = _single_point_file("raw", [100.0, 100.0, 5000.0, 100.0, 100.0])
        result = median_filter_file(raw, MedianFilterParams(one_sided_window_length=1))

        assert result.file_id == "raw filtered"
        assert result.parent == "raw"
        assert [scan.intensity[0] for scan in result] == [100.0] * 5
        assert raw[2].intensity[0] == 5000.0

    def test_edge_scans_keep_own_intensity(self):
        raw = _single_point_file("raw", [10.0, 1.0, 1.0, 1.0])
        result = median_filter_file(raw, MedianFilterParams(one_sided_window_length=1))
        assert [scan.intensity[0] for scan in result] == [10.0, 1.0, 1.0, 1.0]

    def test_repeats_until_stable(self):
        raw = _single_point_file("raw", [10.0, 100.0, 10.0, 100.0, 10.0, 100.0, 10.0])
        result = median_filter_file(raw, MedianFilterParams(one_sided_window_length=1))
        assert [scan.intensity[0] for scan in result] == [10.0] * 7

    def test_reapplication_is_stable(self):
        rng = np.random.default_rng(7)
        scans = []
        for i in range(30):
            n_points = int(rng.integers(1, 6))
            mz = np.sort(rng.choice([200.0, 300.0, 450.0, 600.0, 750.0], n_points, replace=False))
            mz = mz + rng.uniform(-0.01, 0.01, n_points)
            scans.append(RawScan(i, 1, float(i), mz, rng.uniform(10.0, 1000.0, n_points)))
        params = MedianFilterParams(one_sided_window_length=2)

        once = median_filter_file(RawDataFile("raw", scans), params)
        twice = median_filter_file(once, params)

        assert len(twice) == len(once)
        for first, second in zip(once, twice):
            np.testing.assert_array_equal(second.mz, first.mz)
            np.testing.assert_array_equal(second.intensity, first.intensity)

    def test_isolated_point_dropped(self):
        scans = [
            RawScan(0, 1, 0.0, np.array([300.0]), np.array([100.0])),
            RawScan(1, 1, 1.0, np.array([300.0, 500.0]), np.array([100.0, 1000.0])),
            RawScan(2, 1, 2.0, np.array([300.0]), np.array([100.0])),
        ]
        result = median_filter_file(RawDataFile("raw", scans), MedianFilterParams())

        np.testing.assert_array_equal(result[1].mz, [300.0])
        np.testing.assert_array_equal(result[1].intensity, [100.0])

    def test_other_levels_pass_through(self):
        ms2 = RawScan(1, 2, 0.5, np.array([150.0]), np.array([7.0]))
        scans = [
            RawScan(0, 1, 0.0, np.array([300.0]), np.array([100.0])),
            ms2,
            RawScan(2, 1, 1.0, np.array([300.0]), np.array([100.0])),
        ]
        result = median_filter_file(RawDataFile("raw", scans), MedianFilterParams())

        assert len(result) == 3
        assert result[1] is ms2

    def test_step_stable(self):
        raw = _single_point_file("raw", [10.0] * 5 + [500.0] * 5)
        params = MedianFilterParams(one_sided_window_length=2)
        result = median_filter_file(raw, params)
        assert [scan.intensity[0] for scan in result] == [10.0] * 5 + [500.0] * 5

    def test_no_scans(self):
        with pytest.raises(ComputationError, match="no MS1 scans"):
            median_filter_file(RawDataFile("empty", []), MedianFilterParams())

    def test_non_finite(self):
        raw = _single_point_file("raw", [100.0, np.nan, 100.0])
        with pytest.raises(ComputationError, match="non-finite"):
            median_filter_file(raw, MedianFilterParams())

    def test_algorithm_run(self):
        raw = _single_point_file("raw", [100.0, 100.0, 5000.0, 100.0, 100.0])
        filt = ChromatographicMedianFilter()
        params = filt.validate(MedianFilterParams())

        result = filt.run(raw, params)

        assert filt.name == "Chromatographic median filter"
        assert max(scan.base_peak_intensity for scan in result) == 100.0

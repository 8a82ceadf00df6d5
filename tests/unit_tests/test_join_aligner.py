"""Tests for the join aligner."""

import numpy as np
import pytest

from lcmsfast.alignment import (
    AlignmentResult,
    AlignmentRow,
    JoinAligner,
    JoinAlignerParams,
    find_candidate_pairs,
    greedy_assign,
    join_align,
    match_peaks_to_rows,
    match_score,
)
from lcmsfast.exceptions import TaskCanceled, ValidationError
from lcmsfast.peakpicking import Peak, PeakList
from lcmsfast.tasks import CancellationToken


def _peak(file_id, mz, rt, height=1000.0, area=5000.0):
    return Peak(file_id, mz, rt - 3.0, rt + 3.0, rt, height, area)


def _peak_list(file_id, features):
    """PeakList from (m/z, RT) pairs."""
    return PeakList(file_id, tuple(_peak(file_id, mz, rt) for mz, rt in features), "test")


class TestCandidatePairs:
    """Test the tolerance window search."""

    def test_closed_boundaries(self):
        rows_mz, rows_rt = np.array([100.0]), np.array([60.0])
        peaks_mz, peaks_rt = np.array([100.25]), np.array([75.0])

        pair_rows, pair_peaks, distances = find_candidate_pairs(
            rows_mz, rows_rt, peaks_mz, peaks_rt,
            np.array([0], dtype=np.int64), 0.25, 15.0, False,
        )

        np.testing.assert_array_equal(pair_rows, [0])
        np.testing.assert_array_equal(pair_peaks, [0])
        assert distances[0] == pytest.approx(np.sqrt(2.0))

    @pytest.mark.parametrize("row, peak, expected", [
        ((100.0, 60.0), (100.2, 60.0), 1.0),
        ((100.0, 10.1), (100.0, 25.1), 1.0),
        ((300.3, 0.3), (300.1, 15.3), np.sqrt(2.0)),
    ])
    def test_decimal_boundaries(self, row, peak, expected):
        pair_rows, _, distances = find_candidate_pairs(
            np.array([row[0]]), np.array([row[1]]), np.array([peak[0]]), np.array([peak[1]]),
            np.array([0], dtype=np.int64), 0.2, 15.0, False,
        )
        assert len(pair_rows) == 1
        assert distances[0] == pytest.approx(expected)

    def test_just_outside(self):
        pair_rows, _, _ = find_candidate_pairs(
            np.array([100.0]), np.array([60.0]),
            np.array([100.25 + 1e-6]), np.array([60.0]),
            np.array([0], dtype=np.int64), 0.25, 15.0, False,
        )
        assert len(pair_rows) == 0

    def test_decimal_just_outside(self):
        mz_outside, _, _ = find_candidate_pairs(
            np.array([100.0]), np.array([60.0]),
            np.array([100.2 + 1e-6]), np.array([60.0]),
            np.array([0], dtype=np.int64), 0.2, 15.0, False,
        )
        rt_outside, _, _ = find_candidate_pairs(
            np.array([100.0]), np.array([10.1]),
            np.array([100.0]), np.array([25.1 + 1e-6]),
            np.array([0], dtype=np.int64), 0.2, 15.0, False,
        )
        assert len(mz_outside) == 0
        assert len(rt_outside) == 0

    def test_zero_tolerance_exact_match(self):
        pair_rows, _, distances = find_candidate_pairs(
            np.array([100.0]), np.array([60.0]),
            np.array([100.0]), np.array([60.0]),
            np.array([0], dtype=np.int64), 0.0, 0.0, False,
        )
        assert len(pair_rows) == 1
        assert distances[0] == 0.0

    def test_relative_window_uses_larger_rt(self):
        forward, _, _ = find_candidate_pairs(
            np.array([300.0]), np.array([100.0]), np.array([300.0]), np.array([111.0]),
            np.array([0], dtype=np.int64), 0.2, 0.1, True,
        )
        backward, _, _ = find_candidate_pairs(
            np.array([300.0]), np.array([111.0]), np.array([300.0]), np.array([100.0]),
            np.array([0], dtype=np.int64), 0.2, 0.1, True,
        )
        assert len(forward) == 1
        assert len(backward) == 1

    def test_match_score(self):
        assert match_score(0.0) == 1.0
        assert match_score(1.0) == 0.5


class TestGreedyAssign:
    """Test one-to-one assignment."""

    def test_each_row_and_peak_used_once(self):
        pair_rows = np.array([0, 1, 0, 1], dtype=np.int64)
        pair_peaks = np.array([0, 0, 1, 1], dtype=np.int64)
        np.testing.assert_array_equal(greedy_assign(pair_rows, pair_peaks, 2, 2), [0, 1])

    def test_unassigned_rows(self):
        pair_rows = np.array([0, 1], dtype=np.int64)
        pair_peaks = np.array([0, 0], dtype=np.int64)
        np.testing.assert_array_equal(greedy_assign(pair_rows, pair_peaks, 3, 1), [0, -1, -1])


class TestMatchPeaksToRows:
    """Test best-first matching and the tie-break rule."""

    def test_best_row_wins(self):
        params = JoinAlignerParams(mz_tolerance=0.2)
        assignment = match_peaks_to_rows(
            np.array([100.0, 100.1]), np.array([60.0, 60.0]),
            np.array([100.08]), np.array([60.0]), params,
        )
        np.testing.assert_array_equal(assignment, [-1, 0])

    def test_row_tie_lowest_row_index(self):
        params = JoinAlignerParams(mz_tolerance=0.5)
        assignment = match_peaks_to_rows(
            np.array([100.0, 100.5]), np.array([60.0, 60.0]),
            np.array([100.25]), np.array([60.0]), params,
        )
        np.testing.assert_array_equal(assignment, [0, -1])

    def test_peak_tie_lowest_peak_index(self):
        params = JoinAlignerParams(mz_tolerance=0.5)
        assignment = match_peaks_to_rows(
            np.array([100.25]), np.array([60.0]),
            np.array([100.5, 100.0]), np.array([60.0, 60.0]), params,
        )
        np.testing.assert_array_equal(assignment, [0])

    def test_relative_rt_tolerance(self):
        params = JoinAlignerParams(rt_tolerance_type="relative", rt_tolerance_relative=0.1)
        inside = match_peaks_to_rows(
            np.array([300.0]), np.array([100.0]), np.array([300.0]), np.array([111.0]), params
        )
        outside = match_peaks_to_rows(
            np.array([300.0]), np.array([100.0]), np.array([300.0]), np.array([113.0]), params
        )
        np.testing.assert_array_equal(inside, [0])
        np.testing.assert_array_equal(outside, [-1])

    def test_no_rows(self):
        assignment = match_peaks_to_rows(
            np.zeros(0), np.zeros(0), np.array([100.0]), np.array([60.0]), JoinAlignerParams()
        )
        assert len(assignment) == 0


class TestJoinAlign:
    """Test alignment of whole peak lists."""

    def test_first_list_seeds_rows(self):
        result = join_align([_peak_list("a", [(100.0, 60.0), (200.0, 120.0)])], JoinAlignerParams())

        assert len(result) == 2
        assert result.file_ids == ("a",)
        assert all(row.n_peaks == 1 for row in result)

    def test_two_lists(self):
        a = _peak_list("a", [(100.0, 60.0), (200.0, 120.0), (300.0, 300.0)])
        b = _peak_list("b", [(100.05, 62.0), (200.1, 118.0), (500.0, 300.0)])

        result = join_align([a, b], JoinAlignerParams())

        assert len(result) == 4
        assert [row.n_peaks for row in result] == [2, 2, 1, 1]
        assert result[0].mz == pytest.approx(100.025)
        assert result[0].rt == pytest.approx(61.0)
        assert result[3].get("b").mz == 500.0
        assert "a" not in result[3]

    def test_best_match_is_greedy(self):
        a = _peak_list("a", [(100.0, 60.0), (100.1, 60.0)])
        b = _peak_list("b", [(100.08, 60.0)])

        result = join_align([a, b], JoinAlignerParams(mz_tolerance=0.2))

        assert len(result) == 2
        assert "b" not in result[0]
        assert result[1].get("b").mz == 100.08

    def test_peak_tie_extra_peak_becomes_row(self):
        a = _peak_list("a", [(100.25, 60.0)])
        b = _peak_list("b", [(100.0, 60.0), (100.5, 60.0)])

        result = join_align([a, b], JoinAlignerParams(mz_tolerance=0.5))

        assert len(result) == 2
        assert result[0].get("b").mz == 100.0
        assert result[1].get("b").mz == 100.5

    def test_unmatched_peaks_can_be_joined_later(self):
        a = _peak_list("a", [(100.0, 60.0)])
        b = _peak_list("b", [(200.0, 60.0)])
        c = _peak_list("c", [(200.05, 62.0)])

        result = join_align([a, b, c], JoinAlignerParams())

        assert len(result) == 2
        assert set(result[1].file_ids) == {"b", "c"}

    def test_at_most_one_peak_per_file(self):
        a = _peak_list("a", [(100.0, 60.0)])
        b = _peak_list("b", [(100.01, 60.0), (100.02, 61.0), (100.03, 59.0)])

        result = join_align([a, b], JoinAlignerParams())

        assert len(result) == 3
        assert sum(row.n_peaks for row in result) == 4
        assert result[0].get("b").mz == 100.01

    def test_symmetric_pairs(self):
        a = _peak_list("a", [(100.0, 60.0), (200.0, 120.0), (300.0, 200.0)])
        b = _peak_list("b", [(100.02, 61.0), (200.03, 119.0), (400.0, 200.0)])
        params = JoinAlignerParams()

        forward = join_align([a, b], params)
        backward = join_align([b, a], params)

        assert forward.matched_pairs("a", "b") == backward.matched_pairs("a", "b")
        assert len(forward.matched_pairs("a", "b")) == 2

    def test_symmetric_pairs_relative_rt(self):
        a = _peak_list("a", [(300.0, 100.0)])
        b = _peak_list("b", [(300.0, 111.0)])
        params = JoinAlignerParams(rt_tolerance_type="relative", rt_tolerance_relative=0.1)

        forward = join_align([a, b], params)
        backward = join_align([b, a], params)

        assert forward.matched_pairs("a", "b") == backward.matched_pairs("a", "b")
        assert forward.matched_pairs("a", "b") == {(a[0], b[0])}

    @pytest.mark.parametrize("first, second", [
        ((100.0, 60.0), (100.2, 60.0)),
        ((100.0, 10.1), (100.0, 25.1)),
    ])
    def test_boundary_pair_shares_row(self, first, second):
        a = _peak_list("a", [first])
        b = _peak_list("b", [second])

        result = join_align([a, b], JoinAlignerParams(mz_tolerance=0.2, rt_tolerance=15.0))

        assert len(result) == 1
        assert result[0].n_peaks == 2

    def test_pair_past_boundary_gets_own_row(self):
        a = _peak_list("a", [(100.0, 60.0)])
        b = _peak_list("b", [(100.2 + 1e-6, 60.0)])

        result = join_align([a, b], JoinAlignerParams(mz_tolerance=0.2))

        assert len(result) == 2

    def test_peaks_are_shared(self):
        a = _peak_list("a", [(100.0, 60.0)])
        result = join_align([a], JoinAlignerParams())
        assert result[0].get("a") is a[0]

    def test_empty_peak_list(self, caplog):
        a = _peak_list("a", [(100.0, 60.0)])
        empty = PeakList("b")

        result = join_align([a, empty], JoinAlignerParams())

        assert len(result) == 1
        assert "Peak list of b is empty" in caplog.text

    def test_no_peak_lists(self):
        with pytest.raises(ValidationError):
            join_align([], JoinAlignerParams())

    def test_duplicate_file_ids(self):
        a = _peak_list("a", [(100.0, 60.0)])
        with pytest.raises(ValidationError, match="distinct files"):
            join_align([a, a], JoinAlignerParams())

    def test_cancellation(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(TaskCanceled):
            join_align([_peak_list("a", [(100.0, 60.0)])], JoinAlignerParams(), token)


class TestAlignmentResult:
    """Test result containers."""

    def test_intensity_matrix(self):
        a = _peak_list("a", [(100.0, 60.0), (200.0, 120.0)])
        b = _peak_list("b", [(100.05, 62.0)])
        result = join_align([a, b], JoinAlignerParams())

        heights = result.intensity_matrix("height")
        areas = result.intensity_matrix("area")

        assert heights.shape == (2, 2)
        assert heights[0, 1] == 1000.0
        assert np.isnan(heights[1, 1])
        assert areas[0, 0] == 5000.0

    def test_intensity_matrix_kind(self):
        result = AlignmentResult([], ["a"])
        with pytest.raises(ValueError):
            result.intensity_matrix("volume")

    def test_row_needs_peak(self):
        with pytest.raises(ValidationError):
            AlignmentRow({})

    def test_row_is_read_only(self):
        row = AlignmentRow({"a": _peak("a", 100.0, 60.0)})
        with pytest.raises(TypeError):
            row.peaks["b"] = _peak("b", 100.0, 60.0)


class TestJoinAlignerAlgorithm:
    """Test the algorithm wrapper."""

    def test_run(self):
        aligner = JoinAligner()
        a = _peak_list("a", [(100.0, 60.0)])
        b = _peak_list("b", [(100.0, 61.0)])

        result = aligner.run([a, b], aligner.validate(JoinAlignerParams()))

        assert result.method == "Join aligner"
        assert aligner.source_of([a, b]) == ("a", "b")
        assert len(result) == 1

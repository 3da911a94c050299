from __future__ import annotations

import numpy as np
import pytest

from roomscan.core.depth.sampler import DepthImage, min_valid_samples, sample_depth_window


def test_uniform_depth_window_returns_that_depth():
    depth = DepthImage.from_millimeters(np.full((20, 20), 1500, dtype=np.uint16))
    assert sample_depth_window(depth, 10.0, 10.0) == pytest.approx(1.5)


def test_even_count_uses_upper_median():
    mm = np.zeros((10, 10), dtype=np.uint16)
    mm[4:7, 4:7] = np.array([[0, 1100, 1200], [1300, 1400, 1500], [1600, 1700, 1800]])
    depth = DepthImage.from_millimeters(mm)
    # Eight valid samples 1.1..1.8 m; index 4 of the sorted values.
    assert sample_depth_window(depth, 5.0, 5.0, radius=1) == pytest.approx(1.5)


def test_out_of_range_samples_are_ignored():
    mm = np.full((10, 10), 2000, dtype=np.uint16)
    mm[4, 4] = 100
    mm[4, 5] = 15000
    mm[4, 6] = 12000
    depth = DepthImage.from_millimeters(mm)
    assert sample_depth_window(depth, 5.0, 5.0, radius=1) == pytest.approx(2.0)


def test_too_few_valid_samples_is_none():
    assert min_valid_samples(3) == 12
    assert min_valid_samples(1) == 5

    mm = np.zeros((20, 20), dtype=np.uint16)
    window = mm[7:14, 7:14].reshape(-1)
    window[:11] = 2500
    mm[7:14, 7:14] = window.reshape(7, 7)
    depth = DepthImage.from_millimeters(mm)
    assert sample_depth_window(depth, 10.0, 10.0) is None

    mm[13, 13] = 2500
    assert sample_depth_window(DepthImage.from_millimeters(mm), 10.0, 10.0) == pytest.approx(2.5)


def test_window_clipped_at_image_border():
    depth = DepthImage.from_millimeters(np.full((4, 4), 3000, dtype=np.uint16))
    # Only 4 of the 9 window pixels exist at the corner.
    assert sample_depth_window(depth, 0.0, 0.0, radius=1) is None
    assert sample_depth_window(depth, 1.0, 1.0, radius=1) == pytest.approx(3.0)


def test_row_stride_padding_is_skipped():
    rows = np.full((4, 6), 9999, dtype="<u2")
    rows[:, :4] = 2000
    depth = DepthImage(data=rows.tobytes(), width=4, height=4, row_stride=12)
    assert sample_depth_window(depth, 1.0, 1.0, radius=1) == pytest.approx(2.0)
    assert depth.read_meters(np.array([3]), np.array([3]))[0] == pytest.approx(2.0)


def test_values_are_little_endian_millimeters():
    depth = DepthImage(data=bytes([0xDC, 0x05]), width=1, height=1, row_stride=2)
    assert depth.read_meters(np.array([0]), np.array([0]))[0] == pytest.approx(1.5)
    assert depth.read_meters(np.array([1, -1]), np.array([0, 0])).tolist() == [0.0, 0.0]


def test_from_millimeters_rejects_non_planar_input():
    with pytest.raises(ValueError):
        DepthImage.from_millimeters(np.zeros((2, 2, 2)))

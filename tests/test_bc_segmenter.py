"""
Tests for the bit-congruence signal and the single-message segmenter.
"""

import numpy as np
import pytest

from protoseg.modules.bc_segmenter import (
    MAXIMUM,
    MINIMUM,
    NEITHER,
    BitCongruenceSegmenter,
    apply_gaussian_filter,
    bit_congruence,
    compute_delta_bc,
    find_extrema_in_list,
    find_inflection_points,
    find_rising_deltas,
    gaussian_kernel,
)


class TestBitCongruence:

    def test_identical_bytes(self):
        for b in range(256):
            assert bit_congruence(b, b) == 1.0

    def test_complementary_bytes(self):
        assert bit_congruence(0x00, 0xFF) == 0.0

    def test_single_bit_difference(self):
        assert bit_congruence(0x00, 0x01) == pytest.approx(7 / 8)


class TestDeltaBC:

    @pytest.mark.parametrize("data", [b"", b"\x01", b"\x01\x02"])
    def test_short_messages_give_empty_signal(self, data):
        assert compute_delta_bc(data).size == 0

    def test_values(self):
        delta = compute_delta_bc(b"\x00\x00\xff\xff")
        # bc = [1.0, 0.0, 1.0]
        assert delta.tolist() == pytest.approx([-1.0, 1.0])

    def test_length(self):
        assert compute_delta_bc(bytes(range(10))).size == 8


class TestGaussianFilter:

    def test_kernel_normalized(self):
        kernel = gaussian_kernel(0.6)
        assert len(kernel) == 5
        assert kernel.sum() == pytest.approx(1.0)
        assert kernel[2] == kernel.max()

    @pytest.mark.parametrize("sigma", [0, -0.5])
    def test_non_positive_sigma_rejected(self, sigma):
        with pytest.raises(ValueError):
            gaussian_kernel(sigma)

    def test_impulse_response_is_kernel(self):
        kernel = gaussian_kernel(0.6)
        smoothed = apply_gaussian_filter([0, 0, 1, 0, 0], 0.6)
        assert smoothed.tolist() == pytest.approx(kernel.tolist())

    def test_edges_are_zero_padded(self):
        kernel = gaussian_kernel(0.6)
        smoothed = apply_gaussian_filter([1.0], 0.6)
        assert smoothed.tolist() == pytest.approx([kernel[2]])

    def test_empty_signal(self):
        assert apply_gaussian_filter([], 0.6).size == 0

    def test_length_preserved(self):
        assert apply_gaussian_filter(np.arange(7, dtype=float), 1.5).size == 7


class TestExtremaAndInflections:

    def test_alternating_signal(self):
        extrema = find_extrema_in_list([0, 1, 0, 1, 0])
        assert extrema == [(0, MINIMUM), (1, MAXIMUM), (2, MINIMUM), (3, MAXIMUM), (4, MINIMUM)]

    def test_plateau_is_neither(self):
        assert find_extrema_in_list([1, 1, 1]) == [(0, NEITHER), (1, NEITHER), (2, NEITHER)]

    def test_too_short_signal(self):
        assert find_extrema_in_list([]) == []
        assert find_extrema_in_list([0.5]) == []

    def test_rising_deltas_pairs(self):
        extrema = find_extrema_in_list([0, 1, 0, 1, 0])
        assert find_rising_deltas(extrema) == [(0, 1), (2, 3)]

    def test_maximum_without_minimum_ignored(self):
        extrema = [(0, MAXIMUM), (1, MINIMUM), (2, MAXIMUM), (3, MAXIMUM)]
        assert find_rising_deltas(extrema) == [(1, 2)]

    def test_rising_deltas_never_reuse_minimum(self):
        signal = np.sin(np.linspace(0, 12, 40))
        rising = find_rising_deltas(find_extrema_in_list(signal))
        mins = [lo for lo, _ in rising]
        assert len(mins) == len(set(mins))
        assert all(lo < hi for lo, hi in rising)

    def test_inflection_at_steepest_step(self):
        assert find_inflection_points([(0, 3)], [0.0, 0.1, 0.5, 0.6]) == [3]

    def test_inflection_defaults_to_min_plus_two(self):
        assert find_inflection_points([(4, 5)], [0.0] * 6) == [6]


class TestBitCongruenceSegmenter:

    def test_invalid_sigma(self):
        with pytest.raises(ValueError):
            BitCongruenceSegmenter(sigma=0)

    def test_short_data_has_no_boundaries(self):
        assert BitCongruenceSegmenter().find_boundaries(b"ab") == []

    def test_boundaries_inside_data(self):
        data = bytes((i * 37) % 256 for i in range(64))
        boundaries = BitCongruenceSegmenter().find_boundaries(data)
        assert boundaries
        assert all(2 <= b <= len(data) - 2 for b in boundaries)

    def test_deterministic(self):
        data = b"\x00\x01\xff\xfe\x10\x20hello\x00\x00\x7f"
        segmenter = BitCongruenceSegmenter()
        assert segmenter.find_boundaries(data) == segmenter.find_boundaries(data)

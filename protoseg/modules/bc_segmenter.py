"""
Bit-congruence segmenter

Field boundaries are placed at the inflection points of the gauss-filtered
delta of the bit congruence between consecutive bytes.
"""

import math
import logging
import numpy as np
from typing import List, Sequence, Tuple

# Extrema kinds
MINIMUM = -1
NEITHER = 0
MAXIMUM = 1


def bit_congruence(b1: int, b2: int) -> float:
    """Fraction of the 8 bit positions in which two bytes agree"""
    return 1.0 - bin((b1 ^ b2) & 0xFF).count("1") / 8.0


def compute_delta_bc(data: bytes) -> np.ndarray:
    """
    First difference of the bit congruence of consecutive bytes.

    Returns an empty array for messages shorter than 3 bytes.
    """
    if len(data) < 3:
        return np.zeros(0, dtype=np.float64)

    arr = np.frombuffer(data, dtype=np.uint8)
    xored = np.bitwise_xor(arr[:-1], arr[1:])
    differing = np.unpackbits(xored[:, np.newaxis], axis=1).sum(axis=1)
    bc = 1.0 - differing / 8.0
    return np.diff(bc)


def gaussian_kernel(sigma: float) -> np.ndarray:
    if sigma <= 0:
        raise ValueError(f"sigma must be positive, got {sigma}")
    radius = int(math.ceil(3 * sigma))
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-0.5 * x ** 2 / sigma ** 2)
    return kernel / kernel.sum()


def apply_gaussian_filter(signal: Sequence[float], sigma: float) -> np.ndarray:
    """
    Smooth a 1-D signal with a gaussian kernel of radius ceil(3 * sigma).

    Samples outside the signal count as zero, there is no reflection.
    """
    kernel = gaussian_kernel(sigma)
    signal = np.asarray(signal, dtype=np.float64)
    if signal.size == 0:
        return signal
    radius = len(kernel) // 2
    full = np.convolve(signal, kernel, mode='full')
    return full[radius:radius + signal.size]


def find_extrema_in_list(signal: Sequence[float]) -> List[Tuple[int, int]]:
    """
    Classify every index as local minimum (-1), local maximum (1) or neither (0).

    The first and last index are compared to their only neighbour. A signal
    with fewer than two samples has no extrema.
    """
    n = len(signal)
    extrema = []
    if n < 2:
        return extrema

    for i in range(n):
        left = signal[i - 1] if i > 0 else None
        right = signal[i + 1] if i < n - 1 else None
        neighbours = [v for v in (left, right) if v is not None]

        if all(signal[i] < v for v in neighbours):
            extrema.append((i, MINIMUM))
        elif all(signal[i] > v for v in neighbours):
            extrema.append((i, MAXIMUM))
        else:
            extrema.append((i, NEITHER))

    return extrema


def find_rising_deltas(extrema: Sequence[Tuple[int, int]]) -> List[Tuple[int, int]]:
    """
    Pair every maximum with the nearest preceding unmatched minimum.

    Returns:
        List of (min_index, max_index)
    """
    rising = []
    last_min = None
    for index, kind in extrema:
        if kind == MINIMUM:
            last_min = index
        elif kind == MAXIMUM and last_min is not None:
            rising.append((last_min, index))
            last_min = None
    return rising


def find_inflection_points(rising_deltas: Sequence[Tuple[int, int]],
                           signal: Sequence[float]) -> List[int]:
    """
    Locate the steepest step inside every rising interval.

    The index of the largest |signal[i] - signal[i+1]| in [min, max) is
    reported as i + 2 to account for the two differences taken since the
    original byte index.
    """
    boundaries = []
    for min_index, max_index in rising_deltas:
        best_index = min_index + 2
        best_value = 0.0
        for i in range(min_index, max_index):
            delta = abs(signal[i] - signal[i + 1])
            if delta > best_value:
                best_value = delta
                best_index = i + 2
        boundaries.append(best_index)
    return boundaries


class BitCongruenceSegmenter:
    """
    Signal-based boundary finder for one byte range.

    sigma stays fixed for all ranges regardless of their length.
    """

    def __init__(self, sigma: float = 0.6):
        """
        Args:
            sigma: Standard deviation of the gaussian smoothing kernel
        """
        gaussian_kernel(sigma)
        self.sigma = sigma

    def smoothed_signal(self, data: bytes) -> Tuple[np.ndarray, np.ndarray]:
        delta_bc = compute_delta_bc(data)
        return delta_bc, apply_gaussian_filter(delta_bc, self.sigma)

    def find_boundaries(self, data: bytes) -> List[int]:
        """
        Args:
            data: Bytes of the range under analysis

        Returns:
            Raw boundary offsets relative to data (possibly empty)
        """
        delta_bc, smoothed = self.smoothed_signal(data)
        if smoothed.size == 0:
            return []

        extrema = find_extrema_in_list(smoothed)
        rising = find_rising_deltas(extrema)
        boundaries = find_inflection_points(rising, delta_bc)

        logging.debug(f"Found {len(boundaries)} inflection points in {len(data)} bytes: {boundaries}")
        return boundaries

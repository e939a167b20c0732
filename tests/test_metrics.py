"""
Tests for the temporal Hausdorff distance.
"""

from datetime import datetime, timedelta

import numpy as np
import pytest

from frac_bd.errors import InvalidInputError
from frac_bd.metrics import directed_distance, hausdorff_distance


def at(hh, mm, ss):
    return datetime(2024, 5, 1, hh, mm, ss)


class TestHausdorffDistance:
    """Test symmetric discrete Hausdorff distance in seconds"""

    def test_concrete_scenario(self):
        """Test distance for a known pair of event sets"""
        a = [at(10, 0, 0), at(10, 5, 0)]
        b = [at(10, 0, 2), at(10, 6, 0)]

        assert directed_distance(a, b) == pytest.approx(60.0)
        assert directed_distance(b, a) == pytest.approx(60.0)
        assert hausdorff_distance(a, b) == pytest.approx(60.0)

    def test_identical_single_points(self):
        """Test identical single events"""
        t = at(12, 30, 15)
        assert hausdorff_distance([t], [t]) == 0.0

    def test_asymmetric_directed_distances(self):
        """Test that the larger directed distance wins"""
        a = [at(10, 0, 0)]
        b = [at(10, 0, 0), at(10, 10, 0)]

        assert directed_distance(a, b) == pytest.approx(0.0)
        assert directed_distance(b, a) == pytest.approx(600.0)
        assert hausdorff_distance(a, b) == pytest.approx(600.0)

    def test_symmetry(self):
        """Test that distance is symmetric"""
        rng = np.random.default_rng(42)
        base = at(8, 0, 0)
        for _ in range(20):
            a = [base + timedelta(seconds=float(s)) for s in rng.integers(0, 7200, size=rng.integers(1, 15))]
            b = [base + timedelta(seconds=float(s)) for s in rng.integers(0, 7200, size=rng.integers(1, 15))]
            assert hausdorff_distance(a, b) == pytest.approx(hausdorff_distance(b, a))

    def test_duplicates_and_order_do_not_matter(self):
        """Test insensitivity to duplicates and order"""
        a = [at(10, 0, 30), at(10, 0, 0), at(10, 0, 30)]
        b = [at(10, 1, 0)]
        assert hausdorff_distance(a, b) == pytest.approx(60.0)

    @pytest.mark.parametrize("a,b", [
        ([], [datetime(2024, 5, 1)]),
        ([datetime(2024, 5, 1)], []),
        ([], []),
    ])
    def test_empty_set_rejected(self, a, b):
        """Test rejection of empty event sets"""
        with pytest.raises(InvalidInputError):
            hausdorff_distance(a, b)

    def test_invalid_input_is_value_error(self):
        """Test that InvalidInputError is a ValueError"""
        with pytest.raises(ValueError):
            hausdorff_distance([], [])

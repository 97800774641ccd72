import pytest

from scoring.sdt import (
    CORRECT_REJECTION,
    FALSE_ALARM,
    HIT,
    MISS,
    Z_CLIP,
    classify,
    d_prime,
    normal_quantile,
    z_score,
)


class TestNormalQuantile:
    @pytest.mark.parametrize(
        "p, expected",
        [
            (0.5, 0.0),
            (0.975, 1.959964),
            (0.8413447460685429, 1.0),
            (0.01, -2.326348),
            (0.99, 2.326348),
            (0.2, -0.841621),
        ],
    )
    def test_known_values(self, p, expected):
        assert normal_quantile(p) == pytest.approx(expected, abs=1e-6)

    def test_symmetry(self):
        for p in (0.001, 0.03, 0.3, 0.45):
            assert normal_quantile(p) == pytest.approx(-normal_quantile(1 - p), abs=1e-8)

    @pytest.mark.parametrize("p", [0.0, 1.0, -0.2, 1.3])
    def test_out_of_domain(self, p):
        with pytest.raises(ValueError):
            normal_quantile(p)


class TestDPrime:
    def test_rates_at_bounds_are_clipped(self):
        assert z_score(1.0) == Z_CLIP
        assert z_score(0.0) == -Z_CLIP

    def test_perfect_performance_is_finite(self):
        assert d_prime(1.0, 0.0) == pytest.approx(5.152)

    def test_chance_performance_is_zero(self):
        assert d_prime(0.5, 0.5) == pytest.approx(0.0)

    def test_one_sd_separation(self):
        assert d_prime(0.8413447460685429, 0.5) == pytest.approx(1.0, abs=1e-6)

    def test_more_false_alarms_than_hits_is_negative(self):
        assert d_prime(0.2, 0.6) < 0


class TestClassify:
    def test_outcomes(self):
        assert classify(True, True) == HIT
        assert classify(False, True) == MISS
        assert classify(True, False) == FALSE_ALARM
        assert classify(False, False) == CORRECT_REJECTION

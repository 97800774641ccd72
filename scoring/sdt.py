"""Signal detection helpers: inverse normal CDF, clipped z-scores and d'."""
import math


# z-score substituted for a rate of exactly 0 or 1 (99.5th percentile)
Z_CLIP = 2.576

HIT = "hit"
MISS = "miss"
FALSE_ALARM = "false_alarm"
CORRECT_REJECTION = "correct_rejection"

# Acklam's rational approximation, |relative error| < 1.15e-9
_A = (-3.969683028665376e+01, 2.209460984245205e+02, -2.759285104469687e+02,
      1.383577518672690e+02, -3.066479806614716e+01, 2.506628277459239e+00)
_B = (-5.447609879822406e+01, 1.615858368580409e+02, -1.556989798598866e+02,
      6.680131188771972e+01, -1.328068155288572e+01)
_C = (-7.784894002430293e-03, -3.223964580411365e-01, -2.400758277161838e+00,
      -2.549732539343734e+00, 4.374664141464968e+00, 2.938163982698783e+00)
_D = (7.784695709041462e-03, 3.224671290700398e-01, 2.445134137142996e+00,
      3.754408661907416e+00)
_P_LOW = 0.02425


def _tail(q: float) -> float:
    num = ((((_C[0] * q + _C[1]) * q + _C[2]) * q + _C[3]) * q + _C[4]) * q + _C[5]
    den = (((_D[0] * q + _D[1]) * q + _D[2]) * q + _D[3]) * q + 1.0
    return num / den


def normal_quantile(p: float) -> float:
    """Inverse of the standard normal CDF for 0 < p < 1."""
    if not 0.0 < p < 1.0:
        raise ValueError(f"p must be strictly between 0 and 1, got {p}")
    if p < _P_LOW:
        return _tail(math.sqrt(-2.0 * math.log(p)))
    if p > 1.0 - _P_LOW:
        return -_tail(math.sqrt(-2.0 * math.log(1.0 - p)))
    q = p - 0.5
    r = q * q
    num = (((((_A[0] * r + _A[1]) * r + _A[2]) * r + _A[3]) * r + _A[4]) * r + _A[5]) * q
    den = ((((_B[0] * r + _B[1]) * r + _B[2]) * r + _B[3]) * r + _B[4]) * r + 1.0
    return num / den


def z_score(rate: float) -> float:
    """Inverse-normal of a rate, clipped to +/-Z_CLIP at exactly 0 or 1."""
    if rate >= 1.0:
        return Z_CLIP
    if rate <= 0.0:
        return -Z_CLIP
    return normal_quantile(rate)


def d_prime(hit_rate: float, false_alarm_rate: float) -> float:
    """Sensitivity z(hit rate) - z(false alarm rate); signed and always finite."""
    return z_score(hit_rate) - z_score(false_alarm_rate)


def classify(responded_target: bool, is_target: bool) -> str:
    """One of HIT, MISS, FALSE_ALARM, CORRECT_REJECTION."""
    if is_target:
        return HIT if responded_target else MISS
    return FALSE_ALARM if responded_target else CORRECT_REJECTION

"""The tropical semiring (min, +, inf, 0) over single-precision weights.

Weights are plain Python floats, but every value that is stored in an
automaton is first rounded to IEEE float32 so that the binary format
round-trips exactly and sums match what a float32 implementation would
compute."""
import math
import struct

from openfsa._private.exceptions import InvalidArgument

ZERO = float("inf")
"""Unreachable / non-final."""
ONE = 0.0
"""Neutral path weight."""
DELTA = 1.0 / 1024.0
"""Default tolerance for approx_equal."""

_F32 = struct.Struct('<f')


def zero() -> float:
    return ZERO


def one() -> float:
    return ONE


def quantize(w: float) -> float:
    """Round w to the nearest float32. Values too large for float32 saturate to +/-inf."""
    try:
        return _F32.unpack(_F32.pack(w))[0]
    except OverflowError:
        return math.copysign(ZERO, w)


def plus(a: float, b: float) -> float:
    """Combine alternative paths."""
    return a if a <= b else b


def times(a: float, b: float) -> float:
    """Extend a path."""
    if a == ZERO or b == ZERO:
        return ZERO
    return quantize(a + b)


def is_zero(w: float) -> bool:
    return w == ZERO


def approx_equal(a: float, b: float, delta: float = DELTA) -> bool:
    if a == b:  # also covers inf == inf
        return True
    return abs(a - b) <= delta


def validate(w) -> float:
    """Check an arc weight and return it quantized."""
    try:
        w = float(w)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Weight {w!r} is not a number")
    if math.isnan(w):
        raise InvalidArgument("Weight is NaN")
    if w < 0.0:
        raise InvalidArgument(f"Weight {w} is negative")
    w = quantize(w)
    if w == ZERO:
        raise InvalidArgument("Arc weights must be finite")
    return w


def from_probability(p: float) -> float:
    """Convert a probability in (0, 1] to a weight, i.e. -ln p."""
    if not 0.0 < p <= 1.0:
        raise InvalidArgument(f"Probability {p} is not in (0, 1]")
    return quantize(-math.log(p)) + 0.0  # -0.0 -> 0.0


def to_probability(w: float) -> float:
    return math.exp(-w)

"""Resource bounds for the lazy constructions."""
from dataclasses import dataclass


@dataclass(frozen=True)
class Limits:
    """Upper bounds on the number of states a construction may discover.

    :param max_product_states: states of an intersection or difference view;
        exceeding it raises ResourceExhausted
    :param max_determinized_states: subsets built while determinizing the
        subtrahend of a difference; exceeding it raises PreconditionViolated
    """
    max_product_states: int = 10_000_000
    max_determinized_states: int = 1_000_000


DEFAULT_LIMITS = Limits()

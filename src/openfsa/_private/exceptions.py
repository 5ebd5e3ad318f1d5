class FSAError(Exception):
    """Base class for all errors raised by openfsa."""


class InvalidArgument(FSAError, ValueError):
    """An argument is outside the domain an operation accepts, e.g. n < 1."""


class OutOfRangeState(InvalidArgument):
    """A state id is not in [0, num_states)."""

    def __init__(self, state, num_states):
        self.state = state
        self.num_states = num_states
        super().__init__(f"State {state} out of range for automaton with {num_states} states")


class CorruptEncoding(FSAError, ValueError):
    """Malformed, truncated or unknown-version binary input."""


class PreconditionViolated(FSAError):
    """An operand does not meet an operation's precondition within the configured bounds."""


class ResourceExhausted(FSAError):
    """Materializing an automaton would exceed the configured limits or available memory."""

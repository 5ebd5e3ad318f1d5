from openfsa.fsa import FSA, Representation, build, intersect, difference, n_best, encode, decode
from openfsa.algorithms import n_best_paths
from openfsa.atomic import Arc, Transition, EPSILON, NO_LABEL, NO_STATE
from openfsa.weights import ZERO, ONE, DELTA, zero, one, plus, times
from openfsa.config import Limits, DEFAULT_LIMITS
from openfsa.automaton import Automaton, BatchGenerator, Integeriser, LabeledArc
from openfsa._private.exceptions import (FSAError, InvalidArgument, OutOfRangeState, CorruptEncoding,
                                         PreconditionViolated, ResourceExhausted)

__author__     = "Mans Hulden"
__copyright__  = "Copyright 2026"
__credits__    = ["Mans Hulden"]
__license__    = "Apache"
__version__    = "0.1"
__maintainer__ = "Mans Hulden"
__email__      = "mans.hulden@gmail.com"
__status__     = "Prototype"

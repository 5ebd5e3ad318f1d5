"""Binary format for compact acceptors.

All integers are little-endian.

    uint32  magic
    str     fst type ("compact_acceptor")     int32 length + utf-8
    str     arc type ("standard")
    int32   version
    int32   flags
    uint64  properties
    int64   start
    int64   num_states
    int64   num_compacts
    int64   offsets[num_states + 1]
    (int32 label, float32 weight, int32 nextstate)   compacts[num_compacts]

The compacts of state s are compacts[offsets[s]:offsets[s+1]]. If s is
final, its first compact is (NO_LABEL, finalweight, NO_STATE); the rest
are its arcs in label order."""
import logging
import math
import struct
import sys
from array import array

from openfsa import weights
from openfsa.atomic import EPSILON, NO_LABEL, NO_STATE
from openfsa._private.exceptions import CorruptEncoding, InvalidArgument

logger = logging.getLogger(__name__)

MAGIC = 2125659606
FST_TYPE = "compact_acceptor"
ARC_TYPE = "standard"
VERSION = 1
MAX_TYPE_LENGTH = 64

# Property bits
ACCEPTOR = 0x0000000000010000
EPSILONS = 0x0000000000400000
NO_EPSILONS = 0x0000000000800000
ILABEL_SORTED = 0x0000000010000000
WEIGHTED = 0x0000000100000000
UNWEIGHTED = 0x0000000200000000

_UINT32 = struct.Struct('<I')
_INT32 = struct.Struct('<i')
_HEADER_TAIL = struct.Struct('<iiQqqq')   # version, flags, properties, start, num_states, num_compacts
_COMPACT = struct.Struct('<ifi')
_OFFSET_SIZE = 8


def _pack_str(s: str) -> bytes:
    b = s.encode('utf-8')
    return _INT32.pack(len(b)) + b


def _little_endian(arr: array) -> array:
    if sys.byteorder == 'big':
        arr = array(arr.typecode, arr)
        arr.byteswap()
    return arr


def encode(fsa) -> bytes:
    """Serialize any FSA. Lazy views are expanded first.
    An automaton with states needs a start state; raises InvalidArgument otherwise."""
    num_states = fsa.num_states()
    if fsa.start == NO_STATE and num_states > 0:
        raise InvalidArgument(f"Cannot encode {num_states} states without a start state; call set_start() first")
    offsets = array('q', [0])
    compacts = []
    has_eps, has_weights = False, False
    for s in range(num_states):
        fw = fsa.final(s)
        if fw != weights.ZERO:
            compacts.append(_COMPACT.pack(NO_LABEL, fw, NO_STATE))
            has_weights |= fw != weights.ONE
        for t in fsa.arcs(s):
            compacts.append(_COMPACT.pack(t.label, t.weight, t.targetstate))
            has_eps |= t.label == EPSILON
            has_weights |= t.weight != weights.ONE
        offsets.append(len(compacts))
    properties = ACCEPTOR | ILABEL_SORTED
    properties |= EPSILONS if has_eps else NO_EPSILONS
    properties |= WEIGHTED if has_weights else UNWEIGHTED
    header = _UINT32.pack(MAGIC) + _pack_str(FST_TYPE) + _pack_str(ARC_TYPE) + \
        _HEADER_TAIL.pack(VERSION, 0, properties, fsa.start, num_states, len(compacts))
    data = b''.join([header, _little_endian(offsets).tobytes()] + compacts)
    logger.debug(f"Encoded {num_states} states, {len(compacts)} compacts in {len(data)} bytes")
    return data


class _Reader:
    """Bounds-checked cursor over a byte buffer."""

    def __init__(self, data):
        self.view = memoryview(data).cast('B')
        self.pos = 0

    def remaining(self) -> int:
        return len(self.view) - self.pos

    def take(self, n: int, what: str) -> memoryview:
        if n < 0 or n > self.remaining():
            raise CorruptEncoding(f"Truncated input reading {what}: need {n} bytes, {self.remaining()} left")
        chunk = self.view[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def unpack(self, st: struct.Struct, what: str):
        return st.unpack(self.take(st.size, what))

    def string(self, what: str) -> str:
        (length,) = self.unpack(_INT32, what)
        if not 0 <= length <= MAX_TYPE_LENGTH:
            raise CorruptEncoding(f"Bad {what} length {length}")
        try:
            return bytes(self.take(length, what)).decode('utf-8')
        except UnicodeDecodeError as e:
            raise CorruptEncoding(f"Bad {what}: {e}") from e


def decode(data):
    """Parse a blob written by encode() into a COMPACT FSA."""
    from openfsa.fsa import FSA

    r = _Reader(data)
    (magic,) = r.unpack(_UINT32, "magic number")
    if magic != MAGIC:
        raise CorruptEncoding(f"Bad magic number {magic:#x}")
    fst_type = r.string("fst type")
    if fst_type != FST_TYPE:
        raise CorruptEncoding(f"Unsupported fst type {fst_type!r}")
    arc_type = r.string("arc type")
    if arc_type != ARC_TYPE:
        raise CorruptEncoding(f"Unsupported arc type {arc_type!r}")
    version, flags, properties, start, num_states, num_compacts = r.unpack(_HEADER_TAIL, "header")
    if version != VERSION:
        raise CorruptEncoding(f"Unsupported version {version}")
    if flags != 0:
        raise CorruptEncoding(f"Unknown header flags {flags:#x}")
    if properties & (ACCEPTOR | ILABEL_SORTED) != ACCEPTOR | ILABEL_SORTED:
        raise CorruptEncoding(f"Properties {properties:#x} do not describe a sorted acceptor")
    if num_states < 0 or num_compacts < 0:
        raise CorruptEncoding(f"Negative counts: {num_states} states, {num_compacts} compacts")
    # Check sizes against the buffer before allocating anything from them
    body = (num_states + 1) * _OFFSET_SIZE + num_compacts * _COMPACT.size
    if body != r.remaining():
        raise CorruptEncoding(f"Header announces {body} bytes of data, found {r.remaining()}")
    if not (NO_STATE <= start < num_states) or (start == NO_STATE) != (num_states == 0):
        raise CorruptEncoding(f"Bad start state {start} for {num_states} states")

    offsets = array('q')
    offsets.frombytes(bytes(r.take((num_states + 1) * _OFFSET_SIZE, "offsets")))
    offsets = _little_endian(offsets)
    if offsets[0] != 0 or offsets[-1] != num_compacts:
        raise CorruptEncoding("Offsets do not span the compacts")
    for s in range(num_states):
        if offsets[s] > offsets[s + 1]:
            raise CorruptEncoding(f"Offsets of state {s} are not monotone")

    labels, fweights, targets = array('i'), array('f'), array('i')
    for label, w, target in _COMPACT.iter_unpack(r.take(num_compacts * _COMPACT.size, "compacts")):
        labels.append(label)
        fweights.append(w)
        targets.append(target)

    for s in range(num_states):
        lo, hi = offsets[s], offsets[s + 1]
        prev = None
        for k in range(lo, hi):
            label, w, target = labels[k], fweights[k], targets[k]
            if math.isnan(w) or w < 0.0:
                raise CorruptEncoding(f"Bad weight {w} in state {s}")
            if label == NO_LABEL:
                if k != lo or target != NO_STATE or w == weights.ZERO:
                    raise CorruptEncoding(f"Misplaced final weight in state {s}")
                continue
            if not 0 <= target < num_states or w == weights.ZERO:
                raise CorruptEncoding(f"Bad arc {label}->{target} in state {s}")
            if prev is not None and label < prev:
                raise CorruptEncoding(f"Arcs of state {s} are not label-sorted")
            prev = label
    logger.debug(f"Decoded {num_states} states, {num_compacts} compacts")
    return FSA._compact(start, offsets, labels, fweights, targets)

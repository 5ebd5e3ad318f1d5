"""Handle-and-vector interface for callers that manage lifetimes explicitly.

This mirrors a C-style wrapper: automata travel as tagged handles,
everything else (encoded bytes, state lists, arc lists) as tagged vector
descriptors. Every handle and vector returned here is a fresh copy owned by
the caller, who must release it with fsa_free() / vec_free(). Freeing twice
is harmless; using a freed object raises InvalidArgument.

Arc records are packed as four little-endian fields:
from_state int32, to_state int32, label int32, weight float32."""
import logging
import struct
from array import array
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, List, Optional, Sequence

from openfsa.atomic import Arc
from openfsa.fsa import FSA, Representation
from openfsa._private.exceptions import InvalidArgument

logger = logging.getLogger(__name__)

ARC_RECORD = struct.Struct('<iiif')


class VecType(IntEnum):
    CHAR = 0
    INT = 1
    ARC = 2


@dataclass
class FsaHandle:
    """An automaton crossing the boundary, tagged with its representation."""
    tag: Representation
    fsa: Optional[FSA]

    @property
    def freed(self) -> bool:
        return self.fsa is None


@dataclass
class Vec:
    """A vector crossing the boundary.

    owner  -- the buffer holding the elements (bytearray or array)
    data   -- a memoryview of owner
    length -- number of elements (bytes, ints or arc records)"""
    tag: VecType
    owner: Any
    data: Optional[memoryview]
    length: int

    @property
    def freed(self) -> bool:
        return self.data is None


# ==================
# Vectors
# ==================

def vec_from_bytes(data) -> Vec:
    owner = bytearray(data)
    return Vec(VecType.CHAR, owner, memoryview(owner), len(owner))


def vec_from_ints(values: Iterable[int]) -> Vec:
    try:
        owner = array('i', values)
    except OverflowError as e:
        raise InvalidArgument(f"Value does not fit int32: {e}") from e
    return Vec(VecType.INT, owner, memoryview(owner), len(owner))


def vec_from_arcs(arcs: Iterable[Sequence]) -> Vec:
    owner = bytearray()
    count = 0
    for src, dst, label, weight in arcs:
        try:
            owner += ARC_RECORD.pack(src, dst, label, weight)
        except (struct.error, OverflowError) as e:
            raise InvalidArgument(f"Arc ({src}, {dst}, {label}, {weight}) does not fit an arc record: {e}") from e
        count += 1
    return Vec(VecType.ARC, owner, memoryview(owner), count)


def _check_vec(vec: Vec, tag: VecType):
    if vec.freed:
        raise InvalidArgument("Vector used after free")
    if vec.tag != tag:
        raise InvalidArgument(f"Expected a {tag.name} vector, got {VecType(vec.tag).name}")


def vec_to_bytes(vec: Vec) -> bytes:
    _check_vec(vec, VecType.CHAR)
    return vec.data.tobytes()


def vec_to_ints(vec: Vec) -> List[int]:
    _check_vec(vec, VecType.INT)
    return vec.data.tolist()


def vec_to_arcs(vec: Vec) -> List[Arc]:
    _check_vec(vec, VecType.ARC)
    return [Arc(*record) for record in ARC_RECORD.iter_unpack(vec.data)]


def _release_buffer(vec: Vec):
    vec.data.release()
    vec.data = None
    vec.owner = None


_VEC_DESTRUCTORS = {
    VecType.CHAR: _release_buffer,
    VecType.INT: _release_buffer,
    VecType.ARC: _release_buffer,
}


def vec_free(vec: Vec):
    if vec.freed:
        logger.warning(f"{VecType(vec.tag).name} vector freed twice")
        return
    _VEC_DESTRUCTORS[VecType(vec.tag)](vec)


# ==================
# Handles
# ==================

def _handle(fsa: FSA) -> FsaHandle:
    # Lazy results are computed completely here, so that any error surfaces
    # at the call that produced them and never from a handle already handed out
    return FsaHandle(fsa.kind, fsa.expand())


def _fsa(handle: FsaHandle) -> FSA:
    if handle.freed:
        raise InvalidArgument("Automaton handle used after free")
    if handle.tag != handle.fsa.kind:
        raise InvalidArgument(f"Handle tag {handle.tag!r} does not match a {handle.fsa.kind.name} automaton")
    return handle.fsa


def _drop(handle: FsaHandle):
    handle.fsa = None


_FSA_DESTRUCTORS = {tag: _drop for tag in Representation}


def fsa_free(handle: FsaHandle):
    if handle.freed:
        logger.warning(f"{Representation(handle.tag).name} handle freed twice")
        return
    _FSA_DESTRUCTORS[Representation(handle.tag)](handle)


def fsa_from_arc_list(states: int, final_states: Vec, arc_list: Vec) -> FsaHandle:
    _check_vec(final_states, VecType.INT)
    _check_vec(arc_list, VecType.ARC)
    return _handle(FSA.from_arc_list(states, vec_to_ints(final_states), vec_to_arcs(arc_list)))


def fsa_to_arc_list(handle: FsaHandle) -> Vec:
    return vec_from_arcs(_fsa(handle).arc_list())


def fsa_from_string(binary: Vec) -> FsaHandle:
    return _handle(FSA.from_bytes(vec_to_bytes(binary)))


def fsa_to_string(handle: FsaHandle) -> Vec:
    return vec_from_bytes(_fsa(handle).to_bytes())


def fsa_initial_state(handle: FsaHandle) -> int:
    return _fsa(handle).start


def fsa_final_states(handle: FsaHandle) -> Vec:
    return vec_from_ints(_fsa(handle).final_states())


def fsa_n_best(handle: FsaHandle, n: int) -> FsaHandle:
    return _handle(_fsa(handle).n_best(n))


def fsa_intersect(a: FsaHandle, b: FsaHandle) -> FsaHandle:
    return _handle(_fsa(a).intersect(_fsa(b)))


def fsa_difference(a: FsaHandle, b: FsaHandle) -> FsaHandle:
    return _handle(_fsa(a).difference(_fsa(b)))

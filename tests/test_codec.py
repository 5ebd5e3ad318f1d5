import struct
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from openfsa.atomic import EPSILON, NO_STATE
from openfsa.fsa import FSA, Representation, build, decode, encode, n_best
from openfsa._private import codec
from openfsa._private.exceptions import CorruptEncoding, InvalidArgument

# magic, two length-prefixed type strings, then version
VERSION_OFFSET = 4 + (4 + len(codec.FST_TYPE)) + (4 + len(codec.ARC_TYPE))
HEADER_SIZE = VERSION_OFFSET + 40


def same_automaton(test, a, b):
    test.assertEqual(a.start, b.start)
    test.assertEqual(a.num_states(), b.num_states())
    test.assertEqual(a.arc_list(), b.arc_list())
    test.assertEqual([(s, a.final(s)) for s in a.final_states()],
                     [(s, b.final(s)) for s in b.final_states()])


class TestRoundTrip(unittest.TestCase):
    """Test that decoding an encoding gives back the same automaton"""
    def test_simple(self):
        a = build(3, [2], [(0, 1, 1, 0.5), (1, 2, 2, 0.1), (0, 2, EPSILON, 1.0), (2, 0, -7, 0.0)])
        b = decode(encode(a))
        self.assertEqual(b.kind, Representation.COMPACT)
        same_automaton(self, a, b)

    def test_empty(self):
        b = decode(encode(FSA()))
        self.assertEqual(b.start, NO_STATE)
        self.assertEqual(b.num_states(), 0)

    def test_graded_finals(self):
        best = n_best(build(2, [1], [(0, 1, 7, 0.9), (0, 0, 3, 0.25)]), 3)
        same_automaton(self, best, decode(encode(best)))

    def test_materialized(self):
        f = FSA()
        for _ in range(3):
            f.add_state()
        f.set_start(2)
        f.add_arc(2, 0, 4, 1.5)
        f.set_final(0, 0.75)
        b = FSA.from_bytes(f.to_bytes())
        self.assertEqual(b.start, 2)
        self.assertEqual(b.final(0), 0.75)
        self.assertEqual(b.arc_list(), f.arc_list())

    def test_lazy(self):
        a = build(3, [2], [(0, 1, 1, 0.5), (1, 2, 2, 0.5)])
        c = a & a
        same_automaton(self, c.expand(), decode(encode(c)))

    def test_states_without_start(self):
        f = FSA()
        f.add_state()
        f.set_final(0)
        with self.assertRaises(InvalidArgument):
            encode(f)
        f.set_start(0)
        same_automaton(self, f, decode(encode(f)))

    def test_deterministic(self):
        a = build(3, [2], [(0, 1, 1, 0.5), (1, 2, 2, 0.5)])
        self.assertEqual(encode(a), encode(a.materialize()))
        self.assertEqual(encode(decode(encode(a))), encode(a))

    def test_properties(self):
        data = encode(build(2, [1], [(0, 1, EPSILON, 0.5)]))
        (properties,) = struct.unpack_from('<Q', data, VERSION_OFFSET + 8)
        self.assertTrue(properties & codec.ACCEPTOR)
        self.assertTrue(properties & codec.EPSILONS)
        self.assertTrue(properties & codec.WEIGHTED)
        data = encode(build(2, [1], [(0, 1, 3, 0.0)]))
        (properties,) = struct.unpack_from('<Q', data, VERSION_OFFSET + 8)
        self.assertTrue(properties & codec.NO_EPSILONS)
        self.assertTrue(properties & codec.UNWEIGHTED)

    def test_save_load(self):
        a = build(3, [2], [(0, 1, 1, 0.5), (1, 2, 2, 0.25)])
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "test"
            a.save(str(path))
            self.assertTrue((Path(tmpdir) / "test.fsa").exists())
            same_automaton(self, a, FSA.load(str(path)))


class TestCorrupt(unittest.TestCase):
    """Test that malformed input is rejected"""
    def setUp(self):
        # offsets of 3 entries, then (7, 0.9, 1) and the final of state 1
        self.data = encode(build(2, [1], [(0, 1, 7, 0.9)]))
        self.first_compact = HEADER_SIZE + 3 * 8

    def corrupt(self, fmt, offset, value):
        data = bytearray(self.data)
        struct.pack_into(fmt, data, offset, value)
        return bytes(data)

    def test_layout(self):
        self.assertEqual(len(self.data), self.first_compact + 2 * 12)
        self.assertEqual(struct.unpack_from('<ifi', self.data, self.first_compact)[::2], (7, 1))

    def test_truncated(self):
        for n in (0, 3, 10, VERSION_OFFSET + 2, HEADER_SIZE + 5, len(self.data) - 1):
            with self.assertRaises(CorruptEncoding):
                decode(self.data[:n])

    def test_trailing(self):
        with self.assertRaises(CorruptEncoding):
            decode(self.data + b'\x00')

    def test_bad_magic(self):
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<I', 0, 12345))

    def test_bad_version(self):
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<i', VERSION_OFFSET, 2))

    def test_bad_type(self):
        data = self.data.replace(b"compact_acceptor", b"compact_acceptxr")
        with self.assertRaises(CorruptEncoding):
            decode(data)

    def test_bad_counts(self):
        # num_compacts
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<q', VERSION_OFFSET + 32, 2 ** 40))
        # num_states
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<q', VERSION_OFFSET + 24, -5))

    def test_bad_start(self):
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<q', VERSION_OFFSET + 16, 2))

    def test_bad_offsets(self):
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<q', HEADER_SIZE + 8, 5))
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<q', HEADER_SIZE, 1))

    def test_bad_target(self):
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<i', self.first_compact + 8, 99))

    def test_bad_weight(self):
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<f', self.first_compact + 4, float('nan')))
        with self.assertRaises(CorruptEncoding):
            decode(self.corrupt('<f', self.first_compact + 4, -1.0))

    def test_unsorted(self):
        data = encode(build(2, [1], [(0, 1, 1, 0.0), (0, 1, 2, 0.0)]))
        with self.assertRaises(CorruptEncoding):
            decode(data.replace(struct.pack('<ifi', 2, 0.0, 1), struct.pack('<ifi', 0, 0.0, 1)))

    def test_is_value_error(self):
        with self.assertRaises(ValueError):
            decode(b"")


if __name__ == "__main__":
    unittest.main()

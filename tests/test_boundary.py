import unittest

from openfsa import boundary
from openfsa.boundary import (VecType, fsa_difference, fsa_final_states, fsa_free, fsa_from_arc_list,
                              fsa_from_string, fsa_initial_state, fsa_intersect, fsa_n_best,
                              fsa_to_arc_list, fsa_to_string, vec_free, vec_from_arcs, vec_from_bytes,
                              vec_from_ints, vec_to_arcs, vec_to_bytes, vec_to_ints)
from openfsa.fsa import Representation
from openfsa._private.exceptions import CorruptEncoding, InvalidArgument, OutOfRangeState


def make(states, finals, arcs):
    return fsa_from_arc_list(states, vec_from_ints(finals), vec_from_arcs(arcs))


def words(handle):
    return handle.fsa.words_nbest(100)


class TestVectors(unittest.TestCase):
    """Test the vector descriptors"""
    def test_ints(self):
        v = vec_from_ints([3, 1, 2])
        self.assertEqual(v.tag, VecType.INT)
        self.assertEqual(v.length, 3)
        self.assertEqual(vec_to_ints(v), [3, 1, 2])

    def test_bytes(self):
        v = vec_from_bytes(b"abc")
        self.assertEqual((v.tag, v.length), (VecType.CHAR, 3))
        self.assertEqual(vec_to_bytes(v), b"abc")

    def test_arcs(self):
        v = vec_from_arcs([(0, 1, 7, 0.5), (1, 0, -2, 0.0)])
        self.assertEqual((v.tag, v.length), (VecType.ARC, 2))
        self.assertEqual(len(v.data), 2 * boundary.ARC_RECORD.size)
        self.assertEqual(vec_to_arcs(v), [(0, 1, 7, 0.5), (1, 0, -2, 0.0)])

    def test_overflow(self):
        with self.assertRaises(InvalidArgument):
            vec_from_ints([2 ** 40])
        with self.assertRaises(InvalidArgument):
            vec_from_arcs([(0, 1, 2 ** 40, 0.0)])

    def test_wrong_tag(self):
        with self.assertRaises(InvalidArgument):
            vec_to_ints(vec_from_bytes(b"abc"))
        with self.assertRaises(InvalidArgument):
            fsa_from_string(vec_from_ints([1, 2]))

    def test_free(self):
        v = vec_from_ints([1])
        vec_free(v)
        self.assertTrue(v.freed)
        with self.assertRaises(InvalidArgument):
            vec_to_ints(v)
        with self.assertLogs('openfsa.boundary', level='WARNING'):
            vec_free(v)


class TestHandles(unittest.TestCase):
    """Test the automaton entrypoints"""
    def test_from_to_arc_list(self):
        h = make(2, [1], [(0, 1, 7, 0.5)])
        self.assertEqual(h.tag, Representation.COMPACT)
        self.assertEqual(fsa_initial_state(h), 0)
        self.assertEqual(vec_to_ints(fsa_final_states(h)), [1])
        self.assertEqual(vec_to_arcs(fsa_to_arc_list(h)), [(0, 1, 7, 0.5)])

    def test_empty(self):
        h = make(0, [], [])
        self.assertEqual(fsa_initial_state(h), -1)
        self.assertEqual(fsa_final_states(h).length, 0)
        self.assertEqual(fsa_to_arc_list(h).length, 0)

    def test_out_of_range(self):
        with self.assertRaises(OutOfRangeState):
            make(1, [3], [])

    def test_n_best(self):
        h = make(2, [1], [(0, 1, 7, 0.9)])
        best = fsa_n_best(h, 1)
        self.assertEqual(best.tag, Representation.COMPACT)
        [(cost, labels)] = words(best)
        self.assertEqual(labels, (7,))
        self.assertAlmostEqual(cost, 0.9, places=6)
        with self.assertRaises(InvalidArgument):
            fsa_n_best(h, 0)

    def test_intersect_difference(self):
        a = make(2, [1], [(0, 1, 1, 0.5)])
        b = make(2, [1], [(0, 1, 1, 0.0), (0, 1, 2, 0.0)])
        i = fsa_intersect(a, b)
        self.assertEqual(i.tag, Representation.INTERSECTION)
        self.assertEqual(words(i), [(0.5, (1,))])
        d = fsa_difference(b, a)
        self.assertEqual(d.tag, Representation.DIFFERENCE)
        self.assertEqual(words(d), [(0.0, (2,))])
        self.assertEqual(words(fsa_difference(a, b)), [])

    def test_string(self):
        a = make(3, [2], [(0, 1, 1, 0.5), (1, 2, 2, 0.25)])
        blob = fsa_to_string(a)
        self.assertEqual(blob.tag, VecType.CHAR)
        b = fsa_from_string(blob)
        self.assertEqual(vec_to_arcs(fsa_to_arc_list(b)), vec_to_arcs(fsa_to_arc_list(a)))
        with self.assertRaises(CorruptEncoding):
            fsa_from_string(vec_from_bytes(vec_to_bytes(blob)[:-3]))

    def test_copies(self):
        a = make(2, [1], [(0, 1, 7, 0.5)])
        v = fsa_to_arc_list(a)
        v.owner[:4] = b'\xff\xff\xff\xff'
        self.assertEqual(vec_to_arcs(fsa_to_arc_list(a)), [(0, 1, 7, 0.5)])

    def test_free(self):
        a = make(2, [1], [(0, 1, 7, 0.5)])
        i = fsa_intersect(a, a)
        fsa_free(i)
        self.assertTrue(i.freed)
        # operands stay usable
        self.assertEqual(fsa_initial_state(a), 0)
        with self.assertRaises(InvalidArgument):
            fsa_initial_state(i)
        with self.assertRaises(InvalidArgument):
            fsa_intersect(a, i)
        with self.assertLogs('openfsa.boundary', level='WARNING'):
            fsa_free(i)

    def test_tag_mismatch(self):
        a = make(2, [1], [(0, 1, 7, 0.5)])
        a.tag = Representation.DIFFERENCE
        with self.assertRaises(InvalidArgument):
            fsa_to_string(a)


if __name__ == "__main__":
    unittest.main()

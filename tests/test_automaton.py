import io
import math
import unittest

from openfsa.automaton import Automaton, BatchGenerator, Integeriser, LabeledArc
from openfsa.fsa import build
from openfsa._private.exceptions import InvalidArgument


class TestIntegeriser(unittest.TestCase):
    """Test the symbol table"""
    def test_integerise(self):
        t = Integeriser(["a", "b"])
        self.assertEqual(t.integerise("c"), 2)
        self.assertEqual(t.integerise("a"), 0)
        self.assertEqual(t.find_key("b"), 1)
        self.assertIsNone(t.find_key("z"))
        self.assertEqual(t.find_value(2), "c")
        self.assertEqual(len(t), 3)
        with self.assertRaises(InvalidArgument):
            t.find_value(3)

    def test_copy(self):
        t = Integeriser(["a"])
        u = t.copy()
        u.integerise("b")
        self.assertEqual(t.values(), ["a"])
        self.assertEqual(u.values(), ["a", "b"])


class TestAutomaton(unittest.TestCase):
    """Test automata over arbitrary states and labels"""
    def setUp(self):
        self.a = Automaton.from_arcs("q0", ["q2"], [("q0", "q1", "the", 0.5), ("q1", "q2", "cat", 1.0),
                                                    ("q0", "q2", "cats", 0.25)])

    def test_into_arcs(self):
        arcs, initial, finals = self.a.into_arcs()
        self.assertEqual(initial, 0)
        # states are numbered initial first, then finals, then in arc order
        self.assertEqual(finals, [1])
        self.assertEqual({(a.from_state, a.to_state, a.label) for a in arcs},
                         {(0, 2, "the"), (2, 1, "cat"), (0, 1, "cats")})
        probs = {a.label: a.weight for a in arcs}
        self.assertAlmostEqual(probs["the"], 0.5, places=6)
        self.assertAlmostEqual(probs["cat"], 1.0, places=6)
        self.assertAlmostEqual(probs["cats"], 0.25, places=6)
        self.assertTrue(all(isinstance(a, LabeledArc) for a in arcs))

    def test_epsilon_label(self):
        a = Automaton.from_arcs(0, [1], [(0, 1, "x", 1.0)])
        a.fsa = a.fsa.materialize()
        a.fsa.add_arc(0, 1, 0)
        arcs, _, _ = a.into_arcs()
        self.assertIn(None, [arc.label for arc in arcs])

    def test_generate(self):
        batches = list(self.a.generate(1))
        self.assertEqual(len(batches), 2)
        [(labels, p)] = batches[0]
        self.assertEqual(labels, ["the", "cat"])
        self.assertAlmostEqual(p, 0.5, places=6)
        [(labels, p)] = batches[1]
        self.assertEqual(labels, ["cats"])
        self.assertAlmostEqual(p, 0.25, places=6)

    def test_generate_large_step(self):
        batches = list(self.a.generate(10))
        self.assertEqual(len(batches), 1)
        self.assertEqual([labels for labels, _ in batches[0]], [["the", "cat"], ["cats"]])

    def test_generate_cyclic(self):
        a = Automaton.from_arcs(0, [0], [(0, 0, "x", 0.5)])
        gen = a.generate(2)
        self.assertIsInstance(gen, BatchGenerator)
        self.assertEqual([labels for labels, _ in next(gen)], [[], ["x"]])
        self.assertEqual([labels for labels, _ in next(gen)], [["x", "x"], ["x", "x", "x"]])

    def test_generate_equal_costs(self):
        # ["a", "e"] and ["b", "c"] both cost 1.0
        fsa = build(4, [3], [(0, 1, 1, 0.5), (1, 3, 5, 0.5), (0, 2, 2, 0.0), (2, 3, 3, 1.0)])
        a = Automaton(fsa, Integeriser(["a", "b", "c", "d", "e"]))
        batches = list(a.generate(1))
        self.assertEqual([[labels for labels, _ in batch] for batch in batches], [[["a", "e"]], [["b", "c"]]])
        [batch] = list(a.generate(2))
        self.assertEqual([labels for labels, _ in batch], [["a", "e"], ["b", "c"]])
        self.assertAlmostEqual(batch[1][1], math.exp(-1.0), places=6)

    def test_generate_bad_step(self):
        with self.assertRaises(InvalidArgument):
            self.a.generate(0)

    def test_n_best(self):
        best = self.a.n_best(1)
        arcs, _, _ = best.into_arcs()
        self.assertEqual([a.label for a in arcs], ["the", "cat"])

    def test_intersect(self):
        b = self.a.from_arcs_with_same_labels("x", ["y"], [("x", "y", "cats", 1.0), ("x", "y", "dog", 1.0)])
        self.assertEqual(b.labels.values(), ["the", "cat", "cats", "dog"])
        self.assertEqual(self.a.labels.values(), ["the", "cat", "cats"])
        c = self.a.intersect(b)
        [[(labels, p)]] = list(c.generate(5))
        self.assertEqual(labels, ["cats"])
        self.assertAlmostEqual(p, 0.25, places=6)

    def test_difference(self):
        b = self.a.from_arcs_with_same_labels(0, [1], [(0, 1, "cats", 1.0)])
        [batch] = list(self.a.difference(b).generate(5))
        self.assertEqual([labels for labels, _ in batch], [["the", "cat"]])

    def test_symbol_mismatch(self):
        b = Automaton.from_arcs(0, [1], [(0, 1, "dog", 1.0)])
        with self.assertRaises(InvalidArgument):
            self.a.intersect(b)

    def test_bad_probability(self):
        with self.assertRaises(InvalidArgument):
            Automaton.from_arcs(0, [1], [(0, 1, "x", 0.0)])

    def test_bytes(self):
        b = Automaton.from_bytes(self.a.labels, self.a.to_bytes())
        self.assertEqual(b.into_arcs(), self.a.into_arcs())

    def test_write_symbols(self):
        f = io.StringIO()
        self.a.write_symbols(f)
        self.assertEqual(f.getvalue(), "the\t1\ncat\t2\ncats\t3\n")

    def test_str(self):
        lines = str(self.a).split("\n")
        self.assertEqual(lines[0], "initial 0")
        self.assertEqual(lines[1], "final: 1")
        self.assertEqual(len(lines), 5)


if __name__ == "__main__":
    unittest.main()

import math
import random

import numpy as np
import pytest

from grammar import (
    DEFAULT_RULES, X, Y, BinOp, Call, EvenOdd, ExpressionSynthesizer,
    ParkMillerRandom, ProbabilityTable, SynthesisExhaustion, Var,
)
from constants import CLASS_WEIGHTS


class RecordingRandom:
    """Wraps a generator and records the probability mass seen at each draw."""
    def __init__(self, synthesizer, seed):
        self.synthesizer = synthesizer
        self.inner = ParkMillerRandom(seed)
        self.masses = []

    def random(self):
        self.masses.append(math.fsum(self.synthesizer.table.probabilities))
        return self.inner.random()


class ConstantRandom:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def test_park_miller_sequence():
    rng = ParkMillerRandom(42)
    assert rng.random() == pytest.approx(705893 / 2147483646)
    assert rng.state == 705894


def test_park_miller_zero_seed_is_usable():
    rng = ParkMillerRandom(0)
    values = [rng.random() for _ in range(100)]
    assert all(0.0 <= v < 1.0 for v in values)
    assert len(set(values)) == 100


def test_golden_seed_point_arithmetic():
    synthesizer = ExpressionSynthesizer(classes=["POINT", "ARITHMETIC"])
    expr_x, expr_y = synthesizer.synthesize_seeded(42)
    assert expr_x == X
    assert expr_y == BinOp("*", Y, X)
    assert expr_y.render() == "y*x"


def test_seeded_synthesis_is_repeatable():
    synthesizer = ExpressionSynthesizer()
    for seed in (1, 42, 99991, 123456):
        first = synthesizer.synthesize_seeded(seed)
        second = ExpressionSynthesizer().synthesize_seeded(seed)
        assert first == second
        assert [e.render() for e in first] == [e.render() for e in second]


def test_seeded_synthesis_leaves_global_generators_alone():
    np.random.seed(5)
    random.seed(5)
    expected = (np.random.random(), random.random())

    np.random.seed(5)
    random.seed(5)
    ExpressionSynthesizer().synthesize_seeded(42)
    assert (np.random.random(), random.random()) == expected


def test_probabilities_are_normalized_before_every_draw():
    synthesizer = ExpressionSynthesizer()
    for seed in range(1, 60):
        rng = RecordingRandom(synthesizer, seed)
        synthesizer.synthesize(rng)
        assert rng.masses
        assert all(m == pytest.approx(1.0, abs=1e-12) for m in rng.masses)


def test_weights_are_restored_after_synthesis():
    synthesizer = ExpressionSynthesizer()
    synthesizer.synthesize_seeded(2024)
    for rule in synthesizer.rules:
        assert synthesizer.table.weights[rule.rule_class] == CLASS_WEIGHTS[rule.rule_class]


def test_synthesis_terminates_for_many_seeds():
    synthesizer = ExpressionSynthesizer()
    for seed in range(1, 500):
        expr_x, expr_y = synthesizer.synthesize_seeded(seed)
        assert 1 <= expr_x.size() < 10000
        assert 1 <= expr_y.size() < 10000


def test_numpy_generator_is_accepted():
    expr_x, expr_y = ExpressionSynthesizer().synthesize(np.random.default_rng(11))
    assert expr_x.render()
    assert expr_y.render()


def test_rule_probability_is_class_weight_over_total():
    rules = [DEFAULT_RULES[0], DEFAULT_RULES[1], DEFAULT_RULES[2]]
    table = ProbabilityTable(rules, {"POINT": 10.0, "LENGTH": 5.0})
    assert table.probabilities == pytest.approx([0.4, 0.4, 0.2])
    assert table.select(0.0).name == "x"
    assert table.select(0.5).name == "y"
    assert table.select(0.9).name == "length"


def test_draw_outside_mass_raises():
    table = ProbabilityTable(list(DEFAULT_RULES), CLASS_WEIGHTS)
    with pytest.raises(SynthesisExhaustion):
        table.select(1.5)


def test_exhaustion_propagates_and_synthesizer_recovers():
    synthesizer = ExpressionSynthesizer()
    with pytest.raises(SynthesisExhaustion):
        synthesizer.synthesize(ConstantRandom(1.5))
    assert synthesizer.synthesize_seeded(42) == ExpressionSynthesizer().synthesize_seeded(42)


def test_unknown_class_is_rejected():
    with pytest.raises(ValueError):
        ExpressionSynthesizer(classes=["POINT", "QUATERNION"])


@pytest.mark.parametrize("weights", [{"ARITHMETIC": -0.5}, {"TRIGONOMETRY": float("nan")}])
def test_negative_class_weights_are_rejected(weights):
    with pytest.raises(ValueError):
        ExpressionSynthesizer(class_weights=weights)


def test_zero_class_weight_disables_the_class():
    synthesizer = ExpressionSynthesizer(class_weights={"TRIGONOMETRY": 0.0})
    table = synthesizer.table
    assert all(p >= 0.0 for p in table.probabilities)
    for rule, probability in zip(table.rules, table.probabilities):
        if rule.rule_class == "TRIGONOMETRY":
            assert probability == 0.0


def test_grammar_without_terminals_is_rejected():
    with pytest.raises(ValueError):
        ExpressionSynthesizer(classes=["ARITHMETIC"])


def test_min_max_collapse_identical_children():
    rules = {rule.name: rule for rule in DEFAULT_RULES}
    assert rules["min"].combine(X, X) == X
    assert rules["max"].combine(X, Y) == Call("max", (X, Y))


def test_trig_chain_nests_in_order():
    rules = {rule.name: rule for rule in DEFAULT_RULES}
    assert rules["sin_cos_tan"].combine(X).render() == "sin(cos(tan(x)))"
    assert rules["sin_ratio"].combine(X, Y).render() == "sin(x/y)"


def test_rendering_uses_minimal_parentheses():
    a = BinOp("-", X, BinOp("-", Y, X))
    assert a.render() == "x - (y - x)"
    b = BinOp("*", BinOp("+", X, Y), Y)
    assert b.render() == "(x + y)*y"
    c = BinOp("+", BinOp("+", X, Y), Y)
    assert c.render() == "x + y + y"


def test_even_odd_rounds_half_up():
    expr = EvenOdd(X)
    values = np.array([2.0, 3.0, 2.5, -1.5, 0.4])
    result = expr.evaluate(values, np.zeros_like(values))
    assert result.tolist() == [2.0, 4.0, 3.5, -0.5, 0.4]
    assert expr.render() == "x if round(x) % 2 == 0 else x + 1"


def test_expressions_evaluate_vectorized():
    expr = Call("sqrt", (BinOp("+", BinOp("*", X, X), BinOp("*", Y, Y)),))
    result = expr.evaluate(np.array([3.0, 0.0]), np.array([4.0, 2.0]))
    assert result.tolist() == [5.0, 2.0]
    assert Var("y").evaluate(1.0, 2.0) == 2.0

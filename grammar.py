# grammar.py
"""
Procedural synthesis of scalar expressions.

This module defines a small weighted grammar over expressions of a 2D
point (x, y) and the ExpressionSynthesizer that samples random expression
trees from it. Two independent draws give the x- and y-velocity
components of a vector field (see field.py).

Every rule belongs to a class (POINT, TRIGONOMETRY, ...) with a weight.
While a rule expands its own arguments, the weight of its class is
damped, which makes deep self-nesting increasingly unlikely and keeps the
expected tree size finite.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from constants import CLASS_WEIGHTS, MAX_SEED, RECURSION_DAMPING

# --- Data Contracts ---
#
# class Expression (Var, Call, BinOp, EvenOdd):
#   - Immutable (frozen dataclass) tree node describing f(x, y).
#   - evaluate(self, x, y) -> np.ndarray | float
#     - Inputs: x, y as floats or NumPy arrays of equal shape.
#     - Outputs: element-wise value; may contain NaN/Infinity. Callers
#       are responsible for np.errstate and sanitizing.
#   - render(self) -> str: Python-expression text with minimal parentheses.
#
# class ExpressionSynthesizer:
#   - __init__(self, classes: Optional[Iterable[str]] = None,
#              class_weights: Optional[Dict[str, float]] = None)
#     - classes restricts the grammar to a subset of rule classes.
#   - synthesize(self, rng) -> Tuple[Expression, Expression]
#     - Inputs: any object with a random() -> float in [0, 1) method.
#     - Outputs: (x-expression, y-expression).
#     - Invariants: rule probabilities sum to 1 before every draw; the
#       class weights are restored after every expansion.
#     - Raises: SynthesisExhaustion if a draw selects no rule.


class SynthesisExhaustion(RuntimeError):
    """A weighted draw fell through every rule of the grammar."""


class ParkMillerRandom:
    """
    Minimal-standard Lehmer generator.

    Deterministic across processes and platforms, which makes seeds usable
    as share codes.
    """
    MODULUS = 2147483647
    MULTIPLIER = 16807

    def __init__(self, seed: int):
        seed = int(seed)
        # Truncated remainder, so negative seeds stay negative before the fix-up.
        state = seed % self.MODULUS if seed >= 0 else -((-seed) % self.MODULUS)
        if state <= 0:
            state += self.MODULUS - 1
        self.state = state

    def random(self) -> float:
        self.state = (self.state * self.MULTIPLIER) % self.MODULUS
        return (self.state - 1) / (self.MODULUS - 1)


def random_seed() -> int:
    """Draws a fresh seed from OS entropy."""
    return int(np.random.default_rng().integers(1, MAX_SEED))


# --- Expression tree ---

FUNCTIONS: Dict[str, Tuple[int, Callable]] = {
    "sin": (1, np.sin),
    "cos": (1, np.cos),
    "tan": (1, np.tan),
    "log": (1, np.log),
    "sqrt": (1, np.sqrt),
    "abs": (1, np.abs),
    "sign": (1, np.sign),
    "min": (2, np.minimum),
    "max": (2, np.maximum),
}

BINARY_OPERATORS: Dict[str, Tuple[int, Callable]] = {
    "+": (1, np.add),
    "-": (1, np.subtract),
    "*": (2, np.multiply),
    "/": (2, np.true_divide),
}

_ATOM_PRECEDENCE = 4


class Expression:
    precedence = _ATOM_PRECEDENCE

    def evaluate(self, x, y):
        raise NotImplementedError("Subclasses should implement this method.")

    def render(self) -> str:
        raise NotImplementedError("Subclasses should implement this method.")

    def children(self) -> Tuple["Expression", ...]:
        return ()

    def size(self) -> int:
        """Number of nodes in the tree."""
        return 1 + sum(child.size() for child in self.children())

    def depth(self) -> int:
        return 1 + max((child.depth() for child in self.children()), default=0)

    def wrapped(self, min_precedence: int) -> str:
        text = self.render()
        if self.precedence < min_precedence:
            return f"({text})"
        return text

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class Var(Expression):
    name: str

    def evaluate(self, x, y):
        return x if self.name == "x" else y

    def render(self) -> str:
        return self.name


@dataclass(frozen=True)
class Call(Expression):
    name: str
    args: Tuple[Expression, ...]

    def evaluate(self, x, y):
        _, func = FUNCTIONS[self.name]
        return func(*(arg.evaluate(x, y) for arg in self.args))

    def render(self) -> str:
        return f"{self.name}({', '.join(arg.render() for arg in self.args)})"

    def children(self):
        return self.args


@dataclass(frozen=True)
class BinOp(Expression):
    op: str
    left: Expression
    right: Expression

    @property
    def precedence(self) -> int:
        return BINARY_OPERATORS[self.op][0]

    def evaluate(self, x, y):
        _, func = BINARY_OPERATORS[self.op]
        return func(self.left.evaluate(x, y), self.right.evaluate(x, y))

    def render(self) -> str:
        # Left-associative: only the right operand needs parentheses at equal precedence.
        left = self.left.wrapped(self.precedence)
        right = self.right.wrapped(self.precedence + 1)
        if self.op in "+-":
            return f"{left} {self.op} {right}"
        return f"{left}{self.op}{right}"

    def children(self):
        return (self.left, self.right)


@dataclass(frozen=True)
class EvenOdd(Expression):
    """a when round(a) is even, a + 1 otherwise."""
    arg: Expression
    precedence = 0

    def evaluate(self, x, y):
        value = self.arg.evaluate(x, y)
        rounded = np.floor(value + 0.5)
        return np.where(np.fmod(rounded, 2) == 0, value, value + 1)

    def render(self) -> str:
        body = self.arg.wrapped(1)
        return f"{body} if round({self.arg.render()}) % 2 == 0 else {body} + 1"

    def children(self):
        return (self.arg,)


X = Var("x")
Y = Var("y")
LENGTH = Call("sqrt", (BinOp("+", BinOp("*", X, X), BinOp("*", Y, Y)),))


def _call(*names: str) -> Callable[..., Expression]:
    """Combinator nesting unary calls, innermost last: _call("sin", "cos")(a) is sin(cos(a))."""
    def combine(arg: Expression) -> Expression:
        for name in reversed(names):
            arg = Call(name, (arg,))
        return arg
    return combine


def _min_max(name: str) -> Callable[..., Expression]:
    def combine(left: Expression, right: Expression) -> Expression:
        if left == right:
            return left
        return Call(name, (left, right))
    return combine


def _binary(op: str) -> Callable[..., Expression]:
    return lambda left, right: BinOp(op, left, right)


# --- Grammar rules ---

class GrammarRule:
    """A weighted production. Arity 0 rules are terminals."""
    arity = 0

    def __init__(self, name: str, rule_class: str):
        self.name = name
        self.rule_class = rule_class

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.rule_class!r})"


class ConstantRule(GrammarRule):
    def __init__(self, name: str, rule_class: str, terminal: Expression):
        super().__init__(name, rule_class)
        self.terminal = terminal

    def combine(self) -> Expression:
        return self.terminal


class UnaryRule(GrammarRule):
    arity = 1

    def __init__(self, name: str, rule_class: str, combine: Callable[[Expression], Expression]):
        super().__init__(name, rule_class)
        self.combine = combine


class BinaryRule(GrammarRule):
    arity = 2

    def __init__(self, name: str, rule_class: str,
                 combine: Callable[[Expression, Expression], Expression]):
        super().__init__(name, rule_class)
        self.combine = combine


# The order matters: seeded draws walk the rules in this order.
DEFAULT_RULES: Tuple[GrammarRule, ...] = (
    ConstantRule("x", "POINT", X),
    ConstantRule("y", "POINT", Y),
    ConstantRule("length", "LENGTH", LENGTH),
    UnaryRule("sin", "TRIGONOMETRY", _call("sin")),
    UnaryRule("cos", "TRIGONOMETRY", _call("cos")),
    UnaryRule("sin_cos_tan", "TRIGONOMETRY", _call("sin", "cos", "tan")),
    BinaryRule("sin_ratio", "TRIGONOMETRY", lambda a, b: Call("sin", (BinOp("/", a, b),))),
    BinaryRule("mul", "ARITHMETIC", _binary("*")),
    BinaryRule("div", "ARITHMETIC", _binary("/")),
    BinaryRule("add", "ARITHMETIC", _binary("+")),
    BinaryRule("sub", "ARITHMETIC", _binary("-")),
    UnaryRule("log_abs", "EXPONENTIAL", _call("log", "abs")),
    UnaryRule("sqrt_abs", "EXPONENTIAL", _call("sqrt", "abs")),
    UnaryRule("abs", "SIGN", _call("abs")),
    UnaryRule("sign", "SIGN", _call("sign")),
    BinaryRule("min", "MINMAX", _min_max("min")),
    BinaryRule("max", "MINMAX", _min_max("max")),
    UnaryRule("even_odd", "EVENODD", EvenOdd),
)


class ProbabilityTable:
    """
    Current class weights plus the normalized per-rule probabilities.

    A rule's probability is its class weight divided by the summed class
    weight of every rule, so a class with more rules draws more often.
    """
    def __init__(self, rules: List[GrammarRule], class_weights: Dict[str, float]):
        self.rules = rules
        self.weights = {rule.rule_class: float(class_weights[rule.rule_class]) for rule in rules}
        self.probabilities: List[float] = []
        self.normalize()

    def normalize(self) -> None:
        total = sum(self.weights[rule.rule_class] for rule in self.rules)
        if not total > 0:
            raise SynthesisExhaustion(f"Grammar has no probability mass (total weight {total}).")
        self.probabilities = [self.weights[rule.rule_class] / total for rule in self.rules]

    def select(self, draw: float) -> GrammarRule:
        """Walks the rules in order, returning the first whose cumulative mass exceeds the draw."""
        assert math.isclose(math.fsum(self.probabilities), 1.0, rel_tol=1e-9), \
            "rule probabilities are not normalized"
        cumulative = 0.0
        for rule, probability in zip(self.rules, self.probabilities):
            cumulative += probability
            if draw < cumulative:
                return rule
        raise SynthesisExhaustion(
            f"Draw {draw!r} selected no rule (cumulative mass {cumulative!r})."
        )


class ExpressionSynthesizer:
    """
    Samples random expression trees from the weighted grammar.
    """
    def __init__(self, classes: Optional[Iterable[str]] = None,
                 class_weights: Optional[Dict[str, float]] = None):
        self.class_weights = dict(CLASS_WEIGHTS)
        if class_weights:
            self.class_weights.update(class_weights)
        negative = sorted(name for name, weight in self.class_weights.items() if not weight >= 0)
        if negative:
            msg = f"Configuration error: grammar class weights must be non-negative, got {negative}."
            logging.critical(msg)
            raise ValueError(msg)

        if classes is None:
            self.rules = list(DEFAULT_RULES)
        else:
            enabled = {name.upper() for name in classes}
            unknown = enabled - set(self.class_weights)
            if unknown:
                msg = f"Configuration error: unknown grammar classes {sorted(unknown)}."
                logging.critical(msg)
                raise ValueError(msg)
            self.rules = [rule for rule in DEFAULT_RULES if rule.rule_class in enabled]

        if not any(rule.arity == 0 for rule in self.rules):
            msg = "Configuration error: the grammar needs at least one terminal class (POINT or LENGTH)."
            logging.critical(msg)
            raise ValueError(msg)

        self.table = ProbabilityTable(self.rules, self.class_weights)

    def synthesize(self, rng) -> Tuple[Expression, Expression]:
        """Draws the x- and y-velocity expressions."""
        # Fresh table per run: a previous run that raised may have left weights damped.
        self.table = ProbabilityTable(self.rules, self.class_weights)
        expr_x = self._generate(rng)
        expr_y = self._generate(rng)
        logging.debug(
            f"Synthesized expressions with {expr_x.size()} and {expr_y.size()} nodes "
            f"(depth {expr_x.depth()}/{expr_y.depth()})."
        )
        return expr_x, expr_y

    def synthesize_seeded(self, seed: int) -> Tuple[Expression, Expression]:
        return self.synthesize(ParkMillerRandom(seed))

    def _generate(self, rng) -> Expression:
        rule = self.table.select(rng.random())
        if rule.arity == 0:
            return rule.combine()

        rule_class = rule.rule_class
        previous = self.table.weights[rule_class]
        self.table.weights[rule_class] = previous * RECURSION_DAMPING
        self.table.normalize()
        try:
            args = [self._generate(rng) for _ in range(rule.arity)]
        finally:
            self.table.weights[rule_class] = previous
            self.table.normalize()
        return rule.combine(*args)

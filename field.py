# field.py
"""
Compiles synthesized expressions into callable 2D vector fields.

A field is any callable `field(x, y) -> (vx, vy)` taking NumPy arrays of
coordinates. FieldFunction is the field built from two expression trees;
it can render itself to source text and be rebuilt from that text, which
is how fields are persisted and shared. The text is parsed with the
standard-library `ast` module and mapped back onto the grammar's nodes,
nothing is ever executed.

Also home of Vec2 and sanitize_vectors, the single finiteness/clamp
utility applied at every vector combination boundary.
"""
import ast
import logging
from typing import NamedTuple, Optional, Tuple

import numpy as np

from grammar import (
    BINARY_OPERATORS, FUNCTIONS, BinOp, Call, EvenOdd, Expression,
    ExpressionSynthesizer, ParkMillerRandom, Var,
)
from noise import CoherentNoise

# --- Data Contracts ---
#
# compile_field(expr_x: Expression, expr_y: Expression, seed: Optional[int] = None)
#   -> Optional[FieldFunction]:
#   - Outputs: a FieldFunction, or None if the expressions are not valid
#     expression trees or fail a probe evaluation. Never raises.
#
# compile_source(source: str) -> Optional[FieldFunction]:
#   - Inputs: text produced by render_source (or hand-written in the same
#     restricted syntax).
#   - Outputs: a FieldFunction whose .source equals the canonical rendering,
#     or None for anything outside the grammar. Never raises.
#
# generate_field(seed: int, mode: str = "function", synthesizer=None)
#   -> Optional[field callable]:
#   - mode: "function" | "noise" | "noisy_function" | "random".
#   - Invariants: the same (seed, mode) always yields the same field.
#
# sanitize_vectors(vx, vy, bound: float) -> Tuple[np.ndarray, np.ndarray]:
#   - Outputs: float64 copies where any point with a non-finite component
#     becomes (0, 0), then both components are clipped to [-bound, bound].

FIELD_MODES = ("function", "noise", "noisy_function")

SOURCE_TEMPLATE = (
    "def get_velocity(x, y):\n"
    "    return (\n"
    "        {x},\n"
    "        {y},\n"
    "    )\n"
)


class CompilationError(ValueError):
    """Source text or a tree uses something outside the expression grammar."""


class Vec2(NamedTuple):
    x: float
    y: float


def sanitize_vectors(vx, vy, bound: float) -> Tuple[np.ndarray, np.ndarray]:
    vx = np.array(vx, dtype=np.float64)
    vy = np.array(vy, dtype=np.float64)
    vx, vy = np.broadcast_arrays(vx, vy)
    invalid = ~(np.isfinite(vx) & np.isfinite(vy))
    vx = np.where(invalid, 0.0, vx)
    vy = np.where(invalid, 0.0, vy)
    return np.clip(vx, -bound, bound), np.clip(vy, -bound, bound)


def render_source(expr_x: Expression, expr_y: Expression) -> str:
    return SOURCE_TEMPLATE.format(x=expr_x.render(), y=expr_y.render())


class FieldFunction:
    """
    Vector field built from two expression trees.
    """
    def __init__(self, expr_x: Expression, expr_y: Expression, seed: Optional[int] = None):
        self.expr_x = expr_x
        self.expr_y = expr_y
        self.seed = seed
        self.source = render_source(expr_x, expr_y)

    def __call__(self, x, y):
        with np.errstate(all="ignore"):
            return self.expr_x.evaluate(x, y), self.expr_y.evaluate(x, y)

    def __repr__(self) -> str:
        return f"FieldFunction(x={self.expr_x.render()!r}, y={self.expr_y.render()!r}, seed={self.seed})"


def _check_tree(expr) -> None:
    if isinstance(expr, Var):
        if expr.name not in ("x", "y"):
            raise CompilationError(f"unknown variable {expr.name!r}")
    elif isinstance(expr, Call):
        arity, _ = FUNCTIONS.get(expr.name, (None, None))
        if arity is None or arity != len(expr.args):
            raise CompilationError(f"bad call {expr.name!r} with {len(expr.args)} arguments")
    elif isinstance(expr, BinOp):
        if expr.op not in BINARY_OPERATORS:
            raise CompilationError(f"unknown operator {expr.op!r}")
    elif not isinstance(expr, EvenOdd):
        raise CompilationError(f"not an expression node: {expr!r}")
    for child in expr.children():
        _check_tree(child)


def compile_field(expr_x, expr_y, seed: Optional[int] = None) -> Optional[FieldFunction]:
    """Builds a FieldFunction, or returns None when the expressions cannot form one."""
    try:
        _check_tree(expr_x)
        _check_tree(expr_y)
        field = FieldFunction(expr_x, expr_y, seed)
        # Probe once so structural problems surface here and not mid-simulation.
        field(np.zeros(1), np.zeros(1))
    except (CompilationError, TypeError, ValueError, KeyError, RecursionError) as e:
        logging.warning(f"Field compilation failed: {e}")
        return None
    return field


# --- Source parsing ---

_AST_OPERATORS = {ast.Add: "+", ast.Sub: "-", ast.Mult: "*", ast.Div: "/"}


def _is_int_constant(node, value: int) -> bool:
    return isinstance(node, ast.Constant) and type(node.value) is int and node.value == value


def _even_odd_from_ast(node: ast.IfExp) -> EvenOdd:
    # Accepts exactly: a if round(a) % 2 == 0 else a + 1
    body = _expression_from_ast(node.body)
    test = node.test
    if not (isinstance(test, ast.Compare) and len(test.ops) == 1
            and isinstance(test.ops[0], ast.Eq) and _is_int_constant(test.comparators[0], 0)):
        raise CompilationError("conditional must compare a parity with 0")
    parity = test.left
    if not (isinstance(parity, ast.BinOp) and isinstance(parity.op, ast.Mod)
            and _is_int_constant(parity.right, 2)):
        raise CompilationError("conditional must test round(a) % 2")
    rounded = parity.left
    if not (isinstance(rounded, ast.Call) and isinstance(rounded.func, ast.Name)
            and rounded.func.id == "round" and len(rounded.args) == 1 and not rounded.keywords):
        raise CompilationError("conditional must test round(a) % 2")
    orelse = node.orelse
    if not (isinstance(orelse, ast.BinOp) and isinstance(orelse.op, ast.Add)
            and _is_int_constant(orelse.right, 1)):
        raise CompilationError("conditional must fall back to a + 1")
    if _expression_from_ast(rounded.args[0]) != body or _expression_from_ast(orelse.left) != body:
        raise CompilationError("conditional branches must share one argument")
    return EvenOdd(body)


def _expression_from_ast(node) -> Expression:
    if isinstance(node, ast.Name):
        if node.id not in ("x", "y"):
            raise CompilationError(f"unknown variable {node.id!r}")
        return Var(node.id)
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS or node.keywords:
            raise CompilationError(f"unsupported call {ast.dump(node.func)}")
        arity, _ = FUNCTIONS[node.func.id]
        if len(node.args) != arity:
            raise CompilationError(f"{node.func.id} takes {arity} argument(s)")
        return Call(node.func.id, tuple(_expression_from_ast(arg) for arg in node.args))
    if isinstance(node, ast.BinOp) and type(node.op) in _AST_OPERATORS:
        return BinOp(
            _AST_OPERATORS[type(node.op)],
            _expression_from_ast(node.left),
            _expression_from_ast(node.right),
        )
    if isinstance(node, ast.IfExp):
        return _even_odd_from_ast(node)
    raise CompilationError(f"unsupported construct {type(node).__name__}")


def parse_source(source: str) -> Tuple[Expression, Expression]:
    """Parses get_velocity source text back into its two expression trees."""
    if not isinstance(source, str):
        raise CompilationError(f"source must be text, got {type(source).__name__}")
    module = ast.parse(source)
    if len(module.body) != 1 or not isinstance(module.body[0], ast.FunctionDef):
        raise CompilationError("source must define exactly one function")
    func = module.body[0]
    if [arg.arg for arg in func.args.args] != ["x", "y"]:
        raise CompilationError("velocity function must take (x, y)")
    if len(func.body) != 1 or not isinstance(func.body[0], ast.Return):
        raise CompilationError("velocity function must be a single return statement")
    value = func.body[0].value
    if not isinstance(value, ast.Tuple) or len(value.elts) != 2:
        raise CompilationError("velocity function must return an (x, y) pair")
    return _expression_from_ast(value.elts[0]), _expression_from_ast(value.elts[1])


def compile_source(source: str, seed: Optional[int] = None) -> Optional[FieldFunction]:
    try:
        expr_x, expr_y = parse_source(source)
    except (SyntaxError, CompilationError, RecursionError) as e:
        logging.warning(f"Could not compile field source: {e}")
        return None
    return compile_field(expr_x, expr_y, seed)


# --- Noise driven variants ---

class NoiseField:
    """
    Direction field from fractal noise: the noise value picks an angle.
    """
    source = None

    def __init__(self, noise: CoherentNoise, octaves: int, frequency: float, use_tangent: bool = False):
        self.noise = noise
        self.octaves = octaves
        self.frequency = frequency
        self.use_tangent = use_tangent

    def __call__(self, x, y):
        n = self.noise.fractal(x, y, self.octaves) * self.frequency
        with np.errstate(all="ignore"):
            vx = np.tan(n) if self.use_tangent else np.cos(n)
        return vx, np.sin(n)


class NoisyFunctionField:
    """Component-wise product of a noise field and an expression field."""
    source = None

    def __init__(self, noise_field: NoiseField, function_field: Optional[FieldFunction]):
        self.noise_field = noise_field
        self.function_field = function_field

    def __call__(self, x, y):
        nx, ny = self.noise_field(x, y)
        if self.function_field is None:
            return nx, ny
        fx, fy = self.function_field(x, y)
        with np.errstate(all="ignore"):
            return nx * fx, ny * fy


def generate_field(seed: int, mode: str = "function",
                   synthesizer: Optional[ExpressionSynthesizer] = None):
    """
    Builds a field for a seed. Expression fields use the seed directly, so a
    seed reproduces the same expressions whatever the mode.
    """
    if mode not in FIELD_MODES and mode != "random":
        msg = f"Configuration error: unknown field mode {mode!r}. Expected one of {FIELD_MODES + ('random',)}."
        logging.critical(msg)
        raise ValueError(msg)

    chooser = np.random.default_rng(seed)
    if mode == "random":
        mode = FIELD_MODES[int(chooser.integers(len(FIELD_MODES)))]

    function_field = None
    if mode in ("function", "noisy_function"):
        synthesizer = synthesizer or ExpressionSynthesizer()
        expr_x, expr_y = synthesizer.synthesize(ParkMillerRandom(seed))
        function_field = compile_field(expr_x, expr_y, seed)
        if mode == "function":
            return function_field

    noise_field = NoiseField(
        CoherentNoise(seed),
        octaves=int(round(chooser.random() * 5 + 1)),
        frequency=float(chooser.random() * 20 + 1),
        use_tangent=bool(chooser.random() < 0.5),
    )
    logging.debug(
        f"Noise field: {noise_field.octaves} octaves, frequency {noise_field.frequency:.2f}, "
        f"{'tangent' if noise_field.use_tangent else 'cosine'} variant."
    )
    if mode == "noise":
        return noise_field
    return NoisyFunctionField(noise_field, function_field)

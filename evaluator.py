# evaluator.py
"""
Turns a raw (possibly missing or misbehaving) vector field into the
velocity the particles actually follow.

The FieldEvaluator maps screen coordinates into the field's domain, calls
the field under a guard, clamps what comes back, and layers time, noise
and pointer driven motion on top. Whatever the base field does, the
output is finite and inside the configured output bound.
"""
import logging
from collections.abc import Mapping
from typing import Any, Dict, Optional, Tuple

import numpy as np

from constants import DEFAULT_FIELD_PARAMS
from field import Vec2, sanitize_vectors
from noise import CoherentNoise

# --- Data Contracts ---
#
# class FieldEvaluator:
#   - __init__(self, params: Dict[str, Any], width: float, height: float,
#              base_field=None):
#     - Inputs:
#       - params: field parameters (see constants.DEFAULT_FIELD_PARAMS).
#       - width, height: extent of the working (screen) coordinates.
#       - base_field: callable (x_array, y_array) -> (vx, vy), or None.
#     - Raises: ValueError for a non-positive scale or clamp.
#
#   - evaluate(self, points: np.ndarray, time: float = 0.0,
#              pointer: Optional[Tuple[float, float]] = None) -> np.ndarray:
#     - Inputs: points of shape (N, 2) in working coordinates.
#     - Outputs: velocities of shape (N, 2).
#     - Invariants: every output component is finite and within
#       [-output_clamp, output_clamp]; base field errors never propagate.
#
#   - set_field(self, field) -> None: replaces the base field in one
#     assignment; evaluate() reads the reference once per call.


def _oscillate(low: float, high: float, rate: float, time: float) -> float:
    """Slow sinusoid between low and high."""
    middle = (low + high) * 0.5
    half_range = (high - low) * 0.5
    return middle + half_range * np.sin(time * rate)


def _components(result) -> Tuple[Any, Any]:
    if isinstance(result, Mapping):
        return result["x"], result["y"]
    vx, vy = result
    return vx, vy


class FieldEvaluator:
    """
    Guards a base field and blends perturbation layers on top of it.
    """
    def __init__(self, params: Dict[str, Any], width: float, height: float, base_field=None):
        self.width = float(width)
        self.height = float(height)
        self.base_field = base_field

        get = lambda key: params.get(key, DEFAULT_FIELD_PARAMS[key])
        self.scale = float(get('scale'))
        self.base_coordinate_scale = float(get('base_coordinate_scale'))
        self.base_clamp = float(get('base_clamp'))
        self.output_clamp = float(get('output_clamp'))
        self.flow_scale = float(get('flow_scale'))
        self.flow_intensity = float(get('flow_intensity'))
        self.activity = (float(get('activity_low')), float(get('activity_high')), float(get('activity_rate')))
        self.breathe = (float(get('breathe_low')), float(get('breathe_high')), float(get('breathe_rate')))
        self.noise_amplitude = float(get('noise_amplitude'))
        self.noise_layers = [tuple(float(v) for v in layer) for layer in get('noise_layers')]
        self.wave_amplitude = float(get('wave_amplitude'))
        self.pointer_influence = float(get('pointer_influence'))
        self.pointer_falloff = float(get('pointer_falloff'))
        self.pointer_strength = float(get('pointer_strength'))

        for name in ('scale', 'base_coordinate_scale', 'base_clamp', 'output_clamp'):
            if not getattr(self, name) > 0:
                msg = f"Configuration error: field parameter '{name}' must be positive, got {getattr(self, name)}."
                logging.critical(msg)
                raise ValueError(msg)
        for layer in self.noise_layers:
            if len(layer) != 3:
                msg = f"Configuration error: noise layer {layer} must be [frequency, amplitude, time_rate]."
                logging.critical(msg)
                raise ValueError(msg)

        self.noise = CoherentNoise(params.get('noise_seed', DEFAULT_FIELD_PARAMS['noise_seed']))
        # Batches where the base field raised; reported by the frame loop.
        self.failure_count = 0

        logging.info(
            f"FieldEvaluator initialized for {self.width:.0f}x{self.height:.0f} "
            f"(scale {self.scale}, flow intensity {self.flow_intensity}, "
            f"{len(self.noise_layers)} noise layers)."
        )

    def set_field(self, field) -> None:
        self.base_field = field

    def normalize(self, px, py):
        """Maps working coordinates into the base field's domain."""
        coordinate_scale = self.base_coordinate_scale / (self.scale / 5.0)
        nx = (px - self.width / 2) / (self.width * coordinate_scale)
        ny = (py - self.height / 2) / (self.height * coordinate_scale)
        return nx, ny

    def _base_vectors(self, nx, ny):
        field = self.base_field
        if field is None:
            return np.zeros_like(nx), np.zeros_like(ny)
        try:
            with np.errstate(all="ignore"):
                vx, vy = _components(field(nx, ny))
                vx = np.broadcast_to(np.asarray(vx, dtype=np.float64), nx.shape)
                vy = np.broadcast_to(np.asarray(vy, dtype=np.float64), ny.shape)
        except Exception as e:
            # Arbitrary callables: anything they raise counts as "no vector here".
            self.failure_count += 1
            logging.debug(f"Base field raised {type(e).__name__}: {e}")
            return np.zeros_like(nx), np.zeros_like(ny)
        return sanitize_vectors(vx, vy, self.base_clamp)

    def _noise_flow(self, px, py, time: float):
        vx = np.zeros_like(px)
        vy = np.zeros_like(py)
        if self.noise_amplitude == 0:
            return vx, vy
        for i, (frequency, amplitude, rate) in enumerate(self.noise_layers):
            # Each layer drifts with its own time offset and lattice offset.
            offset = 17.3 * (i + 1)
            sx = px * frequency + time * rate
            sy = py * frequency - time * rate * 0.7
            vx = vx + amplitude * self.noise.sample(sx + offset, sy)
            vy = vy + amplitude * self.noise.sample(sx, sy + offset + 91.7)
        return vx * self.noise_amplitude, vy * self.noise_amplitude

    def _waves(self, px, py, time: float):
        if self.wave_amplitude == 0:
            return np.zeros_like(px), np.zeros_like(py)
        wx = np.sin(py * 0.01 + time * 0.7) + 0.5 * np.sin(px * 0.023 - time * 1.3 + 1.7)
        wy = np.cos(px * 0.012 - time * 0.5) + 0.5 * np.cos(py * 0.019 + time * 1.1 + 0.4)
        return wx * self.wave_amplitude, wy * self.wave_amplitude

    def _pointer_pull(self, px, py, time: float, pointer: Optional[Tuple[float, float]]):
        if self.pointer_influence == 0:
            return np.zeros_like(px), np.zeros_like(py)
        if pointer is None:
            pointer = (self.width / 2, self.height / 2)
        dx = pointer[0] - px
        dy = pointer[1] - py
        distance = np.hypot(dx, dy)

        # Strength falls linearly from 0.9 at the pointer to 0.1 at the edge
        # of the influence radius, wobbling with noise.
        radius = max(self.pointer_falloff * min(self.width, self.height), 1e-9)
        closeness = 1.0 - np.clip(distance, 0.0, radius) / radius
        wobble = self.noise.unit(time * 0.3, distance * 0.01) * 0.5 + 0.5
        strength = (0.1 + 0.8 * closeness) * wobble * self.pointer_influence

        ax = dx * self.pointer_strength
        ay = dy * self.pointer_strength
        # Perpendicular component, so particles orbit rather than collapse.
        swirl = 0.5 + self.noise.sample(time * 0.5 + px * 0.001, py * 0.001) * 0.3
        return (ax - ay * swirl) * strength, (ay + ax * swirl) * strength

    def evaluate(self, points, time: float = 0.0, pointer: Optional[Tuple[float, float]] = None) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        px = points[:, 0]
        py = points[:, 1]

        bx, by = self._base_vectors(*self.normalize(px, py))
        with np.errstate(all="ignore"):
            nx, ny = self._noise_flow(px, py, time)
            wx, wy = self._waves(px, py, time)
            mx, my = self._pointer_pull(px, py, time, pointer)

            breathe = _oscillate(*self.breathe, time)
            activity = self.flow_scale * _oscillate(*self.activity, time) * self.flow_intensity
            rx = (bx + (nx + wx + mx) * breathe) * activity
            ry = (by + (ny + wy + my) * breathe) * activity

        rx, ry = sanitize_vectors(rx, ry, self.output_clamp)
        return np.stack([rx, ry], axis=1)

    def evaluate_point(self, x: float, y: float, time: float = 0.0,
                       pointer: Optional[Tuple[float, float]] = None) -> Vec2:
        vx, vy = self.evaluate(np.array([[x, y]]), time, pointer)[0]
        return Vec2(float(vx), float(vy))

    def sample_grid(self, spacing: float, time: float = 0.0,
                    pointer: Optional[Tuple[float, float]] = None):
        """
        Samples the field on a regular grid for arrow rendering.

        Returns:
            (points, vectors): two arrays of shape (M, 2).
        """
        xs = np.arange(spacing, self.width, spacing)
        ys = np.arange(spacing, self.height, spacing)
        gx, gy = np.meshgrid(xs, ys, indexing="ij")
        points = np.stack([gx.ravel(), gy.ravel()], axis=1)
        return points, self.evaluate(points, time, pointer)

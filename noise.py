# noise.py
"""
Seeded 2D coherent noise.

Classic gradient (Perlin) noise evaluated element-wise over NumPy arrays,
so a whole particle population can be sampled in one call. Used by the
field evaluator for organic drift and pointer swirl, and by the noise
driven field variants in field.py.
"""
from typing import Optional

import numpy as np

# --- Data Contracts ---
#
# class CoherentNoise:
#   - __init__(self, seed: Optional[int] = None)
#     - Builds a 512-entry permutation table from np.random.default_rng(seed).
#   - sample(self, x, y) -> np.ndarray
#     - Inputs: floats or arrays of equal shape.
#     - Outputs: smooth noise in [-1, 1], 0 at integer lattice points.
#     - Invariants: identical seeds give identical tables and samples.
#   - unit(self, x, y) -> np.ndarray: sample remapped to [0, 1].
#   - fractal(self, x, y, octaves: int) -> np.ndarray
#     - Octave sum with halving amplitude and doubling frequency, in [0, 1).

_GRADIENTS = np.array(
    [[1, 1], [-1, 1], [1, -1], [-1, -1], [1, 0], [-1, 0], [0, 1], [0, -1]],
    dtype=np.float64,
)


def _fade(t):
    # 6t^5 - 15t^4 + 10t^3
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


class CoherentNoise:
    """
    Gradient noise over a repeating 256x256 lattice.
    """
    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        rng = np.random.default_rng(seed)
        table = rng.permutation(256)
        self.permutation = np.concatenate([table, table]).astype(np.int64)

    def _corner(self, hashed, dx, dy):
        gradient = _GRADIENTS[hashed & 7]
        return gradient[..., 0] * dx + gradient[..., 1] * dy

    def sample(self, x, y):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        with np.errstate(invalid="ignore", over="ignore"):
            x_floor = np.floor(x)
            y_floor = np.floor(y)
            xf = x - x_floor
            yf = y - y_floor
            xi = np.nan_to_num(x_floor, nan=0.0, posinf=0.0, neginf=0.0).astype(np.int64) & 255
            yi = np.nan_to_num(y_floor, nan=0.0, posinf=0.0, neginf=0.0).astype(np.int64) & 255

        perm = self.permutation
        a = perm[xi] + yi
        b = perm[xi + 1] + yi
        n00 = self._corner(perm[a], xf, yf)
        n10 = self._corner(perm[b], xf - 1.0, yf)
        n01 = self._corner(perm[a + 1], xf, yf - 1.0)
        n11 = self._corner(perm[b + 1], xf - 1.0, yf - 1.0)

        u = _fade(xf)
        v = _fade(yf)
        bottom = n00 + u * (n10 - n00)
        top = n01 + u * (n11 - n01)
        return np.clip(bottom + v * (top - bottom), -1.0, 1.0)

    def unit(self, x, y):
        return (self.sample(x, y) + 1.0) * 0.5

    def fractal(self, x, y, octaves: int = 1):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        amplitude = 1.0
        frequency = 1.0
        total = np.zeros(np.broadcast(x, y).shape)
        for _ in range(max(1, int(octaves))):
            amplitude *= 0.5
            total = total + amplitude * self.unit(frequency * x, frequency * y)
            frequency *= 2.0
        return total

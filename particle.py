# particle.py
"""
Manages the state of all particles in the simulation.

This module defines the ParticleSystem class, which is responsible for
spawning, respawning and culling particles and for their trail buffers.
State is kept in NumPy arrays (one row per particle); the per-particle
trail bookkeeping runs in Numba-jitted loops.
"""
import colorsys
import logging
import numpy as np
from numba import jit
from typing import Callable, Dict, Any, Optional, Sequence, Tuple

from constants import DEFAULT_SIMULATION_PARAMS, MAX_SEGMENT_LENGTH, TRAIL_WIDTH_RANGE

# --- Data Contracts ---
#
# class ParticleSystem:
#   - __init__(self, params: Dict[str, Any], width: float, height: float):
#     - Inputs:
#       - params: Dictionary of simulation parameters from config.json.
#         - "particle_count": int (target population)
#         - "max_trail_length": int >= 1
#         - "trail_max_age": float, seconds
#         - "particle_seed": Optional[int]
#       - width, height: the visible bounds particles spawn within.
#     - Side Effects: Allocates the state arrays and spawns the initial
#       population at random positions.
#     - Invariants:
#       - positions (N, 2) float64, speeds (N,) float64, life (N,) float64
#         in (0, 1], ages (N,) int64, colors (N, 3) uint8.
#       - trail_points (N, L, 2) float64, trail_times (N, L) float64 and
#         trail_lengths (N,) int64 with 0 <= trail_lengths <= L, where L is
#         max_trail_length. Valid entries are the first trail_lengths[i]
#         slots, oldest first.
#
#   - append_trails(self, valid: np.ndarray, now: float) -> None
#   - evict_stale_trails(self, now: float) -> None
#     - Invariants: afterwards no entry satisfies now - time > trail_max_age.
#   - draw_trails(self, draw_segment: Callable) -> int
#     - Calls draw_segment(start, end, color, width) for every drawable
#       pair of trail-adjacent points; returns the number of calls.


@jit(nopython=True)
def _append_trails_numba(trail_points, trail_times, trail_lengths, positions, valid, now):
    """
    Appends the current position to each valid particle's trail, dropping
    the oldest entry when the buffer is full.
    """
    capacity = trail_times.shape[1]
    for i in range(positions.shape[0]):
        if not valid[i]:
            continue
        length = trail_lengths[i]
        if length >= capacity:
            for k in range(1, capacity):
                trail_points[i, k - 1, 0] = trail_points[i, k, 0]
                trail_points[i, k - 1, 1] = trail_points[i, k, 1]
                trail_times[i, k - 1] = trail_times[i, k]
            length = capacity - 1
        trail_points[i, length, 0] = positions[i, 0]
        trail_points[i, length, 1] = positions[i, 1]
        trail_times[i, length] = now
        trail_lengths[i] = length + 1


@jit(nopython=True)
def _evict_stale_numba(trail_points, trail_times, trail_lengths, now, max_age):
    """
    Drops entries older than max_age. Trails are time-ordered, so the stale
    entries are always a prefix.
    """
    evicted = 0
    for i in range(trail_lengths.shape[0]):
        length = trail_lengths[i]
        stale = 0
        while stale < length and now - trail_times[i, stale] > max_age:
            stale += 1
        if stale == 0:
            continue
        for k in range(stale, length):
            trail_points[i, k - stale, 0] = trail_points[i, k, 0]
            trail_points[i, k - stale, 1] = trail_points[i, k, 1]
            trail_times[i, k - stale] = trail_times[i, k]
        trail_lengths[i] = length - stale
        evicted += stale
    return evicted


def random_colors(rng: np.random.Generator, count: int,
                  saturation_range: Sequence[float], lightness_range: Sequence[float]) -> np.ndarray:
    """Random hue with saturation/lightness (percent) drawn from the given ranges."""
    hues = rng.uniform(0.0, 1.0, size=count)
    saturations = rng.uniform(saturation_range[0], saturation_range[1], size=count) / 100.0
    lightnesses = rng.uniform(lightness_range[0], lightness_range[1], size=count) / 100.0
    colors = np.empty((count, 3), dtype=np.uint8)
    for i in range(count):
        r, g, b = colorsys.hls_to_rgb(hues[i], lightnesses[i], saturations[i])
        colors[i] = (round(r * 255), round(g * 255), round(b * 255))
    return colors


class ParticleSystem:
    """
    A container for all particles, managing their state via NumPy arrays.
    """
    def __init__(self, params: Dict[str, Any], width: float, height: float):
        """
        Initializes the particle system.

        Args:
            params (Dict[str, Any]): Simulation parameters from config.
            width (float): The width of the visible area.
            height (float): The height of the visible area.
        """
        get = lambda key: params.get(key, DEFAULT_SIMULATION_PARAMS[key])
        self.width = float(width)
        self.height = float(height)
        self.target_count = int(get('particle_count'))
        self.max_trail_length = int(get('max_trail_length'))
        self.trail_max_age = float(get('trail_max_age'))
        self.speed_range = tuple(get('speed_range'))
        self.life_range = tuple(get('life_range'))
        self.saturation_range = tuple(get('saturation_range'))
        self.lightness_range = tuple(get('lightness_range'))

        if self.target_count < 0:
            msg = f"Configuration error: particle_count must be >= 0, got {self.target_count}."
            logging.critical(msg)
            raise ValueError(msg)
        if self.max_trail_length < 1:
            msg = f"Configuration error: max_trail_length must be >= 1, got {self.max_trail_length}."
            logging.critical(msg)
            raise ValueError(msg)
        if self.life_range[0] <= 0 or self.life_range[0] > self.life_range[1]:
            msg = f"Configuration error: life_range must be a positive [low, high] pair, got {list(self.life_range)}."
            logging.critical(msg)
            raise ValueError(msg)

        # Rule 12: All randomness is controlled by a single seed. A None seed
        # draws fresh entropy, so particle layouts differ between runs.
        self.rng = np.random.default_rng(get('particle_seed'))

        self.positions = np.empty((0, 2), dtype=np.float64)
        self.speeds = np.empty(0, dtype=np.float64)
        self.life = np.empty(0, dtype=np.float64)
        self.ages = np.empty(0, dtype=np.int64)
        self.colors = np.empty((0, 3), dtype=np.uint8)
        self.trail_points = np.empty((0, self.max_trail_length, 2), dtype=np.float64)
        self.trail_times = np.empty((0, self.max_trail_length), dtype=np.float64)
        self.trail_lengths = np.empty(0, dtype=np.int64)

        self.spawn(self.target_count)

        logging.info(
            f"ParticleSystem initialized with {self.count} particles "
            f"(trail length {self.max_trail_length}, trail age {self.trail_max_age}s)."
        )
        logging.debug(
            f"Particle data arrays created. "
            f"Positions shape: {self.positions.shape}, "
            f"Trail shape: {self.trail_points.shape}"
        )

    @property
    def count(self) -> int:
        return self.positions.shape[0]

    def random_positions(self, count: int) -> np.ndarray:
        return self.rng.uniform(low=[0.0, 0.0], high=[self.width, self.height], size=(count, 2))

    def spawn(self, count: int, positions: Optional[np.ndarray] = None,
              speed_range: Optional[Sequence[float]] = None,
              life_range: Optional[Sequence[float]] = None) -> None:
        """Appends `count` fresh particles with empty trails."""
        if count <= 0:
            return
        if positions is None:
            positions = self.random_positions(count)
        speed_range = speed_range or self.speed_range
        life_range = life_range or self.life_range

        self.positions = np.concatenate([self.positions, positions.astype(np.float64)])
        self.speeds = np.concatenate([self.speeds, self.rng.uniform(*speed_range, size=count)])
        self.life = np.concatenate([self.life, self.rng.uniform(*life_range, size=count)])
        self.ages = np.concatenate([self.ages, np.zeros(count, dtype=np.int64)])
        self.colors = np.concatenate([
            self.colors,
            random_colors(self.rng, count, self.saturation_range, self.lightness_range),
        ])
        self.trail_points = np.concatenate([
            self.trail_points, np.zeros((count, self.max_trail_length, 2), dtype=np.float64)
        ])
        self.trail_times = np.concatenate([
            self.trail_times, np.zeros((count, self.max_trail_length), dtype=np.float64)
        ])
        self.trail_lengths = np.concatenate([self.trail_lengths, np.zeros(count, dtype=np.int64)])

    def respawn(self, mask: np.ndarray) -> int:
        """Re-randomizes the selected particles in place and clears their trails."""
        count = int(np.count_nonzero(mask))
        if count == 0:
            return 0
        self.positions[mask] = self.random_positions(count)
        self.speeds[mask] = self.rng.uniform(*self.speed_range, size=count)
        self.life[mask] = self.rng.uniform(*self.life_range, size=count)
        self.ages[mask] = 0
        self.colors[mask] = random_colors(self.rng, count, self.saturation_range, self.lightness_range)
        self.trail_lengths[mask] = 0
        return count

    def relocate(self, mask: np.ndarray) -> int:
        """Moves the selected particles to random positions, keeping their other attributes."""
        count = int(np.count_nonzero(mask))
        if count:
            self.positions[mask] = self.random_positions(count)
            self.trail_lengths[mask] = 0
        return count

    def reset(self) -> None:
        """Scatters every particle again with fresh life and an empty trail."""
        self.positions = self.random_positions(self.count)
        self.life = self.rng.uniform(*self.life_range, size=self.count)
        self.ages[:] = 0
        self.trail_lengths[:] = 0

    def keep(self, mask: np.ndarray) -> None:
        """Drops every particle not selected by the mask."""
        self.positions = self.positions[mask]
        self.speeds = self.speeds[mask]
        self.life = self.life[mask]
        self.ages = self.ages[mask]
        self.colors = self.colors[mask]
        self.trail_points = self.trail_points[mask]
        self.trail_times = self.trail_times[mask]
        self.trail_lengths = self.trail_lengths[mask]

    def trim_oldest(self, limit: int) -> int:
        """Drops the oldest particles (lowest indices) until at most `limit` remain."""
        excess = self.count - limit
        if excess <= 0:
            return 0
        mask = np.zeros(self.count, dtype=bool)
        mask[excess:] = True
        self.keep(mask)
        return excess

    def replenish(self) -> int:
        missing = self.target_count - self.count
        if missing > 0:
            self.spawn(missing)
            return missing
        return 0

    def clear_trails(self) -> None:
        self.trail_lengths[:] = 0

    def append_trails(self, valid: np.ndarray, now: float) -> None:
        _append_trails_numba(
            self.trail_points, self.trail_times, self.trail_lengths,
            self.positions, valid.astype(np.bool_), float(now)
        )

    def evict_stale_trails(self, now: float) -> int:
        return _evict_stale_numba(
            self.trail_points, self.trail_times, self.trail_lengths,
            float(now), self.trail_max_age
        )

    def trail(self, index: int) -> np.ndarray:
        """The valid trail points of one particle, oldest first."""
        return self.trail_points[index, :self.trail_lengths[index]]

    def draw_trails(self, draw_segment: Callable[[Tuple[float, float], Tuple[float, float], Tuple[int, int, int], float], Any],
                    max_segment_length: float = MAX_SEGMENT_LENGTH) -> int:
        """
        Feeds every drawable trail segment to the renderer's callback.

        Segments are skipped when either end is non-finite or when the two
        points coincide or lie further apart than max_segment_length. Width
        grows from the tail of the trail towards the particle.
        """
        low, high = TRAIL_WIDTH_RANGE
        drawn = 0
        for i in np.flatnonzero(self.trail_lengths > 1):
            length = int(self.trail_lengths[i])
            points = self.trail_points[i, :length]
            color = tuple(int(c) for c in self.colors[i])
            for k in range(1, length):
                start = points[k - 1]
                end = points[k]
                if not (np.all(np.isfinite(start)) and np.all(np.isfinite(end))):
                    continue
                distance = float(np.hypot(end[0] - start[0], end[1] - start[1]))
                if not 0 < distance < max_segment_length:
                    continue
                width = low + (high - low) * k / length
                draw_segment((float(start[0]), float(start[1])), (float(end[0]), float(end[1])), color, width)
                drawn += 1
        return drawn

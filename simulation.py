# simulation.py
"""
Handles the core simulation logic: advecting particles through the field.

This module defines the Simulation class, the single context object that
owns the current vector field, the particle pool and the simulation clock.
Each step queries the field evaluator for every particle, integrates the
motion, maintains the trails and keeps the population at its target.
Field regeneration happens here too, as an atomic swap between steps.
"""
import logging
import math
import numpy as np
from typing import Any, Dict, List, Optional, Tuple

from constants import DEFAULT_SIMULATION_PARAMS
from evaluator import FieldEvaluator
from field import Vec2, compile_source, generate_field
from grammar import ExpressionSynthesizer, random_seed
from particle import ParticleSystem
from sharing import encode_share_code
from storage import FunctionStore

# --- Data Contracts ---
#
# class Simulation:
#   - __init__(self, particles: ParticleSystem, evaluator: FieldEvaluator,
#              params: Dict[str, Any], store: Optional[FunctionStore] = None):
#     - Inputs:
#       - particles: An initialized ParticleSystem object.
#       - evaluator: The FieldEvaluator the particles are advected through.
#       - params: Dictionary of simulation parameters from config.json.
#         - "seed": Optional[int], "field_mode": str
#         - "reference_fps", "step_scale", "max_step_delta", "max_frame_time",
#           "offscreen_buffer", "trail_margin", "life_decay": float
#         - "burst_jitter", "burst_speed_range", "burst_life_range",
#           "burst_ceiling", "burst_trim_to"
#       - store: where named functions are saved and loaded.
#     - Side Effects: Generates the initial field.
#
#   - step(self, delta_time: float) -> None:
#     - Inputs: seconds since the previous step.
#     - Side Effects: Advances the clock, moves, culls, respawns and
#       replenishes particles and updates their trails.
#     - Invariants: afterwards target <= particle count <= burst_ceiling x
#       target; no trail exceeds max_trail_length or trail_max_age; never raises
#       for numeric anomalies.
#
#   - spawn_burst(self, position: Tuple[float, float], count: int) -> int
#   - new_field(self, seed: Optional[int] = None) -> field
#   - set_field(self, field, seed: Optional[int] = None) -> None
#   - delete_function(self, name: Optional[str] = None) -> Optional[str]:
#     the named record, else the shown one, else the newest.


class Simulation:
    """
    Owns the active field, the particle pool and the clock.
    """
    def __init__(self, particles: ParticleSystem, evaluator: FieldEvaluator,
                 params: Dict[str, Any], store: Optional[FunctionStore] = None):
        """
        Initializes the simulation environment.

        Args:
            particles (ParticleSystem): The particle system to simulate.
            evaluator (FieldEvaluator): Velocity source for the particles.
            params (Dict[str, Any]): Simulation parameters from config.
            store (Optional[FunctionStore]): Persistence for named functions.
        """
        get = lambda key: params.get(key, DEFAULT_SIMULATION_PARAMS[key])
        self.particles = particles
        self.evaluator = evaluator
        self.store = store

        self.field_mode = get('field_mode')
        self.reference_fps = float(get('reference_fps'))
        self.step_scale = float(get('step_scale'))
        self.max_step_delta = float(get('max_step_delta'))
        self.max_frame_time = float(get('max_frame_time'))
        self.offscreen_buffer = float(get('offscreen_buffer'))
        self.trail_margin = float(get('trail_margin'))
        self.life_decay = float(get('life_decay'))
        self.burst_jitter = float(get('burst_jitter'))
        self.burst_speed_range = tuple(get('burst_speed_range'))
        self.burst_life_range = tuple(get('burst_life_range'))
        self.burst_ceiling = int(get('burst_ceiling'))
        self.burst_trim_to = int(get('burst_trim_to'))

        if not self.burst_ceiling >= self.burst_trim_to >= 1:
            msg = (
                f"Configuration error: burst_trim_to ({self.burst_trim_to}) must be between 1 "
                f"and burst_ceiling ({self.burst_ceiling})."
            )
            logging.critical(msg)
            raise ValueError(msg)
        if self.max_step_delta <= 0 or self.reference_fps <= 0:
            msg = "Configuration error: max_step_delta and reference_fps must be positive."
            logging.critical(msg)
            raise ValueError(msg)

        self.synthesizer = ExpressionSynthesizer()
        self.time = 0.0
        self.tick_count = 0
        self.pointer: Optional[Tuple[float, float]] = None
        self.seed: Optional[int] = None
        self.field = None
        self.function_name: Optional[str] = None
        self.last_step: Dict[str, int] = {}

        logging.info("Simulation logic initialized and configuration validated.")
        self.new_field(params.get('seed'))

    # --- Field management ---

    def set_field(self, field, seed: Optional[int] = None) -> None:
        """Swaps in a fully built field. Steps only ever see the old or the new one."""
        self.field = field
        self.seed = seed
        self.function_name = None
        self.evaluator.set_field(field)

    def new_field(self, seed: Optional[int] = None):
        seed = random_seed() if seed is None else int(seed)
        field = generate_field(seed, self.field_mode, self.synthesizer)
        self.set_field(field, seed)
        if field is None:
            logging.warning(f"Seed {seed} produced no usable field; the base flow is zero.")
        else:
            logging.info(f"New vector field (mode '{self.field_mode}') with seed {seed}.")
            if getattr(field, 'source', None):
                logging.debug(f"Field source:\n{field.source}")
        return field

    def save_function(self, name: str) -> Dict[str, str]:
        if self.store is None:
            raise ValueError("No function store configured.")
        source = getattr(self.field, 'source', None)
        if not source:
            raise ValueError("The current field has no source text to save.")
        record = self.store.save(name, source)
        self.function_name = record['name']
        logging.info(f"Saved function '{record['name']}'.")
        return record

    def load_function(self, name: str):
        """
        Compiles a saved function and swaps it in. Returns the field, or None
        if the stored source no longer compiles (the current field is kept).
        """
        if self.store is None:
            raise ValueError("No function store configured.")
        record = self.store.load(name)
        field = compile_source(record['code'])
        if field is None:
            logging.error(f"Failed to load function '{name}': the saved data may be corrupted.")
            return None
        # Loaded functions are not tied to a seed.
        self.set_field(field, None)
        self.function_name = name
        logging.info(f"Loaded function '{name}'.")
        return field

    def delete_function(self, name: Optional[str] = None) -> Optional[str]:
        """
        Removes a saved function, by default the one currently shown or else
        the newest. Returns the deleted name, or None if nothing was removed.
        """
        if self.store is None:
            raise ValueError("No function store configured.")
        if name is None:
            name = self.function_name
        if name is None:
            try:
                name = self.store.latest()
            except KeyError:
                return None
        if not self.store.delete(name):
            return None
        if self.function_name == name:
            self.function_name = None
        return name

    def saved_functions(self) -> List[str]:
        return self.store.names() if self.store is not None else []

    # --- Parameters ---

    def set_particle_count(self, count: int) -> None:
        self.particles.target_count = max(0, int(count))
        self.particles.trim_oldest(self.particles.target_count)
        self.particles.replenish()

    def set_flow_intensity(self, value: float) -> None:
        self.evaluator.flow_intensity = float(value)

    def set_scale(self, value: float) -> None:
        if not value > 0:
            logging.warning(f"Ignoring non-positive scale {value}.")
            return
        self.evaluator.scale = float(value)

    def set_pointer(self, x: float, y: float) -> None:
        self.pointer = (float(x), float(y))

    def flow_at_pointer(self) -> Vec2:
        """Field velocity under the pointer (the screen centre before it has moved)."""
        if self.pointer is None:
            x, y = self.particles.width / 2, self.particles.height / 2
        else:
            x, y = self.pointer
        return self.evaluator.evaluate_point(x, y, self.time, self.pointer)

    def share_code(self, decay: float) -> Optional[str]:
        if self.seed is None:
            return None
        return encode_share_code(
            self.seed, self.particles.target_count,
            self.evaluator.flow_intensity, self.evaluator.scale, decay
        )

    def apply_shared(self, shared: Dict[str, Any]) -> None:
        """Applies decoded share-code values, regenerating the field for the shared seed."""
        if 'particle_count' in shared:
            self.set_particle_count(shared['particle_count'])
        if 'flow_intensity' in shared:
            self.set_flow_intensity(shared['flow_intensity'])
        if 'scale' in shared:
            self.set_scale(shared['scale'])
        self.new_field(shared['seed'])

    # --- Particles ---

    def reset_particles(self) -> None:
        self.particles.reset()

    def clear_trails(self) -> None:
        self.particles.clear_trails()

    def spawn_burst(self, position: Tuple[float, float], count: int) -> int:
        """
        Adds `count` particles jittered around `position` with livelier
        speed and life, trimming the oldest particles if the pool gets too big.
        """
        count = max(0, int(count))
        center = np.asarray(position, dtype=np.float64)
        if count == 0 or center.shape != (2,) or not np.all(np.isfinite(center)):
            return 0
        particles = self.particles
        jitter = particles.rng.uniform(-self.burst_jitter, self.burst_jitter, size=(count, 2))
        particles.spawn(count, center + jitter, self.burst_speed_range, self.burst_life_range)
        self._enforce_ceiling()
        return count

    def _enforce_ceiling(self) -> int:
        particles = self.particles
        if particles.count > self.burst_ceiling * particles.target_count:
            return particles.trim_oldest(self.burst_trim_to * particles.target_count)
        return 0

    def _frame_time(self, delta_time: float) -> float:
        if not math.isfinite(delta_time) or delta_time < 0:
            return 0.0
        return min(delta_time, self.max_frame_time)

    def step(self, delta_time: float):
        """
        Executes one time step of the simulation.
        """
        delta_time = self._frame_time(float(delta_time))
        self.time += delta_time
        self.tick_count += 1
        # Motion is tuned per reference frame; scale it by how many frames elapsed.
        time_multiplier = delta_time * self.reference_fps

        particles = self.particles
        width, height = particles.width, particles.height
        relocated = culled = respawned = 0

        if particles.count:
            # 1. Sample the field at every particle
            velocities = self.evaluator.evaluate(particles.positions, self.time, self.pointer)

            # 2. Integrate, scaled by each particle's speed
            steps = velocities * (particles.speeds * self.step_scale * time_multiplier)[:, np.newaxis]
            particles.positions += steps

            # 3. A single oversized step is an instability, not motion: move the
            #    particle somewhere fresh and drop its trail instead of drawing it.
            unstable = np.any(np.abs(steps) > self.max_step_delta, axis=1)
            unstable |= ~np.all(np.isfinite(particles.positions), axis=1)
            relocated = particles.relocate(unstable)

            # 4. Cull particles that wandered too far off-screen
            x, y = particles.positions[:, 0], particles.positions[:, 1]
            buffer = self.offscreen_buffer
            offscreen = (x < -buffer) | (x > width + buffer) | (y < -buffer) | (y > height + buffer)
            culled = int(np.count_nonzero(offscreen))
            if culled:
                particles.keep(~offscreen)

            # 5. Extend trails with positions inside the validity bound
            x, y = particles.positions[:, 0], particles.positions[:, 1]
            margin = self.trail_margin
            valid = (
                np.isfinite(x) & np.isfinite(y)
                & (x >= -margin) & (x <= width + margin)
                & (y >= -margin) & (y <= height + margin)
            )
            particles.append_trails(valid, self.time)

            # 6. Age, and respawn the ones whose life ran out
            particles.ages += 1
            particles.life -= self.life_decay * time_multiplier
            respawned = particles.respawn(particles.life <= 0)

        # 7. Restore the population and bound it from above
        added = particles.replenish()
        trimmed = self._enforce_ceiling()
        evicted = particles.evict_stale_trails(self.time)

        self.last_step = {
            'relocated': relocated, 'culled': culled, 'respawned': respawned,
            'added': added, 'trimmed': trimmed, 'evicted': evicted,
        }

    def draw_trails(self, draw_segment) -> int:
        return self.particles.draw_trails(draw_segment)

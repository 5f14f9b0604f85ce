# main.py
"""
Entry point: builds the flow field app from `config.json` and runs it.

Lifecycle:
1. Configuration and logging.
2. Visualizer first (it decides the drawable area), then the field
   evaluator, the particle pool and the simulation built for that area.
3. Optional share code from run_control, restoring a shared field.
4. Frame loop: one simulation step and one rendered frame per tick, under
   the profiler.
5. Shutdown and a profile summary in the log.
"""
import cProfile
import io
import logging
import pstats
from typing import Any, Dict, Tuple

from utils import load_config, resolve_parameters, setup_logging


def build(config: Dict[str, Any]) -> Tuple[Any, Any]:
    """Creates the visualizer and a simulation sized to its drawable area."""
    from evaluator import FieldEvaluator
    from particle import ParticleSystem
    from simulation import Simulation
    from storage import FunctionStore
    from visualization import Visualizer

    sim_params, field_params = resolve_parameters(config)
    visualizer = Visualizer(config.get('visualization', {}))
    width, height = visualizer.sim_width, visualizer.sim_height

    store = FunctionStore(config.get('storage', {}).get('functions_file', 'saved_functions.json'))
    evaluator = FieldEvaluator(field_params, width, height)
    particles = ParticleSystem(sim_params, width, height)
    return visualizer, Simulation(particles, evaluator, sim_params, store)


def apply_share_code(code: str, sim, visualizer) -> None:
    from sharing import decode_share_code

    shared = decode_share_code(code)
    if shared is None:
        logging.warning(f"Share code '{code}' could not be decoded; keeping the configured field.")
        return
    sim.apply_shared(shared)
    if 'decay' in shared:
        visualizer.set_decay(shared['decay'])
    logging.info(f"Restored shared field {shared}.")


def run(sim, visualizer, run_params: Dict[str, Any]) -> int:
    """Steps and draws until the window closes or max_steps is reached. Returns the simulation tick count."""
    log_every = max(1, int(run_params.get('log_throttle_steps', 300)))
    max_steps = int(run_params.get('max_steps', 0))  # 0 means until the window is closed

    while True:
        sim.step(visualizer.tick())
        steps = sim.tick_count
        if not visualizer.draw(sim):
            break

        # Per-frame work is never logged individually.
        if steps % log_every == 0:
            logging.info(f"Step {steps}: {sim.particles.count} particles, t={sim.time:.1f}s")
            logging.debug(f"Step {steps} counters {sim.last_step}, "
                          f"base field failures {sim.evaluator.failure_count}")

        if max_steps and steps >= max_steps:
            logging.info(f"Reached max_steps ({max_steps}).")
            break
    return sim.tick_count


def log_profile(profiler: cProfile.Profile, limit: int = 20) -> None:
    buffer = io.StringIO()
    pstats.Stats(profiler, stream=buffer).sort_stats('cumtime').print_stats(limit)
    logging.info(f"Profile (top {limit} by cumulative time):\n{buffer.getvalue()}")


def main():
    # Logging does not exist until the config is read, so this one failure is printed.
    try:
        config = load_config('config.json')
    except Exception as e:
        print(f"FATAL: Could not load config.json. Error: {e}")
        return

    setup_logging(config)
    logging.info("--- Flow Field starting ---")

    visualizer, sim = build(config)
    run_params = config.get('run_control', {})
    if run_params.get('share_code'):
        apply_share_code(str(run_params['share_code']), sim, visualizer)
    logging.info(f"Share code: {sim.share_code(visualizer.decay)}")

    profiler = cProfile.Profile()
    profiler.enable()
    try:
        steps = run(sim, visualizer, run_params)
    finally:
        profiler.disable()
        visualizer.close()
    logging.info(f"Frame loop finished after {steps} steps.")

    log_profile(profiler)
    logging.info("--- Flow Field shutting down ---")


if __name__ == "__main__":
    main()

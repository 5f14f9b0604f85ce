import pytest

from evaluator import FieldEvaluator
from particle import ParticleSystem
from simulation import Simulation
from storage import FunctionStore

WIDTH = 400
HEIGHT = 300

# Every perturbation off and every time-varying scale pinned to 1, so the
# evaluator passes the (clamped) base field straight through.
QUIET_FIELD_PARAMS = {
    'noise_amplitude': 0.0,
    'wave_amplitude': 0.0,
    'pointer_influence': 0.0,
    'flow_scale': 1.0,
    'flow_intensity': 1.0,
    'activity_low': 1.0,
    'activity_high': 1.0,
    'breathe_low': 1.0,
    'breathe_high': 1.0,
    'noise_seed': 3,
}


def constant_field(vx, vy):
    return lambda x, y: (vx, vy)


@pytest.fixture
def make_evaluator():
    def build(base_field=None, **overrides):
        params = dict(QUIET_FIELD_PARAMS)
        params.update(overrides)
        return FieldEvaluator(params, WIDTH, HEIGHT, base_field)
    return build


@pytest.fixture
def make_simulation(make_evaluator, tmp_path):
    def build(field_params=None, store=True, **sim_overrides):
        params = {'seed': 42, 'particle_seed': 7, 'particle_count': 50}
        params.update(sim_overrides)
        evaluator = make_evaluator(**(field_params or {}))
        particles = ParticleSystem(params, WIDTH, HEIGHT)
        function_store = FunctionStore(str(tmp_path / 'functions.json')) if store else None
        return Simulation(particles, evaluator, params, function_store)
    return build

import numpy as np
import pytest

from particle import ParticleSystem, random_colors

WIDTH = 200
HEIGHT = 100


def make_particles(**overrides):
    params = {'particle_count': 10, 'max_trail_length': 3, 'trail_max_age': 1.0, 'particle_seed': 5}
    params.update(overrides)
    return ParticleSystem(params, WIDTH, HEIGHT)


def test_initial_population_is_inside_bounds():
    particles = make_particles(particle_count=200)
    assert particles.count == 200
    assert np.all((particles.positions >= 0) & (particles.positions <= [WIDTH, HEIGHT]))
    assert np.all((particles.life >= 0.7) & (particles.life <= 1.0))
    assert np.all((particles.speeds >= 0.6) & (particles.speeds <= 2.5))
    assert np.all(particles.trail_lengths == 0)
    assert particles.colors.dtype == np.uint8


def test_same_seed_same_layout():
    np.testing.assert_array_equal(make_particles().positions, make_particles().positions)


def test_trail_keeps_the_newest_entries():
    particles = make_particles(particle_count=1)
    valid = np.ones(1, dtype=bool)
    for step in range(5):
        particles.positions[0] = (step, step * 2)
        particles.append_trails(valid, now=step * 0.1)
    assert particles.trail_lengths[0] == 3
    np.testing.assert_array_equal(particles.trail(0), [[2, 4], [3, 6], [4, 8]])
    np.testing.assert_allclose(particles.trail_times[0], [0.2, 0.3, 0.4])


def test_invalid_positions_are_not_appended():
    particles = make_particles(particle_count=2)
    particles.append_trails(np.array([True, False]), now=0.0)
    assert particles.trail_lengths.tolist() == [1, 0]


def test_stale_entries_are_evicted_from_the_front():
    particles = make_particles(particle_count=1, max_trail_length=5, trail_max_age=0.25)
    valid = np.ones(1, dtype=bool)
    for t in (0.0, 0.1, 0.2, 0.3):
        particles.append_trails(valid, now=t)
    evicted = particles.evict_stale_trails(now=0.4)
    assert evicted == 2
    assert particles.trail_lengths[0] == 2
    np.testing.assert_allclose(particles.trail_times[0, :2], [0.2, 0.3])


def test_respawn_resets_only_selected():
    particles = make_particles(particle_count=4)
    particles.append_trails(np.ones(4, dtype=bool), now=0.0)
    particles.ages[:] = 9
    particles.life[:] = -0.5
    mask = np.array([True, False, True, False])
    assert particles.respawn(mask) == 2
    assert particles.ages.tolist() == [0, 9, 0, 9]
    assert particles.trail_lengths.tolist() == [0, 1, 0, 1]
    assert np.all(particles.life[mask] > 0)


def test_trim_oldest_drops_lowest_indices():
    particles = make_particles(particle_count=5)
    newest = particles.positions[3:].copy()
    assert particles.trim_oldest(2) == 3
    np.testing.assert_array_equal(particles.positions, newest)
    assert particles.trim_oldest(10) == 0


def test_replenish_restores_target():
    particles = make_particles(particle_count=6)
    particles.keep(np.array([True, False, True, False, False, True]))
    assert particles.count == 3
    assert particles.replenish() == 3
    assert particles.count == 6
    assert particles.trail_points.shape == (6, 3, 2)


def test_reset_clears_trails_and_ages():
    particles = make_particles()
    particles.append_trails(np.ones(particles.count, dtype=bool), now=0.0)
    particles.ages[:] = 4
    particles.reset()
    assert np.all(particles.trail_lengths == 0)
    assert np.all(particles.ages == 0)
    assert particles.count == 10


def test_draw_trails_skips_long_and_degenerate_segments():
    particles = make_particles(particle_count=1, max_trail_length=4)
    valid = np.ones(1, dtype=bool)
    for point in [(0.0, 0.0), (3.0, 4.0), (3.0, 4.0), (90.0, 4.0)]:
        particles.positions[0] = point
        particles.append_trails(valid, now=0.0)

    segments = []
    drawn = particles.draw_trails(lambda start, end, color, width: segments.append((start, end, color, width)))
    assert drawn == 1
    start, end, color, width = segments[0]
    assert (start, end) == ((0.0, 0.0), (3.0, 4.0))
    assert color == tuple(int(c) for c in particles.colors[0])
    assert 1.5 <= width <= 4.5


def test_draw_trail_width_grows_towards_the_head():
    particles = make_particles(particle_count=1, max_trail_length=4)
    valid = np.ones(1, dtype=bool)
    for x in (0.0, 1.0, 2.0, 3.0):
        particles.positions[0] = (x, 0.0)
        particles.append_trails(valid, now=0.0)
    widths = []
    particles.draw_trails(lambda start, end, color, width: widths.append(width))
    assert len(widths) == 3
    assert widths == sorted(widths)


def test_random_colors_are_muted():
    colors = random_colors(np.random.default_rng(0), 50, (30.0, 60.0), (30.0, 55.0))
    assert colors.shape == (50, 3)
    # Lightness <= 55% keeps every channel away from white.
    assert np.all(colors.min(axis=1) < 200)


@pytest.mark.parametrize("bad", [
    {'particle_count': -1},
    {'max_trail_length': 0},
    {'life_range': [0.0, 1.0]},
    {'life_range': [0.9, 0.5]},
])
def test_invalid_configuration_is_rejected(bad):
    with pytest.raises(ValueError):
        make_particles(**bad)

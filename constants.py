# constants.py
"""
Application-level constants.

These values are static and do not change between simulation runs.
They cover rendering properties, window sizes, the numeric safety bounds
the field evaluator relies on, and the engine defaults that the JSON
configuration and the named presets override.
"""

# Visualization settings
# Set to True to run in borderless fullscreen mode.
# Set to False to run in a fixed-size window (1500x800 plus the UI panel).
FULLSCREEN = False
WINDOW_SIZE = (1500, 800)
UI_PANEL_WIDTH = 300
FPS = 60
BACKGROUND_COLOR = (8, 12, 20) # Dark Blue
ARROW_COLOR = (80, 120, 160)

# --- Visual Appeal Enhancements ---
# Alpha for the UI panel background
UI_BACKGROUND_ALPHA = 100
# Field arrows are redrawn every N frames to keep the frame time down.
ARROW_REDRAW_INTERVAL = 3
ARROW_SPACING = 60
# Arrows shorter than this magnitude are skipped entirely.
ARROW_MIN_MAGNITUDE = 0.5

# Particles spawned per mouse click, and per frame while dragging.
CLICK_BURST_SIZE = 15
DRAG_BURST_SIZE = 5


# --- Numeric safety bounds ---
# Raw synthesized field output is clamped to this range before anything is
# added on top of it.
BASE_VECTOR_CLAMP = 10.0
# Final evaluator output bound. The particle simulator relies on it.
OUTPUT_VECTOR_CLAMP = 60.0
# Trail points further apart than this are never drawn as one segment.
MAX_SEGMENT_LENGTH = 50.0
TRAIL_WIDTH_RANGE = (1.5, 4.5)


# --- Expression grammar ---
# Base weight shared by every rule class; classes scale it.
BASE_RULE_WEIGHT = 10.0
CLASS_WEIGHTS = {
    "POINT": BASE_RULE_WEIGHT,
    "LENGTH": BASE_RULE_WEIGHT * 0.5,
    "TRIGONOMETRY": BASE_RULE_WEIGHT * 0.9,
    "ARITHMETIC": BASE_RULE_WEIGHT * 0.6,
    "MINMAX": BASE_RULE_WEIGHT * 0.4,
    "EXPONENTIAL": BASE_RULE_WEIGHT * 0.1,
    "SIGN": BASE_RULE_WEIGHT * 0.01,
    "EVENODD": BASE_RULE_WEIGHT * 0.3,
}
# A rule's own class weight is multiplied by this while its arguments expand.
RECURSION_DAMPING = 0.25
# Upper bound (exclusive) for randomly drawn seeds.
MAX_SEED = 1000000


# --- Engine defaults ---
DEFAULT_SIMULATION_PARAMS = {
    "seed": None,
    "particle_seed": None,
    "field_mode": "function",
    "particle_count": 1000,
    "max_trail_length": 3,
    "trail_max_age": 2.0,
    "reference_fps": 60.0,
    "step_scale": 0.5,
    "max_step_delta": 60.0,
    "max_frame_time": 0.25,
    "offscreen_buffer": 100.0,
    "trail_margin": 100.0,
    "life_decay": 0.001,
    "speed_range": [0.6, 2.5],
    "life_range": [0.7, 1.0],
    "burst_jitter": 20.0,
    "burst_speed_range": [0.8, 3.0],
    "burst_life_range": [0.8, 1.0],
    "burst_ceiling": 3,
    "burst_trim_to": 2,
    "saturation_range": [30.0, 60.0],
    "lightness_range": [30.0, 55.0],
}

DEFAULT_FIELD_PARAMS = {
    "scale": 5.0,
    "base_coordinate_scale": 0.005,
    "base_clamp": BASE_VECTOR_CLAMP,
    "output_clamp": OUTPUT_VECTOR_CLAMP,
    "flow_scale": 8.0,
    "flow_intensity": 4.0,
    "activity_low": 0.6,
    "activity_high": 1.0,
    "activity_rate": 0.1,
    "breathe_low": 0.4,
    "breathe_high": 1.0,
    "breathe_rate": 0.15,
    "noise_amplitude": 1.0,
    # [spatial frequency, amplitude, time rate] per layer:
    # slow sweep, medium turbulence, fast fine detail.
    "noise_layers": [
        [0.002, 0.6, 0.05],
        [0.006, 0.3, 0.2],
        [0.02, 0.12, 0.6],
    ],
    "wave_amplitude": 0.3,
    "pointer_influence": 1.0,
    "pointer_falloff": 2.0,
    "pointer_strength": 0.0005,
    "noise_seed": None,
}

# Front-end variants expressed as overrides on the defaults above. Keys are
# looked up in both the simulation and the field parameter sets.
PRESETS = {
    "classic": {},
    "dense": {
        "particle_count": 3000,
        "max_trail_length": 6,
        "flow_intensity": 2.5,
        "noise_layers": [
            [0.003, 0.5, 0.05],
            [0.01, 0.25, 0.25],
        ],
    },
    "calm": {
        "particle_count": 600,
        "max_trail_length": 12,
        "flow_intensity": 1.5,
        "pointer_influence": 0.5,
        "wave_amplitude": 0.1,
        "breathe_low": 0.7,
    },
    "storm": {
        "particle_count": 1500,
        "max_trail_length": 4,
        "flow_intensity": 7.0,
        "pointer_influence": 2.0,
        "noise_amplitude": 2.0,
        "noise_layers": [
            [0.002, 0.8, 0.1],
            [0.008, 0.5, 0.4],
            [0.03, 0.25, 1.2],
        ],
    },
}
DEFAULT_PRESET = "classic"

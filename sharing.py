# sharing.py
"""
Compact share codes for a field and its simulation settings.

A share code is "seed,particle_count,flow_intensity,scale,decay". The seed
regenerates the same field; particle positions are not part of the code.
A bare integer is accepted as the older seed-only form.
"""
import logging
import math
import re
from typing import Any, Dict, Optional

# --- Data Contracts ---
#
# encode_share_code(seed, particle_count, flow_intensity, scale, decay) -> str
#
# decode_share_code(code: str) -> Optional[Dict[str, Any]]:
#   - Outputs: {"seed", "particle_count", "flow_intensity", "scale", "decay"}
#     for the full form, {"seed"} for the seed-only form, or None when the
#     seed does not parse or the full form has fewer than five fields.
#   - Invariants: unparsable numeric fields fall back to SHARE_DEFAULTS.

SHARE_DEFAULTS = {
    'particle_count': 300,
    'flow_intensity': 4.0,
    'scale': 4.0,
    'decay': 0.95,
}

_LEADING_INT = re.compile(r'\s*([+-]?\d+)')


def _format_number(value) -> str:
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(int(value))


def _parse_int(text: str) -> Optional[int]:
    """Leading integer of the text, ignoring trailing junk ("12.5" -> 12)."""
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else None


def _parse_float(text: str) -> Optional[float]:
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def encode_share_code(seed: int, particle_count: int, flow_intensity: float,
                      scale: float, decay: float) -> str:
    return ','.join(_format_number(value) for value in (
        int(seed), int(particle_count), float(flow_intensity), float(scale), float(decay)
    ))


def decode_share_code(code: str) -> Optional[Dict[str, Any]]:
    text = (code or '').strip().lstrip('#')
    if not text:
        return None

    if ',' not in text:
        seed = _parse_int(text)
        if seed is None:
            logging.warning(f"Ignoring share code '{code}': no seed.")
            return None
        return {'seed': seed}

    fields = text.split(',')
    if len(fields) < 5:
        logging.warning(f"Ignoring share code '{code}': expected 5 fields, got {len(fields)}.")
        return None
    seed = _parse_int(fields[0])
    if seed is None:
        logging.warning(f"Ignoring share code '{code}': no seed.")
        return None

    particle_count = _parse_int(fields[1])
    if particle_count is None or particle_count < 0:
        particle_count = SHARE_DEFAULTS['particle_count']
    shared = {'seed': seed, 'particle_count': particle_count}
    for key, text_value in zip(('flow_intensity', 'scale', 'decay'), fields[2:5]):
        value = _parse_float(text_value)
        shared[key] = SHARE_DEFAULTS[key] if value is None else value
    return shared

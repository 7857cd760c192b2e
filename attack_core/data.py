"""Domain constants, default attack values, and shared type aliases."""

from __future__ import annotations

from pathlib import Path
from typing import Final

VARIABLE_DELIMITER: Final[str] = "%%"
VARIABLE_ASSIGNMENT: Final[str] = "="

ADVANTAGE_MODES: Final[tuple[str, ...]] = ("normal", "advantage", "disadvantage")

DEFAULT_ITERATIONS: Final[int] = 1_000_000
DEFAULT_SEED: Final[int] = 42

# Hard cap on dice rolled by a single term such as ``1000d6``.
MAX_DICE_PER_TERM: Final[int] = 10_000
COMPILER_CACHE_LIMIT: Final[int] = 256

# Bounds on the optional exact overlay: the largest n*s of a damage roll, and
# the most distinct totals a whole sequence of attacks may span.
EXACT_MAX_DICE_TOTAL: Final[int] = 1_000
EXACT_MAX_OUTCOMES: Final[int] = 20_000

D20_SIDES: Final[int] = 20
PERCENTILE_SIDES: Final[int] = 100

DEFAULT_SETUP_VALUES: Final[dict[str, object]] = {
    "attack": "1d20+5",
    "damage": "1d8+3",
    "versus": "15",
    "advantage": "normal",
    "numAttacks": "1",
    "crits": {"failsMiss": True, "successesHit": True, "successesCrit": True},
    "cost": None,
    "reduction": None,
}

PREFERENCES_FILENAME: Final[str] = "preferences.json"
PREFERENCES_JSON_PATH: Final[Path] = (
    Path(__file__).resolve().parents[1] / "streamlit_UI" / PREFERENCES_FILENAME
)

DamageDistribution = dict[int, float]
Environment = dict[str, float]

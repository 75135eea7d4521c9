"""
Utilities Package.

Provides bot-challenge detection, human-like mouse interaction and text
normalization helpers.
"""

from .challenge_handler import (
    CHALLENGE_INDICATORS,
    CHALLENGE_URL_PATTERNS,
    ChallengeHandler,
    ChallengeOutcome,
    detect_challenge,
    detect_challenge_in,
)
from .human_simulator import (
    HumanSimulator,
    HumanSimulatorConfig,
)
from .text import (
    digits_only,
    normalize_text,
    phrase_pattern,
    strip_accents,
)

__all__ = [
    # Challenge handling
    "CHALLENGE_INDICATORS",
    "CHALLENGE_URL_PATTERNS",
    "ChallengeHandler",
    "ChallengeOutcome",
    "detect_challenge",
    "detect_challenge_in",
    # Human simulation
    "HumanSimulator",
    "HumanSimulatorConfig",
    # Text
    "digits_only",
    "normalize_text",
    "phrase_pattern",
    "strip_accents",
]

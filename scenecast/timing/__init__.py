"""Scene timing types and word timing helpers.

The resolver lives in :mod:`scenecast.timing.resolver`; it depends on the
speech backends, which in turn use the types exported here.
"""

from .plan import TimingPlan, VoiceoverTrack, WordTimestamp
from .timestamps import estimate_word_timestamps, shift_word_timestamps

__all__ = [
    "TimingPlan",
    "VoiceoverTrack",
    "WordTimestamp",
    "estimate_word_timestamps",
    "shift_word_timestamps",
]

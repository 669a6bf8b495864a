"""
Driver matching and offer fan-out.

This module handles:
    - Ranking available drivers for a delivery point (closest first,
      rating breaks near-ties)
    - Sending offers to the top candidates concurrently
"""

from .candidate_ranker import CandidateRanker, DriverCandidate
from .fanout import (
    FanoutResult,
    FcmNotifier,
    NotificationError,
    NotificationMessage,
    NotifierFanout,
    RecipientResult,
    build_closure_message,
    build_offer_message,
)

__all__ = [
    "CandidateRanker",
    "DriverCandidate",
    "NotifierFanout",
    "FanoutResult",
    "RecipientResult",
    "NotificationMessage",
    "NotificationError",
    "FcmNotifier",
    "build_offer_message",
    "build_closure_message",
]

"""Outbound dispatch: segmentation, pacing, interruption, offline buffering."""

from .interruption import InterruptionController
from .offline import OfflineBuffer
from .pacing import PacingScheduler
from .registry import DeliveryRegistry, DispatchQueue
from .segmenter import count_sentences, segment

__all__ = [
    "DeliveryRegistry",
    "DispatchQueue",
    "InterruptionController",
    "OfflineBuffer",
    "PacingScheduler",
    "count_sentences",
    "segment",
]

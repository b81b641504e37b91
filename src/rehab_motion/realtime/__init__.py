"""
Realtime package: frame scheduling, adaptive throttling and skeleton rendering.
"""

from .channel import LatestValueChannel
from .frame_scheduler import FrameScheduler
from .idle_queue import IdleTaskQueue
from .skeleton_renderer import SkeletonRenderer, name_variants
from .throttle import AdaptiveInterval

__all__ = [
    'LatestValueChannel',
    'FrameScheduler',
    'IdleTaskQueue',
    'SkeletonRenderer',
    'name_variants',
    'AdaptiveInterval',
]

"""
Feedback package: spoken cues for movement evaluations.
"""

from .voice_feedback import VoiceFeedback

__all__ = ['VoiceFeedback']

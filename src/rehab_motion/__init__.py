"""
rehab_motion - real-time movement quality assessment from body keypoints.
"""

__version__ = "0.1.0"

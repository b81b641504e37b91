from typing import Any, Dict, List, Optional

import numpy as np

# Standing pose facing the camera, canonical order: (x, y, score).
_TEMPLATE = np.array([
    [0.50, 0.30, 0.95],  # nose
    [0.47, 0.28, 0.90],  # left_eye
    [0.53, 0.28, 0.90],  # right_eye
    [0.44, 0.29, 0.85],  # left_ear
    [0.56, 0.29, 0.85],  # right_ear
    [0.35, 0.40, 0.95],  # left_shoulder
    [0.65, 0.40, 0.95],  # right_shoulder
    [0.30, 0.55, 0.90],  # left_elbow
    [0.70, 0.55, 0.90],  # right_elbow
    [0.28, 0.65, 0.85],  # left_wrist
    [0.72, 0.65, 0.85],  # right_wrist
    [0.45, 0.60, 0.95],  # left_hip
    [0.55, 0.60, 0.95],  # right_hip
    [0.45, 0.75, 0.90],  # left_knee
    [0.55, 0.75, 0.90],  # right_knee
    [0.45, 0.90, 0.85],  # left_ankle
    [0.55, 0.90, 0.85],  # right_ankle
])


class SyntheticPoseGenerator:
    """Plausible, slightly jittered 17-point skeletons for fallback mode.

    Output is reproducible for a given seed.
    """

    def __init__(self, seed: Optional[int] = None, jitter: float = 0.02, score_drop: float = 0.05):
        self._rng = np.random.default_rng(seed)
        self.jitter = jitter
        self.score_drop = score_drop

    def next_pose(self) -> List[Dict[str, Any]]:
        n = len(_TEMPLATE)
        xy = _TEMPLATE[:, :2] + (self._rng.random((n, 2)) - 0.5) * self.jitter
        scores = _TEMPLATE[:, 2] - self._rng.random(n) * self.score_drop
        xy = np.clip(xy, 0.0, 1.0)
        return [
            {"x": float(x), "y": float(y), "score": float(s)}
            for (x, y), s in zip(xy, scores)
        ]

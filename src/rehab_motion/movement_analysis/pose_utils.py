"""
pose_utils.py - Joint geometry on validated keypoints.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from ..pose_detection.keypoints import Keypoint, keypoint_map


@dataclass(frozen=True)
class AngleMeasurement:
    joint_name: str
    degrees: float
    valid: bool


# Angle name -> (first point, vertex, last point). The angle is measured at the vertex.
JOINT_ANGLE_DEFINITIONS = {
    "left_elbow": ("left_shoulder", "left_elbow", "left_wrist"),
    "right_elbow": ("right_shoulder", "right_elbow", "right_wrist"),
    "left_shoulder": ("left_hip", "left_shoulder", "left_elbow"),
    "right_shoulder": ("right_hip", "right_shoulder", "right_elbow"),
    "left_hip": ("left_shoulder", "left_hip", "left_knee"),
    "right_hip": ("right_shoulder", "right_hip", "right_knee"),
    "left_knee": ("left_hip", "left_knee", "left_ankle"),
    "right_knee": ("right_hip", "right_knee", "right_ankle"),
}


def _is_unset(point: Optional[Keypoint]) -> bool:
    if point is None:
        return True
    if not (np.isfinite(point.x) and np.isfinite(point.y)):
        return True
    # (0, 0) is what upstream code uses for "not detected"
    return point.x == 0 and point.y == 0


def angle_at(
    point_a: Optional[Keypoint],
    vertex: Optional[Keypoint],
    point_c: Optional[Keypoint],
    joint_name: str = "",
) -> AngleMeasurement:
    """
    Calculate the angle at ``vertex`` between the vectors to ``point_a`` and ``point_c``.

    Point ordering convention:
    - point_a: First point (e.g., hip for knee angle)
    - vertex: Middle point (e.g., knee for knee angle) - angle is calculated here
    - point_c: Last point (e.g., ankle for knee angle)

    Returns:
        AngleMeasurement in the 0-180 degree range, or ``degrees=0, valid=False``
        if a point is missing, sits at the origin, or a vector has zero length.
    """
    if _is_unset(point_a) or _is_unset(vertex) or _is_unset(point_c):
        return AngleMeasurement(joint_name, 0.0, False)

    b = np.array([vertex.x, vertex.y], dtype=float)
    ba = np.array([point_a.x, point_a.y], dtype=float) - b
    bc = np.array([point_c.x, point_c.y], dtype=float) - b
    norm_ba = np.linalg.norm(ba)
    norm_bc = np.linalg.norm(bc)
    if norm_ba == 0 or norm_bc == 0:
        return AngleMeasurement(joint_name, 0.0, False)

    cosine_angle = np.clip(np.dot(ba, bc) / (norm_ba * norm_bc), -1.0, 1.0)
    angle = float(np.degrees(np.arccos(cosine_angle)))
    return AngleMeasurement(joint_name, round(angle, 2), True)


def joint_angle(keypoints: Dict[str, Keypoint], joint_name: str) -> AngleMeasurement:
    """Measure one of the JOINT_ANGLE_DEFINITIONS angles from a name -> keypoint map."""
    first, middle, last = JOINT_ANGLE_DEFINITIONS[joint_name]
    return angle_at(keypoints.get(first), keypoints.get(middle), keypoints.get(last), joint_name)


def compute_joint_angles(keypoints: List[Keypoint]) -> Dict[str, float]:
    """Return every standard joint angle that can be measured, in degrees."""
    index = keypoint_map(keypoints)
    angles = {}
    for joint_name in JOINT_ANGLE_DEFINITIONS:
        measurement = joint_angle(index, joint_name)
        if measurement.valid:
            angles[joint_name] = measurement.degrees
    return angles


def vertical_rise(lower: Optional[Keypoint], upper: Optional[Keypoint]) -> Optional[float]:
    """Height of ``upper`` above ``lower`` as a fraction of frame height (image y grows downward)."""
    if lower is None or upper is None:
        return None
    return lower.y - upper.y

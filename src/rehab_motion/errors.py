from enum import Enum


class ModelInitError(RuntimeError):
    """Raised by a pose backend when the model cannot be set up or loaded."""


class InferenceStatus(Enum):
    """Outcome of a single inference call, threaded through each pipeline stage."""
    OK = "ok"
    SYNTHETIC = "synthetic"      # fallback skeleton, model never loaded
    EMPTY = "empty"              # unusable frame or no pose found
    TIMEOUT = "timeout"          # backend did not answer in time
    FAILED = "failed"            # backend raised during estimation
    BUSY = "busy"                # another call is still in flight
    NOT_READY = "not_ready"      # model still loading or already disposed


class EvaluationResult(Enum):
    """How a movement evaluation was produced."""
    SCORED = "scored"
    INSUFFICIENT_KEYPOINTS = "insufficient_keypoints"
    UNKNOWN_MOVEMENT_TYPE = "unknown_movement_type"
    SCORING_FAILED = "scoring_failed"

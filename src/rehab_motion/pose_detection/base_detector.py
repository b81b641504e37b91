from abc import ABC, abstractmethod
from typing import Any, Dict, List

import numpy as np


class BasePoseBackend(ABC):
    """Base class for keypoint-extraction model backends."""

    @abstractmethod
    async def load(self) -> None:
        """
        Set up the inference runtime and load the model.

        Raises:
            ModelInitError: if the model cannot be loaded
        """
        pass

    @abstractmethod
    async def estimate(self, frame: np.ndarray) -> List[Dict[str, Any]]:
        """
        Run pose estimation on a BGR frame.

        Args:
            frame: Input frame as numpy array

        Returns:
            Raw keypoint entries ``{"x", "y", "score"}`` in canonical positional
            order, coordinates normalized to [0, 1]; an empty list if no pose
            was found
        """
        pass

    @abstractmethod
    def dispose(self) -> None:
        """Release the model and any runtime resources."""
        pass

    @abstractmethod
    def get_keypoint_names(self) -> List[str]:
        """
        Get the list of keypoint names, in the order ``estimate`` emits them.

        Returns:
            List of keypoint names
        """
        pass

import asyncio
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config_utils import load_pipeline_config
from ..log_utils import get_logger
from ..pose_detection.keypoints import DEFAULT_CONNECTIONS, Keypoint, SkeletonConnection
from .channel import LatestValueChannel
from .throttle import AdaptiveInterval

_RENDERER_CONFIG = load_pipeline_config()["renderer"]

logger = get_logger("rehab_motion.SkeletonRenderer")


def name_variants(name: str) -> List[str]:
    """Spellings a joint name may arrive under: snake_case, camelCase and underscore-free."""
    parts = name.split("_")
    camel = parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])
    variants = [name, camel, name.replace("_", "")]
    return list(dict.fromkeys(variants))


def _lookup(index: Dict[str, Keypoint], name: str) -> Optional[Keypoint]:
    for variant in name_variants(name):
        kp = index.get(variant)
        if kp is not None:
            return kp
    return None


class SkeletonRenderer:
    """Draws the latest validated keypoints onto a transparent BGRA overlay.

    The renderer runs on its own adaptive cadence, independent of the frame
    scheduler, and reads keypoints only through the shared channel. A redraw
    is skipped when the keypoints equal the last drawn set and the canvas has
    not been invalidated.
    """

    def __init__(
        self,
        width: int,
        height: int,
        channel: LatestValueChannel,
        connections: Sequence[SkeletonConnection] = DEFAULT_CONNECTIONS,
        throttle: Optional[AdaptiveInterval] = None,
        stop_event: Optional[asyncio.Event] = None,
        min_confidence: float = _RENDERER_CONFIG["min_confidence"],
        label_below: float = _RENDERER_CONFIG["label_below"],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.channel = channel
        self.connections = list(connections)
        self.throttle = throttle or AdaptiveInterval()
        self.stop_event = stop_event or asyncio.Event()
        self.min_confidence = min_confidence
        self.label_below = label_below
        self._clock = clock

        self.point_base_radius: int = _RENDERER_CONFIG["point_base_radius"]
        self.point_ring_width: int = _RENDERER_CONFIG["point_ring_width"]
        self.line_thickness: int = _RENDERER_CONFIG["line_thickness"]
        self.point_color = tuple(_RENDERER_CONFIG["point_color"]) + (255,)
        self.ring_color = tuple(_RENDERER_CONFIG["ring_color"]) + (255,)
        self.line_color = tuple(_RENDERER_CONFIG["line_color"]) + (255,)
        self.label_color = tuple(_RENDERER_CONFIG["label_color"]) + (255,)

        self.overlay = np.zeros((height, width, 4), dtype=np.uint8)
        self._last_drawn: Optional[List[Keypoint]] = None
        self._last_tick: Optional[float] = None
        self._dirty = True
        self.draw_count = 0
        self.last_draw_stats: Dict[str, int] = {"lines": 0, "points": 0, "labels": 0}

    @property
    def width(self) -> int:
        return self.overlay.shape[1]

    @property
    def height(self) -> int:
        return self.overlay.shape[0]

    def resize(self, width: int, height: int) -> None:
        """Match the overlay to the source frame's native size."""
        if (width, height) == (self.width, self.height):
            return
        logger.info(f"Resizing skeleton overlay to {width}x{height}")
        self.overlay = np.zeros((height, width, 4), dtype=np.uint8)
        self.invalidate()

    def invalidate(self) -> None:
        self._dirty = True

    def tick(self, now: Optional[float] = None) -> bool:
        """Redraw if the interval has elapsed and something changed. Returns True if drawn."""
        if self.stop_event.is_set():
            return False
        now = self._clock() if now is None else now
        self.throttle.update(now)
        if not self.throttle.due(now, self._last_tick):
            return False
        self._last_tick = now

        keypoints = list(self.channel.latest() or [])
        if not self._dirty and keypoints == self._last_drawn:
            return False

        self.draw(keypoints)
        self._last_drawn = keypoints
        self._dirty = False
        self.throttle.record()
        return True

    # --- Drawing ---
    def _to_pixel(self, kp: Keypoint) -> Tuple[int, int]:
        return int(round(kp.x * self.width)), int(round(kp.y * self.height))

    def _blend(self, bounds: Tuple[int, int, int, int], opacity: float, paint: Callable[[np.ndarray, int, int], None]) -> None:
        """Paint into a copy of the overlay region and mix it back in at ``opacity``."""
        x0, y0, x1, y1 = bounds
        x0, y0 = max(x0, 0), max(y0, 0)
        x1, y1 = min(x1, self.width), min(y1, self.height)
        if x0 >= x1 or y0 >= y1:
            return
        roi = self.overlay[y0:y1, x0:x1]
        layer = roi.copy()
        paint(layer, x0, y0)
        self.overlay[y0:y1, x0:x1] = cv2.addWeighted(layer, opacity, roi, 1.0 - opacity, 0)

    def _draw_line(self, start: Tuple[int, int], end: Tuple[int, int], opacity: float) -> None:
        pad = self.line_thickness + 1
        bounds = (
            min(start[0], end[0]) - pad,
            min(start[1], end[1]) - pad,
            max(start[0], end[0]) + pad + 1,
            max(start[1], end[1]) + pad + 1,
        )

        def paint(layer, ox, oy):
            cv2.line(layer, (start[0] - ox, start[1] - oy), (end[0] - ox, end[1] - oy),
                     self.line_color, self.line_thickness, cv2.LINE_AA)

        self._blend(bounds, opacity, paint)

    def _draw_point(self, center: Tuple[int, int], radius: int, opacity: float) -> None:
        outer = radius + self.point_ring_width
        bounds = (center[0] - outer - 1, center[1] - outer - 1, center[0] + outer + 2, center[1] + outer + 2)

        def paint(layer, ox, oy):
            local = (center[0] - ox, center[1] - oy)
            cv2.circle(layer, local, outer, self.ring_color, -1, cv2.LINE_AA)
            cv2.circle(layer, local, radius, self.point_color, -1, cv2.LINE_AA)

        self._blend(bounds, opacity, paint)

    def draw(self, keypoints: List[Keypoint]) -> None:
        """Clear the overlay and draw connections, then points and confidence labels."""
        self.overlay[:] = 0
        stats = {"lines": 0, "points": 0, "labels": 0}
        index: Dict[str, Keypoint] = {}
        for kp in keypoints:
            index.setdefault(kp.name, kp)

        for connection in self.connections:
            start = _lookup(index, connection.start)
            end = _lookup(index, connection.end)
            if start is None or end is None:
                continue
            if start.effective_confidence < self.min_confidence or end.effective_confidence < self.min_confidence:
                continue
            opacity = (start.effective_confidence + end.effective_confidence) / 2
            self._draw_line(self._to_pixel(start), self._to_pixel(end), opacity)
            stats["lines"] += 1

        for kp in keypoints:
            score = kp.effective_confidence
            if score < self.min_confidence:
                continue
            center = self._to_pixel(kp)
            radius = int(round(self.point_base_radius + score * self.point_base_radius * 0.5))
            self._draw_point(center, radius, score)
            stats["points"] += 1
            if score < self.label_below:
                cv2.putText(self.overlay, f"{int(round(score * 100))}%", (center[0] + 8, center[1] - 8),
                            cv2.FONT_HERSHEY_SIMPLEX, 0.4, self.label_color, 1, cv2.LINE_AA)
                stats["labels"] += 1

        self.draw_count += 1
        self.last_draw_stats = stats
        logger.debug(f"Skeleton drawn: {stats['lines']} lines, {stats['points']} points, {stats['labels']} labels")

    def composite(self, frame: np.ndarray) -> np.ndarray:
        """Alpha-blend the overlay onto a BGR frame and return the result."""
        overlay = self.overlay
        if overlay.shape[:2] != frame.shape[:2]:
            overlay = cv2.resize(overlay, (frame.shape[1], frame.shape[0]), interpolation=cv2.INTER_LINEAR)
        alpha = overlay[:, :, 3:4].astype(np.float32) / 255.0
        blended = frame.astype(np.float32) * (1.0 - alpha) + overlay[:, :, :3].astype(np.float32) * alpha
        return blended.astype(np.uint8)

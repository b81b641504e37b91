import queue
import threading
import time
from typing import Callable, Optional

import pyttsx3

from ..errors import EvaluationResult
from ..log_utils import get_logger
from ..movement_analysis.base_scorer import MovementEvaluation

logger = get_logger("rehab_motion.VoiceFeedback")


class VoiceFeedback:
    """Spoken coaching cues for movement evaluations."""

    def __init__(
        self,
        rate: int = 150,
        volume: float = 1.0,
        cooldown: float = 7.0,
        engine_factory: Callable = pyttsx3.init,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the voice feedback system. The speech engine is created in ``start``.

        Args:
            rate: Speech rate (words per minute)
            volume: Speech volume (0.0 to 1.0)
            cooldown: Minimum seconds between two spoken cues
            engine_factory: Callable returning a pyttsx3-compatible engine
        """
        self.rate = rate
        self.volume = volume
        self.feedback_cooldown = cooldown
        self._engine_factory = engine_factory
        self._clock = clock
        self.engine = None

        self._tts_queue: "queue.Queue[Optional[str]]" = queue.Queue()
        self._tts_thread: Optional[threading.Thread] = None
        self.last_feedback_time: Optional[float] = None
        self._last_feedback_message: Optional[str] = None

        # Cues for evaluations that could not be scored normally
        self.feedback_messages = {
            EvaluationResult.INSUFFICIENT_KEYPOINTS.value: "Make sure your whole body is visible to the camera.",
            EvaluationResult.SCORING_FAILED.value: "Hold still for a moment.",
            "good_form": "Good form! Keep it up!",
        }

    @property
    def running(self) -> bool:
        return self._tts_thread is not None and self._tts_thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self.engine = self._engine_factory()
        self.engine.setProperty('rate', self.rate)
        self.engine.setProperty('volume', self.volume)
        self._tts_thread = threading.Thread(target=self._tts_worker, daemon=True)
        self._tts_thread.start()
        logger.info("Voice feedback started")

    def stop(self, timeout: float = 2.0) -> None:
        if not self.running:
            return
        self._tts_queue.put(None)
        self._tts_thread.join(timeout)
        self._tts_thread = None
        logger.info("Voice feedback stopped")

    def generate_feedback(self, evaluation: MovementEvaluation) -> Optional[str]:
        """
        Pick the cue to speak for an evaluation, if any.

        Args:
            evaluation: Latest movement evaluation

        Returns:
            Feedback message if one should be spoken now, None otherwise
        """
        current_time = self._clock()

        # Avoid feedback spam
        if self.last_feedback_time is not None and current_time - self.last_feedback_time < self.feedback_cooldown:
            return None

        result = evaluation.details.get("result", EvaluationResult.SCORED.value)
        feedback = self.feedback_messages.get(result) or evaluation.feedback
        if not feedback:
            return None

        # Only speak if feedback message changes
        if feedback == self._last_feedback_message:
            return None
        self._last_feedback_message = feedback
        self.last_feedback_time = current_time
        return feedback

    def on_evaluation(self, evaluation: MovementEvaluation) -> None:
        message = self.generate_feedback(evaluation)
        if message:
            self.speak(message)

    def speak(self, message: str) -> None:
        """
        Queue the given message to be spoken by the background TTS thread.

        Args:
            message: Message to speak
        """
        self._tts_queue.put(message)

    def _tts_worker(self):
        while True:
            msg = self._tts_queue.get()
            if msg is None:
                break
            try:
                self.engine.say(msg)
                self.engine.runAndWait()
            except RuntimeError as e:
                logger.error(f"Speech engine error: {e}")

"""
VOICE FEEDBACK MODULE
=====================
Spoken announcements (rep counts and form tips) without overlapping speech.

Two pieces:
    - VoiceSpeaker: the actual text-to-speech collaborator. One background
      thread owns the engine so the video loop never blocks.
    - SpeechQueue: decides WHAT gets said and WHEN. Priority ordered,
      one utterance at a time, short pause between utterances.

The queue is driven from the frame loop (pump() once per frame); the
speaker reports completion back from its thread via on_done / on_error.
"""

import heapq
import itertools
import logging
import platform
import queue
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import pyttsx3

logger = logging.getLogger(__name__)

# ========================================
# SPEECH SETTINGS
# ========================================

INTER_UTTERANCE_DELAY = 0.8    # Seconds of silence between announcements
REP_PRIORITY = 10              # Rep counts jump the queue
FEEDBACK_PRIORITY = 5
DEFAULT_RATE = 160             # pyttsx3 words per minute at rate=1.0
SAY_TIMEOUT = 10               # Seconds before a stuck macOS `say` is killed

IS_MACOS = platform.system() == "Darwin"


@dataclass(frozen=True)
class SpeechQueueItem:
    text: str
    priority: int
    rate: float = 1.0


def rep_announcement(rep_count: int) -> str:
    if rep_count == 1:
        return "1 rep!"
    if rep_count % 5 == 0:
        return f"{rep_count} reps! Great job!"
    return f"{rep_count}"


# ========================================
# TEXT-TO-SPEECH COLLABORATOR (Thread-Safe)
# ========================================

class VoiceSpeaker:
    """
    Fire-and-forget speech on a background thread.

    HOW IT WORKS:
        - speak() puts text on an internal queue and returns immediately
        - The worker thread speaks it, then calls on_done() (or on_error(e))
        - stop() cancels: drops anything not yet spoken and flags the
          worker, which stops the engine at the next word boundary;
          completion of the cancelled utterance is not reported

    MACOS FIX:
        - On macOS, uses the native 'say' command via subprocess to avoid
          pyttsx3 threading issues with NSSpeechSynthesizer
    """

    def __init__(self, rate: int = DEFAULT_RATE):
        self.rate = rate
        self.on_done: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self._queue = queue.Queue()
        self._speaking = threading.Event()
        self._cancel = threading.Event()
        self._generation = 0
        self._lock = threading.Lock()
        self._engine = None
        self._process = None
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    @property
    def is_speaking(self) -> bool:
        return self._speaking.is_set()

    def speak(self, text: str, rate: float = 1.0) -> None:
        if not text:
            return
        with self._lock:
            generation = self._generation
        self._speaking.set()
        self._queue.put((text, rate, generation))

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
        while True:
            try:
                self._queue.get_nowait()
                self._queue.task_done()
            except queue.Empty:
                break
        self._cancel.set()
        if self._process is not None and self._process.poll() is None:
            self._process.terminate()
        self._speaking.clear()

    def shutdown(self) -> None:
        """Stop the worker thread."""
        self.stop()
        self._queue.put(None)
        self._thread.join(timeout=2.0)

    def _say(self, text: str, rate: float) -> None:
        words_per_minute = int(self.rate * rate)
        if IS_MACOS:
            self._process = subprocess.Popen(["say", "-r", str(words_per_minute), text])
            try:
                self._process.wait(timeout=SAY_TIMEOUT)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
                raise
        else:
            self._engine.setProperty("rate", words_per_minute)
            self._engine.say(text)
            self._engine.runAndWait()

    def _on_word(self, name, location, length) -> None:
        # Runs on the worker thread inside runAndWait()
        if self._cancel.is_set():
            self._engine.stop()

    def _worker(self) -> None:
        # pyttsx3 engines must live on the thread that drives them
        if not IS_MACOS:
            try:
                self._engine = pyttsx3.init()
                self._engine.connect("started-word", self._on_word)
            except (RuntimeError, OSError) as e:
                logger.warning("Could not initialize speech engine: %s", e)

        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                break

            text, rate, generation = item
            with self._lock:
                if generation == self._generation:
                    self._cancel.clear()
            error = None
            try:
                if IS_MACOS or self._engine is not None:
                    logger.debug("TTS: %s", text)
                    self._say(text, rate)
                else:
                    error = RuntimeError("speech engine unavailable")
            except Exception as e:
                error = e
            finally:
                self._queue.task_done()

            with self._lock:
                cancelled = generation != self._generation
            if cancelled:
                continue

            self._speaking.clear()
            callback = self.on_error if error is not None else self.on_done
            if callback is not None:
                if error is not None:
                    callback(error)
                else:
                    callback()


# ========================================
# ANNOUNCEMENT QUEUE
# ========================================

class SpeechQueue:
    """
    Serializes announcements so two utterances never overlap.

    ORDERING:
        - Highest priority first, ties in arrival order
        - After an utterance ends, wait inter_utterance_delay before the next
        - A text equal to the previously enqueued one is dropped

    Also acts as a RepCountingSession listener: rep completions and new
    feedback messages are turned into announcements automatically.
    """

    def __init__(self, speaker, clock: Callable[[], float] = time.monotonic,
                 inter_utterance_delay: float = INTER_UTTERANCE_DELAY,
                 rep_priority: int = REP_PRIORITY,
                 feedback_priority: int = FEEDBACK_PRIORITY,
                 enabled: bool = True,
                 stability_gate: bool = False):
        self.speaker = speaker
        self.clock = clock
        self.inter_utterance_delay = inter_utterance_delay
        self.rep_priority = rep_priority
        self.feedback_priority = feedback_priority
        self.enabled = enabled
        self.stability_gate = stability_gate

        self._heap = []
        self._arrival = itertools.count()
        self._lock = threading.RLock()
        self._speaking = False
        self._current: Optional[SpeechQueueItem] = None
        self._last_finished: Optional[float] = None
        self._last_enqueued: Optional[str] = None
        self._last_feedback: Optional[str] = None
        self._session = None

        speaker.on_done = self.utterance_finished
        speaker.on_error = self.utterance_failed

    # ----- queue state -----

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def current(self) -> Optional[SpeechQueueItem]:
        return self._current

    @property
    def pending(self) -> List[SpeechQueueItem]:
        """Queued items in the order they will be spoken."""
        with self._lock:
            return [item for _, _, item in sorted(self._heap)]

    def __len__(self):
        return len(self._heap)

    # ----- enqueue / drain -----

    def enqueue(self, text: str, priority: int, rate: float = 1.0) -> bool:
        if not text or not text.strip():
            return False
        with self._lock:
            if text == self._last_enqueued:
                return False
            self._last_enqueued = text
            heapq.heappush(self._heap, (-priority, next(self._arrival), SpeechQueueItem(text, priority, rate)))
        self.pump()
        return True

    def pump(self) -> Optional[SpeechQueueItem]:
        """
        Start the next utterance if the speaker is free and the pause has passed.

        Call once per frame. Returns the item that started speaking, if any.
        """
        if self.stability_gate and self._session is not None:
            self._check_stable_feedback()

        with self._lock:
            if not self.enabled or self._speaking or not self._heap:
                return None
            if self._last_finished is not None:
                quiet_for = max(0.0, self.clock() - self._last_finished)
                if quiet_for < self.inter_utterance_delay:
                    return None

            _, _, item = heapq.heappop(self._heap)
            self._speaking = True
            self._current = item

        try:
            self.speaker.speak(item.text, item.rate)
        except Exception as e:
            self.utterance_failed(e)
            return None
        return item

    def utterance_finished(self) -> None:
        with self._lock:
            self._speaking = False
            self._current = None
            self._last_finished = self.clock()

    def utterance_failed(self, error: Exception) -> None:
        logger.warning("Speech error: %s", error)
        self.utterance_finished()

    def stop(self) -> None:
        """Cancel the current utterance even if the speaker never reports back."""
        try:
            self.speaker.stop()
        except Exception as e:
            logger.warning("Could not stop speaker: %s", e)
        self.utterance_finished()

    def clear(self) -> None:
        """Drop everything: current utterance, pending items and announcement history."""
        with self._lock:
            self._heap.clear()
            self._last_enqueued = None
            self._last_feedback = None
        self.stop()
        with self._lock:
            self._last_finished = None

    # ----- session listener -----

    def watch(self, session) -> None:
        self._session = session
        session.add_listener(self)

    def on_rep_completed(self, rep_count: int) -> None:
        self.enqueue(rep_announcement(rep_count), self.rep_priority)

    def on_feedback(self, feedback) -> None:
        if self.stability_gate:
            return  # picked up in pump() once stable
        self._announce_feedback(feedback.message)

    def on_reset(self) -> None:
        self.clear()

    def _check_stable_feedback(self) -> None:
        message = self._session.get_form_feedback()
        if message and self._session.is_feedback_stable():
            self._announce_feedback(message)

    def _announce_feedback(self, message: str) -> None:
        if message == self._last_feedback:
            return
        self._last_feedback = message
        self.enqueue(message, self.feedback_priority)

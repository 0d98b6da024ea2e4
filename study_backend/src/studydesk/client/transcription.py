from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import speech_recognition as sr

from ..errors import TranscriptionUnavailable
from ..utils import append_block
from .alerts import Notifier, log_notifier
from .editor import DraftEditor

logger = logging.getLogger(__name__)

TRANSCRIPT_OPEN = "--- TRANSCRIPT ---"
TRANSCRIPT_CLOSE = "--- /TRANSCRIPT ---"
UNSUPPORTED_MESSAGE = "Transcription is not supported here: no speech recognizer is available."


@dataclass(frozen=True)
class Segment:
    """One recognition result. Interim (is_final=False) segments may still change."""
    text: str
    is_final: bool


ResultHandler = Callable[[List[Segment]], None]
ErrorHandler = Callable[[Exception], None]
EndHandler = Callable[[], None]


# PUBLIC_INTERFACE
class SpeechRecognizer(ABC):
    """Continuous speech recognition capability with interim results."""

    def __init__(self) -> None:
        self._on_result: ResultHandler = lambda segments: None
        self._on_error: ErrorHandler = lambda exc: None
        self._on_end: EndHandler = lambda: None

    def bind(self, on_result: ResultHandler, on_error: ErrorHandler, on_end: EndHandler) -> None:
        self._on_result = on_result
        self._on_error = on_error
        self._on_end = on_end

    @abstractmethod
    def start(self) -> None:
        """Begin listening."""

    @abstractmethod
    def stop(self) -> None:
        """Stop listening. The end handler fires once listening has stopped."""


class FakeRecognizer(SpeechRecognizer):
    """Recognizer driven by the test: results, errors and end-of-stream are pushed by hand."""

    def __init__(self) -> None:
        super().__init__()
        self.listening = False

    def start(self) -> None:
        self.listening = True

    def stop(self) -> None:
        if self.listening:
            self.listening = False
            self._on_end()

    def emit(self, *segments: Segment) -> None:
        self._on_result(list(segments))

    def fail(self, exc: Exception) -> None:
        self.listening = False
        self._on_error(exc)
        self._on_end()


class MicrophoneRecognizer(SpeechRecognizer):
    """
    Recognizer using the SpeechRecognition package: background listening on the
    default microphone, each phrase sent to the Google Web Speech API.

    Phrases come back whole, so every segment is final. Callbacks arrive on the
    listener thread and are handed to `loop` when one is given.
    """

    def __init__(
        self,
        language: str = "en-US",
        phrase_time_limit: Optional[float] = 10.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        super().__init__()
        self._language = language
        self._phrase_time_limit = phrase_time_limit
        self._loop = loop
        self._recognizer = sr.Recognizer()
        try:
            self._microphone = sr.Microphone()
        except (AttributeError, OSError) as exc:
            # Raised when PyAudio or an input device is missing
            raise TranscriptionUnavailable(str(exc)) from exc
        self._stop_listening: Optional[Callable[..., Any]] = None

    def _dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        if self._loop is None:
            fn(*args)
        else:
            self._loop.call_soon_threadsafe(fn, *args)

    def _heard(self, recognizer: sr.Recognizer, audio: sr.AudioData) -> None:
        try:
            text = recognizer.recognize_google(audio, language=self._language)
        except sr.UnknownValueError:
            return
        except sr.RequestError as exc:
            self._dispatch(self._on_error, exc)
            self.stop()
            return
        if text:
            self._dispatch(self._on_result, [Segment(text=text, is_final=True)])

    def start(self) -> None:
        if self._stop_listening is not None:
            return
        with self._microphone as source:
            self._recognizer.adjust_for_ambient_noise(source, duration=0.5)
        self._stop_listening = self._recognizer.listen_in_background(
            self._microphone, self._heard, phrase_time_limit=self._phrase_time_limit
        )

    def stop(self) -> None:
        stop_listening, self._stop_listening = self._stop_listening, None
        if stop_listening is None:
            return
        stop_listening(wait_for_stop=False)
        self._dispatch(self._on_end)


# PUBLIC_INTERFACE
def default_recognizer(
    language: str = "en-US", loop: Optional[asyncio.AbstractEventLoop] = None
) -> Optional[SpeechRecognizer]:
    """Return a microphone recognizer delivering to `loop`, or None when this machine cannot provide one."""
    try:
        return MicrophoneRecognizer(language=language, loop=loop)
    except TranscriptionUnavailable as exc:
        logger.info("Speech recognition unavailable: %s", exc)
        return None


# PUBLIC_INTERFACE
class TranscriptionSession:
    """
    Start/stop live transcription and accumulate the finalized text.

    Only final segments are kept (each followed by a space); interim results are
    dropped. Errors and end-of-stream clear is_transcribing but keep the text.
    With no recognizer the session is unsupported and start() only informs the user.
    """

    def __init__(self, recognizer: Optional[SpeechRecognizer], notifier: Notifier = log_notifier) -> None:
        self._recognizer = recognizer
        self._notify = notifier
        self.transcript = ""
        self.is_transcribing = False
        if recognizer is not None:
            recognizer.bind(self._on_result, self._on_error, self._on_end)

    @property
    def supported(self) -> bool:
        return self._recognizer is not None

    def start(self) -> bool:
        if self._recognizer is None:
            self._notify(UNSUPPORTED_MESSAGE)
            return False
        self._recognizer.start()
        self.is_transcribing = True
        return True

    def stop(self) -> None:
        try:
            if self._recognizer is not None:
                self._recognizer.stop()
        finally:
            self.is_transcribing = False

    def clear(self) -> None:
        self.transcript = ""

    def insert_into_note(self, editor: DraftEditor) -> bool:
        """Append the trimmed transcript to the draft body between transcript markers. The buffer is kept."""
        text = self.transcript.strip()
        if not text:
            return False
        editor.update_body(lambda body: append_block(body, TRANSCRIPT_OPEN, text, TRANSCRIPT_CLOSE))
        return True

    def _on_result(self, segments: List[Segment]) -> None:
        final = "".join(f"{s.text} " for s in segments if s.is_final)
        if final:
            self.transcript += final

    def _on_error(self, exc: Exception) -> None:
        logger.debug("Transcription stopped by recognizer error: %s", exc)
        self.is_transcribing = False

    def _on_end(self) -> None:
        self.is_transcribing = False

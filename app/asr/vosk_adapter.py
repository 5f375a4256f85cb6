import json
import logging
from typing import Optional

from vosk import Model, KaldiRecognizer

from app.config import settings

logger = logging.getLogger("asr")


class VoskTranscriber:
    """
    Per-chunk speech-to-text. Each call transcribes one complete chunk of
    16-bit mono PCM and returns its text, or None for silence/noise.
    """

    def __init__(self, model_path: Optional[str] = None, sample_rate: Optional[int] = None):
        self.model_path = model_path or settings.VOSK_MODEL_PATH
        self.sample_rate = sample_rate or settings.VOSK_SAMPLE_RATE
        self._model: Optional[Model] = None

    @property
    def model(self) -> Model:
        # Loading a Vosk model takes seconds; do it on first audio, not on import
        if self._model is None:
            logger.info("[ASR] Loading Vosk model from %s", self.model_path)
            self._model = Model(self.model_path)
        return self._model

    def transcribe(self, audio: bytes) -> Optional[str]:
        if not audio:
            return None

        recognizer = KaldiRecognizer(self.model, self.sample_rate)
        recognizer.AcceptWaveform(audio)
        result = json.loads(recognizer.FinalResult())

        text = (result.get("text") or "").strip()
        return text or None

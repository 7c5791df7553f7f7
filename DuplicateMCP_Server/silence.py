"""Silent WAV file used to build temporary audio clips for arrangement truncation."""

from __future__ import annotations

import logging
import os

import numpy as np
import soundfile as sf

from DuplicateMCP_Server.settings import Settings, default_silence_wav_path

logger = logging.getLogger("AbletonMCPServer.silence")

_SAMPLE_RATE = 44100
_DURATION_SEC = 1.0


def write_silence_wav(path: str, duration_sec: float = _DURATION_SEC, sample_rate: int = _SAMPLE_RATE) -> str:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    frames = max(1, int(round(duration_sec * sample_rate)))
    sf.write(path, np.zeros((frames, 1), dtype=np.float32), sample_rate, subtype="PCM_16")
    logger.info(f"Wrote silence WAV to {path}")
    return path


def ensure_silence_wav(settings: Settings) -> str:
    """Return the configured silence WAV, generating the default one on first use."""
    if settings.silence_wav_path:
        if not os.path.isfile(settings.silence_wav_path):
            raise FileNotFoundError(f"Configured silence WAV does not exist: {settings.silence_wav_path}")
        return settings.silence_wav_path

    path = default_silence_wav_path(settings)
    if not os.path.isfile(path):
        write_silence_wav(path)
    return path

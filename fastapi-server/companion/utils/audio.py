import asyncio
import base64
import binascii
import io
import logging
import wave
from dataclasses import dataclass
from typing import Optional

import numpy as np

from companion.errors import CapabilityUnavailableError, ProviderError

logger = logging.getLogger(__name__)

try:
    import sounddevice as sd

    SOUNDDEVICE_AVAILABLE = True
except (ImportError, OSError):
    # PortAudio missing on headless hosts
    sd = None
    SOUNDDEVICE_AVAILABLE = False

SAMPLE_RATE = 24000
CHANNELS = 1


@dataclass
class AudioBuffer:
    """Decoded float32 samples shaped (frames, channels)."""

    samples: np.ndarray
    sample_rate: int = SAMPLE_RATE
    channels: int = CHANNELS

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return self.frames / float(self.sample_rate)

    def to_wav(self) -> bytes:
        """Encode as a 16-bit PCM WAV file for clients that play it themselves."""
        pcm = (np.clip(self.samples, -1.0, 1.0) * 32767).astype("<i2")
        out = io.BytesIO()
        with wave.open(out, "wb") as wav:
            wav.setnchannels(self.channels)
            wav.setsampwidth(2)
            wav.setframerate(self.sample_rate)
            wav.writeframes(pcm.tobytes())
        return out.getvalue()


def decode_audio(base64_audio: str, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS) -> AudioBuffer:
    """
    Decode base64 raw little-endian PCM16 into a playable buffer.

    The synthesis endpoint returns bare samples (no container), so the
    sample rate and channel count have to be supplied by the caller.
    """
    try:
        raw = base64.b64decode(base64_audio)
    except (binascii.Error, ValueError) as e:
        raise ProviderError(f"Audio payload is not valid base64: {e}") from e

    if len(raw) % 2:
        raw = raw[:-1]
    pcm = np.frombuffer(raw, dtype="<i2")
    frame_count = len(pcm) // channels
    samples = pcm[: frame_count * channels].astype(np.float32).reshape(frame_count, channels) / 32768.0
    return AudioBuffer(samples=samples, sample_rate=sample_rate, channels=channels)


class AudioOutput:
    """A reusable output context. Only one playback runs at a time."""

    def __init__(self):
        self.playing = False
        self.play_count = 0

    async def play(self, buffer: AudioBuffer) -> bool:
        if self.playing:
            logger.info("Playback already in progress, ignoring play request")
            return False
        self.playing = True
        try:
            await self._render(buffer)
            self.play_count += 1
        finally:
            self.playing = False
        return True

    async def _render(self, buffer: AudioBuffer) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class ClientAudioOutput(AudioOutput):
    """Keeps the rendered buffer so the HTTP layer can hand it to the phone."""

    def __init__(self):
        super().__init__()
        self.last_played: Optional[AudioBuffer] = None

    async def _render(self, buffer: AudioBuffer) -> None:
        self.last_played = buffer


class DeviceAudioOutput(AudioOutput):
    """Plays through the host's default output device."""

    def __init__(self):
        if not SOUNDDEVICE_AVAILABLE:
            raise CapabilityUnavailableError(
                "sounddevice is not available",
                user_message="Audio playback is not supported on this device.",
            )
        super().__init__()

    async def _render(self, buffer: AudioBuffer) -> None:
        await asyncio.to_thread(self._play_blocking, buffer)

    @staticmethod
    def _play_blocking(buffer: AudioBuffer) -> None:
        sd.play(buffer.samples, buffer.sample_rate)
        sd.wait()

    def close(self) -> None:
        sd.stop()


def create_audio_output(kind: str) -> AudioOutput:
    if kind == "device":
        return DeviceAudioOutput()
    if kind == "client":
        return ClientAudioOutput()
    raise ValueError(f"Unknown audio output: {kind}")

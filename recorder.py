"""Microphone capture with resampling to the wire format."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

import numpy as np

from errors import CaptureError
from models import AudioChunk

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[AudioChunk], None]


class LinearResampler:
    """Stateful linear-interpolation rate converter for a continuous mono stream.

    Output sample ``k`` sits at input position ``k * src_rate / dst_rate``.  An
    output is produced once the input sample to its right has arrived; the last
    sample of each block is carried over so positions that fall between two
    blocks interpolate across the boundary.  After ``N`` input samples exactly
    ``floor((N - 1) * dst_rate / src_rate) + 1`` outputs exist, and their values
    do not depend on how the input was split into blocks.
    """

    def __init__(self, src_rate: int, dst_rate: int) -> None:
        if src_rate <= 0 or dst_rate <= 0:
            raise ValueError("sample rates must be positive")
        self.src_rate = int(src_rate)
        self.dst_rate = int(dst_rate)
        self.reset()

    @property
    def is_identity(self) -> bool:
        return self.src_rate == self.dst_rate

    def reset(self) -> None:
        self._in_total = 0
        self._out_total = 0
        self._tail: Optional[float] = None

    def process(self, block: np.ndarray) -> np.ndarray:
        if self.is_identity or block.size == 0:
            return block
        samples = block.astype(np.float64)
        base = self._in_total
        if self._tail is not None:
            samples = np.concatenate(([self._tail], samples))
            base -= 1
        self._tail = float(samples[-1])
        self._in_total += block.size

        out_end = (self._in_total - 1) * self.dst_rate // self.src_rate + 1
        k = np.arange(self._out_total, out_end, dtype=np.float64)
        self._out_total = out_end
        positions = k * self.src_rate / self.dst_rate - base
        return np.interp(positions, np.arange(samples.size, dtype=np.float64), samples)


def to_pcm16(samples: np.ndarray) -> bytes:
    if samples.dtype == np.int16:
        return samples.tobytes()
    clipped = np.clip(np.round(samples), -32768, 32767)
    return clipped.astype("<i2").tobytes()


class SoundDeviceRecorder:
    def __init__(
        self,
        target_rate: int = 16000,
        blocksize: int = 4096,
        device: Any = None,
        capture_rate: Optional[int] = None,
        capture_channels: int = 1,
    ) -> None:
        self.target_rate = target_rate
        self.blocksize = blocksize
        self.device = device
        self.capture_rate = capture_rate
        self.capture_channels = capture_channels
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self._resampler: Optional[LinearResampler] = None
        self._on_chunk: Optional[ChunkCallback] = None
        self.dropped_chunks = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self, on_chunk: ChunkCallback) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise CaptureError("sounddevice is not installed")
            try:
                native_rate = self.capture_rate or self._native_rate()
                self._resampler = LinearResampler(native_rate, self.target_rate)
                self._on_chunk = on_chunk
                self._stream = sd.InputStream(
                    samplerate=native_rate,
                    channels=self.capture_channels,
                    dtype="int16",
                    blocksize=self.blocksize,
                    device=self.device,
                    callback=self._on_audio,
                )
                self._stream.start()
            except Exception as exc:
                self._stream = None
                self._on_chunk = None
                raise CaptureError(f"audio capture failed: {exc}") from exc
            self._running = True
            logger.info(
                "capture started (%d Hz x%d -> %d Hz)",
                native_rate,
                self.capture_channels,
                self.target_rate,
            )

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            stream, self._stream = self._stream, None
            self._on_chunk = None
            if stream is not None:
                try:
                    stream.stop()
                finally:
                    stream.close()
            logger.info("capture stopped (%d chunks dropped)", self.dropped_chunks)

    def convert(self, indata: Any) -> bytes:
        """Turn one native capture buffer into target-rate mono PCM16 bytes."""
        samples = np.asarray(indata)
        if samples.ndim == 2:
            if samples.shape[1] == 1:
                samples = samples[:, 0]
            else:
                samples = samples.astype(np.float64).mean(axis=1)
        if self._resampler is None or self._resampler.is_identity:
            return to_pcm16(samples)
        return to_pcm16(self._resampler.process(samples))

    def _native_rate(self) -> int:
        info = sd.query_devices(self.device, kind="input")
        return int(info["default_samplerate"])

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        on_chunk = self._on_chunk
        if not self._running or on_chunk is None:
            return
        if status:
            logger.debug("capture status: %s", status)
        payload = self.convert(indata)
        if not payload:
            return
        chunk = AudioChunk(
            pcm16_bytes=payload,
            sample_rate=self.target_rate,
            channels=1,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            on_chunk(chunk)
        except Exception:
            self.dropped_chunks += 1
            logger.exception("audio chunk consumer failed")

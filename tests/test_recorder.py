"""Tests for SoundDeviceRecorder and LinearResampler."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import CaptureError
from models import AudioChunk
from recorder import LinearResampler, SoundDeviceRecorder, to_pcm16


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _block(n_samples: int, channels: int = 1, value: int = 0) -> np.ndarray:
    return np.full((n_samples, channels), value, dtype=np.int16)


def _mock_stream(mock_sd: MagicMock, native_rate: int = 48000) -> MagicMock:
    stream = MagicMock()
    mock_sd.InputStream.return_value = stream
    mock_sd.query_devices.return_value = {"name": "Mic", "default_samplerate": float(native_rate)}
    return stream


# ---------------------------------------------------------------
# LinearResampler
# ---------------------------------------------------------------

def test_resampler_identity_passes_block_through() -> None:
    resampler = LinearResampler(16000, 16000)
    block = np.arange(100, dtype=np.int16)
    assert resampler.is_identity
    assert resampler.process(block) is block


def test_resampler_downsamples_48k_by_three() -> None:
    resampler = LinearResampler(48000, 16000)
    block = np.arange(4800, dtype=np.float64)
    out = resampler.process(block)
    assert out.size == 1600
    np.testing.assert_allclose(out[:4], [0.0, 3.0, 6.0, 9.0])


def test_resampler_keeps_timing_across_uneven_blocks() -> None:
    resampler = LinearResampler(44100, 16000)
    total_in = 0
    total_out = 0
    for size in (4096, 4096, 1000, 3, 1, 4096):
        total_in += size
        total_out += resampler.process(np.zeros(size)).size
    assert total_out == (total_in - 1) * 16000 // 44100 + 1


def test_resampler_output_is_continuous_across_blocks() -> None:
    """A ramp split into blocks resamples to the same ramp as one big block."""
    ramp = np.arange(9600, dtype=np.float64)
    whole = LinearResampler(48000, 16000).process(ramp)

    split = LinearResampler(48000, 16000)
    pieces = [split.process(ramp[i:i + 1000]) for i in range(0, ramp.size, 1000)]
    np.testing.assert_allclose(np.concatenate(pieces), whole)


def test_resampler_interpolates_across_fractional_block_boundaries() -> None:
    ramp = np.arange(44100, dtype=np.float64)
    whole = LinearResampler(44100, 16000).process(ramp)

    split = LinearResampler(44100, 16000)
    pieces = [split.process(ramp[i:i + 4096]) for i in range(0, ramp.size, 4096)]
    joined = np.concatenate(pieces)

    assert joined.size == whole.size == 16000
    np.testing.assert_allclose(joined, whole, atol=1e-9)
    np.testing.assert_allclose(np.diff(joined), 44100 / 16000)


def test_resampler_reset_forgets_carried_sample() -> None:
    resampler = LinearResampler(44100, 16000)
    resampler.process(np.full(4096, 1000.0))
    resampler.reset()

    out = resampler.process(np.zeros(4096))
    assert out.size == (4096 - 1) * 16000 // 44100 + 1
    assert not out.any()


def test_resampler_rejects_non_positive_rates() -> None:
    with pytest.raises(ValueError):
        LinearResampler(0, 16000)


def test_to_pcm16_clips_and_rounds() -> None:
    data = to_pcm16(np.array([1.6, -40000.0, 40000.0]))
    assert np.frombuffer(data, dtype="<i2").tolist() == [2, -32768, 32767]


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_opens_stream_at_native_rate(mock_sd: MagicMock) -> None:
    stream = _mock_stream(mock_sd, native_rate=48000)

    recorder = SoundDeviceRecorder(target_rate=16000)
    recorder.start(lambda chunk: None)

    mock_sd.InputStream.assert_called_once()
    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 48000
    assert kwargs["dtype"] == "int16"
    assert kwargs["blocksize"] == 4096
    stream.start.assert_called_once()

    recorder.stop()
    stream.stop.assert_called_once()
    stream.close.assert_called_once()


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    _mock_stream(mock_sd)

    recorder = SoundDeviceRecorder()
    recorder.start(lambda chunk: None)
    recorder.start(lambda chunk: None)  # second call should be no-op

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_is_idempotent(mock_sd: MagicMock) -> None:
    stream = _mock_stream(mock_sd)

    recorder = SoundDeviceRecorder()
    recorder.stop()  # never started
    recorder.start(lambda chunk: None)
    recorder.stop()
    recorder.stop()

    stream.close.assert_called_once()
    assert recorder.running is False


# ---------------------------------------------------------------
# Audio callback hands chunks over
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_emits_resampled_chunks(mock_sd: MagicMock) -> None:
    _mock_stream(mock_sd, native_rate=48000)
    chunks: list[AudioChunk] = []

    recorder = SoundDeviceRecorder(target_rate=16000)
    recorder.start(chunks.append)
    recorder._on_audio(_block(4800, value=100), frames=4800, time_info=None, status=None)

    assert len(chunks) == 1
    assert chunks[0].sample_rate == 16000
    assert chunks[0].channels == 1
    assert len(chunks[0].pcm16_bytes) == 1600 * 2
    assert set(np.frombuffer(chunks[0].pcm16_bytes, dtype=np.int16).tolist()) == {100}
    recorder.stop()


@patch("recorder.sd")
def test_matching_format_is_identity(mock_sd: MagicMock) -> None:
    _mock_stream(mock_sd, native_rate=16000)
    chunks: list[AudioChunk] = []
    samples = np.arange(-800, 800, dtype=np.int16).reshape(-1, 1)

    recorder = SoundDeviceRecorder(target_rate=16000)
    recorder.start(chunks.append)
    recorder._on_audio(samples, frames=1600, time_info=None, status=None)

    assert chunks[0].pcm16_bytes == samples.tobytes()
    recorder.stop()


@patch("recorder.sd")
def test_stereo_input_is_downmixed(mock_sd: MagicMock) -> None:
    _mock_stream(mock_sd, native_rate=16000)
    chunks: list[AudioChunk] = []
    stereo = np.column_stack([np.full(10, 100, np.int16), np.full(10, 300, np.int16)])

    recorder = SoundDeviceRecorder(target_rate=16000, capture_channels=2)
    recorder.start(chunks.append)
    recorder._on_audio(stereo, frames=10, time_info=None, status=None)

    assert np.frombuffer(chunks[0].pcm16_bytes, dtype=np.int16).tolist() == [200] * 10
    recorder.stop()


@patch("recorder.sd")
def test_consumer_failure_counts_dropped_chunk(mock_sd: MagicMock) -> None:
    _mock_stream(mock_sd, native_rate=16000)

    def broken(chunk: AudioChunk) -> None:
        raise RuntimeError("socket gone")

    recorder = SoundDeviceRecorder(target_rate=16000)
    recorder.start(broken)
    recorder._on_audio(_block(160), frames=160, time_info=None, status=None)

    assert recorder.dropped_chunks == 1
    recorder.stop()


@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    _mock_stream(mock_sd, native_rate=16000)
    chunks: list[AudioChunk] = []

    recorder = SoundDeviceRecorder()
    recorder.start(chunks.append)
    recorder.stop()
    recorder._on_audio(_block(160), frames=160, time_info=None, status=None)

    assert chunks == []


# ---------------------------------------------------------------
# Capture failures
# ---------------------------------------------------------------

def test_start_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    with pytest.raises(CaptureError, match="sounddevice is not installed"):
        recorder.start(lambda chunk: None)


@patch("recorder.sd")
def test_device_error_becomes_capture_error(mock_sd: MagicMock) -> None:
    _mock_stream(mock_sd)
    mock_sd.InputStream.side_effect = RuntimeError("Device unavailable")

    recorder = SoundDeviceRecorder()
    with pytest.raises(CaptureError, match="Device unavailable"):
        recorder.start(lambda chunk: None)
    assert recorder.running is False

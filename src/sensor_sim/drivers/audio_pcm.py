from __future__ import annotations

import struct
import subprocess
import tempfile
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

from sensor_sim.config.models import DataSourceConfig
from sensor_sim.domain.records import Record, sample_period_ns
from sensor_sim.drivers.contracts import driver

SAMPLE_RATE = 44100
CHANNELS = 2
FULL_SCALE = 32767
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_DECODER = "ffmpeg"


class DecoderError(RuntimeError):
    # External decoder failed or produced no audio.
    def __init__(self, path: Path, detail: str) -> None:
        super().__init__(f"Audio decode of {path} failed: {detail}")
        self.path = path
        self.detail = detail


def format_sample(value: float) -> str:
    # Shortest round-trip digits in positional notation; integral values drop the fraction.
    if value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")


class PcmDecoder:
    """Incremental decoder for interleaved stereo s16le PCM.

    Chunks may end in the middle of a sample; the dangling byte is carried into the
    next chunk. Only the first channel of each frame becomes a record.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE) -> None:
        self._period = sample_period_ns(sample_rate)
        self._odd_byte: int | None = None
        self._channel = 0
        self._frames = 0
        self.bytes_seen = 0

    def feed(self, data: bytes) -> list[Record]:
        if not data:
            return []
        self.bytes_seen += len(data)
        records: list[Record] = []
        start = 0
        if self._odd_byte is not None:
            sample = int.from_bytes(bytes((self._odd_byte, data[0])), "little", signed=True)
            self._sample(sample, records)
            self._odd_byte = None
            start = 1
        end = start + (len(data) - start) // 2 * 2
        for (sample,) in struct.iter_unpack("<h", data[start:end]):
            self._sample(sample, records)
        if end < len(data):
            self._odd_byte = data[end]
        return records

    def _sample(self, sample: int, records: list[Record]) -> None:
        if self._channel == 0:
            timestamp = self._frames * self._period
            self._frames += 1
            records.append(Record(timestamp=timestamp, payload=format_sample(sample / FULL_SCALE)))
        self._channel = (self._channel + 1) % CHANNELS


def decoder_command(decoder: str, path: Path) -> list[str]:
    return [
        decoder,
        "-i",
        str(path),
        "-f",
        "s16le",
        "-ac",
        str(CHANNELS),
        "-acodec",
        "pcm_s16le",
        "-ar",
        str(SAMPLE_RATE),
        "-y",
        "pipe:1",
    ]


@dataclass
class AudioSource:
    # Spawns the decoder on first iteration and streams its stdout through PcmDecoder.
    path: Path
    decoder: str = DEFAULT_DECODER
    chunk_size: int = DEFAULT_CHUNK_SIZE
    popen: Callable[..., Any] = subprocess.Popen
    _consumed: bool = field(default=False, init=False, repr=False)

    def batches(self) -> Iterator[list[Record]]:
        if self._consumed:
            raise RuntimeError(f"Source {self.path} was already read")
        self._consumed = True
        pcm = PcmDecoder()
        # stderr is spooled to a temp file and read once the decoder exits.
        with tempfile.TemporaryFile() as errors:
            try:
                process = self.popen(
                    decoder_command(self.decoder, self.path),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=errors,
                )
            except OSError as exc:
                raise DecoderError(self.path, f"cannot run {self.decoder}: {exc}") from exc
            with process:
                while True:
                    data = process.stdout.read1(self.chunk_size)
                    if not data:
                        break
                    yield pcm.feed(data)
                returncode = process.wait()
            errors.seek(0)
            detail = errors.read().decode("utf-8", errors="replace").strip()
        if pcm.bytes_seen == 0:
            raise DecoderError(self.path, detail or "no audio data decoded")
        if returncode != 0:
            raise DecoderError(self.path, detail or f"{self.decoder} exited with {returncode}")


@driver(filetype="audio")
def audio_driver(source: DataSourceConfig) -> AudioSource:
    return AudioSource(
        path=Path(source.filename),
        decoder=source.decoder or DEFAULT_DECODER,
        chunk_size=source.chunk_size or DEFAULT_CHUNK_SIZE,
    )

"""
Audio segment processor.

Trims a source file to a segment window and converts it to a
single-channel, fixed sample rate WAV by running ffmpeg out of process.
Input and output live in a temporary directory that is removed on every
path, and the ffmpeg run is bounded by a timeout.
"""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Protocol

from .errors import TranscodeError

logger = logging.getLogger(__name__)


class SegmentTranscoder(Protocol):
    """Capability: derive the canonical artifact for a window of audio."""

    def transcode(self, data: bytes, start: float, end: float) -> bytes:
        ...


def is_ffmpeg_installed(binary: str = "ffmpeg") -> bool:
    """Check whether the ffmpeg binary is on PATH."""
    return shutil.which(binary) is not None


class FfmpegTranscoder:
    """Runs ffmpeg to trim, down-mix and resample a segment."""

    def __init__(
        self,
        binary: str = "ffmpeg",
        sample_rate: int = 32000,
        channels: int = 1,
        timeout: float = 60.0,
        input_suffix: str = ".mp3"
    ):
        self.binary = binary
        self.sample_rate = sample_rate
        self.channels = channels
        self.timeout = timeout
        self.input_suffix = input_suffix

    def build_command(self, input_path: Path, output_path: Path, start: float, end: float) -> List[str]:
        """Assemble the ffmpeg argument list for one segment."""
        return [
            self.binary,
            "-hide_banner", "-nostats", "-loglevel", "error",
            "-y",
            "-i", str(input_path),
            "-ss", f"{start:.1f}",
            "-to", f"{end:.1f}",
            "-ac", str(self.channels),
            "-ar", str(self.sample_rate),
            str(output_path),
        ]

    def transcode(self, data: bytes, start: float, end: float) -> bytes:
        """
        Produce the WAV artifact for [start, end) of the given audio.

        Args:
            data: Source audio bytes
            start: Segment start in seconds
            end: Segment end in seconds

        Returns:
            WAV bytes (mono, self.sample_rate Hz).

        Raises:
            TranscodeError: If ffmpeg is missing, fails, times out or writes nothing.
        """
        with tempfile.TemporaryDirectory(prefix="segment-") as tmpdir:
            input_path = Path(tmpdir) / f"input{self.input_suffix}"
            output_path = Path(tmpdir) / "output.wav"
            input_path.write_bytes(data)

            cmd = self.build_command(input_path, output_path, start, end)
            try:
                subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=self.timeout,
                    check=True,
                )
            except FileNotFoundError as e:
                raise TranscodeError(f"ffmpeg not found: {self.binary}") from e
            except subprocess.TimeoutExpired as e:
                logger.error(f"ffmpeg timed out after {self.timeout}s for segment {start}-{end}")
                raise TranscodeError(f"Audio processing timed out after {self.timeout}s") from e
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
                logger.error(f"ffmpeg failed with exit code {e.returncode}: {stderr}")
                raise TranscodeError(f"Failed to process audio: {stderr or e.returncode}") from e

            if not output_path.exists() or output_path.stat().st_size == 0:
                raise TranscodeError("Audio processing produced no output")

            processed = output_path.read_bytes()

        logger.info(f"Processed segment {start:.1f}-{end:.1f}s ({len(processed)} bytes)")
        return processed

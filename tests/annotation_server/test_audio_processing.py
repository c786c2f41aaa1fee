"""
Tests for the ffmpeg segment transcoder.

subprocess.run is mocked; the tests check the command line, error
translation and that temporary files are removed on every path.
"""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from src.annotation_server.audio_processing import FfmpegTranscoder, is_ffmpeg_installed
from src.annotation_server.errors import TranscodeError

RUN = "src.annotation_server.audio_processing.subprocess.run"


def fake_ffmpeg(output: bytes = b"RIFFwav"):
    """subprocess.run stand-in that writes output to the last argument."""
    seen = {}

    def run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen["kwargs"] = kwargs
        seen["input"] = Path(cmd[cmd.index("-i") + 1])
        seen["input_bytes"] = seen["input"].read_bytes()
        Path(cmd[-1]).write_bytes(output)
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    return run, seen


class TestCommand:
    def test_mono_32k_trimmed(self):
        transcoder = FfmpegTranscoder()
        cmd = transcoder.build_command(Path("in.mp3"), Path("out.wav"), 12.3, 22.3)

        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-ss") + 1] == "12.3"
        assert cmd[cmd.index("-to") + 1] == "22.3"
        assert cmd[cmd.index("-ac") + 1] == "1"
        assert cmd[cmd.index("-ar") + 1] == "32000"
        assert cmd[-1] == "out.wav"

    def test_custom_settings(self):
        transcoder = FfmpegTranscoder(binary="/opt/ffmpeg", sample_rate=16000, channels=2)
        cmd = transcoder.build_command(Path("in.mp3"), Path("out.wav"), 0.0, 10.0)

        assert cmd[0] == "/opt/ffmpeg"
        assert cmd[cmd.index("-ar") + 1] == "16000"
        assert cmd[cmd.index("-ac") + 1] == "2"


class TestTranscode:
    def test_returns_output_and_cleans_up(self):
        run, seen = fake_ffmpeg(b"RIFFsegment")
        with patch(RUN, side_effect=run):
            result = FfmpegTranscoder(timeout=5).transcode(b"mp3-bytes", 1.0, 11.0)

        assert result == b"RIFFsegment"
        assert seen["input_bytes"] == b"mp3-bytes"
        assert seen["kwargs"]["timeout"] == 5
        assert seen["kwargs"]["check"] is True
        assert not seen["input"].parent.exists()

    def test_process_failure_cleans_up(self):
        seen = {}

        def run(cmd, **kwargs):
            seen["input"] = Path(cmd[cmd.index("-i") + 1])
            raise subprocess.CalledProcessError(1, cmd, b"", b"Invalid data found")

        with patch(RUN, side_effect=run):
            with pytest.raises(TranscodeError, match="Invalid data found"):
                FfmpegTranscoder().transcode(b"junk", 1.0, 11.0)

        assert not seen["input"].parent.exists()

    def test_timeout(self):
        seen = {}

        def run(cmd, **kwargs):
            seen["input"] = Path(cmd[cmd.index("-i") + 1])
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        with patch(RUN, side_effect=run):
            with pytest.raises(TranscodeError, match="timed out"):
                FfmpegTranscoder(timeout=0.5).transcode(b"mp3", 1.0, 11.0)

        assert not seen["input"].parent.exists()

    def test_missing_binary(self):
        with patch(RUN, side_effect=FileNotFoundError("ffmpeg")):
            with pytest.raises(TranscodeError, match="not found"):
                FfmpegTranscoder().transcode(b"mp3", 1.0, 11.0)

    def test_empty_output_is_failure(self):
        run, _ = fake_ffmpeg(b"")
        with patch(RUN, side_effect=run):
            with pytest.raises(TranscodeError, match="no output"):
                FfmpegTranscoder().transcode(b"mp3", 1.0, 11.0)


class TestFfmpegCheck:
    def test_detects_binary(self):
        with patch("src.annotation_server.audio_processing.shutil.which", return_value="/usr/bin/ffmpeg"):
            assert is_ffmpeg_installed() is True

    def test_missing_binary(self):
        with patch("src.annotation_server.audio_processing.shutil.which", return_value=None):
            assert is_ffmpeg_installed() is False

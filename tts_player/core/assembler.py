"""
Audio segment assembly.

Joins per-chunk audio into one playable stream. Multi-segment joins are
delegated to a Concatenator strategy; the default runs ffmpeg in
stream-copy mode on temporary files.
"""

import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence

from loguru import logger

from .errors import NetworkError, ValidationError


class Concatenator(Protocol):
    """Joins ordered audio files into one byte stream."""

    def is_available(self) -> bool: ...

    def concatenate(self, paths: Sequence[Path]) -> bytes: ...


def quote_manifest_path(path: Path) -> str:
    """Quote a path for an ffmpeg concat manifest line."""
    return "'" + str(path).replace("'", "'\\''") + "'"


def build_manifest(paths: Sequence[Path]) -> str:
    """Render the newline-delimited concat manifest."""
    return "".join(f"file {quote_manifest_path(path)}\n" for path in paths)


class FFmpegConcatenator:
    """Lossless concatenation through the ffmpeg concat demuxer.

    All segments must share codec parameters; no re-encoding happens.
    """

    def __init__(
        self,
        binary: str = "ffmpeg",
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        suffix: str = ".mp3"
    ):
        self.binary = binary
        self.runner = runner
        self.suffix = suffix

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def command(self, manifest: Path, output: Path) -> List[str]:
        return [
            self.binary,
            "-f", "concat",
            "-safe", "0",
            "-i", str(manifest),
            "-c", "copy",
            "-y",
            str(output),
        ]

    def concatenate(self, paths: Sequence[Path]) -> bytes:
        """Concatenate audio files in order.

        Args:
            paths: Ordered audio files sharing one codec

        Returns:
            Bytes of the concatenated output file

        Raises:
            NetworkError: If ffmpeg cannot be started or exits non-zero
        """
        with tempfile.TemporaryDirectory(prefix="tts-concat-") as workdir:
            manifest = Path(workdir) / "manifest.txt"
            output = Path(workdir) / f"output{self.suffix}"
            manifest.write_text(build_manifest(paths), encoding="utf-8")

            logger.debug("Running ffmpeg concat over {count} files", count=len(paths))
            try:
                result = self.runner(
                    self.command(manifest, output),
                    capture_output=True,
                    check=False,
                )
            except OSError as e:
                raise NetworkError(f"Failed to run ffmpeg: {e}") from e

            if result.returncode != 0:
                stderr = _decode(result.stderr)
                logger.error("ffmpeg failed with exit code {code}: {stderr}", code=result.returncode, stderr=stderr)
                raise NetworkError(f"ffmpeg failed: {stderr}")

            try:
                return output.read_bytes()
            except OSError as e:
                raise NetworkError(f"Failed to read ffmpeg output: {e}") from e


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace").strip()
    return str(data).strip()


class AudioAssembler:
    """Turns ordered per-chunk audio into a single buffer."""

    def __init__(self, concatenator: Optional[Concatenator] = None, suffix: str = ".mp3"):
        self.concatenator = concatenator or FFmpegConcatenator(suffix=suffix)
        self.suffix = suffix

    def can_concatenate(self) -> bool:
        """True when multi-segment assembly is possible."""
        return self.concatenator.is_available()

    def assemble(self, segments: Sequence[bytes]) -> bytes:
        """Join audio segments in order.

        A single segment is returned unchanged without touching the
        concatenator. Segment files live only for the duration of the call.

        Raises:
            ValidationError: If there are no segments
            NetworkError: If segments cannot be written or the concatenator fails
        """
        if not segments:
            raise ValidationError("No audio segments to assemble")
        if len(segments) == 1:
            return segments[0]

        with tempfile.TemporaryDirectory(prefix="tts-segments-") as workdir:
            paths = []
            for index, segment in enumerate(segments):
                path = Path(workdir) / f"segment_{index:04d}{self.suffix}"
                try:
                    path.write_bytes(segment)
                except OSError as e:
                    raise NetworkError(f"Failed to write audio segment {index}: {e}") from e
                paths.append(path)

            logger.info("Concatenating {count} audio segments", count=len(paths))
            audio = self.concatenator.concatenate(paths)

        logger.info("Assembled {size} bytes of audio", size=len(audio))
        return audio

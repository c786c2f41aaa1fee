"""
Configuration for the annotation server.

Defaults describe the production corpus layout (fma_small/000 .. 155).
Every field can be overridden from the environment with an ANNOTATOR_
prefixed variable; main.py layers command-line flags on top.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Tuple


ENV_PREFIX = "ANNOTATOR_"


@dataclass
class AnnotatorConfig:
    """Runtime settings for resolution, commit and storage."""

    # Object store layout
    storage_dir: Path = Path("local_data/objects")
    corpus_root: str = "fma_small"
    processed_prefix: str = "processed"
    audio_extensions: Tuple[str, ...] = (".mp3",)
    list_page_size: int = 1000

    # Folder namespace
    folder_width: int = 3
    max_folder: int = 155

    # Resolver behavior
    max_skip_iterations: int = 100
    skip_unlistable_folders: bool = False

    # Segment and transcoding
    segment_duration: float = 10.0
    sample_rate: int = 32000
    channels: int = 1
    transcode_timeout: float = 60.0
    ffmpeg_binary: str = "ffmpeg"

    # Signed URLs
    signed_url_ttl: int = 3600
    url_secret: str = "dev-secret-do-not-use-in-production"
    public_url: str = "http://127.0.0.1:8000"

    # SQLite path (None = db.get_db_path() default)
    db_path: Optional[Path] = None

    @property
    def initial_folder(self) -> str:
        """First folder id in the namespace, zero padded."""
        return "0".zfill(self.folder_width)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> 'AnnotatorConfig':
        """
        Build a config from ANNOTATOR_* environment variables.

        Args:
            environ: Mapping to read (defaults to os.environ)

        Returns:
            Config with every present variable applied over the defaults.

        Raises:
            ValueError: If a variable cannot be converted to its field type.
        """
        environ = os.environ if environ is None else environ
        config = cls()
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            setattr(config, f.name, _convert(f.name, getattr(config, f.name), raw))
        return config


def _convert(name: str, current, raw: str):
    """Convert an environment string to the type of the current value."""
    if name == "db_path" or isinstance(current, Path):
        return Path(raw)
    if isinstance(current, bool):
        return raw.strip().lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, tuple):
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    return raw

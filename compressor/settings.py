"""
Compressor settings and JSON persistence
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import List, Optional, Union

from .compression.encoders import get_supported_formats
from .compression.result import EncoderOptions
from .logger import set_log_file


# Settings file location (working directory, like the log file)
SETTINGS_FILE = Path.cwd() / "compressor_settings.json"


@dataclass
class CompressorSettings:
    """Tunable settings for the pipeline and its host.

    Attributes:
        default_quality: Quality used before the user picks one (0.0-1.0)
        debounce_threshold: Minimum quality change that re-triggers while
            the control is still moving
        max_workers: Worker threads for encode jobs
        formats: Formats to encode, in display order
        chroma_subsampling: Chroma mode (0=4:4:4, 1=4:2:2, 2=4:2:0)
        progressive: Enable progressive JPEG encoding
        use_mozjpeg: Apply MozJPEG lossless optimization to JPEG output
        heic_effort: HEIC encoder effort (0-9) or None for the default
        calculate_ssim: Attach an SSIM score to each successful result
        log_file: Log file name or path
    """
    default_quality: float = 0.5
    debounce_threshold: float = 0.1
    max_workers: int = 2
    formats: List[str] = field(default_factory=lambda: ['JPEG', 'HEIC'])
    chroma_subsampling: int = 2
    progressive: bool = False
    use_mozjpeg: bool = True
    heic_effort: Optional[int] = None
    calculate_ssim: bool = False
    log_file: str = "compressor.log"

    def __post_init__(self):
        """Validate settings."""
        if not 0.0 <= self.default_quality <= 1.0:
            raise ValueError(f"default_quality must be 0.0-1.0, got {self.default_quality}")
        if not 0.0 <= self.debounce_threshold <= 1.0:
            raise ValueError(
                f"debounce_threshold must be 0.0-1.0, got {self.debounce_threshold}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

        self.formats = [name.upper() for name in self.formats]
        if not self.formats:
            raise ValueError("formats must not be empty")
        known = get_supported_formats()
        for name in self.formats:
            if name not in known:
                raise ValueError(f"Unsupported format: {name}. Known: {known}")

        # Encoder options validate the rest
        build_encoder_options(self)


def build_encoder_options(settings: CompressorSettings) -> EncoderOptions:
    """Build encoder options from settings."""
    return EncoderOptions(
        chroma_subsampling=settings.chroma_subsampling,
        progressive=settings.progressive,
        use_mozjpeg=settings.use_mozjpeg,
        heic_effort=settings.heic_effort,
    )


def load_settings(path: Union[str, Path, None] = None) -> CompressorSettings:
    """
    Load settings from JSON file.

    Missing or unreadable files give defaults; unknown keys are ignored.

    Args:
        path: Settings file, defaults to SETTINGS_FILE

    Returns:
        CompressorSettings instance

    Raises:
        ValueError: The file holds invalid values
    """
    path = Path(path) if path is not None else SETTINGS_FILE
    data = {}
    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            data = {}

    if not isinstance(data, dict):
        data = {}

    known = {f.name for f in fields(CompressorSettings)}
    try:
        return CompressorSettings(**{k: v for k, v in data.items() if k in known})
    except (TypeError, AttributeError) as ex:
        # Wrong JSON type, e.g. a number stored as a string
        raise ValueError(f"Invalid settings in {path}: {ex}") from ex


def save_settings(settings: CompressorSettings, path: Union[str, Path, None] = None) -> bool:
    """
    Save settings to JSON file.

    Args:
        settings: Settings to save
        path: Settings file, defaults to SETTINGS_FILE

    Returns:
        True if saved successfully
    """
    path = Path(path) if path is not None else SETTINGS_FILE
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(asdict(settings), f, indent=2)
        return True
    except IOError:
        return False


def apply_log_settings(settings: CompressorSettings):
    """Point the global logger at the configured log file."""
    set_log_file(settings.log_file)

"""Encode result dataclasses and encoder options."""

from dataclasses import dataclass
from typing import Optional, Union

from .errors import EncodeError, ErrorKind


@dataclass(frozen=True)
class EncodeSuccess:
    """Encoded output of one job.

    Attributes:
        format: Format tag of the encoder (JPEG, HEIC)
        generation: Generation the job belonged to
        encoded_bytes: The compressed image data
        elapsed: Encode time in seconds
        quality: Quality scalar (0.0-1.0) the job was submitted with
        queued: Seconds the job waited between submission and encode start
        ssim_score: Structural similarity score (0-1) if calculated
    """
    format: str
    generation: int
    encoded_bytes: bytes
    elapsed: float
    quality: float
    queued: float = 0.0
    ssim_score: Optional[float] = None

    ok = True

    @property
    def size_bytes(self) -> int:
        """Get encoded size in bytes."""
        return len(self.encoded_bytes)

    @property
    def elapsed_ms(self) -> int:
        """Get encode time in milliseconds."""
        return int(self.elapsed * 1000)

    @property
    def total_elapsed(self) -> float:
        """Get time from submission to finished encode."""
        return self.queued + self.elapsed


@dataclass(frozen=True)
class EncodeFailure:
    """Typed failure of one job.

    Attributes:
        format: Format tag of the encoder (JPEG, HEIC)
        generation: Generation the job belonged to
        error: The encoder error
    """
    format: str
    generation: int
    error: EncodeError

    ok = False

    @property
    def kind(self) -> ErrorKind:
        """Get the failure category."""
        return self.error.kind


EncodeResult = Union[EncodeSuccess, EncodeFailure]


@dataclass(frozen=True)
class EncoderOptions:
    """Options for format-specific encoding.

    Attributes:
        chroma_subsampling: Chroma mode (0=4:4:4, 1=4:2:2, 2=4:2:0)
        progressive: Enable progressive JPEG encoding
        use_mozjpeg: Apply MozJPEG lossless optimization to JPEG output
        heic_effort: HEIC encoder effort (0-9, higher = slower/better),
            None keeps the encoder default
    """
    chroma_subsampling: int = 2
    progressive: bool = False
    use_mozjpeg: bool = True
    heic_effort: Optional[int] = None

    def __post_init__(self):
        """Validate options."""
        if self.chroma_subsampling not in (0, 1, 2):
            raise ValueError(
                f"chroma_subsampling must be 0, 1, or 2, got {self.chroma_subsampling}"
            )
        if self.heic_effort is not None and not 0 <= self.heic_effort <= 9:
            raise ValueError(f"heic_effort must be 0-9, got {self.heic_effort}")

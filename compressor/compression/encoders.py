"""Format-specific image encoders with optional dependency support.

Provides stateless JPEG and HEIC encoders that take a decoded image and a
quality scalar in [0.0, 1.0]. Optional dependencies (pillow-heif, MozJPEG,
scikit-image) degrade gracefully: a missing HEIC plugin makes the HEIC
encoder report UnsupportedFormatError instead of disappearing.
"""

from abc import ABC, abstractmethod
from io import BytesIO
from typing import Dict, List, Optional, Tuple, Type

import numpy as np
from PIL import Image, features

from ..logger import log
from .errors import (
    EncodeError,
    EncodeFailedError,
    InvalidSourceError,
    UnsupportedFormatError,
)
from .result import EncoderOptions, EncodeSuccess


# Optional dependency checks
SSIM_AVAILABLE = False
try:
    from skimage.metrics import structural_similarity
    SSIM_AVAILABLE = True
except ImportError:
    pass

MOZJPEG_AVAILABLE = False
try:
    import mozjpeg_lossless_optimization
    MOZJPEG_AVAILABLE = True
except ImportError:
    pass

HEIC_AVAILABLE = False
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
    HEIC_AVAILABLE = True
except ImportError:
    pass


# pillow-heif chroma values for each subsampling mode
HEIC_CHROMA = {0: 444, 1: 422, 2: 420}

# x265 presets indexed by effort (0 = fastest)
HEIC_PRESETS = (
    "ultrafast", "superfast", "veryfast", "faster", "fast",
    "medium", "slow", "slower", "veryslow", "placebo",
)


def has_pixel_buffer(image: Image.Image) -> bool:
    """Check whether an image has been decoded into memory."""
    try:
        return image.im is not None
    except AssertionError:
        # Newer Pillow asserts on the buffer of an undecoded image
        return False


class BaseEncoder(ABC):
    """Abstract base class for format-specific encoders.

    Subclasses implement _encode() for an image already prepared for the
    format. encode() wraps it with availability and source checks and turns
    encoder exceptions into typed EncodeError subclasses.
    """

    format_name: str

    def __init__(self, options: Optional[EncoderOptions] = None):
        self.options = options if options is not None else EncoderOptions()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.options!r})"

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether this runtime can encode the format."""

    @abstractmethod
    def _encode(self, image: Image.Image, quality: int) -> bytes:
        """Encode a prepared image at an encoder-native quality."""

    def encode(self, image: Image.Image, quality: float) -> bytes:
        """Encode image to bytes.

        Args:
            image: Decoded PIL Image (load() already called), never modified
            quality: Quality scalar, 0.0 (smallest) to 1.0 (best)

        Returns:
            Non-empty encoded image bytes

        Raises:
            ValueError: quality is outside [0.0, 1.0]
            UnsupportedFormatError: no encoder for this format
            InvalidSourceError: image has no readable pixel data
            EncodeFailedError: the encoder produced no valid output
        """
        native_quality = self.map_quality(quality)

        if not self.is_available():
            raise UnsupportedFormatError(
                self.format_name, f"{self.format_name} encoding is not available"
            )

        self._check_source(image)

        try:
            encoded = self._encode(self.prepare_image(image), native_quality)
        except EncodeError:
            raise
        except (OSError, ValueError, KeyError, MemoryError) as ex:
            raise EncodeFailedError(
                self.format_name, f"{self.format_name} encoder error: {ex}"
            ) from ex

        if not encoded:
            raise EncodeFailedError(
                self.format_name, f"{self.format_name} encoder produced no data"
            )
        return encoded

    def get_quality_range(self) -> Tuple[int, int]:
        """Get valid quality range for this format.

        Returns:
            Tuple of (min_quality, max_quality)
        """
        return (1, 100)

    def map_quality(self, quality: float) -> int:
        """Map a quality scalar in [0.0, 1.0] onto the encoder range."""
        if not 0.0 <= quality <= 1.0:
            raise ValueError(f"quality must be 0.0-1.0, got {quality}")
        low, high = self.get_quality_range()
        return low + round(quality * (high - low))

    def prepare_image(self, image: Image.Image) -> Image.Image:
        """Prepare image for encoding (mode conversion, etc).

        Conversions return new images; the source is left untouched.
        """
        return image

    def _check_source(self, image: Image.Image) -> None:
        if not isinstance(image, Image.Image):
            raise InvalidSourceError(
                self.format_name, f"Expected a PIL image, got {type(image).__name__}"
            )
        if image.width == 0 or image.height == 0:
            raise InvalidSourceError(self.format_name, "Source image has no pixels")

        # Encoders run concurrently on a shared image, so decoding it here
        # would race on the file pointer. The caller decodes first.
        if not has_pixel_buffer(image):
            raise InvalidSourceError(
                self.format_name, "Source image has no pixel buffer (not decoded)"
            )


class JpegEncoder(BaseEncoder):
    """JPEG encoder with MozJPEG optimization support."""

    format_name = "JPEG"

    def is_available(self) -> bool:
        return bool(features.check_codec("jpg"))

    def _encode(self, image: Image.Image, quality: int) -> bytes:
        save_kwargs = {
            'quality': quality,
            'optimize': True,
            'progressive': self.options.progressive,
        }
        # Chroma subsampling only applies to color images
        if image.mode == 'RGB':
            save_kwargs['subsampling'] = self.options.chroma_subsampling

        buffer = BytesIO()
        image.save(buffer, format='JPEG', **save_kwargs)
        encoded_bytes = buffer.getvalue()

        if self.options.use_mozjpeg and MOZJPEG_AVAILABLE:
            try:
                encoded_bytes = mozjpeg_lossless_optimization.optimize(encoded_bytes)
            except Exception as ex:
                # Lossless pass only; the plain encode is still valid
                log(f"JPEG: MozJPEG optimization skipped: {ex}")

        return encoded_bytes

    def prepare_image(self, image: Image.Image) -> Image.Image:
        """Convert to RGB for JPEG."""
        if image.mode in ('RGBA', 'LA', 'PA'):
            # Composite on white background
            rgba = image.convert('RGBA')
            background = Image.new('RGB', rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[3])
            return background
        elif image.mode == 'P' and 'transparency' in image.info:
            return self.prepare_image(image.convert('RGBA'))
        elif image.mode not in ('RGB', 'L', 'CMYK'):
            return image.convert('RGB')
        return image


class HeicEncoder(BaseEncoder):
    """HEIC encoder using pillow-heif."""

    format_name = "HEIC"

    def is_available(self) -> bool:
        return HEIC_AVAILABLE

    def get_quality_range(self) -> Tuple[int, int]:
        # pillow-heif reserves -1 for lossless
        return (0, 100)

    def _encode(self, image: Image.Image, quality: int) -> bytes:
        save_kwargs = {
            'quality': quality,
            'chroma': HEIC_CHROMA[self.options.chroma_subsampling],
        }
        if self.options.heic_effort is not None:
            save_kwargs['enc_params'] = {'preset': HEIC_PRESETS[self.options.heic_effort]}

        buffer = BytesIO()
        image.save(buffer, format='HEIF', **save_kwargs)
        return buffer.getvalue()

    def prepare_image(self, image: Image.Image) -> Image.Image:
        """Prepare image for HEIC encoding."""
        if image.mode == 'P':
            if 'transparency' in image.info:
                return image.convert('RGBA')
            return image.convert('RGB')
        elif image.mode == 'LA':
            return image.convert('RGBA')
        elif image.mode not in ('RGB', 'RGBA'):
            return image.convert('RGB')
        return image


# Encoder registry, in display order
_ENCODERS: Dict[str, Type[BaseEncoder]] = {
    'JPEG': JpegEncoder,
    'HEIC': HeicEncoder,
}


def get_encoder(
    format_name: str,
    options: Optional[EncoderOptions] = None
) -> Optional[BaseEncoder]:
    """Get encoder for format.

    Args:
        format_name: Format name (JPEG, HEIC)
        options: Encoding options for the new encoder

    Returns:
        Encoder instance or None if the format is unknown
    """
    encoder_cls = _ENCODERS.get(format_name.upper())
    if encoder_cls is None:
        return None
    return encoder_cls(options)


def get_supported_formats() -> List[str]:
    """Get every registered format name, available or not."""
    return list(_ENCODERS.keys())


def get_available_formats() -> List[str]:
    """Get list of format names this runtime can encode."""
    return [name for name, cls in _ENCODERS.items() if cls().is_available()]


def get_default_encoders(
    options: Optional[EncoderOptions] = None,
    formats: Optional[List[str]] = None,
) -> List[BaseEncoder]:
    """Build one encoder per format.

    Unavailable formats are still included so they report
    UnsupportedFormatError to the caller.

    Args:
        options: Encoding options shared by the encoders
        formats: Format names to build, defaults to every registered format

    Raises:
        ValueError: a format name is not registered
    """
    encoders = []
    for name in formats or get_supported_formats():
        encoder = get_encoder(name, options)
        if encoder is None:
            raise ValueError(f"Unsupported format: {name}. Known: {get_supported_formats()}")
        encoders.append(encoder)
    return encoders


def decode_bytes(encoded_bytes: bytes) -> Image.Image:
    """Decode encoded bytes back into a fully loaded PIL Image."""
    decoded = Image.open(BytesIO(encoded_bytes))
    decoded.load()
    return decoded


def decode_result(result: EncodeSuccess) -> Image.Image:
    """Decode the output of a successful encode for preview."""
    return decode_bytes(result.encoded_bytes)


def calculate_ssim_inmemory(
    original: Image.Image,
    compressed: Image.Image
) -> Optional[float]:
    """Calculate SSIM between two images in memory.

    Args:
        original: Source PIL Image
        compressed: Decoded encoder output

    Returns:
        SSIM score (0.0 to 1.0) or None if scikit-image unavailable
    """
    if not SSIM_AVAILABLE:
        return None

    if original.size != compressed.size:
        compressed = compressed.resize(original.size, Image.Resampling.LANCZOS)

    # Encoders drop alpha and palettes, so compare in RGB unless both are gray
    if original.mode == 'L' and compressed.mode == 'L':
        orig_array = np.asarray(original)
        comp_array = np.asarray(compressed)
        return float(structural_similarity(orig_array, comp_array, data_range=255))

    orig_array = np.asarray(original.convert('RGB'))
    comp_array = np.asarray(compressed.convert('RGB'))
    return float(structural_similarity(
        orig_array,
        comp_array,
        data_range=255,
        channel_axis=-1
    ))


def get_encoder_capabilities() -> dict:
    """Get available encoder features.

    Returns:
        Dict with boolean flags for each feature
    """
    return {
        'ssim_validation': SSIM_AVAILABLE,
        'mozjpeg_optimization': MOZJPEG_AVAILABLE,
        'heic_encoding': HEIC_AVAILABLE,
        'formats': get_available_formats(),
    }

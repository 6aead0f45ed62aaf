"""Image compression package with format-specific encoders."""

from .errors import (
    ErrorKind,
    EncodeError,
    UnsupportedFormatError,
    InvalidSourceError,
    EncodeFailedError,
)
from .result import EncodeSuccess, EncodeFailure, EncodeResult, EncoderOptions
from .encoders import (
    HEIC_AVAILABLE,
    MOZJPEG_AVAILABLE,
    SSIM_AVAILABLE,
    BaseEncoder,
    JpegEncoder,
    HeicEncoder,
    get_encoder,
    get_available_formats,
    get_supported_formats,
    get_default_encoders,
    get_encoder_capabilities,
    decode_result,
    calculate_ssim_inmemory,
)

__all__ = [
    'ErrorKind',
    'EncodeError',
    'UnsupportedFormatError',
    'InvalidSourceError',
    'EncodeFailedError',
    'EncodeSuccess',
    'EncodeFailure',
    'EncodeResult',
    'EncoderOptions',
    'HEIC_AVAILABLE',
    'MOZJPEG_AVAILABLE',
    'SSIM_AVAILABLE',
    'BaseEncoder',
    'JpegEncoder',
    'HeicEncoder',
    'get_encoder',
    'get_available_formats',
    'get_supported_formats',
    'get_default_encoders',
    'get_encoder_capabilities',
    'decode_result',
    'calculate_ssim_inmemory',
]

"""Dual-codec image compression pipeline with cancellable background encoding"""

from .runner import EncodeTaskRunner, EncodeJob, JobState
from .session import CompressionSession, SlotState
from .settings import (
    CompressorSettings,
    load_settings,
    save_settings,
    build_encoder_options,
    apply_log_settings,
)

__all__ = [
    'EncodeTaskRunner',
    'EncodeJob',
    'JobState',
    'CompressionSession',
    'SlotState',
    'CompressorSettings',
    'load_settings',
    'save_settings',
    'build_encoder_options',
    'apply_log_settings',
]

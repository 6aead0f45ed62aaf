"""
Compression session state for a host application

Holds the current image and quality, debounces quality changes, and keeps
one display slot per format up to date with the runner's latest results.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from PIL import Image

from .compression.encoders import BaseEncoder, decode_result, get_default_encoders
from .compression.errors import EncodeError
from .compression.result import EncodeResult, EncodeSuccess
from .logger import log
from .runner import Dispatch, EncodeTaskRunner
from .settings import CompressorSettings, build_encoder_options


def check_quality(value: float):
    """Reject a quality outside 0.0-1.0 before it becomes session state"""
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"quality must be 0.0-1.0, got {value}")


@dataclass
class SlotState:
    """Display state of one format"""

    format: str
    status: str = "idle"  # 'idle', 'pending', 'done', 'failed'
    generation: int = 0
    quality: Optional[float] = None
    size_bytes: Optional[int] = None
    elapsed: Optional[float] = None
    ssim_score: Optional[float] = None
    error: Optional[EncodeError] = None
    result: Optional[EncodeSuccess] = None

    def reset(self, generation: int, quality: float):
        self.status = "pending"
        self.generation = generation
        self.quality = quality
        self.size_bytes = None
        self.elapsed = None
        self.ssim_score = None
        self.error = None
        self.result = None


class CompressionSession:
    """Centralized compression state for a host UI"""

    def __init__(
        self,
        settings: Optional[CompressorSettings] = None,
        on_update: Optional[Callable[[SlotState], None]] = None,
        dispatch: Optional[Dispatch] = None,
        encoders: Optional[Sequence[BaseEncoder]] = None,
    ):
        """
        Initialize session

        Args:
            settings: Pipeline settings, defaults to CompressorSettings()
            on_update: Function to call with a slot after it changes
            dispatch: Delivery context for the runner (see EncodeTaskRunner)
            encoders: Encoders to use instead of the configured formats
        """
        self.settings = settings if settings is not None else CompressorSettings()
        self.on_update = on_update

        self.image: Optional[Image.Image] = None
        self.quality = self.settings.default_quality
        self.previous_quality = self.quality

        if encoders is None:
            encoders = get_default_encoders(
                build_encoder_options(self.settings), self.settings.formats
            )

        self.runner = EncodeTaskRunner(
            encoders,
            self._on_result,
            dispatch=dispatch,
            max_workers=self.settings.max_workers,
            calculate_ssim=self.settings.calculate_ssim,
        )

        # Slots are written by trigger() and by the delivery context
        self._lock = threading.Lock()
        self.slots: Dict[str, SlotState] = {
            name: SlotState(name) for name in self.runner.formats
        }

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def load_image(self, image: Image.Image) -> Optional[int]:
        """Use a new source image and compress it at the current quality"""
        self.image = image
        log(f"Session: loaded {image.width}x{image.height} {image.mode} image")
        return self.trigger()

    def quality_changed(self, value: float) -> Optional[int]:
        """
        Handle a quality change while the control is still moving

        Only changes larger than the debounce threshold trigger a compression.

        Returns:
            New generation id, or None if the change was filtered
        """
        check_quality(value)
        diff = abs(value - self.previous_quality)
        if diff <= self.settings.debounce_threshold:
            return None

        self.previous_quality = value
        self.quality = value
        return self.trigger()

    def quality_settled(self, value: float) -> Optional[int]:
        """Handle the quality control settling (interaction ended)"""
        check_quality(value)
        self.previous_quality = value
        self.quality = value
        return self.trigger()

    def trigger(self) -> Optional[int]:
        """
        Compress the current image at the current quality

        Returns:
            New generation id, or None without an image
        """
        if self.image is None:
            log("Session: trigger ignored, no image loaded")
            return None

        generation = self.runner.submit(self.image, self.quality)

        with self._lock:
            changed = []
            for slot in self.slots.values():
                # A fast result of this generation may already be in
                if slot.generation < generation:
                    slot.reset(generation, self.quality)
                    changed.append(slot)

        for slot in changed:
            self._notify(slot)
        return generation

    def _on_result(self, result: EncodeResult):
        """Completion sink, runs on the runner's delivery context"""
        with self._lock:
            slot = self.slots[result.format]
            if result.generation < slot.generation:
                return

            slot.generation = result.generation
            if isinstance(result, EncodeSuccess):
                slot.status = "done"
                slot.quality = result.quality
                slot.size_bytes = result.size_bytes
                slot.elapsed = result.elapsed
                slot.ssim_score = result.ssim_score
                slot.error = None
                slot.result = result
            else:
                slot.status = "failed"
                slot.size_bytes = None
                slot.elapsed = None
                slot.ssim_score = None
                slot.error = result.error
                slot.result = None

        if not result.ok:
            log(f"Session: Error creating {result.format} data: {result.error}")
        self._notify(slot)

    def _notify(self, slot: SlotState):
        if self.on_update is None:
            return
        try:
            self.on_update(slot)
        except Exception as ex:
            log(f"Session: update callback error ({type(ex).__name__}): {ex}")

    @property
    def has_output(self) -> bool:
        """True once any format holds a finished result"""
        with self._lock:
            return any(slot.status == "done" for slot in self.slots.values())

    def output(self, format_name: str) -> Optional[bytes]:
        """Encoded bytes of a finished format, or None"""
        with self._lock:
            slot = self.slots.get(format_name.upper())
            if slot is None or slot.result is None:
                return None
            return slot.result.encoded_bytes

    def preview(self, format_name: str) -> Optional[Image.Image]:
        """Decoded output of a finished format, or None"""
        with self._lock:
            slot = self.slots.get(format_name.upper())
            result = slot.result if slot is not None else None
        if result is None:
            return None
        return decode_result(result)

    def finished_formats(self) -> List[str]:
        with self._lock:
            return [name for name, slot in self.slots.items() if slot.status == "done"]

    def close(self):
        """Cancel outstanding work and stop the runner"""
        self.runner.shutdown()

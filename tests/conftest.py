"""Shared fixtures for compressor tests."""

import threading
from io import BytesIO
from typing import List

import numpy as np
import pytest
from PIL import Image

from compressor import logger
from compressor.compression.encoders import BaseEncoder


@pytest.fixture(autouse=True)
def isolated_log(tmp_path):
    """Send the global log to a per-test file."""
    log_path = tmp_path / "compressor.log"
    logger.set_log_file(log_path)
    yield log_path
    logger.close_logger()
    logger.set_log_file(logger.DEFAULT_LOG_FILE)


@pytest.fixture
def sample_image() -> Image.Image:
    """A 128x96 RGB gradient with some texture."""
    x = np.linspace(0, 255, 128, dtype=np.float64)
    y = np.linspace(0, 255, 96, dtype=np.float64)
    xx, yy = np.meshgrid(x, y)
    rng = np.random.default_rng(42)
    noise = rng.integers(0, 32, size=(96, 128))
    pixels = np.stack(
        [xx, yy, (xx + yy) / 2 + noise],
        axis=-1,
    ).clip(0, 255).astype(np.uint8)
    return Image.fromarray(pixels)


@pytest.fixture
def png_bytes() -> bytes:
    """PNG file contents of a noisy 1024x768 RGB image."""
    rng = np.random.default_rng(7)
    pixels = rng.integers(0, 256, size=(768, 1024, 3), dtype=np.uint8)
    buffer = BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def rgba_image(sample_image) -> Image.Image:
    image = sample_image.convert("RGBA")
    image.putalpha(128)
    return image


class StubEncoder(BaseEncoder):
    """Encoder that records calls and returns fixed bytes."""

    def __init__(self, format_name: str = "STUB", payload: bytes = b"encoded"):
        super().__init__()
        self.format_name = format_name
        self.payload = payload
        self.calls: List[float] = []
        self._calls_lock = threading.Lock()

    def is_available(self) -> bool:
        return True

    def _encode(self, image, quality):
        return self.payload

    def encode(self, image, quality):
        with self._calls_lock:
            self.calls.append(quality)
        return super().encode(image, quality)


class GateEncoder(StubEncoder):
    """Encoder that blocks inside encode until released."""

    def __init__(self, format_name: str = "GATE"):
        super().__init__(format_name)
        self.started = threading.Event()
        self.release = threading.Event()

    def _encode(self, image, quality):
        self.started.set()
        assert self.release.wait(timeout=10), "gate was never released"
        return self.payload + str(quality).encode()


class FailingEncoder(StubEncoder):
    """Encoder that raises the given exception."""

    def __init__(self, format_name: str, error: Exception):
        super().__init__(format_name)
        self.error = error

    def _encode(self, image, quality):
        raise self.error


class ResultCollector:
    """Thread-safe completion sink that can be waited on."""

    def __init__(self):
        self.results = []
        self.threads = []
        self._cond = threading.Condition()

    def __call__(self, result):
        with self._cond:
            self.results.append(result)
            self.threads.append(threading.current_thread())
            self._cond.notify_all()

    def wait_for(self, count: int, timeout: float = 10.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.results) >= count, timeout=timeout)

    def wait_until(self, predicate, timeout: float = 10.0) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: predicate(list(self.results)), timeout=timeout)

    def by_format(self):
        return {result.format: result for result in self.results}


class ManualDispatcher:
    """Delivery context that queues callbacks until run_pending()."""

    def __init__(self):
        self._callbacks = []
        self._lock = threading.Lock()

    def __call__(self, callback):
        with self._lock:
            self._callbacks.append(callback)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def run_pending(self) -> int:
        with self._lock:
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return len(callbacks)


@pytest.fixture
def collector() -> ResultCollector:
    return ResultCollector()


@pytest.fixture
def dispatcher() -> ManualDispatcher:
    return ManualDispatcher()

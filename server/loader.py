# =============================================================================
# CLIPKit Demo - Encoder Bundle Loader
# =============================================================================
# Loads encoder bundles on a background thread pool.  Each load resolves to a
# LoadResult describing success or failure, so callers get a typed outcome
# instead of a flag.  The loader owns its pool and is used as a context
# manager.
# =============================================================================

import logging
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import torch

from shared.errors import ModelLoadError

logger = logging.getLogger(__name__)

EncoderFactory = Callable[[str, str, torch.dtype], Any]


@dataclass(frozen=True)
class LoadResult:
    """
    Outcome of loading one encoder bundle.

    Attributes:
        kind:         "image" or "text".
        path:         Bundle directory.
        loaded:       Whether the encoder is usable.
        encoder:      The encoder instance when loaded, else None.
        error:        Failure message when not loaded.
        load_time_ms: Wall time spent on the attempt.
    """

    kind: str
    path: str
    loaded: bool
    encoder: Any = None
    error: Optional[str] = None
    load_time_ms: float = 0.0

    def unwrap(self):
        """Return the encoder, or raise ModelLoadError for a failed load."""
        if not self.loaded:
            raise ModelLoadError(
                f"Failed to load {self.kind} encoder from {self.path}: {self.error}",
                {"encoder": self.kind, "path": self.path},
            )
        return self.encoder


def _default_factories() -> Dict[str, EncoderFactory]:
    from server.encoders import ENCODER_CLASSES

    return dict(ENCODER_CLASSES)


class ModelLoader:
    """
    Asynchronous encoder loader.

    Args:
        device:      Compute device passed to every encoder.
        dtype:       Torch dtype passed to every encoder.
        factories:   Mapping of kind → callable(path, device, dtype) returning
                     an encoder.  Defaults to the CLIP encoders.
        max_workers: Size of the loading thread pool.
    """

    def __init__(
        self,
        device: str = "cpu",
        dtype: torch.dtype = torch.float32,
        factories: Optional[Dict[str, EncoderFactory]] = None,
        max_workers: int = 2,
    ):
        self._device = device
        self._dtype = dtype
        self._factories = factories if factories is not None else _default_factories()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="encoder-load")

    @property
    def kinds(self):
        return sorted(self._factories)

    def _load(self, kind: str, path: str) -> LoadResult:
        start = time.time()
        if not os.path.exists(path):
            logger.warning("Encoder bundle not found: %s", path)
            return LoadResult(
                kind=kind, path=path, loaded=False,
                error=f"bundle not found: {path}",
                load_time_ms=(time.time() - start) * 1000.0,
            )

        try:
            encoder = self._factories[kind](path, self._device, self._dtype)
        except Exception as exc:
            logger.exception("Failed to load %s encoder from %s", kind, path)
            return LoadResult(
                kind=kind, path=path, loaded=False, error=str(exc),
                load_time_ms=(time.time() - start) * 1000.0,
            )

        load_time_ms = (time.time() - start) * 1000.0
        logger.info("Loaded %s encoder from %s (%.1fms)", kind, path, load_time_ms)
        return LoadResult(kind=kind, path=path, loaded=True, encoder=encoder, load_time_ms=load_time_ms)

    def submit(self, kind: str, path: str) -> "Future[LoadResult]":
        """
        Start loading an encoder bundle in the background.

        Raises:
            ValueError: For an unknown encoder kind.
        """
        if kind not in self._factories:
            raise ValueError(f"Unknown encoder kind '{kind}'. Supported: {self.kinds}")
        logger.info("Loading %s encoder from %s...", kind, path)
        return self._executor.submit(self._load, kind, path)

    def load(self, kind: str, path: str, timeout: Optional[float] = None) -> LoadResult:
        """
        Load an encoder bundle and wait for the result.

        A load still running after ``timeout`` seconds resolves to a failed
        LoadResult; the background attempt is cancelled if it has not started.
        """
        start = time.time()
        future = self.submit(kind, path)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.error("Loading %s encoder from %s timed out after %ss", kind, path, timeout)
            return LoadResult(
                kind=kind, path=path, loaded=False,
                error=f"timed out after {timeout}s",
                load_time_ms=(time.time() - start) * 1000.0,
            )

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

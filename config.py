# =============================================================================
# CLIPKit Demo - Centralized Configuration
# =============================================================================
# Provides a single Config dataclass containing all tunable parameters for
# both the demo client and server. Parameters are overridable via environment
# variables with the CLIPKIT_ prefix (e.g., CLIPKIT_SERVER_PORT=8100).
# =============================================================================

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import torch

# Project root directory (where this file lives)
_PROJECT_ROOT = str(Path(__file__).parent.resolve())


def _detect_device() -> str:
    """
    Auto-detect the best available compute device.

    Returns:
        str: "mps" on Apple Silicon, "cuda" on NVIDIA GPUs, "cpu" as fallback.
    """
    if torch.backends.mps.is_available():
        return "mps"
    elif torch.cuda.is_available():
        return "cuda"
    return "cpu"


def _resolve_dtype(dtype_str: str) -> torch.dtype:
    """
    Convert a string dtype name to a torch.dtype.

    Args:
        dtype_str: One of "float16", "float32", "bfloat16".

    Returns:
        The corresponding torch.dtype (float32 for unknown names).
    """
    dtype_map = {
        "float16": torch.float16,
        "float32": torch.float32,
        "bfloat16": torch.bfloat16,
    }
    return dtype_map.get(dtype_str, torch.float32)


@dataclass
class Config:
    """
    Centralized configuration for the CLIPKit demo.

    All fields can be overridden via environment variables prefixed with CLIPKIT_.
    """

    # -- Networking --
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    # -- Encoder bundles (written by scripts/export_encoders.py) --
    clip_model_id: str = "openai/clip-vit-base-patch32"
    image_encoder_path: str = field(
        default_factory=lambda: os.path.join(_PROJECT_ROOT, "models", "ImageEncoder_float32")
    )
    text_encoder_path: str = field(
        default_factory=lambda: os.path.join(_PROJECT_ROOT, "models", "TextEncoder_float32")
    )
    load_timeout_seconds: float = 300.0

    # -- Encoding & ranking --
    image_size: int = 224  # square side fed to the image encoder
    metric: str = "cosine"

    # -- Compute --
    device: str = field(default_factory=_detect_device)
    torch_dtype_str: str = "float32"

    # -- Derived (computed post-init) --
    server_url: str = field(init=False)
    torch_dtype: torch.dtype = field(init=False)

    def __post_init__(self):
        """Apply environment variable overrides and compute derived fields."""
        self._apply_env_overrides()
        self.server_url = f"http://{self.server_host}:{self.server_port}"
        self.torch_dtype = _resolve_dtype(self.torch_dtype_str)

    @property
    def image_dimensions(self) -> Tuple[int, int]:
        """(width, height) the image encoder expects."""
        return (self.image_size, self.image_size)

    def encoder_path(self, kind: str) -> str:
        """Return the configured bundle path for an encoder kind ("image" or "text")."""
        if kind == "image":
            return self.image_encoder_path
        if kind == "text":
            return self.text_encoder_path
        raise ValueError(f"Unknown encoder kind '{kind}'")

    def _apply_env_overrides(self):
        """
        Override config fields from environment variables.

        Looks for CLIPKIT_<FIELD_NAME_UPPERCASE> environment variables and
        applies them with appropriate type conversion.
        """
        field_types = {
            "server_host": str,
            "server_port": int,
            "clip_model_id": str,
            "image_encoder_path": str,
            "text_encoder_path": str,
            "load_timeout_seconds": float,
            "image_size": int,
            "metric": str,
            "device": str,
            "torch_dtype_str": str,
        }
        for field_name, field_type in field_types.items():
            env_key = f"CLIPKIT_{field_name.upper()}"
            env_value = os.environ.get(env_key)
            if env_value is not None:
                setattr(self, field_name, field_type(env_value))


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Return the singleton Config instance, creating it on first call.

    Returns:
        Config: The global configuration object.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance

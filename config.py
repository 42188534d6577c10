# =============================================================================
# RepairIQ - Centralized Configuration
# =============================================================================
# Provides a single Config dataclass containing all tunable parameters for
# both the scanner client and the classification server. Parameters are
# overridable via environment variables with the REPAIRIQ_ prefix
# (e.g., REPAIRIQ_SERVER_PORT=3000).
# =============================================================================

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import torch

# Project root directory (where this file lives)
_PROJECT_ROOT = str(Path(__file__).parent.resolve())

_TRUE_VALUES = {"1", "true", "yes", "on"}


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


def _parse_bool(value: str) -> bool:
    """Interpret an environment string as a boolean flag."""
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class Config:
    """
    Centralized configuration for the RepairIQ system.

    All fields can be overridden via environment variables prefixed with
    REPAIRIQ_.
    """

    # -- Networking --
    server_host: str = "127.0.0.1"
    server_port: int = 3000
    environment: str = "development"
    cors_origin: str = "*"
    public_base_url: str = ""

    # -- Classification model --
    model_path: str = field(
        default_factory=lambda: os.path.join(_PROJECT_ROOT, "models", "model.pt")
    )
    device: str = field(default_factory=_detect_device)

    # -- Logging --
    verbose_logging: bool = True

    # -- Phone relay --
    max_relay_connections: int = 32
    relay_send_queue_size: int = 8

    # -- Scanner client --
    request_timeout_seconds: float = 5.0
    camera_index: int = 0
    low_confidence_threshold: float = 0.3

    # -- Explanation provider --
    explanation_model: str = "gpt-4o-mini"
    explanation_timeout_seconds: float = 10.0

    # -- Derived (computed post-init) --
    server_url: str = field(init=False)

    def __post_init__(self):
        """Apply environment variable overrides and compute derived fields."""
        self._apply_env_overrides()
        self.server_url = f"http://{self.server_host}:{self.server_port}"
        if not self.public_base_url:
            self.public_base_url = self.server_url

    @property
    def is_development(self) -> bool:
        """Whether error responses may include stack traces."""
        return self.environment == "development"

    def _apply_env_overrides(self):
        """
        Override config fields from environment variables.

        Looks for REPAIRIQ_<FIELD_NAME_UPPERCASE> environment variables and
        applies them with appropriate type conversion.
        """
        field_types = {
            "server_host": str,
            "server_port": int,
            "environment": str,
            "cors_origin": str,
            "public_base_url": str,
            "model_path": str,
            "device": str,
            "verbose_logging": _parse_bool,
            "max_relay_connections": int,
            "relay_send_queue_size": int,
            "request_timeout_seconds": float,
            "camera_index": int,
            "low_confidence_threshold": float,
            "explanation_model": str,
            "explanation_timeout_seconds": float,
        }
        for field_name, field_type in field_types.items():
            env_key = f"REPAIRIQ_{field_name.upper()}"
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

"""Runtime configuration.

Values come from explicit arguments or ARCHSIM_* environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from archsim.core.budget import DEFAULT_MAX_CALL_DEPTH, DEFAULT_MAX_STEPS, Budget


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("none", "off", "unlimited"):
        return None
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("none", "off", "unlimited"):
        return None
    try:
        return float(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be a number, got {raw!r}") from err


@dataclass
class RuntimeConfig:
    """Configuration for the simulation runtime and its HTTP server.

    Attributes:
        host: Interface the HTTP server binds to.
        port: HTTP server port.
        max_steps: Interpreter step limit per request (None = unlimited).
        max_call_depth: Nested call_function limit (None falls back to
            CALL_DEPTH_CEILING).
        max_time_seconds: Interpreter wall-clock limit per request.
        max_body_size: Largest accepted request body in bytes.
    """

    host: str = "127.0.0.1"
    port: int = 8787
    max_steps: int | None = DEFAULT_MAX_STEPS
    max_call_depth: int | None = DEFAULT_MAX_CALL_DEPTH
    max_time_seconds: float | None = None
    max_body_size: int = 10 * 1024 * 1024

    @classmethod
    def from_env(cls) -> RuntimeConfig:
        """Build a config from ARCHSIM_* environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        port = _env_int("ARCHSIM_PORT", cls.port)
        return cls(
            host=os.environ.get("ARCHSIM_HOST", cls.host),
            port=port if port is not None else cls.port,
            max_steps=_env_int("ARCHSIM_MAX_STEPS", DEFAULT_MAX_STEPS),
            max_call_depth=_env_int("ARCHSIM_MAX_CALL_DEPTH", DEFAULT_MAX_CALL_DEPTH),
            max_time_seconds=_env_float("ARCHSIM_MAX_TIME_SECONDS", None),
        )

    def budget(self) -> Budget:
        """Interpreter budget described by this config."""
        return Budget(
            max_steps=self.max_steps,
            max_call_depth=self.max_call_depth,
            max_time_seconds=self.max_time_seconds,
        )

"""Client configuration for rangeherd."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from rangeherd._constants import API_URL, LIVE_STREAM_PATH
from rangeherd.exceptions import HerdConfigError
from rangeherd.state.motion import MotionThresholds


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: type[float] | type[int]) -> Any:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise HerdConfigError(f"{key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class HerdConfig:
    """Client configuration.

    Parameters
    ----------
    api_url : str
        Backend base URL.  Both the REST base and the live stream URL are
        derived from it.  Trailing slashes are stripped.
    poll_interval : float
        Seconds between REST snapshot polls.  ``0`` disables polling after
        the initial load.
    history_window : int
        Maximum number of points kept per device.
    reconnect_base_delay : float
        First reconnect delay in seconds; doubled on each further attempt.
    reconnect_max_delay : float
        Upper bound for a single reconnect delay in seconds.
    reconnect_max_retries : int
        Reconnect attempts allowed before the stream closes for good.
    request_timeout : float
        Total timeout for one REST request in seconds.
    ws_heartbeat : float
        WebSocket ping interval in seconds.
    stream_enabled : bool
        Open the live WebSocket stream.  When disabled the dashboard relies
        on REST polling only.
    motion : MotionThresholds
        Motion classifier tuning.
    """

    api_url: str = API_URL
    poll_interval: float = 60.0
    history_window: int = 60
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    reconnect_max_retries: int = 10
    request_timeout: float = 15.0
    ws_heartbeat: float = 30.0
    stream_enabled: bool = True
    motion: MotionThresholds = dataclasses.field(default_factory=MotionThresholds)

    def __post_init__(self) -> None:
        url = self.api_url.strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise HerdConfigError(f"api_url must start with http:// or https://, got {self.api_url!r}")
        object.__setattr__(self, "api_url", url)

        if self.history_window < 1:
            raise HerdConfigError("history_window must be at least 1")
        if self.reconnect_max_retries < 0:
            raise HerdConfigError("reconnect_max_retries must not be negative")
        if self.reconnect_base_delay <= 0 or self.reconnect_max_delay <= 0:
            raise HerdConfigError("reconnect delays must be positive")
        if self.poll_interval < 0:
            raise HerdConfigError("poll_interval must not be negative")

    @property
    def ws_base_url(self) -> str:
        """``api_url`` with ``http``/``https`` translated to ``ws``/``wss``."""
        if self.api_url.startswith("https://"):
            return "wss://" + self.api_url[len("https://") :]
        return "ws://" + self.api_url[len("http://") :]

    @property
    def ws_url(self) -> str:
        """Full URL of the live telemetry stream."""
        return f"{self.ws_base_url}{LIVE_STREAM_PATH}"

    def rest_url(self, path: str) -> str:
        """Join an endpoint path onto the REST base URL."""
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.api_url}{path}"

    @classmethod
    def from_env(cls, **overrides: Any) -> HerdConfig:
        """Create configuration from environment variables.

        Reads ``RANGEHERD_API_URL`` and the optional ``RANGEHERD_*`` tuning
        variables.  Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        HerdConfig
            Populated configuration.
        """
        env = os.environ

        motion_overrides = overrides.pop("motion", None)
        motion_kwargs: dict[str, float] = {}
        _ENV_MOTION_MAP = {
            "RANGEHERD_MOVEMENT_THRESHOLD_M": "movement_threshold_m",
            "RANGEHERD_MIN_SPEED_MPS": "min_speed_mps",
            "RANGEHERD_MAX_GAP": "max_gap",
            "RANGEHERD_RECENCY_WINDOW": "recency_window",
        }
        for env_key, field_name in _ENV_MOTION_MAP.items():
            val = _env_number(env, env_key, float)
            if val is not None:
                motion_kwargs[field_name] = val

        if isinstance(motion_overrides, MotionThresholds):
            motion = motion_overrides
        else:
            if isinstance(motion_overrides, dict):
                motion_kwargs.update(motion_overrides)
            motion = MotionThresholds(**motion_kwargs)

        config_kwargs: dict[str, Any] = {"motion": motion}

        api_url = env.get("RANGEHERD_API_URL")
        if api_url:
            config_kwargs["api_url"] = api_url

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[float] | type[int]]] = {
            "RANGEHERD_POLL_INTERVAL": ("poll_interval", float),
            "RANGEHERD_HISTORY_WINDOW": ("history_window", int),
            "RANGEHERD_RECONNECT_BASE_DELAY": ("reconnect_base_delay", float),
            "RANGEHERD_RECONNECT_MAX_DELAY": ("reconnect_max_delay", float),
            "RANGEHERD_RECONNECT_MAX_RETRIES": ("reconnect_max_retries", int),
            "RANGEHERD_REQUEST_TIMEOUT": ("request_timeout", float),
            "RANGEHERD_WS_HEARTBEAT": ("ws_heartbeat", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            if field_name in overrides:
                continue
            val = _env_number(env, env_key, cast)
            if val is not None:
                config_kwargs[field_name] = val

        if "stream_enabled" not in overrides:
            config_kwargs["stream_enabled"] = _env_bool(env.get("RANGEHERD_STREAM_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

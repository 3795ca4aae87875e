"""Runtime settings read from ``FEWS_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    store_path: Optional[str] = None
    ai_think_delay: float = 1.5
    enforce_step_order: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        delay = float(env.get("FEWS_AI_THINK_DELAY", cls.ai_think_delay))
        if delay < 0:
            raise ValueError("FEWS_AI_THINK_DELAY must not be negative")
        return cls(
            host=env.get("FEWS_HOST", cls.host),
            port=int(env.get("FEWS_PORT", cls.port)),
            log_level=env.get("FEWS_LOG_LEVEL", cls.log_level).upper(),
            store_path=env.get("FEWS_STORE_PATH") or None,
            ai_think_delay=delay,
            enforce_step_order=_parse_bool(
                "FEWS_ENFORCE_STEP_ORDER", env.get("FEWS_ENFORCE_STEP_ORDER", "true")
            ),
        )

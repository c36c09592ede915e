from __future__ import annotations

import functools
import logging
import os
from dataclasses import dataclass
from typing import Optional

ENV_PREFIX = "CPU_LLM_KERNELS_"

PACKAGE_LOGGER = "cpu_llm_kernels"


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {value!r}") from None


@dataclass(frozen=True)
class KernelConfig:
    """
    Scalar defaults used when a kernel caller passes None.

    rope_theta: base frequency of the rotary embedding.
    rms_eps:    epsilon added to the mean square in RMS normalization.
    log_level:  level applied by configure_logging().
    """

    rope_theta: float = 10000.0
    rms_eps: float = 1e-6
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "KernelConfig":
        defaults = cls()
        return cls(
            rope_theta=_env_float("ROPE_THETA", defaults.rope_theta),
            rms_eps=_env_float("RMS_EPS", defaults.rms_eps),
            log_level=os.environ.get(ENV_PREFIX + "LOG_LEVEL", defaults.log_level).upper(),
        )


@functools.lru_cache(maxsize=None)
def get_config() -> KernelConfig:
    return KernelConfig.from_env()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a stream handler to the package logger and set its level.

    Library code never calls this; scripts and applications do.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = (level or get_config().log_level).upper()
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    return logger

"""
Runtime configuration read from environment variables.

All settings are opt-in; defaults are chosen so nothing needs to be set for
CPU use. The configuration is read once per process and cached; tests (or
long-running hosts that change the environment) call `reload_config()`.

Environment variables
---------------------
FASTUMAP_LOG_LEVEL : str
    Level of the "fastumap" logger (DEBUG, INFO, WARNING, ...). Default WARNING.
FASTUMAP_CPU_ROW_BLOCK : int
    Number of output rows computed per vectorized block on CPU. Default 128.
FASTUMAP_CPU_WORKERS : int
    Size of the thread pool used for independent CPU row blocks. Default 1.
FASTUMAP_CUDA_BLOCK_SIZE : int
    Threads per block for CUDA kernel launches (1..1024). Default 256.
FASTUMAP_CUDA_DEBUG : bool-like
    Compile kernels with line info and log every compilation. Default off.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from typing_extensions import Self

_FALSY = ("0", "", "false", "False", "FALSE", "no", "off")


def _env_int(name: str, default: int, *, lo: int, hi: int | None = None) -> int:
    raw = os.environ.get(name, "")
    if raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < lo or (hi is not None and value > hi):
        bound = f">= {lo}" if hi is None else f"in [{lo}, {hi}]"
        raise ValueError(f"{name} must be {bound}, got {value}")
    return value


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Immutable snapshot of the runtime settings.

    Attributes
    ----------
    log_level : str
        Logger level name.
    cpu_row_block : int
        Rows per CPU forward block.
    cpu_num_workers : int
        Thread-pool size for CPU blocks (1 disables the pool).
    cuda_block_size : int
        Threads per CUDA block.
    cuda_debug : bool
        Whether kernels are compiled with `-lineinfo` and compilations logged.
    """

    log_level: str = "WARNING"
    cpu_row_block: int = 128
    cpu_num_workers: int = 1
    cuda_block_size: int = 256
    cuda_debug: bool = False

    @classmethod
    def from_env(cls) -> Self:
        """
        Build a configuration from the current process environment.

        Raises
        ------
        ValueError
            If an integer variable is malformed or out of range.
        """
        return cls(
            log_level=os.environ.get("FASTUMAP_LOG_LEVEL", "WARNING").upper(),
            cpu_row_block=_env_int("FASTUMAP_CPU_ROW_BLOCK", 128, lo=1),
            cpu_num_workers=_env_int("FASTUMAP_CPU_WORKERS", 1, lo=1),
            cuda_block_size=_env_int("FASTUMAP_CUDA_BLOCK_SIZE", 256, lo=1, hi=1024),
            cuda_debug=os.environ.get("FASTUMAP_CUDA_DEBUG", "0") not in _FALSY,
        )


@lru_cache(maxsize=1)
def get_config() -> RuntimeConfig:
    """Return the cached process-wide configuration."""
    return RuntimeConfig.from_env()


def reload_config() -> RuntimeConfig:
    """
    Drop the cached configuration and read the environment again.

    The level of the "fastumap" logger is re-applied from the new snapshot.
    """
    from ._logging import apply_log_level

    get_config.cache_clear()
    cfg = get_config()
    apply_log_level(cfg)
    return cfg

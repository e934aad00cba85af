"""
Process-wide cache of just-in-time compiled kernels.

Compiled kernels are addressed by a stable `KernelKey` (operator name, input
shape, element dtype, device index, debug flag). The cache offers get-or-insert
semantics that are safe under concurrent use:

- lookups of an already compiled kernel never trigger compilation;
- when several threads request the same missing key at once, exactly one of
  them compiles while the others wait on that key's lock and then reuse the
  result;
- compilations for *different* keys do not serialize behind each other,
  because the cache-wide lock only guards the key -> entry mapping.

A compilation that raises leaves the entry empty; the exception propagates
to the caller and nothing is cached for that key.

The cache holds no device buffers, only compiled code objects. It is cleared
at interpreter exit.
"""

from __future__ import annotations

import atexit
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import numpy as np
from typing_extensions import Self


@dataclass(frozen=True)
class KernelKey:
    """
    Stable identity of a compiled kernel.

    Attributes
    ----------
    op : str
        Kernel name (e.g. "pairwise_distance_forward").
    shape : tuple[int, ...]
        Input shape the kernel was specialized for.
    dtype : str
        NumPy dtype name (e.g. "float32").
    device_index : int
        CUDA device ordinal.
    debug : bool
        Whether the kernel was compiled with line information.
    """

    op: str
    shape: tuple[int, ...]
    dtype: str
    device_index: int
    debug: bool = False

    @classmethod
    def make(
        cls, op: str, shape, dtype, device_index: int, *, debug: bool = False
    ) -> Self:
        return cls(
            op=op,
            shape=tuple(int(s) for s in shape),
            dtype=np.dtype(dtype).name,
            device_index=int(device_index),
            debug=bool(debug),
        )


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    kernel: Optional[Any] = None


@dataclass(frozen=True)
class CacheInfo:
    hits: int
    misses: int
    size: int


class KernelCache:
    """
    Thread-safe get-or-compile cache of kernels keyed by `KernelKey`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[KernelKey, _Entry] = {}
        self._hits = 0
        self._misses = 0

    def get_or_compile(self, key: KernelKey, compile_fn: Callable[[], Any]) -> Any:
        """
        Return the kernel cached under `key`, compiling it on first use.

        Parameters
        ----------
        key : KernelKey
            Kernel identity.
        compile_fn : Callable[[], Any]
            Zero-argument callable producing the compiled kernel. Called at
            most once per key unless it raises.

        Returns
        -------
        Any
            The compiled kernel object.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            elif entry.kernel is not None:
                self._hits += 1
                return entry.kernel

        with entry.lock:
            if entry.kernel is not None:
                # compiled by a concurrent first caller while we waited
                with self._lock:
                    self._hits += 1
                return entry.kernel

            kernel = compile_fn()
            entry.kernel = kernel
            with self._lock:
                self._misses += 1
            return kernel

    def __contains__(self, key: KernelKey) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.kernel is not None

    def info(self) -> CacheInfo:
        """Return hit/miss counters and the number of compiled kernels."""
        with self._lock:
            size = sum(1 for e in self._entries.values() if e.kernel is not None)
            return CacheInfo(hits=self._hits, misses=self._misses, size=size)

    def clear(self) -> None:
        """Drop every compiled kernel and reset the counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0


_KERNEL_CACHE = KernelCache()
atexit.register(_KERNEL_CACHE.clear)


def get_kernel_cache() -> KernelCache:
    """Return the process-wide kernel cache."""
    return _KERNEL_CACHE


def kernel_cache_info() -> CacheInfo:
    return _KERNEL_CACHE.info()


def clear_kernel_cache() -> None:
    _KERNEL_CACHE.clear()

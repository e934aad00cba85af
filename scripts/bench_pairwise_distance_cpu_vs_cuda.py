"""
scripts/bench_pairwise_distance_cpu_vs_cuda.py

CPU vs CUDA pairwise-distance microbenchmark (NOT a unit test) for fastumap.

Benchmarks, for each (N, D) case:
- forward: euclidean_pairwise_distance(x)
- forward + backward: euclidean_pairwise_distance(x).sum().backward()

Timing policy
-------------
- Excludes HtoD/DtoH transfers (inputs are placed on the device once per case).
- The first CUDA call of a case compiles the kernels; it runs during warmup and
  is reported separately as "compile".
- Uses CUDA stream synchronize to avoid async timing artifacts.

Usage
-----
python scripts/bench_pairwise_distance_cpu_vs_cuda.py --presets --dtype float32
python scripts/bench_pairwise_distance_cpu_vs_cuda.py --N 2048 --D 16 --backward
python scripts/bench_pairwise_distance_cpu_vs_cuda.py --N 4096 --D 2 --warmup 5 --repeats 20
"""

from __future__ import annotations

import argparse
import os
import statistics
import sys
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

# -------------------------
# Make repo_root/src importable
# -------------------------
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from fastumap.infrastructure.tensor._tensor import Tensor
from fastumap.infrastructure._function import euclidean_pairwise_distance
from fastumap.infrastructure.ops._kernel_cache import kernel_cache_info
from fastumap.infrastructure.ops.pairwise_distance_cuda import cuda_device_count


def _time_one(fn: Callable[[], None], *, warmup: int, repeats: int) -> list[float]:
    for _ in range(warmup):
        fn()
    ts: list[float] = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        fn()
        t1 = time.perf_counter()
        ts.append(t1 - t0)
    return ts


def _fmt_seconds(x: float) -> str:
    if x < 1e-6:
        return f"{x*1e9:.2f} ns"
    if x < 1e-3:
        return f"{x*1e6:.2f} µs"
    if x < 1:
        return f"{x*1e3:.2f} ms"
    return f"{x:.3f} s"


def _speedup(a: float, b: float) -> float:
    return (a / b) if b > 0 else float("inf")


@dataclass(frozen=True)
class Case:
    name: str
    N: int
    D: int


def _sync(device_index: int) -> None:
    import cupy as cp

    with cp.cuda.Device(device_index):
        cp.cuda.get_current_stream().synchronize()


def _bench_case(
    case: Case,
    *,
    dtype: np.dtype,
    warmup: int,
    repeats: int,
    backward: bool,
    sanity: bool,
    rng_seed: int,
    device_index: int,
) -> None:
    rng = np.random.default_rng(rng_seed)
    N, D = int(case.N), int(case.D)
    x_np = rng.standard_normal((N, D)).astype(dtype, copy=False)

    dev = f"cuda:{device_index}"
    x_cpu = Tensor._from_numpy(x_np, device="cpu", requires_grad=backward, dtype=dtype)
    x_cuda = Tensor._from_numpy(x_np, device=dev, requires_grad=backward, dtype=dtype)

    def cpu_step() -> None:
        y = euclidean_pairwise_distance(x_cpu)
        if backward:
            y.sum().backward()
            x_cpu.zero_grad()

    def cuda_step() -> None:
        y = euclidean_pairwise_distance(x_cuda)
        if backward:
            y.sum().backward()
            x_cuda.zero_grad()
        _sync(device_index)

    # First call compiles (not part of the timed region)
    t0 = time.perf_counter()
    cuda_step()
    t_compile = time.perf_counter() - t0

    if sanity:
        ref = euclidean_pairwise_distance(x_cpu).to_numpy()
        got = euclidean_pairwise_distance(x_cuda).to_numpy()
        np.testing.assert_allclose(got, ref, rtol=1e-4, atol=1e-4)

    cpu_med = statistics.median(_time_one(cpu_step, warmup=warmup, repeats=repeats))
    cuda_med = statistics.median(_time_one(cuda_step, warmup=warmup, repeats=repeats))

    label = "fwd+bwd" if backward else "fwd"
    print(
        f"pairwise_distance {label} (N={N} D={D})  "
        f"cpu={_fmt_seconds(cpu_med):>10}  "
        f"cuda={_fmt_seconds(cuda_med):>10}  "
        f"compile={_fmt_seconds(t_compile):>10}  "
        f"speedup={_speedup(cpu_med, cuda_med):>7.2f}x"
    )


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--N", type=int, default=1024)
    ap.add_argument("--D", type=int, default=2)
    ap.add_argument("--dtype", choices=["float32", "float64"], default="float32")
    ap.add_argument("--warmup", type=int, default=3)
    ap.add_argument("--repeats", type=int, default=10)
    ap.add_argument("--presets", action="store_true", help="Run a preset suite.")
    ap.add_argument("--backward", action="store_true", help="Time forward + backward.")
    ap.add_argument(
        "--sanity",
        action="store_true",
        help="Sanity-check CUDA output vs CPU (not timed).",
    )
    ap.add_argument("--seed", type=int, default=0, help="RNG seed.")
    ap.add_argument("--device", type=int, default=0, help="CUDA device index.")
    args = ap.parse_args()

    dtype = np.float32 if args.dtype == "float32" else np.float64

    if cuda_device_count() <= args.device:
        raise SystemExit(
            "No usable CUDA device. Install CuPy (pip install 'fastumap[cuda]') on a GPU host."
        )

    print("\n" + "=" * 98)
    print(
        f"fastumap pairwise_distance CPU vs CUDA benchmark  dtype={args.dtype}  "
        f"(warmup={args.warmup}, repeats={args.repeats}, device=cuda:{args.device})"
    )
    print("=" * 98)

    if args.presets:
        cases = [
            Case("embed-512", 512, 2),
            Case("embed-2048", 2048, 2),
            Case("embed-4096", 4096, 2),
            Case("feat-1024x64", 1024, 64),
        ]
    else:
        cases = [Case("single", args.N, args.D)]

    for c in cases:
        _bench_case(
            c,
            dtype=dtype,
            warmup=args.warmup,
            repeats=args.repeats,
            backward=args.backward,
            sanity=args.sanity,
            rng_seed=args.seed,
            device_index=args.device,
        )

    info = kernel_cache_info()
    print(f"kernel cache: size={info.size} hits={info.hits} misses={info.misses}")


if __name__ == "__main__":
    main()

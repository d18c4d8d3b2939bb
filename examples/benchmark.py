"""Performance benchmark of batched TRON solves on random box-constrained QPs."""

import gc
import logging
import statistics
import time

import jax
import numpy as np

from jaxtron import Task, TronOptions, solve_batch, solve_reference


def quadratic(x, params):
    A, c = params
    return 0.5 * x @ A @ x + c @ x


def random_problems(batch: int, n: int, seed: int = 0):
    """Random convex QPs with a box around the starting point."""
    rng = np.random.default_rng(seed)
    L = np.tril(0.5 * rng.standard_normal((batch, n, n)), -1) + 2.0 * np.eye(n)
    A = L @ np.swapaxes(L, 1, 2)
    c = 3.0 * rng.standard_normal((batch, n))
    x0 = rng.standard_normal((batch, n))
    dx = np.abs(rng.standard_normal((batch, n)))
    return x0, x0 - dx, x0 + dx, (A, c)


def benchmark_batch(
    batch: int, n: int, warmup_runs: int = 1, timing_runs: int = 5, chunk_size: int | None = None
) -> dict[str, float]:
    """Benchmark one batch size with proper methodology.

    Args:
        batch: Number of instances solved per call.
        n: Number of variables per instance.
        warmup_runs: JIT warm-up iterations.
        timing_runs: Measurement iterations.
        chunk_size: Instances per vectorized call.

    Returns:
        Dictionary with timing statistics
    """
    x0, xl, xu, params = random_problems(batch, n)
    options = TronOptions(gtol=1e-8)

    def run():
        result = solve_batch(
            quadratic, x0, xl, xu, params, options=options, chunk_size=chunk_size
        )
        jax.block_until_ready(result.x)
        return result

    # Warm-up for JIT compilation
    for _ in range(warmup_runs):
        run()

    times = []
    for _ in range(timing_runs):
        gc.collect()
        start = time.perf_counter()
        result = run()
        times.append(time.perf_counter() - start)

    converged = int(np.sum(np.asarray(result.task) == int(Task.CONVERGENCE)))
    return {
        "mean": statistics.mean(times),
        "std": statistics.stdev(times) if len(times) > 1 else 0.0,
        "per_instance_us": statistics.mean(times) / batch * 1e6,
        "converged": converged,
    }


def benchmark_scaling(n: int = 8):
    """Benchmark different batch sizes."""
    print(f"\n=== Batch Scaling Study (n = {n}) ===")
    print(f"{'Batch':<10} {'Time (s)':<12} {'Per inst (us)':<15} {'Converged':<10}")

    results = {}
    for batch in [1, 16, 256, 4096]:
        results[batch] = benchmark_batch(batch, n)
        r = results[batch]
        print(
            f"{batch:<10} {r['mean']:<12.4f} {r['per_instance_us']:<15.1f} "
            f"{r['converged']}/{batch}"
        )

    return results


def compare_with_sequential(batch: int = 32, n: int = 8):
    """Compare the vectorized solve against solving instances one at a time."""
    x0, xl, xu, params = random_problems(batch, n, seed=1)
    options = TronOptions(gtol=1e-8)

    batched = solve_batch(quadratic, x0, xl, xu, params, options=options)
    sequential = solve_reference(quadratic, x0, xl, xu, params, options=options)

    deviation = float(np.max(np.abs(np.asarray(batched.x) - np.asarray(sequential.x))))
    same_tasks = bool(np.all(np.asarray(batched.task) == np.asarray(sequential.task)))
    print(f"\n=== Batched vs sequential ({batch} instances) ===")
    print(f"  Max deviation: {deviation:.3e}")
    print(f"  Same tasks:    {same_tasks}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    print(f"Backend: {jax.default_backend()}, device: {jax.devices()[0].device_kind}")
    benchmark_scaling()
    compare_with_sequential()

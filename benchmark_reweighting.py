import time

import jax
import jax.numpy as jnp

from pottstats.reweighting import count_neighbors_ordered, count_neighbors_symmetric, identity_threshold


def time_counter(fn, sequences: jnp.ndarray, threshold: float, repeats: int = 10) -> tuple[float, jnp.ndarray]:
  """Return the mean wall time of ``fn`` after one warmup call, and its result."""
  result = fn(sequences, threshold)
  jax.block_until_ready(result)

  start = time.time()
  for _ in range(repeats):
    result = fn(sequences, threshold)
    jax.block_until_ready(result)
  end = time.time()
  return (end - start) / repeats, result


def run_benchmark() -> None:
  """Compare symmetric and ordered neighbor counting."""
  print("Running JAX Performance Benchmark: Symmetric vs Ordered Neighbor Counting")
  print("-" * 60)

  n_sites = 200
  n_codes = 21
  theta = 0.2
  num_seqs_values = [100, 500, 1000, 2000]

  symmetric_times = []
  ordered_times = []

  key = jax.random.PRNGKey(42)
  threshold = identity_threshold(theta, n_sites)

  for n_seqs in num_seqs_values:
    print(f"\nBenchmarking N={n_seqs}, L={n_sites}, Q={n_codes}...")

    # Related sequences: a shared ancestor with 10% of sites resampled.
    key, ancestor_key, mutate_key, symbol_key = jax.random.split(key, 4)
    ancestor = jax.random.randint(ancestor_key, (n_sites,), 0, n_codes)
    mutate = jax.random.bernoulli(mutate_key, 0.1, (n_seqs, n_sites))
    symbols = jax.random.randint(symbol_key, (n_seqs, n_sites), 0, n_codes)
    sequences = jnp.where(mutate, symbols, ancestor[None, :]).astype(jnp.int32)

    print("  Running Symmetric...")
    try:
      sym_time, sym_counts = time_counter(count_neighbors_symmetric, sequences, threshold)
      symmetric_times.append(sym_time)
      print(f"    Avg Time: {sym_time:.6f} s")
    except RuntimeError as e:
      print(f"    Symmetric Failed: {e}")
      symmetric_times.append(None)
      sym_counts = None

    print("  Running Ordered...")
    try:
      ord_time, ord_counts = time_counter(count_neighbors_ordered, sequences, threshold)
      ordered_times.append(ord_time)
      print(f"    Avg Time: {ord_time:.6f} s")
    except RuntimeError as e:
      print(f"    Ordered Failed (likely OOM): {e}")
      ordered_times.append(None)
      ord_counts = None

    if sym_counts is not None and ord_counts is not None:
      print(f"    Counts agree: {bool(jnp.array_equal(sym_counts, ord_counts))}")

  print_results(num_seqs_values, symmetric_times, ordered_times)


def print_results(
  num_seqs_values: list[int], symmetric_times: list[float | None], ordered_times: list[float | None]
) -> None:
  """Print benchmark results table."""
  print("\n" + "=" * 60)
  print("Benchmark Results Summary")
  print(f"{'N':<10} | {'Symmetric (s)':<15} | {'Ordered (s)':<15} | {'Speedup':<10}")
  print("-" * 60)
  for n_seqs, sym, ordered in zip(num_seqs_values, symmetric_times, ordered_times, strict=True):
    sym_str = f"{sym:.6f}" if sym else "N/A"
    ord_str = f"{ordered:.6f}" if ordered else "OOM/Fail"

    speedup = f"{sym / ordered:.2f}x" if (sym and ordered) else "-"
    print(f"{n_seqs:<10} | {sym_str:<15} | {ord_str:<15} | {speedup:<10}")


if __name__ == "__main__":
  run_benchmark()

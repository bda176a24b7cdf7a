"""
JAX Configuration - MUST be imported before any JAX imports.

This module sets environment variables for JAX configuration including:
- Persistent compilation cache directory
- Minimum compile time threshold for caching
- Double precision default (parameter vectors and NLLs are float64)
- GPU memory allocator settings
"""
import os
from pathlib import Path

# --- GPU MEMORY ALLOCATOR ---
os.environ.setdefault("TF_GPU_ALLOCATOR", "cuda_malloc_async")

# --- DOUBLE PRECISION ---
# Only honoured if JAX has not been imported yet; configure_chain_system
# also calls jax.config.update according to 'use_double'.
os.environ.setdefault("JAX_ENABLE_X64", "true")

# --- PERSISTENT COMPILATION CACHE ---
# Step kernels are recompiled for every (backend, chunk size, data shape)
# combination, so a cross-session cache pays off on repeated fits.
_JAX_CACHE_DIR = Path.home() / ".cache" / "jax" / "nllchain_cache"
_JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")

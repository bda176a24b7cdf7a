"""
Kernel Backend Registration System

This module provides a registry for kernel execution strategies. A backend
decides how the data-parallel kernels are partitioned into lanes and how the
reduction combines lane totals; the kernels themselves are shared.

The built-in 'host' and 'device' backends are registered when
nllchain.kernels.backend is imported. The chain driver resolves the configured
name once, at configuration time.

Example usage:
    from nllchain import register_backend
    from nllchain.kernels.backend import DeviceBackend

    register_backend('wide_device', lambda n_lanes=None, group_size=None, platform=None:
                     DeviceBackend(n_lanes=n_lanes or 65536,
                                   group_size=group_size or 1024,
                                   platform=platform))
"""

_REGISTRY = {}


def register_backend(name, factory):
    """
    Register a kernel backend factory.

    Args:
        name: Unique backend identifier string (e.g., 'host')
        factory: Callable fn(n_lanes=None, group_size=None, platform=None) -> backend.
            None arguments mean "use the backend's default".

    Raises:
        ValueError: If name is already registered or factory is not callable.
    """
    if name in _REGISTRY:
        raise ValueError(f"Backend '{name}' is already registered")
    if not callable(factory):
        raise ValueError(f"Backend factory for '{name}' must be callable")
    _REGISTRY[name] = factory


def get_backend(name, n_lanes=None, group_size=None, platform=None):
    """
    Build a registered backend by name.

    Raises:
        KeyError: If the backend is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown backend '{name}'. Available: {available}")
    return _REGISTRY[name](n_lanes=n_lanes, group_size=group_size, platform=platform)


def list_backends():
    """List all registered backend names."""
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered backends. Primarily for testing.
    """
    _REGISTRY.clear()

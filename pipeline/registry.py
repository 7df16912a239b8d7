"""
Device registry (device name -> device factory).

MVP: a simple in-process dict. Built-in devices are lazy-loaded so that the
host simulation never imports torch/cupy.
"""

from __future__ import annotations

import importlib
from typing import Callable, Dict, List

from pipeline.interfaces import Device

DeviceFactory = Callable[[], Device]

_REGISTRY: Dict[str, DeviceFactory] = {}

_LAZY = {
    "cuda": "backends.cuda",
    "host": "backends.host",
}


def register(name: str, factory: DeviceFactory) -> None:
    _REGISTRY[str(name)] = factory


def get(name: str) -> DeviceFactory:
    if name not in _REGISTRY:
        mod = _LAZY.get(name)
        if mod:
            # Import errors (e.g. torch missing for "cuda") must surface as-is.
            importlib.import_module(mod)
    if name not in _REGISTRY:
        raise KeyError(f"device not registered: {name} (known: {', '.join(available())})")
    return _REGISTRY[name]


def available() -> List[str]:
    return sorted(set(_REGISTRY) | set(_LAZY))


__all__ = ["DeviceFactory", "register", "get", "available"]

"""Registry of named compression algorithms."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO


class UnsupportedAlgorithmError(LookupError):
    """No compressor is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"compressor not exist: {name}")
        self.name = name


class Compressor(ABC):
    """Creates compressing writers and decompressing readers over streams."""

    @abstractmethod
    def new_writer(self, stream: BinaryIO) -> BinaryIO:
        """Return a writer compressing into ``stream``; close it to finish."""

    @abstractmethod
    def new_reader(self, stream: BinaryIO) -> BinaryIO:
        """Return a reader decompressing from ``stream``."""


_registry: dict[str, Compressor] = {}


def register(name: str, compressor: Compressor) -> None:
    """Register ``compressor`` under ``name``; a name may be registered only once."""
    if name in _registry:
        raise ValueError(f"compressor: {name} existed, duplicate registration")
    _registry[name] = compressor


def unregister(name: str) -> None:
    """Remove the compressor registered under ``name``, if any."""
    _registry.pop(name, None)


def get(name: str) -> Compressor | None:
    """Return the compressor registered under ``name``, or ``None``."""
    return _registry.get(name)


def _require(name: str) -> Compressor:
    compressor = get(name)
    if compressor is None:
        raise UnsupportedAlgorithmError(name)
    return compressor


def new_reader(name: str, stream: BinaryIO) -> BinaryIO:
    """Return a decompressing reader over ``stream`` using the named algorithm."""
    return _require(name).new_reader(stream)


def new_writer(name: str, stream: BinaryIO) -> BinaryIO:
    """Return a compressing writer over ``stream`` using the named algorithm."""
    return _require(name).new_writer(stream)
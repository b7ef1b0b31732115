"""Source adapters: the capability interface and its built-in variants."""

from .base import (
    SourceAdapter,
    clear_adapters,
    get_adapter,
    get_adapters_for,
    list_adapter_names,
    register_adapter,
)
from .http import HttpJsonSourceAdapter
from .static import CallableSourceAdapter, StaticSourceAdapter


__all__ = [
    "SourceAdapter",
    "clear_adapters",
    "get_adapter",
    "get_adapters_for",
    "list_adapter_names",
    "register_adapter",
    "HttpJsonSourceAdapter",
    "CallableSourceAdapter",
    "StaticSourceAdapter",
]

"""Adapter lookup for the ``adapter`` field of a credential.

A credential names its provider adapter either by a builtin short name
("openai", "anthropic"), by a name added with register_adapter(), or by
the dotted path of a BaseAdapter subclass ("acme.judges.GatewayAdapter").
"""

from __future__ import annotations

import importlib

from spanscore.adapters.base import BaseAdapter

# name -> (dotted class path, extra that installs its SDK)
BUILTIN_ADAPTERS: dict[str, tuple[str, str]] = {
    "openai": ("spanscore.adapters.openai_adapter.OpenAIAdapter", "openai"),
    "anthropic": ("spanscore.adapters.anthropic_adapter.AnthropicAdapter", "anthropic"),
}

_registered: dict[str, type[BaseAdapter]] = {}


def register_adapter(name: str, cls: type[BaseAdapter]) -> None:
    """Make *cls* available to credentials under a short *name*."""
    if name in BUILTIN_ADAPTERS:
        raise ValueError(f"'{name}' is a builtin adapter name")
    if not issubclass(cls, BaseAdapter):
        raise TypeError(f"{cls.__name__} does not inherit from BaseAdapter")
    _registered[name] = cls


def unregister_adapter(name: str) -> None:
    _registered.pop(name, None)


def available_adapters() -> list[str]:
    return sorted([*BUILTIN_ADAPTERS, *_registered])


def _load(dotted_path: str, extra: str | None) -> object:
    module_path, _, attr = dotted_path.rpartition(".")
    if not module_path or not attr:
        raise ValueError(f"adapter path '{dotted_path}' must look like 'package.module.ClassName'")
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        if extra is None:
            raise
        raise ImportError(
            f"adapter '{extra}' needs its provider SDK: pip install spanscore[{extra}]"
        ) from exc
    if not hasattr(module, attr):
        raise ImportError(f"module '{module_path}' has no attribute '{attr}'")
    return getattr(module, attr)


def resolve_adapter_class(name: str) -> type[BaseAdapter]:
    """Class for an adapter name, importing provider SDKs only on demand.

    Raises:
        ValueError: Unknown short name.
        ImportError: Missing SDK or module.
        TypeError: The dotted path does not name a BaseAdapter subclass.
    """
    if name in _registered:
        return _registered[name]
    if name in BUILTIN_ADAPTERS:
        dotted_path, extra = BUILTIN_ADAPTERS[name]
        found = _load(dotted_path, extra)
    elif "." in name:
        found = _load(name, None)
    else:
        raise ValueError(
            f"unknown adapter '{name}' (available: {', '.join(available_adapters())}); "
            f"custom adapters take a dotted path such as 'my.module.MyAdapter'"
        )
    if not isinstance(found, type) or not issubclass(found, BaseAdapter):
        raise TypeError(f"'{name}' is not a subclass of BaseAdapter")
    return found


def get_adapter(name: str) -> BaseAdapter:
    """A fresh adapter instance for a credential's ``adapter`` name."""
    return resolve_adapter_class(name)()

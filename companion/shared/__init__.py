"""Shared cross-cutting concerns: config, constants, models, errors, logging."""

__all__ = [
    "app_log",
    "config",
    "constants",
    "diagnostics",
    "errors",
    "interfaces",
    "models",
]

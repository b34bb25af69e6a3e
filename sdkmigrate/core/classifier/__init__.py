"""SDK variant classification.

All built-in variant strategies are registered on import.  The
:class:`VariantRegistry` is the single entry point for the migrator to
look up per-SDK behavior.
"""

from .base import VariantStrategy, glob_match, normalize_path
from .classifier import SdkTypeClassifier
from .registry import VariantRegistry

# ── Register built-in strategies ─────────────────────────────────────

from .strategies import BUILTIN_STRATEGIES, SYSTEM_WEB_SDK

for _strategy_cls in BUILTIN_STRATEGIES:
    VariantRegistry.register(_strategy_cls())

__all__ = [
    "SYSTEM_WEB_SDK",
    "SdkTypeClassifier",
    "VariantRegistry",
    "VariantStrategy",
    "glob_match",
    "normalize_path",
]

"""SDK variant strategy registry.

Simple dict-based registry.  All strategies are registered at import time
via ``classifier/__init__.py``.  No plugin discovery -- every strategy
ships with the package.
"""

import logging
from typing import Any, Dict, List, Optional

from ..models import SdkVariant, SdkVariantKind
from .base import VariantStrategy

logger = logging.getLogger(__name__)


class VariantRegistry:
    """Registry for SDK variant strategies.

    Class-level store so the classifier and migrator can call
    ``VariantRegistry.for_variant(...)`` without holding an instance.
    """

    _strategies: Dict[SdkVariantKind, VariantStrategy] = {}

    @classmethod
    def register(cls, strategy: VariantStrategy) -> None:
        """Register a strategy instance, replacing any previous one."""
        cls._strategies[strategy.kind] = strategy
        logger.debug(
            "Registered SDK variant strategy: %s (%s)",
            strategy.kind.value,
            strategy.display_name,
        )

    @classmethod
    def get_strategy(cls, kind: SdkVariantKind) -> Optional[VariantStrategy]:
        """Get a strategy by kind.  Returns ``None`` if not found."""
        return cls._strategies.get(kind)

    @classmethod
    def for_variant(cls, variant: SdkVariant) -> Optional[VariantStrategy]:
        """Strategy for a classified variant.

        Unmigratable variants have no strategy.  Unknown kinds fall back
        to the standard library strategy.
        """
        if not variant.is_migratable:
            return None
        strategy = cls._strategies.get(variant.kind)
        if strategy is None:
            logger.warning(
                "No strategy registered for %s, using StandardLibrary",
                variant.kind.value,
            )
            strategy = cls._strategies.get(SdkVariantKind.STANDARD_LIBRARY)
        return strategy

    @classmethod
    def list_strategies(cls) -> List[Dict[str, Any]]:
        """List all registered strategies with metadata."""
        return [
            {
                "kind": strategy.kind.value,
                "display_name": strategy.display_name,
                "sdk": strategy.sdk,
            }
            for strategy in cls._strategies.values()
        ]

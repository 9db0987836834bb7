"""Handler modules for cluster resources."""

from __future__ import annotations

import importlib
import logging
import os

logger = logging.getLogger(__name__)

# Flavor -> (module, enabling environment variable)
HANDLER_MODULES = {
    "legacy": ("irsa_operator.handlers.legacy", "LEGACY_ENABLED"),
    "capa": ("irsa_operator.handlers.capa", "CAPA_ENABLED"),
    "eks": ("irsa_operator.handlers.eks", "EKS_ENABLED"),
}


def enabled_flavors() -> list[str]:
    return [
        flavor
        for flavor, (_, variable) in HANDLER_MODULES.items()
        if os.getenv(variable, "true").lower() == "true"
    ]


def register_handlers() -> list[str]:
    """Import the handler modules of enabled flavors; importing registers them with kopf."""
    flavors = enabled_flavors()
    for flavor in flavors:
        importlib.import_module(HANDLER_MODULES[flavor][0])
    logger.info(f"Registered handlers for flavors: {', '.join(flavors) or 'none'}")
    return flavors

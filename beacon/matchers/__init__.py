"""
Beacon Matchers Submodule.

Automatically discovers and imports all matcher modules with validation.
"""

import importlib
import inspect
import pkgutil

from beacon.core import Matcher as BaseMatcher
from beacon.logging_config import get_logger

logger = get_logger(__name__)

# Automatically import all matcher modules and collect their exports
__all__ = []
_seen_names = set()

for module_info in pkgutil.iter_modules(__path__):
    module = importlib.import_module(f"{__name__}.{module_info.name}")

    if hasattr(module, '__all__'):
        for name in module.__all__:
            if name in _seen_names:
                logger.warning(
                    "Duplicate matcher name '%s' in module '%s' - skipping",
                    name,
                    module_info.name
                )
                continue

            cls = getattr(module, name)

            if not inspect.isclass(cls) or not issubclass(cls, BaseMatcher):
                logger.warning(
                    "Export '%s' in module '%s' is not a Matcher subclass - skipping",
                    name,
                    module_info.name
                )
                continue

            globals()[name] = cls
            __all__.append(name)
            _seen_names.add(name)

"""
Plugin loader for automatic discovery and registration of site profiles.
"""

import importlib.util
import inspect
import logging
import pathlib
import sys
from types import ModuleType
from typing import Dict, Type

from .errors import PluginNotFound
from .interfaces import SiteProfile

logger = logging.getLogger(__name__)

# Plugin directory relative to this file
PLUGIN_DIR = pathlib.Path(__file__).parent.parent / "plugins"

# Global registry of discovered site profiles
_REGISTRY: Dict[str, Type[SiteProfile]] = {}


def _load_module(path: pathlib.Path) -> ModuleType:
    """Load a Python module from a file path."""
    # Create module name like: plugins.letterboxd.site
    plugin_name = path.parent.name
    module_name = path.stem
    full_name = f"plugins.{plugin_name}.{module_name}"

    if full_name in sys.modules:
        return sys.modules[full_name]

    spec = importlib.util.spec_from_file_location(full_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load spec for {path}")

    mod = importlib.util.module_from_spec(spec)
    sys.modules[full_name] = mod  # Allow intra-plugin imports
    spec.loader.exec_module(mod)

    logger.debug("Loaded module: %s", full_name)
    return mod


def refresh_registry() -> None:
    """Scan all Python files in plugins/ and register SiteProfile subclasses."""
    _REGISTRY.clear()

    if not PLUGIN_DIR.exists():
        logger.warning("Plugin directory does not exist: %s", PLUGIN_DIR)
        return

    module_count = 0

    for py_file in sorted(PLUGIN_DIR.rglob("*.py")):
        # Skip __init__.py and files starting with _
        if py_file.name.startswith("_"):
            continue

        try:
            mod = _load_module(py_file)
        except Exception as e:
            logger.error("Failed to load module %s: %s", py_file, e)
            continue
        module_count += 1

        for _, obj in inspect.getmembers(mod, inspect.isclass):
            if (
                issubclass(obj, SiteProfile)
                and obj is not SiteProfile
                and not inspect.isabstract(obj)
                and obj.__module__ == mod.__name__
            ):
                # Register with key: plugin_name.ClassName
                key = f"{py_file.parent.name}.{obj.__name__}"
                _REGISTRY[key] = obj
                logger.debug("Registered site: %s", key)

    logger.info("Plugin discovery complete: %d modules, %d sites", module_count, len(_REGISTRY))


def get(class_path: str) -> Type[SiteProfile]:
    """Get a site profile class by its plugin path.

    Args:
        class_path: Format 'plugin_name.ClassName' (e.g., 'letterboxd.LetterboxdSite')

    Raises:
        PluginNotFound: If the class is not found
    """
    if not _REGISTRY:
        refresh_registry()

    if class_path not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise PluginNotFound(f"Site '{class_path}' not found. Available: {available}")

    return _REGISTRY[class_path]


def list_available() -> Dict[str, Type[SiteProfile]]:
    """Get a copy of all registered site profiles."""
    if not _REGISTRY:
        refresh_registry()
    return _REGISTRY.copy()

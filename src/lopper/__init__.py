"""
lopper - find unused and underused dependencies

Policy resolution API:

    from lopper import load_with_policy

    # Resolve .lopper.yml (or .lopper.yaml / lopper.json) plus imported packs
    result = load_with_policy("path/to/repo")
    print(result.values.low_confidence_warning_percent)
    print(" > ".join(result.policy_sources))
"""


def load_with_policy(*args, **kwargs):
    """Lazy import wrapper for load_with_policy to keep httpx/pydantic off the import path."""
    from .config_loader import load_with_policy as _load_with_policy

    return _load_with_policy(*args, **kwargs)


from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("lopper")
except PackageNotFoundError:
    # Fallback for development/uninstalled package
    __version__ = "unknown"

__all__ = ["load_with_policy", "__version__"]

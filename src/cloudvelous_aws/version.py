"""Version information for Cloudvelous AWS."""

__version__ = "0.1.0"


def get_version() -> str:
    """Get the current version string.

    Returns:
        Version string in semantic versioning format.
    """
    return __version__

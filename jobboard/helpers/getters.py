from jobboard.core.config import settings


def isDebugMode() -> bool:
    """True when the service runs against a local/debug environment."""
    return settings.MODE == "debug"

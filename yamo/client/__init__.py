from yamo.client.api import YamoApiClient, YamoApiError
from yamo.client.config import ClientSettings
from yamo.client.context import ContextState, ContextSwitcher, PermissionDeniedError, Phase, TransitionError
from yamo.client.session import SessionStore
from yamo.client.storage import FileTokenStore, MemoryTokenStore, TokenStore

__all__ = [
    "ClientSettings",
    "ContextState",
    "ContextSwitcher",
    "FileTokenStore",
    "MemoryTokenStore",
    "PermissionDeniedError",
    "Phase",
    "SessionStore",
    "TokenStore",
    "TransitionError",
    "YamoApiClient",
    "YamoApiError",
    "connect",
]


def connect(settings: ClientSettings | None = None) -> SessionStore:
    """Build a session wired to the configured API and token file."""
    settings = settings or ClientSettings()
    api = YamoApiClient(settings.api_base_url, timeout_seconds=settings.timeout_seconds)
    return SessionStore(api, FileTokenStore(settings.token_store_path))

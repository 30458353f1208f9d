from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_OFFLINE_DOCUMENT = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>PropGrid - Offline</title>
</head>
<body>
<main>
<h1>You are offline</h1>
<p>PropGrid could not reach the network. Deal alerts will resume once you are back online.</p>
</main>
</body>
</html>
"""


# Hosts that all resolve to this machine when the gateway binds them.
_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0", "::"})


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Upstream site the page is served from; requests on it are treated as same-origin.
    # The gateway fronts this origin, so it must not listen on the same host and port.
    origin: str = "http://localhost:8080"


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    This maps cleanly to Python's standard library TimedRotatingFileHandler behavior.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 7


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = ""
    rotation: FileRotationSettings = Field(default_factory=FileRotationSettings)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "INFO"
    file: FileLoggingSettings = Field(default_factory=FileLoggingSettings)


class CacheSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    prefix: str = "propgrid"
    version: str = "1.0.0"
    storage_dir: str = "data/cache-storage"

    precache_urls: Sequence[str] = (
        "/",
        "/index.html",
        "/script.js",
        "https://cdn.tailwindcss.com",
        "https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600;700&display=swap",
        "https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css",
    )

    # Matched as substrings of the request origin.
    cdn_hosts: Sequence[str] = (
        "cdn.tailwindcss.com",
        "fonts.googleapis.com",
        "cdnjs.cloudflare.com",
    )

    # Matched as a substring of the full request URL.
    fallback_stylesheet_host: str = "tailwindcss.com"
    fallback_stylesheet_body: str = "/* Tailwind CSS fallback */"

    # A freshly installed version takes over at once instead of waiting for open pages to close.
    skip_waiting_on_install: bool = True

    offline_url: str = "/offline.html"
    offline_document: str = DEFAULT_OFFLINE_DOCUMENT


class NetworkSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_seconds: float = 30.0


class SyncSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    tag: str = "background-sync"
    endpoint: str = "/api/signup"
    pending_key: str = "/form-data"


class NotificationSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = "PropGrid Deal Alert"
    default_body: str = "New real estate deal alert!"
    icon: str = "/2zeilN5FnQ4boMLVI0qnMaQk248.svg"
    badge: str = "/2zeilN5FnQ4boMLVI0qnMaQk248.svg"
    action_icon: str = "/icon-192x192.png"
    vibrate: Sequence[int] = (100, 50, 100)


class GatewaySettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = "127.0.0.1"
    port: int = 8090


class AppConfig(BaseModel):
    """
    Effective runtime configuration after applying all precedence rules.

    Every section carries defaults, so an empty YAML document yields a working config.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    app: AppSettings = Field(default_factory=AppSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)

    @model_validator(mode="after")
    def reject_gateway_loop(self) -> AppConfig:
        origin = urlsplit(self.app.origin)
        origin_host = (origin.hostname or "").lower()
        origin_port = origin.port or (443 if origin.scheme == "https" else 80)
        gateway_host = self.gateway.host.lower()
        same_host = origin_host == gateway_host or (
            origin_host in _LOCAL_HOSTS and gateway_host in _LOCAL_HOSTS
        )
        if same_host and origin_port == self.gateway.port:
            raise ValueError(
                f"app.origin {self.app.origin} points at the gateway itself "
                f"({self.gateway.host}:{self.gateway.port}); same-origin fetches would loop"
            )
        return self


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """
    Optional inputs for a configuration loader.

    Implementations may use these to control where configuration is read from.
    """

    yaml_path: str = "data/config/config.yaml"
    env_prefix: str = "PROPGRID__"
    dotenv_path: Optional[str] = "data/.env"

"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings - connection values must come from environment variables."""

    # Application
    app_name: str = "notification-dispatch-api"
    app_version: str = "1.0.0"
    debug: bool = False

    # MongoDB - REQUIRED from environment
    mongodb_uri: str
    mongodb_database: str
    device_collection: str = "deviceRegistrations"

    # "mongodb" or "memory" (local development only, state is lost on restart)
    storage_backend: str = "mongodb"

    # Keycloak - REQUIRED from environment
    keycloak_server_url: str
    keycloak_realm: str
    keycloak_client_id: str

    # Realm role allowed to dispatch to identities other than its own
    dispatcher_role: str = "notification-dispatcher"

    # CORS - comma-separated list of allowed origins
    cors_origins: str = "http://localhost:8080"

    # Web Push (VAPID)
    vapid_public_key: str = ""
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:admin@example.com"
    push_ttl: int = 300
    push_timeout: float = 10.0
    max_concurrent_sends: int = 10

    # Notification defaults
    default_icon: str = "/icons/icon-192x192.png"
    default_tag: str = "default-notification"
    default_url: str = "/"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()

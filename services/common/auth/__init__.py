"""Authentication and authorization utilities."""

from .keycloak import KeycloakConfig, verify_token, get_current_user, has_role

__all__ = ["KeycloakConfig", "verify_token", "get_current_user", "has_role"]

"""Keycloak OIDC identity verification."""

import logging
import time
from typing import Any, Dict, Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
import httpx

logger = logging.getLogger(__name__)

security = HTTPBearer()

JWKS_CACHE_SECONDS = 300


class KeycloakConfig:
    """Keycloak realm configuration and cached signing keys."""

    def __init__(self, server_url: str, realm: str, client_id: str):
        self.server_url = server_url.rstrip('/')
        self.realm = realm
        self.client_id = client_id
        self.jwks_uri = f"{self.server_url}/realms/{realm}/protocol/openid-connect/certs"
        self.issuer = f"{self.server_url}/realms/{realm}"
        self._jwks: Optional[Dict[str, Any]] = None
        self._jwks_fetched_at = 0.0

    _instance: Optional['KeycloakConfig'] = None

    @classmethod
    def initialize(cls, server_url: str, realm: str, client_id: str) -> None:
        """Initialize the Keycloak configuration."""
        cls._instance = cls(server_url, realm, client_id)
        logger.info(f"Keycloak configured: {server_url}/realms/{realm}")

    @classmethod
    def get(cls) -> 'KeycloakConfig':
        """Get the Keycloak configuration instance."""
        if cls._instance is None:
            raise RuntimeError("KeycloakConfig not initialized. Call initialize() first.")
        return cls._instance

    async def get_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        """Fetch the realm's JSON Web Key Set, reusing it for JWKS_CACHE_SECONDS."""
        expired = time.monotonic() - self._jwks_fetched_at > JWKS_CACHE_SECONDS
        if self._jwks is None or expired or force_refresh:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(self.jwks_uri)
                response.raise_for_status()
                self._jwks = response.json()
                self._jwks_fetched_at = time.monotonic()
        return self._jwks


def _find_key(jwks: Dict[str, Any], kid: Optional[str]) -> Optional[Dict[str, Any]]:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


async def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Verify a bearer JWT issued by the configured Keycloak realm.

    Returns:
        dict: Decoded token payload

    Raises:
        HTTPException: 401 if the token is invalid, expired or from another realm
    """
    token = credentials.credentials
    config = KeycloakConfig.get()

    try:
        unverified_header = jwt.get_unverified_header(token)
        kid = unverified_header.get("kid")

        rsa_key = _find_key(await config.get_jwks(), kid)
        if rsa_key is None:
            # Keys may have been rotated since the last fetch
            rsa_key = _find_key(await config.get_jwks(force_refresh=True), kid)

        if not rsa_key:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unable to find appropriate key",
            )

        # Issuer host differs between public and in-cluster URLs, so only the realm is compared
        payload = jwt.decode(
            token,
            rsa_key,
            algorithms=["RS256"],
            options={"verify_aud": False, "verify_iss": False}
        )

        if "iss" in payload:
            token_realm = payload["iss"].split("/realms/")[-1] if "/realms/" in payload["iss"] else None
            if token_realm != config.realm:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail=f"Invalid realm: expected {config.realm}, got {token_realm}",
                )

        return payload

    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except JWTError as e:
        logger.error(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )
    except httpx.HTTPError as e:
        logger.error(f"Could not fetch Keycloak signing keys: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity provider unavailable",
        )


async def get_current_user(token_payload: dict = Depends(verify_token)) -> dict:
    """
    Get the authenticated identity.

    The "sub" claim is the owner id used for device registrations.

    Raises:
        HTTPException: 401 if the token carries no subject
    """
    subject = token_payload.get("sub")
    if not subject:
        logger.error("Token does not contain 'sub' claim")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token does not identify a user",
        )

    return {
        "sub": subject,
        "username": token_payload.get("preferred_username"),
        "email": token_payload.get("email"),
        "roles": token_payload.get("realm_access", {}).get("roles", []),
    }


def has_role(user: dict, role: str) -> bool:
    """Check whether an identity returned by get_current_user carries a realm role."""
    return role in user.get("roles", [])

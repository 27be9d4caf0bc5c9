"""JWT Token Validation for Azure AD (Entra)"""
import jwt
from jwt import PyJWKClient
from typing import Any, Dict, Optional
from datetime import datetime, timedelta

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from ..domain.models import ActorContext
from .logger import get_logger
from .time import utc_now

logger = get_logger(__name__)

DEV_ENVIRONMENTS = ("development", "dev", "local", "test")


class JWTValidator:
    """Azure AD JWT Token Validator"""

    def __init__(self):
        self._jwks_client: Optional[PyJWKClient] = None
        self._jwks_cache_time: Optional[datetime] = None
        self._cache_duration = timedelta(hours=24)

    @property
    def jwks_uri(self) -> str:
        return f"https://login.microsoftonline.com/{settings.aad_tenant_id}/discovery/v2.0/keys"

    @property
    def issuer(self) -> str:
        return f"https://login.microsoftonline.com/{settings.aad_tenant_id}/v2.0"

    @property
    def jwks_client(self) -> PyJWKClient:
        """Get or create JWKS client, refreshed daily"""
        now = utc_now()

        if (self._jwks_client is None or
                self._jwks_cache_time is None or
                now - self._jwks_cache_time > self._cache_duration):
            self._jwks_client = PyJWKClient(self.jwks_uri)
            self._jwks_cache_time = now
            logger.info(f"Refreshed JWKS client cache from {self.jwks_uri}")

        return self._jwks_client

    def validate_token(self, token: str) -> Dict[str, Any]:
        """
        Validate JWT token from Azure AD

        In development the signature is not verified (expiry still is), so
        locally minted tokens work.

        Raises:
            AuthenticationError: If token is invalid
        """
        if not token:
            raise AuthenticationError("Token is missing")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            if settings.environment.lower() in DEV_ENVIRONMENTS:
                return jwt.decode(
                    token,
                    options={
                        "verify_signature": False,
                        "verify_exp": True,
                        "verify_aud": False,
                        "verify_iss": False,
                    }
                )

            signing_key = self.jwks_client.get_signing_key_from_jwt(token)

            valid_audiences = [settings.aad_client_id]
            if settings.aad_audience and settings.aad_audience not in valid_audiences:
                valid_audiences.append(settings.aad_audience)

            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=valid_audiences,
                issuer=self.issuer,
                options={
                    "verify_exp": True,
                    "verify_aud": True,
                    "verify_iss": True,
                }
            )

        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidAudienceError as e:
            logger.warning(f"Invalid token audience: {e}")
            raise AuthenticationError("Invalid token audience")
        except jwt.InvalidIssuerError:
            logger.warning("Invalid token issuer")
            raise AuthenticationError("Invalid token issuer")
        except jwt.PyJWTError as e:
            logger.error(f"JWT validation error: {e}")
            raise AuthenticationError(f"Invalid token: {str(e)}")

    def get_actor_context(self, token: str) -> ActorContext:
        """Extract actor context from validated token"""
        claims = self.validate_token(token)

        aad_id = claims.get("oid") or claims.get("sub") or ""

        # Different token flavours carry the email in different claims
        email = (
            claims.get("email") or
            claims.get("preferred_username") or
            claims.get("upn") or
            claims.get("unique_name") or
            ""
        )

        if not email:
            logger.warning(f"No email found in token claims. Available claims: {list(claims.keys())}")
            raise AuthenticationError("Unable to determine user email from token")

        roles = claims.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]

        return ActorContext(
            aad_id=aad_id,
            email=email,
            display_name=claims.get("name") or email,
            roles=roles
        )


# Global validator instance
_jwt_validator: Optional[JWTValidator] = None


def get_jwt_validator() -> JWTValidator:
    """Get global JWT validator instance"""
    global _jwt_validator
    if _jwt_validator is None:
        _jwt_validator = JWTValidator()
    return _jwt_validator


def get_current_user(authorization: str) -> ActorContext:
    """Get current actor from an Authorization header value"""
    if not authorization:
        raise AuthenticationError("Authorization header is missing")

    return get_jwt_validator().get_actor_context(authorization)

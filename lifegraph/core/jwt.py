"""JWT verification utilities.

Access tokens are HS256-signed by the product's auth provider with a shared
secret; this module decodes and validates them with PyJWT.
"""

import jwt

from lifegraph.core.config import settings
from lifegraph.schemas.auth import JWTClaims
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


class JWTVerifier:
    """JWT verifier for bearer access tokens."""

    def __init__(self, jwt_secret: str, issuer: str = "", audience: str = "authenticated"):
        """Initialize JWT verifier.

        Args:
            jwt_secret: Shared secret for HS256 verification
            issuer: Expected ``iss`` claim (not checked when empty)
            audience: Expected ``aud`` claim (not checked when empty)
        """
        self.jwt_secret = jwt_secret
        self.expected_issuer = issuer.rstrip("/") if issuer else ""
        self.audience = audience

        LOGGER.info(
            "JWT verifier initialized",
            extra={"issuer": self.expected_issuer or None, "secret_configured": bool(jwt_secret)},
        )

    async def verify_token(self, token: str) -> JWTClaims:
        """Verify and decode a JWT access token.

        Args:
            token: JWT access token from Authorization header

        Returns:
            Decoded and validated JWT claims

        Raises:
            jwt.InvalidTokenError: If token is invalid or expired
        """
        if not self.jwt_secret:
            raise jwt.InvalidTokenError("JWT_SECRET is not configured")

        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") != "HS256":
                raise jwt.InvalidTokenError(f"Unsupported algorithm: {header.get('alg')}")

            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience or None,
                options={
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_aud": bool(self.audience),
                    "require": ["sub", "exp", "iat"],
                },
            )

            if self.expected_issuer and payload.get("iss") != self.expected_issuer:
                raise jwt.InvalidIssuerError(f"Invalid issuer: {payload.get('iss')}")

            claims = JWTClaims(**payload)

            LOGGER.debug(f"Successfully verified token for user: {claims.sub}")
            return claims

        except jwt.ExpiredSignatureError as e:
            LOGGER.warning(f"Token expired: {e}")
            raise jwt.InvalidTokenError("Token has expired") from e
        except jwt.InvalidIssuerError as e:
            LOGGER.warning(f"Invalid issuer: {e}")
            raise jwt.InvalidTokenError("Invalid token issuer") from e
        except jwt.InvalidSignatureError as e:
            LOGGER.warning(f"Invalid signature: {e}")
            raise jwt.InvalidTokenError("Invalid token signature") from e
        except jwt.InvalidTokenError as e:
            LOGGER.warning(f"Invalid token: {e}")
            raise
        except Exception as e:
            LOGGER.error(f"Unexpected error during token verification: {e}")
            raise jwt.InvalidTokenError("Token verification failed") from e


# Global JWT verifier instance
jwt_verifier = JWTVerifier(
    jwt_secret=settings.auth.jwt_secret,
    issuer=settings.auth.jwt_issuer,
    audience=settings.auth.jwt_audience,
)

"""Verification of Supabase access tokens.

HS256 tokens are checked against the project secret. RS256 and ES256 tokens
are checked against the project's JWKS. Any failure surfaces as
``AuthenticationError``.
"""

import base64
from typing import Optional

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from licencias.core.exceptions import AuthenticationError
from licencias.core.jwks import JWKKey, JWKSService
from licencias.schemas.auth import JWTClaims, SessionUser
from licencias.utils.logging import get_logger

LOGGER = get_logger(__name__)

_CURVES = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
}

_REQUIRED_CLAIMS = ["sub", "exp", "iat", "iss"]


def _b64url_int(value: Optional[str]) -> int:
    if not value:
        raise ValueError("Missing key component")
    padded = value + "=" * (-len(value) % 4)
    return int.from_bytes(base64.urlsafe_b64decode(padded), byteorder="big")


class JWTVerifier:
    """Verifier for Supabase access tokens."""

    def __init__(
        self,
        supabase_url: str,
        jwt_secret: str = "",
        jwks_service: Optional[JWKSService] = None,
        audience: str = "authenticated",
    ):
        """Initialize the verifier.

        Args:
            supabase_url: Supabase project URL, used to derive the issuer
            jwt_secret: Project secret for HS256 tokens
            jwks_service: Key source for RS256/ES256 tokens
            audience: Expected ``aud`` claim
        """
        self.supabase_url = supabase_url.rstrip("/")
        self.expected_issuer = f"{self.supabase_url}/auth/v1"
        self.jwt_secret = jwt_secret
        self.jwks_service = jwks_service
        self.audience = audience

    async def verify_token(self, token: str) -> JWTClaims:
        """Verify signature and claims of an access token.

        Raises:
            AuthenticationError: If the token is malformed, expired or not
                signed by the project
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Malformed token", original_error=e) from e

        alg = header.get("alg")
        if alg == "HS256":
            if not self.jwt_secret:
                raise AuthenticationError("HS256 token received but no JWT secret is configured")
            key = self.jwt_secret
        elif alg in ("RS256", "ES256"):
            key = await self._public_key(header.get("kid"))
        else:
            raise AuthenticationError(f"Unsupported token algorithm: {alg}")

        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[alg],
                audience=self.audience,
                issuer=self.expected_issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            LOGGER.warning(f"Token expired: {e}")
            raise AuthenticationError("Token has expired", original_error=e) from e
        except jwt.InvalidTokenError as e:
            LOGGER.warning(f"Invalid token: {e}")
            raise AuthenticationError("Invalid token", original_error=e) from e

        claims = JWTClaims(**payload)
        LOGGER.debug(f"Verified token for user: {claims.sub}")
        return claims

    async def verify_session(self, token: str) -> SessionUser:
        """Verify a token and return the identity it carries."""
        claims = await self.verify_token(token)
        metadata = claims.user_metadata or {}
        return SessionUser(
            user_id=claims.sub,
            email=claims.email,
            full_name=metadata.get("full_name") or metadata.get("name"),
        )

    async def _public_key(self, kid: Optional[str]) -> str:
        if not kid:
            raise AuthenticationError("Token header missing 'kid'")
        if self.jwks_service is None:
            raise AuthenticationError("Asymmetric token received but no JWKS source is configured")

        jwk_key = await self.jwks_service.get_key(kid)
        if jwk_key is None:
            raise AuthenticationError(f"No signing key found for kid: {kid}")

        try:
            return self._jwk_to_pem(jwk_key)
        except ValueError as e:
            raise AuthenticationError("Unusable signing key", original_error=e) from e

    @staticmethod
    def _jwk_to_pem(jwk_key: JWKKey) -> str:
        """Convert a JWK to a PEM public key.

        Raises:
            ValueError: If the key type or curve is unsupported
        """
        if jwk_key.kty == "RSA":
            public_key = rsa.RSAPublicNumbers(_b64url_int(jwk_key.e), _b64url_int(jwk_key.n)).public_key()
        elif jwk_key.kty == "EC":
            curve = _CURVES.get(jwk_key.crv or "")
            if curve is None:
                raise ValueError(f"Unsupported curve: {jwk_key.crv}")
            public_key = ec.EllipticCurvePublicNumbers(
                x=_b64url_int(jwk_key.x), y=_b64url_int(jwk_key.y), curve=curve()
            ).public_key()
        else:
            raise ValueError(f"Unsupported key type: {jwk_key.kty}")

        pem = public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return pem.decode("utf-8")

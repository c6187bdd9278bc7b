from __future__ import annotations

from marketplace_realtime.application.ports.auth import TokenVerifier
from marketplace_realtime.config import Settings
from marketplace_realtime.infrastructure.auth.hs256_verifier import HS256Verifier
from marketplace_realtime.infrastructure.auth.jwks_verifier import JWKSVerifier


def build_verifier(settings: Settings) -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)

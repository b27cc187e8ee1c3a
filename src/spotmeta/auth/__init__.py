"""Spotify access tokens: web player strategies, TOTP and user OAuth."""

from spotmeta.auth.models import AccessToken, TokenSource
from spotmeta.auth.oauth import OAuthStatus, OAuthTokenStore
from spotmeta.auth.tokens import TokenManager, TokenStrategy, WebPlayerTokenClient
from spotmeta.auth.totp import TOTPEngine, compute_totp, derive_shared_secret

__all__ = [
    "AccessToken",
    "OAuthStatus",
    "OAuthTokenStore",
    "TOTPEngine",
    "TokenManager",
    "TokenSource",
    "TokenStrategy",
    "WebPlayerTokenClient",
    "compute_totp",
    "derive_shared_secret",
]

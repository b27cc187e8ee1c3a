"""Spotify URLs and client defaults."""

# Spotify web player token endpoints
SPOTIFY_TOKEN_URL = "https://open.spotify.com/api/token"
SPOTIFY_LEGACY_TOKEN_URL = "https://open.spotify.com/get_access_token"
SPOTIFY_ACCESS_POINT_URL = "https://open.spotify.com/get_access_token?reason=transport&productType=web_player"
SPOTIFY_SERVER_TIME_URL = "https://open.spotify.com/api/server-time"

# Spotify Accounts (user OAuth refresh)
SPOTIFY_ACCOUNTS_TOKEN_URL = "https://accounts.spotify.com/api/token"

# Remote TOTP secret table
SECRETS_URL = "https://cdn.jsdelivr.net/gh/afkarxyz/secretBytes@refs/heads/main/secrets/secretBytes.json"

# Spotify Web API base
SPOTIFY_API_BASE = "https://api.spotify.com/v1"

# Spotify Web API endpoints
PLAYLIST_URL = f"{SPOTIFY_API_BASE}/playlists"
ALBUMS_URL = f"{SPOTIFY_API_BASE}/albums"
TRACKS_URL = f"{SPOTIFY_API_BASE}/tracks"
ARTISTS_URL = f"{SPOTIFY_API_BASE}/artists"

# Public web player
SPOTIFY_WEB_BASE = "https://open.spotify.com"
SPOTIFY_WEB_HOSTS = frozenset({"open.spotify.com", "play.spotify.com"})
SPOTIFY_EMBED_HOST = "embed.spotify.com"

# Page sizes
PLAYLIST_PAGE_SIZE = 100
ALBUM_TRACKS_PAGE_SIZE = 50
ARTIST_ALBUMS_PAGE_SIZE = 50

# Retry defaults
DEFAULT_REQUEST_TIMEOUT = 15.0  # seconds
DEFAULT_API_MAX_ATTEMPTS = 6
DEFAULT_API_MAX_RATE_LIMIT_RETRIES = 2
DEFAULT_TOKEN_MAX_ATTEMPTS = 3
DEFAULT_TOKEN_RATE_LIMIT_MAX_WAIT = 10.0  # seconds
DEFAULT_NETWORK_RETRY_DELAY = 0.25  # seconds, multiplied by attempt number
DEFAULT_API_SERVER_RETRY_DELAY = 0.35
DEFAULT_TOKEN_SERVER_RETRY_DELAY = 0.5

# Rate limiting
DEFAULT_MIN_REQUEST_INTERVAL = 0.25  # seconds between requests to one host
DEFAULT_MAX_BACKOFF = 600.0  # 10 minutes
DEFAULT_COOLDOWN_BUFFER = 5.0
DEFAULT_RETRY_AFTER = 5.0
DEFAULT_INLINE_COOLDOWN_WAIT = 3.0
DEFAULT_DEADLINE_SAFETY_MARGIN = 2.0
DEFAULT_MAX_WAIT_CAP = 120.0

# Caching
DEFAULT_RESPONSE_CACHE_TTL = 600.0  # 10 minutes
DEFAULT_SECRETS_TTL = 6 * 60 * 60.0
DEFAULT_SERVER_TIME_TTL = 5 * 60.0

# Tokens
DEFAULT_TOKEN_EXPIRY_BUFFER = 30.0
DEFAULT_TOKEN_LIFETIME = 45 * 60.0
DEFAULT_OAUTH_REFRESH_MARGIN = 30.0

# Top-level request
DEFAULT_FETCH_TIMEOUT = 300.0
DEFAULT_DISCOGRAPHY_CONCURRENCY = 4

# TOTP
TOTP_DIGITS = 6
TOTP_PERIOD = 30
MILLISECOND_TIMESTAMP_THRESHOLD = 1_000_000_000_000

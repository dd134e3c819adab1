HOME_PAGE_URL = "https://open.spotify.com/"
COOKIE_DOMAIN = ".spotify.com"
SERVER_TIME_URL = "https://open.spotify.com/api/server-time"
SESSION_TOKEN_URL = "https://open.spotify.com/api/token"
CANVAS_API_URL = "https://spclient.wg.spotify.com/canvaz-cache/v0/canvases"
TRACK_API_URL = "https://api.spotify.com/v1/tracks/{track_id}"
ALBUM_API_URL = "https://api.spotify.com/v1/albums/{album_id}"
PLAYLIST_API_URL = "https://api.spotify.com/v1/playlists/{playlist_id}"
SEARCH_API_URL = "https://api.spotify.com/v1/search"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36"
)
SECRETS_USER_AGENT = "Mozilla/5.0"
CANVAS_USER_AGENT = "Spotify/9.0.34.593 iOS/18.4 (iPhone15,3)"

AUTH_REASON = "init"
AUTH_PRODUCT_TYPE = "mobile-web-player"

SECRETS_TIMEOUT = 10.0
REQUEST_TIMEOUT = 10.0

# seconds
TOKEN_REFRESH_INTERVAL = 30 * 60
SECRETS_REFRESH_INTERVAL = 60 * 60

TOTP_PERIOD = 30
TOTP_DIGITS = 6
TOTP_SECRETS_URL = (
    "https://raw.githubusercontent.com/Thereallo1026/spotify-secrets"
    "/refs/heads/main/secrets/secretDict.json"
)

FALLBACK_SECRET_VERSION = "19"
FALLBACK_SECRET = (
    99, 111, 47, 88, 49, 56, 118, 65, 52, 67, 50, 104, 117,
    101, 55, 94, 95, 75, 94, 49, 69, 36, 85, 64, 74, 60,
)

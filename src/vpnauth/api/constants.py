"""
API endpoints, client identification and response codes.
"""

DEFAULT_API_URL = "https://vpn-api.proton.me"

AUTH_INFO_PATH = "/core/v4/auth/info"
AUTH_PATH = "/core/v4/auth"
AUTH_2FA_PATH = "/core/v4/auth/2fa"
REFRESH_PATH = "/auth/refresh"
CERTIFICATE_PATH = "/vpn/v1/certificate"
LOGICALS_PATH = "/vpn/v1/logicals"

# Must look like a real desktop client release. Web-style identifiers
# trigger human verification on the auth endpoints.
APP_VERSION = "linux-vpn@4.13.1"
USER_AGENT = "ProtonVPN/4.13.1 (Linux; Ubuntu)"

REFRESH_REDIRECT_URI = "http://protonmail.ch"

# Seconds
AUTH_TIMEOUT = 30.0
VPN_TIMEOUT = 10.0

# Codes 1000 and 1001 both mean success
API_CODE_SUCCESS = 1000
API_CODE_MULTI_STATUS = 1001

STATUS_ONLINE = 1


def is_success_code(code: object) -> bool:
    """Check if an API response code indicates success."""
    return code in (API_CODE_SUCCESS, API_CODE_MULTI_STATUS)

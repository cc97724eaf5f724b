from __future__ import annotations

from auth.oauth2 import AuthorizationCodeProvider

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USER_INFO_URL = "https://www.googleapis.com/oauth2/v1/userinfo?alt=json"
GOOGLE_SCOPE_PROPERTY = "oauth2.google.scope"


class GoogleProvider(AuthorizationCodeProvider):
    name = "google"
    authorization_endpoint = GOOGLE_AUTHORIZE_URL
    token_endpoint = GOOGLE_TOKEN_URL
    userinfo_endpoint = GOOGLE_USER_INFO_URL
    scope_property = GOOGLE_SCOPE_PROPERTY
    identity_field = "id"

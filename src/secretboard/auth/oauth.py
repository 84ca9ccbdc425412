"""Google sign-in — OAuth 2.0 authorization-code flow.

Learn: The flow has four steps, and only the last two touch our data:

1. Initiate  → redirect the browser to Google with scope=profile
2. Callback  → Google redirects back with ?code=...; we POST the code to
               the token endpoint and GET the userinfo endpoint
3. Reconcile → the userinfo "sub" claim is the stable Google account id;
               directory.find_or_create(sub) maps it to exactly one User
4. Establish → the route starts a session (see api/auth.py)

Any failure in steps 2-3 (provider error, network error, garbage JSON,
profile without a subject id) raises AuthFailed. Nothing is retried and
no User row is written unless step 3 is reached with a valid id.
"""

from typing import Optional
from urllib.parse import urlencode

import httpx
import structlog

from secretboard.config import Settings
from secretboard.db.models import User
from secretboard.errors import AuthFailed
from secretboard.services.user_directory import UserDirectory

logger = structlog.get_logger()

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
SCOPE = "profile"


class GoogleOAuthAdapter:
    """Talks to Google's OAuth endpoints and maps the result to a User.

    transport is passed through to httpx.AsyncClient; tests hand in an
    httpx.MockTransport instead of reaching Google.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.callback_url = settings.google_callback_url
        self.timeout = settings.oauth_timeout_seconds
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        """Where to send the browser to start sign-in."""
        if not self.configured:
            logger.error("oauth.not_configured", provider="google")
            raise AuthFailed("Google sign-in is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": SCOPE,
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange(self, code: str) -> dict:
        """Trade an authorization code for the user's profile."""
        if not self.configured:
            logger.error("oauth.not_configured", provider="google")
            raise AuthFailed("Google sign-in is not configured")
        if not code:
            raise AuthFailed("Missing authorization code")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self.transport,
            ) as client:
                token_response = await client.post(
                    TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                        "redirect_uri": self.callback_url,
                        "grant_type": "authorization_code",
                    },
                    headers={"Accept": "application/json"},
                )
                token_response.raise_for_status()
                access_token = _json_body(token_response).get("access_token")
                if not access_token:
                    logger.error("oauth.no_access_token", provider="google")
                    raise AuthFailed("Token endpoint returned no access token")

                userinfo_response = await client.get(
                    USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                userinfo_response.raise_for_status()
                return _json_body(userinfo_response)
        except httpx.HTTPStatusError as e:
            logger.error(
                "oauth.exchange_http_error",
                provider="google",
                status_code=e.response.status_code,
            )
            raise AuthFailed("Google rejected the authorization code")
        except httpx.HTTPError as e:
            logger.error("oauth.exchange_error", provider="google", error=str(e))
            raise AuthFailed("Could not reach Google")

    async def authenticate(self, directory: UserDirectory, code: str) -> User:
        """Run the callback: exchange the code, then find-or-create the User."""
        profile = await self.exchange(code)
        subject = profile.get("sub") or profile.get("id")
        if not subject:
            logger.error("oauth.profile_missing_subject", provider="google")
            raise AuthFailed("Google profile has no subject id")

        user = await directory.find_or_create(str(subject))
        logger.info("oauth.authenticated", provider="google", user_id=str(user.id))
        return user


def _json_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        logger.error("oauth.invalid_json", url=str(response.request.url))
        raise AuthFailed("Provider returned a non-JSON response")
    if not isinstance(body, dict):
        raise AuthFailed("Provider returned an unexpected response")
    return body

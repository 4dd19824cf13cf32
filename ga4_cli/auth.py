"""
GA4 OAuth2 authentication.

Desktop (out-of-band) authorization-code flow:
  1. Reuse the cached token if it is still valid or can be refreshed.
  2. Otherwise print an authorization URL, try to open it in a browser,
     and read the code the operator pastes back.
  3. Exchange the code, cache the token, return the credentials.
"""
import logging
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from .config import Config
from .console import ask, say
from .credential_store import CredentialStore
from .errors import AuthorizationCancelled, TokenExchangeFailed
from .models import Token

logger = logging.getLogger(__name__)

GA4_SCOPES = ["https://www.googleapis.com/auth/analytics.readonly"]
OOB_REDIRECT_URI = "urn:ietf:wg:oauth:2.0:oob"
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"


@dataclass
class AuthContext:
    """Process-wide auth state: configuration plus the token store."""
    config: Config
    store: CredentialStore

    @classmethod
    def from_config(cls, config: Config) -> "AuthContext":
        return cls(config=config, store=CredentialStore(config.token_path))


def token_from_credentials(creds: Credentials, previous: Optional[Token] = None) -> Token:
    """Build the persisted token record from google-auth credentials."""
    expiry_date = None
    if creds.expiry:
        # google-auth keeps expiry as a naive UTC datetime
        expiry = creds.expiry.replace(tzinfo=timezone.utc)
        expiry_date = int(expiry.timestamp() * 1000)

    scope = " ".join(creds.scopes) if creds.scopes else None
    refresh_token = creds.refresh_token
    if previous is not None:
        scope = scope or previous.scope
        refresh_token = refresh_token or previous.refresh_token

    return Token(
        access_token=creds.token,
        refresh_token=refresh_token,
        expiry_date=expiry_date,
        scope=scope or " ".join(GA4_SCOPES),
        token_type="Bearer",
    )


class GA4Auth:
    """Owns the OAuth2 flow and the cached token."""

    def __init__(
        self,
        context: AuthContext,
        prompt: Callable[[str], str] = ask,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ):
        self.context = context
        self.prompt = prompt
        self.open_browser = open_browser
        self.credentials: Optional[Credentials] = None

    @property
    def config(self) -> Config:
        return self.context.config

    @property
    def store(self) -> CredentialStore:
        return self.context.store

    def _client_config(self) -> dict:
        return {
            "installed": {
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [OOB_REDIRECT_URI],
            }
        }

    def _credentials_from_token(self, token: Token) -> Credentials:
        expiry = None
        if token.expiry_date is not None:
            expiry = datetime.fromtimestamp(
                token.expiry_date / 1000, tz=timezone.utc
            ).replace(tzinfo=None)
        return Credentials(
            token=token.access_token,
            refresh_token=token.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scopes=GA4_SCOPES,
            expiry=expiry,
        )

    def authenticate(self) -> Credentials:
        """Return usable credentials, prompting for a code only if needed."""
        self.config.require_client()

        cached = self.store.load()
        if cached is not None:
            creds = self._credentials_from_token(cached)
            if self._probe(creds):
                if creds.token != cached.access_token:
                    self.store.save(token_from_credentials(creds, cached))
                say("✅ Using existing authentication")
                self.credentials = creds
                return creds
            say("🔄 Existing token expired, requesting new authorization...")

        self.credentials = self._authorize_interactively()
        return self.credentials

    def _probe(self, creds: Credentials) -> bool:
        """Check that cached credentials can still produce an access token."""
        if creds.valid:
            return True
        if not creds.refresh_token:
            logger.debug("Cached token expired and has no refresh token")
            return False
        try:
            creds.refresh(Request())
        except (RefreshError, TransportError) as e:
            logger.info("Token refresh failed: %s", e)
            return False
        logger.debug("Access token refreshed")
        return True

    def authorization_url(self, flow: Flow) -> str:
        url, _state = flow.authorization_url(access_type="offline")
        return url

    def _authorize_interactively(self) -> Credentials:
        flow = Flow.from_client_config(
            self._client_config(), scopes=GA4_SCOPES, redirect_uri=OOB_REDIRECT_URI
        )
        url = self.authorization_url(flow)

        say("\n🔐 Authorization Required")
        say("=" * 42)
        say("Opening browser for Google Analytics authorization...")
        say("\nIf the browser doesn't open automatically, copy and paste this URL:")
        say(f"\n{url}")
        say("\n" + "=" * 42)

        try:
            opened = self.open_browser(url)
        except Exception as e:
            logger.warning("Could not open browser: %s", e)
            opened = False
        if not opened:
            say("Could not open browser automatically. Please visit the URL above.")

        say("\nAfter authorizing, you will see an authorization code.")
        code = self.prompt("Enter the authorization code here: ")
        if not code or not code.strip():
            raise AuthorizationCancelled("Authorization code is required")

        try:
            flow.fetch_token(code=code.strip())
        except Exception as e:
            raise TokenExchangeFailed(f"Error retrieving access token: {e}") from e

        creds = flow.credentials
        self.store.save(token_from_credentials(creds))
        say("✅ Authentication successful!")
        return creds

    def logout(self) -> None:
        """Revoke the cached token (best-effort) and delete it."""
        cached = self.store.load()
        if cached is not None:
            self._revoke(cached.refresh_token or cached.access_token)
        self.store.delete()
        self.credentials = None
        say("Successfully logged out")

    def _revoke(self, token: str) -> bool:
        try:
            response = requests.post(
                REVOKE_URI,
                params={"token": token},
                headers={"content-type": "application/x-www-form-urlencoded"},
            )
        except requests.RequestException as e:
            logger.warning("Token revoke failed: %s", e)
            return False
        if response.status_code != 200:
            logger.warning("Token revoke rejected (%s): %s", response.status_code, response.text)
            return False
        return True

    def status(self) -> dict:
        """Describe the cached token without touching the network."""
        cached = self.store.load()
        if cached is None:
            return {"authenticated": False, "token_path": self.store.path}

        expires = None
        expired = None
        if cached.expiry_date is not None:
            expiry = datetime.fromtimestamp(cached.expiry_date / 1000, tz=timezone.utc)
            expires = expiry.isoformat()
            expired = expiry <= datetime.now(timezone.utc)
        return {
            "authenticated": True,
            "token_path": self.store.path,
            "has_refresh_token": bool(cached.refresh_token),
            "expires": expires,
            "expired": expired,
            "scope": cached.scope,
        }

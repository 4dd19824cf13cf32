"""Tests for the OAuth flow, token caching and logout."""

import io
import json
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials

from ga4_cli.auth import GA4_SCOPES, OOB_REDIRECT_URI, AuthContext, GA4Auth
from ga4_cli.config import Config
from ga4_cli.errors import AuthorizationCancelled, MissingConfiguration, TokenExchangeFailed
from ga4_cli.models import Token


def now_ms(offset_seconds=0):
    return int((time.time() + offset_seconds) * 1000)


@pytest.fixture
def context(config):
    return AuthContext.from_config(config)


@pytest.fixture
def prompt():
    return Mock(return_value="4/0AY0e-g7-code")


@pytest.fixture
def browser():
    return Mock(return_value=True)


@pytest.fixture
def auth(context, prompt, browser):
    return GA4Auth(context, prompt=prompt, open_browser=browser)


@pytest.fixture
def flow():
    """Patch Flow so the interactive path never reaches Google."""
    with patch("ga4_cli.auth.Flow") as mock_flow_cls:
        instance = MagicMock()
        instance.authorization_url.return_value = ("https://accounts.google.com/o/oauth2/auth?x=1", "state")
        instance.credentials = SimpleNamespace(
            token="fresh-access",
            refresh_token="fresh-refresh",
            expiry=None,
            scopes=GA4_SCOPES,
        )
        mock_flow_cls.from_client_config.return_value = instance
        yield mock_flow_cls, instance


class TestMissingConfiguration:
    @pytest.mark.parametrize("client_id,client_secret", [(None, "s"), ("id", None), ("", "")])
    def test_requires_both_secrets(self, tmp_path, client_id, client_secret, prompt):
        cfg = Config(client_id=client_id, client_secret=client_secret, token_path=str(tmp_path / "t.json"))
        auth = GA4Auth(AuthContext.from_config(cfg), prompt=prompt)
        with pytest.raises(MissingConfiguration):
            auth.authenticate()
        prompt.assert_not_called()


class TestCachedToken:
    def test_valid_token_skips_prompt(self, auth, context, prompt, flow):
        context.store.save(Token(
            access_token="cached-access",
            refresh_token="cached-refresh",
            expiry_date=now_ms(3600),
            scope=GA4_SCOPES[0],
        ))
        with patch.object(Credentials, "refresh", autospec=True) as mock_refresh:
            creds = auth.authenticate()

        assert creds.token == "cached-access"
        prompt.assert_not_called()
        mock_refresh.assert_not_called()
        flow[0].from_client_config.assert_not_called()

    def test_expired_token_is_refreshed_and_saved(self, auth, context, prompt):
        context.store.save(Token(
            access_token="stale-access",
            refresh_token="cached-refresh",
            expiry_date=now_ms(-3600),
        ))

        def refresh(self, request):
            self.token = "refreshed-access"

        with patch("ga4_cli.auth.Request"), patch.object(
            Credentials, "refresh", autospec=True, side_effect=refresh
        ):
            creds = auth.authenticate()

        assert creds.token == "refreshed-access"
        prompt.assert_not_called()
        saved = context.store.load()
        assert saved.access_token == "refreshed-access"
        assert saved.refresh_token == "cached-refresh"

    def test_revoked_token_falls_back_to_authorization(self, auth, context, prompt, flow):
        context.store.save(Token(
            access_token="stale-access",
            refresh_token="revoked-refresh",
            expiry_date=now_ms(-3600),
        ))
        with patch("ga4_cli.auth.Request"), patch.object(
            Credentials, "refresh", autospec=True, side_effect=RefreshError("invalid_grant")
        ):
            creds = auth.authenticate()

        prompt.assert_called_once()
        assert creds.token == "fresh-access"
        assert context.store.load().access_token == "fresh-access"

    def test_expired_without_refresh_token_prompts(self, auth, context, prompt, flow):
        context.store.save(Token(access_token="stale", expiry_date=now_ms(-3600)))
        auth.authenticate()
        prompt.assert_called_once()


class TestInteractiveAuthorization:
    def test_url_uses_offline_access_and_oob_redirect(self, auth, flow, browser, capsys):
        mock_flow_cls, instance = flow
        auth.authenticate()

        kwargs = mock_flow_cls.from_client_config.call_args.kwargs
        assert kwargs["scopes"] == ["https://www.googleapis.com/auth/analytics.readonly"]
        assert kwargs["redirect_uri"] == OOB_REDIRECT_URI
        client_config = mock_flow_cls.from_client_config.call_args.args[0]
        assert client_config["installed"]["client_id"] == "client-id.apps.googleusercontent.com"

        instance.authorization_url.assert_called_once_with(access_type="offline")
        browser.assert_called_once_with("https://accounts.google.com/o/oauth2/auth?x=1")
        assert "https://accounts.google.com/o/oauth2/auth?x=1" in capsys.readouterr().err

    def test_code_is_stripped_and_exchanged(self, auth, flow, prompt, context):
        prompt.return_value = "  4/0AY0e-g7-code \n"
        auth.authenticate()
        flow[1].fetch_token.assert_called_once_with(code="4/0AY0e-g7-code")

        with open(context.store.path) as f:
            saved = json.load(f)
        assert saved["access_token"] == "fresh-access"
        assert saved["refresh_token"] == "fresh-refresh"
        assert saved["scope"] == GA4_SCOPES[0]
        assert saved["token_type"] == "Bearer"

    def test_browser_failure_still_prints_url(self, context, prompt, flow, capsys):
        browser = Mock(side_effect=RuntimeError("no display"))
        GA4Auth(context, prompt=prompt, open_browser=browser).authenticate()
        err = capsys.readouterr().err
        assert "https://accounts.google.com/o/oauth2/auth?x=1" in err
        assert "Could not open browser" in err

    def test_default_prompt_keeps_stdout_clean(self, context, browser, flow, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO("4/0AY0e-g7-code\n"))
        GA4Auth(context, open_browser=browser).authenticate()

        flow[1].fetch_token.assert_called_once_with(code="4/0AY0e-g7-code")
        out, err = capsys.readouterr()
        assert out == ""
        assert "Enter the authorization code here: " in err

    def test_default_prompt_at_end_of_input_cancels(self, context, browser, flow, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        with pytest.raises(AuthorizationCancelled):
            GA4Auth(context, open_browser=browser).authenticate()

    @pytest.mark.parametrize("code", ["", "   ", "\n"])
    def test_empty_code_cancels(self, auth, flow, prompt, context, code):
        prompt.return_value = code
        with pytest.raises(AuthorizationCancelled):
            auth.authenticate()
        flow[1].fetch_token.assert_not_called()
        assert context.store.load() is None

    def test_exchange_failure(self, auth, flow, context):
        cause = ValueError("invalid_grant: Malformed auth code.")
        flow[1].fetch_token.side_effect = cause
        with pytest.raises(TokenExchangeFailed) as exc:
            auth.authenticate()
        assert exc.value.__cause__ is cause
        assert context.store.load() is None


class TestLogout:
    def test_revokes_refresh_token_and_deletes(self, auth, context):
        context.store.save(Token(access_token="a", refresh_token="r"))
        with patch("ga4_cli.auth.requests.post") as mock_post:
            mock_post.return_value = Mock(status_code=200)
            auth.logout()
        assert mock_post.call_args.kwargs["params"] == {"token": "r"}
        assert context.store.load() is None

    def test_revoke_failure_still_deletes(self, auth, context):
        context.store.save(Token(access_token="a"))
        with patch("ga4_cli.auth.requests.post", side_effect=requests.ConnectionError("offline")):
            auth.logout()
        assert context.store.load() is None

    def test_rejected_revoke_still_deletes(self, auth, context):
        context.store.save(Token(access_token="a"))
        with patch("ga4_cli.auth.requests.post") as mock_post:
            mock_post.return_value = Mock(status_code=400, text="invalid_token")
            auth.logout()
        assert context.store.load() is None

    def test_without_cached_token(self, auth):
        with patch("ga4_cli.auth.requests.post") as mock_post:
            auth.logout()
        mock_post.assert_not_called()


class TestStatus:
    def test_not_authenticated(self, auth):
        assert auth.status()["authenticated"] is False

    def test_cached_token(self, auth, context):
        context.store.save(Token(access_token="a", refresh_token="r", expiry_date=now_ms(-60), scope="s"))
        status = auth.status()
        assert status["authenticated"] is True
        assert status["has_refresh_token"] is True
        assert status["expired"] is True
        assert status["scope"] == "s"

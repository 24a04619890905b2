"""
tests/test_service.py -- AuthService session lifecycle against every backend.

Covers:
  - register -> login -> refresh -> replayed refresh -> logout -> refresh
  - register with an empty password leaves no user behind
  - duplicate registration, wrong-password login
  - expired refresh token is rejected and removed
  - concurrent refresh of one token: exactly one caller gets new tokens
  - authenticate / get_profile
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import (
    EmailExistsError,
    EmptyInputError,
    InvalidCredentialsError,
    RefreshInvalidError,
    TokenExpiredError,
    UserNotFoundError,
)
from auth.service import AuthService
from auth.tokens import new_refresh_token

from conftest import unique_email


class TestSessionLifecycle:
    def test_full_session(self, service: AuthService) -> None:
        email = unique_email("ann")
        registered = service.register(email, "Ann", "secret1")
        assert registered.user.email == email
        assert registered.user.name == "Ann"
        assert service.authenticate(registered.tokens.access_token) == registered.user.id

        logged_in = service.login(email, "secret1")
        assert logged_in.user.id == registered.user.id
        r1 = logged_in.tokens.refresh_token
        assert r1 != registered.tokens.refresh_token

        rotated = service.refresh(r1)
        r2 = rotated.refresh_token
        assert r2 != r1
        assert service.authenticate(rotated.access_token) == registered.user.id

        # Replay of the consumed token.
        with pytest.raises(RefreshInvalidError):
            service.refresh(r1)

        service.logout(r2)
        with pytest.raises(RefreshInvalidError):
            service.refresh(r2)

    def test_tokens_have_configured_lifetimes(self, store, signer) -> None:
        service = AuthService(store, signer, access_ttl_minutes=5, refresh_ttl_days=2)
        tokens = service.register(unique_email(), "", "secret1").tokens
        now = datetime.now(timezone.utc)
        assert timedelta(minutes=4) < tokens.access_expires_at - now <= timedelta(minutes=5)
        assert timedelta(days=1, hours=23) < tokens.refresh_expires_at - now <= timedelta(days=2)

    def test_register_sessions_are_independent(self, service: AuthService) -> None:
        email = unique_email()
        first = service.register(email, "Ann", "secret1").tokens.refresh_token
        second = service.login(email, "secret1").tokens.refresh_token
        service.logout(first)
        service.refresh(second)


class TestRegister:
    def test_empty_password_creates_nothing(self, service: AuthService) -> None:
        email = unique_email()
        with pytest.raises(EmptyInputError):
            service.register(email, "Ann", "")
        with pytest.raises(InvalidCredentialsError):
            service.login(email, "")
        # The email was never claimed.
        service.register(email, "Ann", "secret1")

    def test_duplicate_email(self, service: AuthService) -> None:
        email = unique_email()
        service.register(email, "Ann", "secret1")
        with pytest.raises(EmailExistsError):
            service.register(email, "Imposter", "other-secret")
        assert service.login(email, "secret1").user.name == "Ann"


class TestLogin:
    def test_wrong_password(self, service: AuthService) -> None:
        email = unique_email()
        service.register(email, "Ann", "secret1")
        with pytest.raises(InvalidCredentialsError):
            service.login(email, "secret2")

    def test_unknown_email(self, service: AuthService) -> None:
        with pytest.raises(InvalidCredentialsError):
            service.login(unique_email("nobody"), "secret1")


class TestRefresh:
    @pytest.mark.parametrize("token", ["", "0" * 64, "not-a-refresh-token"])
    def test_unknown_tokens(self, service: AuthService, token: str) -> None:
        with pytest.raises(RefreshInvalidError):
            service.refresh(token)

    def test_expired_token_is_rejected_and_removed(self, service: AuthService, store) -> None:
        user = service.register(unique_email(), "Ann", "secret1").user
        stale = new_refresh_token()
        store.save_refresh(stale, user.id, datetime.now(timezone.utc) - timedelta(minutes=1))

        with pytest.raises(RefreshInvalidError):
            service.refresh(stale)
        assert store.lookup_refresh(stale) is None

    def test_concurrent_refresh_one_winner(self, service: AuthService) -> None:
        token = service.register(unique_email(), "Ann", "secret1").tokens.refresh_token

        def attempt(_):
            try:
                return service.refresh(token)
            except RefreshInvalidError:
                return None

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(attempt, range(6)))

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        service.refresh(winners[0].refresh_token)


class TestLogout:
    def test_is_idempotent(self, service: AuthService) -> None:
        token = service.register(unique_email(), "Ann", "secret1").tokens.refresh_token
        service.logout(token)
        service.logout(token)
        service.logout("")
        service.logout(new_refresh_token())


class TestIdentity:
    def test_get_profile(self, service: AuthService) -> None:
        email = unique_email()
        user = service.register(email, "Ann", "secret1").user
        profile = service.get_profile(user.id)
        assert (profile.id, profile.email, profile.name) == (user.id, email, "Ann")

    def test_get_profile_unknown(self, service: AuthService) -> None:
        with pytest.raises(UserNotFoundError):
            service.get_profile("u_does_not_exist")

    def test_authenticate_expired(self, service: AuthService) -> None:
        user = service.register(unique_email(), "Ann", "secret1").user
        expired = service.signer.issue_access(user.id, ttl_minutes=-1).token
        with pytest.raises(TokenExpiredError):
            service.authenticate(expired)

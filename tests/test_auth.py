from __future__ import annotations

import pytest

from conftest import ALICE, ALICE_TOKEN
from zenfocus.api import ApiError
from zenfocus.auth import AuthFailure, AuthSessionManager, AuthState, validate_credentials
from zenfocus.background import run_inline
from zenfocus.events import AuthStateChanged, SessionExpired
from zenfocus.models import AuthIdentity, User
from zenfocus.storage import TOKEN_KEY, USER_KEY, load_identity, save_identity


def make_auth(store, api, events, background=run_inline) -> AuthSessionManager:
    return AuthSessionManager(store, api=api, events=events, background=background)


class TestValidateCredentials:
    @pytest.mark.parametrize(
        "email,password",
        [
            ("", "secret-pass"),
            ("   ", "secret-pass"),
            ("not-an-email", "secret-pass"),
            ("alice@example.com", ""),
            ("alice@example.com", "12345"),
        ],
    )
    def test_rejects(self, email, password):
        assert validate_credentials(email, password) is not None

    def test_accepts(self):
        assert validate_credentials("alice@example.com", "123456") is None


class TestStart:
    def test_no_credentials_is_guest(self, store, api, events):
        auth = make_auth(store, api, events)
        assert auth.start() == AuthState.GUEST
        assert auth.is_guest
        assert api.calls == []

    def test_stored_credentials_verified_in_background(self, store, api, events):
        save_identity(store, AuthIdentity(user=ALICE, token=ALICE_TOKEN))
        jobs = []
        auth = make_auth(store, api, events, background=jobs.append)

        assert auth.start() == AuthState.CHECKING
        # Optimistic: usable before the check finishes
        assert auth.is_authenticated
        assert auth.token == ALICE_TOKEN

        jobs[0]()
        assert auth.state == AuthState.AUTHENTICATED
        assert api.names() == ["me"]

    def test_verify_refreshes_stored_user(self, store, api, events):
        stale = User(id=ALICE.id, email=ALICE.email, name="old name")
        save_identity(store, AuthIdentity(user=stale, token=ALICE_TOKEN))
        auth = make_auth(store, api, events)

        auth.start()

        assert auth.user == ALICE
        assert load_identity(store).user.name == "Alice"

    def test_network_failure_keeps_stored_session(self, store, api, events):
        save_identity(store, AuthIdentity(user=ALICE, token=ALICE_TOKEN))
        api.offline = True
        auth = make_auth(store, api, events)

        auth.start()

        assert auth.state == AuthState.AUTHENTICATED
        assert store.get(TOKEN_KEY) == ALICE_TOKEN

    def test_rejected_token_is_cleared(self, store, api, events, recorder):
        save_identity(store, AuthIdentity(user=ALICE, token=ALICE_TOKEN))
        api.reject_token = True
        auth = make_auth(store, api, events)

        auth.start()

        assert auth.state == AuthState.GUEST
        assert store.get(TOKEN_KEY) is None
        assert store.get(USER_KEY) is None
        assert len(recorder.of_type(SessionExpired)) == 1

    def test_without_verification(self, store, api, events):
        save_identity(store, AuthIdentity(user=ALICE, token=ALICE_TOKEN))
        auth = make_auth(store, api, events)
        assert auth.start(verify=False) == AuthState.AUTHENTICATED
        assert api.calls == []

    def test_without_api_stored_session_is_used(self, store, events):
        save_identity(store, AuthIdentity(user=ALICE, token=ALICE_TOKEN))
        auth = AuthSessionManager(store, api=None, events=events, background=run_inline)
        assert auth.start() == AuthState.AUTHENTICATED

    def test_verify_without_api_keeps_session(self, store, events):
        save_identity(store, AuthIdentity(user=ALICE, token=ALICE_TOKEN))
        auth = AuthSessionManager(store, api=None, events=events, background=run_inline)
        auth.start(verify=False)

        assert auth.verify(ALICE_TOKEN) is True
        assert auth.state == AuthState.AUTHENTICATED
        assert store.get(TOKEN_KEY) == ALICE_TOKEN

    def test_half_stored_credentials_are_ignored(self, store, api, events):
        store.set(TOKEN_KEY, ALICE_TOKEN)
        auth = make_auth(store, api, events)
        assert auth.start() == AuthState.GUEST


class TestLogin:
    def test_success_persists_identity(self, store, api, events, recorder, guest_auth):
        result = guest_auth.login("alice@example.com", "secret-pass")

        assert result.success
        assert guest_auth.state == AuthState.AUTHENTICATED
        assert load_identity(store) == AuthIdentity(user=ALICE, token=ALICE_TOKEN)
        assert recorder.of_type(AuthStateChanged)[-1].state == "authenticated"

    def test_wrong_password(self, store, guest_auth):
        result = guest_auth.login("alice@example.com", "wrong-pass")
        assert not result.success
        assert result.reason == AuthFailure.INVALID_CREDENTIALS
        assert guest_auth.is_guest
        assert store.get(TOKEN_KEY) is None

    def test_validation_happens_before_network(self, api, guest_auth):
        result = guest_auth.login("alice", "secret-pass")
        assert result.reason == AuthFailure.VALIDATION
        assert api.calls == []

    def test_network_failure(self, api, guest_auth):
        api.offline = True
        result = guest_auth.login("alice@example.com", "secret-pass")
        assert result.reason == AuthFailure.NETWORK
        assert guest_auth.is_guest

    def test_no_server_configured(self, store, events):
        auth = AuthSessionManager(store, api=None, events=events, background=run_inline)
        auth.start()
        assert auth.login("alice@example.com", "secret-pass").reason == AuthFailure.NETWORK


class TestRegister:
    def test_success(self, store, guest_auth):
        result = guest_auth.register("bob@example.com", "hunter22", "Bob")
        assert result.success
        assert guest_auth.user.email == "bob@example.com"
        assert store.get(TOKEN_KEY) == guest_auth.token

    def test_duplicate(self, guest_auth):
        result = guest_auth.register("alice@example.com", "secret-pass", "Alice")
        assert result.reason == AuthFailure.DUPLICATE_ACCOUNT
        assert result.error == "Email already registered"

    @pytest.mark.parametrize(
        "status,reason",
        [
            (400, AuthFailure.VALIDATION),
            (422, AuthFailure.VALIDATION),
            (401, AuthFailure.INVALID_CREDENTIALS),
            (500, AuthFailure.NETWORK),
        ],
    )
    def test_status_mapping(self, api, guest_auth, status, reason):
        def failing(email, password, name):
            raise ApiError("nope", status_code=status)

        api.register = failing
        assert guest_auth.register("carol@example.com", "secret-pass").reason == reason


class TestLogoutAndExpiry:
    def test_logout_clears_credentials(self, store, signed_in_auth):
        signed_in_auth.logout()
        assert signed_in_auth.state == AuthState.GUEST
        assert store.get(TOKEN_KEY) is None
        assert store.get(USER_KEY) is None

    def test_invalidate_current_token(self, store, recorder, signed_in_auth):
        assert signed_in_auth.invalidate(ALICE_TOKEN) is True
        assert signed_in_auth.is_guest
        assert recorder.of_type(SessionExpired)[0].user_id == ALICE.id

    def test_invalidate_when_already_guest(self, guest_auth):
        assert guest_auth.invalidate() is False

    def test_refusal_for_token_replaced_by_new_login(self, store, api, events):
        save_identity(store, AuthIdentity(user=ALICE, token="old-token"))
        jobs = []
        auth = make_auth(store, api, events, background=jobs.append)
        auth.start()
        auth.login("alice@example.com", "secret-pass")

        # The pending check of the old token now gets a 401
        api.reject_token = True
        jobs[0]()

        assert auth.state == AuthState.AUTHENTICATED
        assert auth.token == ALICE_TOKEN


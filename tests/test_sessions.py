"""Session issuing, verification and comparative-timestamp logout."""

from starlette.requests import Request

from portal_gateway.core.time import unix_seconds
from portal_gateway.services.sessions import TOKEN_TTL, extract_token

from .conftest import ADMIN_EMAIL


def _request(headers=None, query=b""):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "query_string": query,
    }
    return Request(scope)


class TestIssue:
    def test_payload_shape(self, sessions, make_user, clock, codec):
        user = make_user("a@x.com", "Alice")
        payload = codec.decode(sessions.issue(user))
        now = unix_seconds(clock())
        assert payload["iss"] == "portal.test"
        assert payload["sub"] == payload["userId"] == user.id
        assert payload["aud"] == ["games.example.com", "favor.example.com"]
        assert payload["iat"] == now
        assert payload["exp"] == now + int(TOKEN_TTL.total_seconds())
        assert payload["username"] == "Alice"
        assert payload["email"] == "a@x.com"
        assert payload["permVersion"] == 1
        assert payload["permissions"]["profile"] is True
        assert payload["permissions"]["admin"] is False

    def test_admin_permissions_snapshot(self, sessions, make_user, codec):
        admin = make_user(ADMIN_EMAIL)
        permissions = codec.decode(sessions.issue(admin))["permissions"]
        assert all(permissions.values())


class TestVerify:
    def test_round_trip(self, sessions, make_user):
        user = make_user("a@x.com")
        payload = sessions.verify(sessions.issue(user))
        assert payload["sub"] == user.id

    def test_garbage_is_none(self, sessions):
        for token in [None, "", "garbage", "a.b.c"]:
            assert sessions.verify(token) is None

    def test_expired(self, sessions, make_user, clock):
        token = sessions.issue(make_user("a@x.com"))
        clock.advance(TOKEN_TTL.total_seconds() - 1)
        assert sessions.verify(token) is not None
        clock.advance(1)
        assert sessions.verify(token) is None

    def test_expired_with_valid_signature(self, sessions, codec, clock):
        now = unix_seconds(clock())
        token = codec.encode({"sub": "u1", "iat": now - 100, "exp": now - 1})
        assert sessions.verify(token) is None

    def test_missing_or_bad_iat(self, sessions, codec, clock):
        now = unix_seconds(clock())
        assert sessions.verify(codec.encode({"sub": "u1", "exp": now + 60})) is None
        assert sessions.verify(codec.encode({"sub": "u1", "iat": "yesterday", "exp": now + 60})) is None

    def test_missing_subject(self, sessions, codec, clock):
        now = unix_seconds(clock())
        assert sessions.verify(codec.encode({"iat": now, "exp": now + 60})) is None


class TestLogout:
    def test_tokens_before_logout_die_and_later_ones_live(self, sessions, make_user, clock):
        user = make_user("a@x.com")
        before = sessions.issue(user)

        clock.advance(5)
        sessions.logout(user.id)
        assert sessions.verify(before) is None

        clock.advance(1)
        after = sessions.issue(user)
        assert sessions.verify(after) is not None
        assert sessions.verify(before) is None

    def test_same_second_token_survives(self, sessions, make_user, clock):
        user = make_user("a@x.com")
        sessions.logout(user.id)
        clock.advance(seconds=0.5)
        assert sessions.verify(sessions.issue(user)) is not None

    def test_logout_is_per_user(self, sessions, make_user, clock):
        alice = make_user("a@x.com")
        bob = make_user("b@x.com")
        bob_token = sessions.issue(bob)
        clock.advance(2)
        sessions.logout(alice.id)
        assert sessions.verify(bob_token) is not None

    def test_cleared_mark_restores_old_tokens(self, sessions, revocations, make_user, clock):
        user = make_user("a@x.com")
        token = sessions.issue(user)
        clock.advance(3)
        sessions.logout(user.id)
        revocations.clear(user.id)
        assert sessions.verify(token) is not None


class TestExtractToken:
    def test_bearer_header(self):
        assert extract_token(_request({"Authorization": "Bearer abc.def.ghi"})) == "abc.def.ghi"

    def test_header_wins_over_query(self):
        request = _request({"Authorization": "bearer from-header"}, b"token=from-query")
        assert extract_token(request) == "from-header"

    def test_query_fallback(self):
        assert extract_token(_request(query=b"token=from-query")) == "from-query"

    def test_nothing(self):
        assert extract_token(_request()) is None
        assert extract_token(_request({"Authorization": "Basic dXNlcg=="})) is None

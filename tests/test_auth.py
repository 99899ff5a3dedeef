from datetime import timedelta

import pytest

from medride.exceptions import Unauthorized
from medride.sockets.connection import ClientConnection
from medride.sockets.ws_auth import ensure_claim_matches
from medride.utils.jwt_utils import create_access_token, verify_token
from tests.fakes import FakeWebSocket

SECRET = "test-secret"


class TestVerifyToken:
    def test_round_trip_claims(self):
        token = create_access_token({"user_id": 7, "role": "doctor"}, SECRET)
        assert verify_token(token, SECRET) == {"id": "7", "role": "doctor"}

    def test_wrong_secret(self):
        token = create_access_token({"user_id": "7", "role": "doctor"}, SECRET)
        assert verify_token(token, "another-secret") is None

    def test_expired_token(self):
        token = create_access_token(
            {"user_id": "7", "role": "doctor"}, SECRET, expires_delta=timedelta(seconds=-5)
        )
        assert verify_token(token, SECRET) is None

    def test_missing_role_claim(self):
        token = create_access_token({"user_id": "7"}, SECRET)
        assert verify_token(token, SECRET) is None

    def test_garbage(self):
        assert verify_token("not-a-jwt", SECRET) is None


class TestClaimMatching:
    def test_anonymous_connection_may_claim_any_id(self):
        connection = ClientConnection(websocket=FakeWebSocket())
        ensure_claim_matches(connection, "7")

    def test_verified_connection_must_claim_its_own_id(self):
        connection = ClientConnection(websocket=FakeWebSocket(), verified_user_id="7")
        ensure_claim_matches(connection, "7")
        with pytest.raises(Unauthorized):
            ensure_claim_matches(connection, "8")

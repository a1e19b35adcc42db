"""End-to-end tests for proof-of-work issuance and registration enforcement."""

from __future__ import annotations

import pytest

from gatehouse.core.config import EndpointRateLimit, PowSettings, RateLimitSettings
from gatehouse.services.proof_of_work import solve

DIFFICULTY = 8


def _pow_settings(**overrides) -> PowSettings:
    values = {"enable": True, "difficulty": DIFFICULTY, "ttl_seconds": 60, "secret_key": "s3cret"}
    values.update(overrides)
    return PowSettings(**values)


def _solved(client) -> dict[str, str]:
    issued = client.get("/api/pow/challenge").json()
    return {
        "challenge": issued["challenge"],
        "nonce": solve(issued["challenge"], issued["difficulty"]),
        "token": issued["token"],
    }


def _pow_headers(solution: dict[str, str]) -> dict[str, str]:
    return {
        "X-PoW-Challenge": solution["challenge"],
        "X-PoW-Nonce": solution["nonce"],
        "X-PoW-Token": solution["token"],
    }


CREDENTIALS = {"username": "alice", "password": "correct horse"}


class TestChallengeEndpoint:
    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_disabled_returns_204(self, make_client, method: str):
        client = make_client()

        response = client.request(method, "/api/pow/challenge")

        assert response.status_code == 204
        assert response.content == b""

    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_enabled_returns_challenge(self, make_client, method: str):
        client = make_client(pow=_pow_settings())

        response = client.request(method, "/api/pow/challenge")

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"challenge", "difficulty", "ttl_secs", "token"}
        assert body["difficulty"] == DIFFICULTY
        assert body["ttl_secs"] == 60
        assert response.headers["Cache-Control"] == "no-store"

    def test_disabled_registration_needs_no_solution(self, make_client):
        client = make_client()

        assert client.post("/api/register", json=CREDENTIALS).status_code == 201


class TestRegistrationWithPow:
    def test_missing_solution_is_401(self, make_client):
        client = make_client(pow=_pow_settings())

        response = client.post("/api/register", json=CREDENTIALS)

        assert response.status_code == 401
        assert response.json()["code"] == "pow_required"

    def test_header_solution_is_accepted(self, make_client):
        client = make_client(pow=_pow_settings())
        solution = _solved(client)

        response = client.post("/api/register", json=CREDENTIALS, headers=_pow_headers(solution))

        assert response.status_code == 201

    def test_body_solution_is_accepted(self, make_client):
        client = make_client(pow=_pow_settings())
        solution = _solved(client)

        response = client.post("/api/register", json={**CREDENTIALS, "pow": solution})

        assert response.status_code == 201
        assert response.json()["username"] == "alice"

    def test_expired_solution_is_401(self, make_client, clock):
        client = make_client(pow=_pow_settings())
        solution = _solved(client)

        clock.advance(61)
        response = client.post("/api/register", json=CREDENTIALS, headers=_pow_headers(solution))

        assert response.status_code == 401
        assert response.json()["code"] == "pow_expired"

    def test_malformed_token_is_400(self, make_client):
        client = make_client(pow=_pow_settings())
        solution = {**_solved(client), "token": "garbage"}

        response = client.post("/api/register", json=CREDENTIALS, headers=_pow_headers(solution))

        assert response.status_code == 400
        assert response.json()["code"] == "pow_malformed"

    def test_unencodable_body_challenge_is_400(self, make_client):
        client = make_client(pow=_pow_settings())
        # A lone surrogate is valid JSON but cannot be encoded as UTF-8.
        body = (
            b'{"username": "alice", "password": "pw", '
            b'"pow": {"challenge": "\\ud800", "nonce": "1", "token": "AA.AAAAAAAAAAA"}}'
        )

        response = client.post(
            "/api/register",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "pow_malformed"

    def test_non_ascii_header_challenge_is_400(self, make_client):
        client = make_client(pow=_pow_settings())
        solution = _solved(client)
        headers = {
            "X-PoW-Challenge": "d\u00e9fi".encode("latin-1"),
            "X-PoW-Nonce": solution["nonce"],
            "X-PoW-Token": solution["token"],
        }

        response = client.post("/api/register", json=CREDENTIALS, headers=headers)

        assert response.status_code == 400
        assert response.json()["code"] == "pow_malformed"

    def test_partial_headers_do_not_fall_back_to_body(self, make_client):
        client = make_client(pow=_pow_settings())
        solution = _solved(client)

        response = client.post(
            "/api/register",
            json={**CREDENTIALS, "pow": solution},
            headers={"X-PoW-Challenge": solution["challenge"]},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "pow_required"

    def test_solution_is_reusable_until_expiry_by_default(self, make_client):
        client = make_client(pow=_pow_settings())
        headers = _pow_headers(_solved(client))

        first = client.post("/api/register", json=CREDENTIALS, headers=headers)
        second = client.post(
            "/api/register",
            json={"username": "bob", "password": "pw"},
            headers=headers,
        )

        assert first.status_code == 201
        assert second.status_code == 201

    def test_single_use_rejects_replay(self, make_client):
        client = make_client(pow=_pow_settings(single_use=True))
        headers = _pow_headers(_solved(client))

        first = client.post("/api/register", json=CREDENTIALS, headers=headers)
        second = client.post(
            "/api/register",
            json={"username": "bob", "password": "pw"},
            headers=headers,
        )

        assert first.status_code == 201
        assert second.status_code == 401
        assert second.json()["code"] == "pow_replayed"


class TestGuardOrder:
    def test_rate_limit_runs_before_pow(self, make_client):
        client = make_client(
            pow=_pow_settings(),
            rate_limit=RateLimitSettings(
                register=EndpointRateLimit(enable=True, max_requests=1, window_ms=60_000),
            ),
        )
        headers = {"X-Test-IP": "203.0.113.7"}

        assert client.post("/api/register", json=CREDENTIALS, headers=headers).status_code == 401
        assert client.post("/api/register", json=CREDENTIALS, headers=headers).status_code == 429

    def test_body_size_runs_before_pow(self, make_client):
        client = make_client(pow=_pow_settings())

        response = client.post(
            "/api/register",
            json={"username": "alice", "password": "x" * 10 * 1024},
        )

        assert response.status_code == 413

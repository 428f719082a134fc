"""HTTP surface: routing, error shape, feedback headers and metering."""

from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select

from factories import create_api_key, create_code
from loyalty_ledger.core.config import settings
from loyalty_ledger.main import app
from loyalty_ledger.models.api_key import ApiKeyStatus, SCOPE_CMAL
from loyalty_ledger.models.rate_window import RateWindow
from loyalty_ledger.models.usage import UsageRecord
from loyalty_ledger.services.multipliers import get_multiplier_table
from loyalty_ledger.services.notifications import EVENT_MILESTONE, EVENT_REDEEMED, get_dispatcher


def _auth(raw_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {raw_key}"}


async def _usage_records(factory) -> list[UsageRecord]:
    async with factory() as session:
        stmt = select(UsageRecord).order_by(UsageRecord.timestamp.asc())
        return list((await session.execute(stmt)).scalars().all())


# ── /redeem ─────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_redeem_success(client, session_factory, api_key) -> None:
    raw_key, key = api_key
    code = await create_code(session_factory, points_value=40)

    response = await client.post(
        "/redeem",
        json={"codeId": str(code.id), "callerId": "caller-1"},
        headers=_auth(raw_key),
    )

    assert response.status_code == 200
    assert response.json() == {"pointsEarned": 40, "discountApplied": "0"}
    assert response.headers["X-RateLimit-Limit"] == "60"
    assert response.headers["X-RateLimit-Remaining"] == "59"
    assert response.headers["X-RateLimit-Reset"] == "60"
    assert response.headers["X-API-Scopes"] == "cmal,redeem,usage"

    [record] = await _usage_records(session_factory)
    assert record.endpoint == "/redeem"
    assert record.method == "POST"
    assert record.status_code == 200
    assert record.billed_units == 1
    assert record.api_key_id == key.id
    assert record.developer_id == key.developer_id


@pytest.mark.asyncio
async def test_redeem_discount_code(client, session_factory, api_key) -> None:
    raw_key, _ = api_key
    code = await create_code(
        session_factory, code_type="discount", discount_pct=Decimal("12.50"),
    )

    response = await client.post(
        "/redeem",
        json={"codeId": str(code.id), "callerId": "caller-1"},
        headers=_auth(raw_key),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["pointsEarned"] == 0
    assert Decimal(body["discountApplied"]) == Decimal("12.5")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("code_kwargs", "status_code", "kind"),
    [
        ({"scan_limit": 0}, 409, "LimitExceeded"),
        ({"active": False}, 409, "Inactive"),
    ],
)
async def test_redeem_rejections(client, session_factory, api_key, code_kwargs, status_code, kind) -> None:
    raw_key, _ = api_key
    code = await create_code(session_factory, **code_kwargs)

    response = await client.post(
        "/redeem",
        json={"codeId": str(code.id), "callerId": "caller-1"},
        headers=_auth(raw_key),
    )

    assert response.status_code == status_code
    assert response.json()["kind"] == kind
    assert "error" in response.json()

    [record] = await _usage_records(session_factory)
    assert record.status_code == status_code
    assert record.billed_units == 0


@pytest.mark.asyncio
async def test_redeem_unknown_code(client, api_key) -> None:
    raw_key, _ = api_key

    response = await client.post(
        "/redeem",
        json={"codeId": str(uuid4()), "callerId": "caller-1"},
        headers=_auth(raw_key),
    )

    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"


@pytest.mark.asyncio
async def test_redeem_without_caller_is_unauthorized(client, session_factory, api_key) -> None:
    raw_key, _ = api_key
    code = await create_code(session_factory)

    response = await client.post(
        "/redeem", json={"codeId": str(code.id)}, headers=_auth(raw_key),
    )

    assert response.status_code == 401
    assert response.json()["kind"] == "Unauthorized"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [{}, {"codeId": "not-a-uuid", "callerId": "c"}, {"codeId": str(uuid4()), "extra": 1}],
)
async def test_redeem_malformed_body_is_validation_error(client, api_key, payload) -> None:
    raw_key, _ = api_key

    response = await client.post("/redeem", json=payload, headers=_auth(raw_key))

    assert response.status_code == 400
    assert response.json()["kind"] == "Validation"


@pytest.mark.asyncio
async def test_redeem_dispatches_notifications(client, session_factory, api_key) -> None:
    raw_key, _ = api_key
    code = await create_code(session_factory, points_value=150)
    sent = []

    class RecordingDispatcher:
        async def send(self, event) -> None:
            sent.append(event)

    app.dependency_overrides[get_dispatcher] = RecordingDispatcher
    try:
        response = await client.post(
            "/redeem",
            json={"codeId": str(code.id), "callerId": "caller-1"},
            headers=_auth(raw_key),
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert [event.kind for event in sent] == [EVENT_REDEEMED, EVENT_MILESTONE]
    assert sent[1].milestone == 100
    assert sent[1].balance == 150


# ── Authentication ──────────────────────────────────────────
@pytest.mark.asyncio
async def test_missing_key_is_unauthorized_and_metered(client, session_factory) -> None:
    response = await client.post("/calculate", json={"amount": "100"})

    assert response.status_code == 401
    assert response.json()["kind"] == "Unauthorized"

    [record] = await _usage_records(session_factory)
    assert record.api_key_id is None
    assert record.status_code == 401
    assert record.billed_units == 0


@pytest.mark.asyncio
async def test_suspended_key_is_forbidden_and_attributed(client, session_factory) -> None:
    raw_key, key = await create_api_key(session_factory, status=ApiKeyStatus.SUSPENDED.value)

    response = await client.post("/calculate", json={"amount": "100"}, headers=_auth(raw_key))

    assert response.status_code == 403
    assert response.json()["kind"] == "Forbidden"

    [record] = await _usage_records(session_factory)
    assert record.api_key_id == key.id
    assert record.billed_units == 0


@pytest.mark.asyncio
async def test_suspended_key_is_looked_up_once(client, session_factory) -> None:
    raw_key, key = await create_api_key(session_factory, status=ApiKeyStatus.SUSPENDED.value)
    engine = session_factory.kw["bind"].sync_engine
    key_queries: list[str] = []

    def count_key_queries(conn, cursor, statement, parameters, context, executemany):
        if "FROM api_keys" in statement:
            key_queries.append(statement)

    event.listen(engine, "before_cursor_execute", count_key_queries)
    try:
        response = await client.post("/calculate", json={"amount": "100"}, headers=_auth(raw_key))
    finally:
        event.remove(engine, "before_cursor_execute", count_key_queries)

    assert response.status_code == 403
    assert len(key_queries) == 1

    [record] = await _usage_records(session_factory)
    assert record.api_key_id == key.id


@pytest.mark.asyncio
async def test_missing_scope_is_forbidden(client, session_factory) -> None:
    raw_key, _ = await create_api_key(session_factory, scopes=[SCOPE_CMAL])
    code = await create_code(session_factory)

    response = await client.post(
        "/redeem",
        json={"codeId": str(code.id), "callerId": "caller-1"},
        headers=_auth(raw_key),
    )

    assert response.status_code == 403
    assert response.json()["kind"] == "Forbidden"


@pytest.mark.asyncio
async def test_x_api_key_header_is_accepted(client, api_key) -> None:
    raw_key, _ = api_key

    response = await client.post("/calculate", json={"amount": "10"}, headers={"X-API-Key": raw_key})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_rate_limited_request(client, session_factory) -> None:
    raw_key, _ = await create_api_key(session_factory, rate_limit_per_minute=1)

    first = await client.post("/calculate", json={"amount": "10"}, headers=_auth(raw_key))
    second = await client.post("/calculate", json={"amount": "10"}, headers=_auth(raw_key))

    assert first.status_code == 200
    assert first.headers["X-RateLimit-Remaining"] == "0"
    assert second.status_code == 429
    assert second.json()["kind"] == "RateLimited"
    assert 1 <= int(second.headers["Retry-After"]) <= 60
    assert second.headers["X-RateLimit-Remaining"] == "0"

    records = await _usage_records(session_factory)
    assert [record.billed_units for record in records] == [1, 0]


# ── /calculate and /attribute ───────────────────────────────
@pytest.mark.asyncio
async def test_calculate_breakdown(client, api_key) -> None:
    raw_key, _ = api_key

    response = await client.post(
        "/calculate",
        json={"amount": "100", "category": "restaurant", "tier": "gold"},
        headers=_auth(raw_key),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["impact"] == "379.50"
    assert body["circulationScore"] == 61
    assert body["tier"] == "gold"
    assert body["category"] == "restaurant"
    assert body["tableVersion"] == "2024.1"
    assert body["attribution"] == {
        "localRetention": "151.79",
        "communityBenefit": "132.83",
        "economicVelocity": "94.88",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"amount": "0"}, {"amount": "-1"}, {}, {"amount": "abc"}])
async def test_calculate_rejects_bad_amount(client, api_key, payload) -> None:
    raw_key, _ = api_key

    response = await client.post("/calculate", json=payload, headers=_auth(raw_key))

    assert response.status_code == 400
    assert response.json()["kind"] == "Validation"


@pytest.mark.asyncio
async def test_calculate_rejects_oversized_amount(client, session_factory, api_key) -> None:
    raw_key, _ = api_key

    response = await client.post("/calculate", json={"amount": "1e27"}, headers=_auth(raw_key))

    assert response.status_code == 400
    assert response.json()["kind"] == "Validation"

    [record] = await _usage_records(session_factory)
    assert record.status_code == 400


@pytest.mark.asyncio
async def test_attribute_bills_per_participant(client, session_factory, api_key) -> None:
    raw_key, _ = api_key

    response = await client.post(
        "/attribute",
        json={
            "transactionId": "tx-1",
            "chain": [
                {"participantId": "A", "amount": "100", "category": "retail"},
                {"participantId": "B", "amount": "200", "category": "restaurant"},
            ],
        },
        headers=_auth(raw_key),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["transactionId"] == "tx-1"
    assert body["total"] == "736.00"
    assert body["velocityScore"] == 31
    assert [p["percentage"] for p in body["perParticipant"]] == ["31.25", "68.75"]

    [record] = await _usage_records(session_factory)
    assert record.billed_units == 2


@pytest.mark.asyncio
async def test_attribute_empty_chain_is_validation_error(client, api_key) -> None:
    raw_key, _ = api_key

    response = await client.post(
        "/attribute", json={"transactionId": "tx-1", "chain": []}, headers=_auth(raw_key),
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "Validation"


@pytest.mark.asyncio
async def test_attribute_rejects_oversized_amount(client, api_key) -> None:
    raw_key, _ = api_key

    response = await client.post(
        "/attribute",
        json={
            "transactionId": "tx-1",
            "chain": [{"participantId": "A", "amount": "1e27", "category": "retail"}],
        },
        headers=_auth(raw_key),
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "Validation"


# ── /health ─────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_health_is_open_and_unbilled(client, session_factory, api_key) -> None:
    raw_key, key = api_key

    anonymous = await client.get("/health")
    attributed = await client.get(
        "/health", headers={**_auth(raw_key), "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )

    assert anonymous.status_code == 200
    assert anonymous.json() == {"status": "healthy", "version": "1.0.0"}
    assert attributed.status_code == 200

    first, second = await _usage_records(session_factory)
    assert first.api_key_id is None
    assert second.api_key_id == key.id
    assert second.ip_address == "203.0.113.7"
    assert [first.billed_units, second.billed_units] == [0, 0]


@pytest.mark.asyncio
async def test_health_ignores_scopes_and_rate_limit(client, session_factory) -> None:
    raw_key, key = await create_api_key(session_factory, scopes=[], rate_limit_per_minute=0)

    response = await client.get("/health", headers=_auth(raw_key))

    assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers

    async with session_factory() as session:
        windows = (await session.execute(select(RateWindow))).scalars().all()
    assert windows == []

    [record] = await _usage_records(session_factory)
    assert record.api_key_id == key.id
    assert record.billed_units == 0


@pytest.mark.asyncio
async def test_health_can_require_auth(client, api_key, monkeypatch) -> None:
    raw_key, _ = api_key
    monkeypatch.setattr(settings, "HEALTH_REQUIRES_AUTH", True)

    anonymous = await client.get("/health")
    authorized = await client.get("/health", headers=_auth(raw_key))

    assert anonymous.status_code == 401
    assert authorized.status_code == 200


# ── /usage ──────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_monthly_usage_summary(client, session_factory, api_key) -> None:
    raw_key, _ = api_key
    code = await create_code(session_factory)
    headers = _auth(raw_key)

    await client.post("/redeem", json={"codeId": str(code.id), "callerId": "c"}, headers=headers)
    await client.post("/calculate", json={"amount": "5"}, headers=headers)
    await client.post("/calculate", json={"amount": "0"}, headers=headers)
    await client.post(
        "/attribute",
        json={
            "transactionId": "tx",
            "chain": [{"participantId": p, "amount": "1"} for p in ("A", "B", "C")],
        },
        headers=headers,
    )

    response = await client.get("/usage", headers=headers)

    assert response.status_code == 200
    assert response.json() == [
        {"endpoint": "/attribute", "billedUnits": 3, "requestCount": 1},
        {"endpoint": "/calculate", "billedUnits": 1, "requestCount": 2},
        {"endpoint": "/redeem", "billedUnits": 1, "requestCount": 1},
    ]


# ── Error rendering ─────────────────────────────────────────
@pytest.mark.asyncio
async def test_unknown_route_uses_error_shape(client) -> None:
    response = await client.get("/nope")

    assert response.status_code == 404
    assert response.json()["kind"] == "NotFound"


@pytest.mark.asyncio
async def test_unhandled_error_is_generic_500(session_factory, api_key) -> None:
    raw_key, _ = api_key

    def broken_table():
        raise RuntimeError("multiplier store offline")

    app.dependency_overrides[get_multiplier_table] = broken_table
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as http:
            response = await http.post("/calculate", json={"amount": "1"}, headers=_auth(raw_key))
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error.", "kind": "Internal"}
    assert "offline" not in response.text

    [record] = await _usage_records(session_factory)
    assert record.status_code == 500
    assert record.billed_units == 0

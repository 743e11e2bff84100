import json
import time
from types import SimpleNamespace

import pytest
from beanie import PydanticObjectId
from conftest import login_as, signed_webhook_headers

from app.core.exceptions import UnknownProductError
from app.models.audit_log import AuditLog
from app.models.credit_ledger import CreditLedgerEntry
from app.models.user import User
from app.services import payments as payments_service

pytestmark = pytest.mark.asyncio

SMALL = "5af2909c-3272-4bc2-bae8-a7e91958d37f"
MEDIUM = "0aebc527-b797-43ca-a6bb-5508a5a6f44d"
LARGE = "dcd55a8e-0515-43f6-b2fc-f1849753e609"


def order_paid(external_id, product_id=SMALL, order_id="ord_1", event_type="order.paid") -> bytes:
    return json.dumps(
        {
            "type": event_type,
            "data": {
                "id": order_id,
                "product_id": product_id,
                "customer": {"id": "cus_1", "external_id": external_id},
            },
        }
    ).encode()


async def _post(client, payload: bytes, msg_id: str = "msg_1", **kwargs):
    return await client.post(
        "/v1/payments/webhook",
        content=payload,
        headers=signed_webhook_headers(payload, msg_id, **kwargs),
    )


@pytest.mark.parametrize("product_id,credits", [(SMALL, 70), (MEDIUM, 140), (LARGE, 300)])
async def test_order_paid_credits_pack(client, make_user, product_id, credits):
    user = await make_user(credits=3)
    r = await _post(client, order_paid(str(user.id), product_id))
    assert r.status_code == 200
    assert r.json()["status"] == "processed"
    assert r.json()["credits"] == credits
    assert (await User.get(user.id)).credits == 3 + credits
    assert await AuditLog.find(AuditLog.event_type == "order_paid").count() == 1


async def test_replayed_event_credits_once(client, make_user):
    user = await make_user()
    payload = order_paid(str(user.id))
    first = await _post(client, payload, "msg_replay")
    second = await _post(client, payload, "msg_replay")

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["status"] == "duplicate"
    assert (await User.get(user.id)).credits == 70
    assert await CreditLedgerEntry.find(CreditLedgerEntry.reason == "purchase").count() == 1


async def test_distinct_events_each_credit(client, make_user):
    user = await make_user()
    await _post(client, order_paid(str(user.id), order_id="ord_1"), "msg_a")
    await _post(client, order_paid(str(user.id), order_id="ord_2"), "msg_b")
    assert (await User.get(user.id)).credits == 140


async def test_bad_signature_rejected(client, make_user):
    user = await make_user()
    payload = order_paid(str(user.id))
    r = await _post(client, payload, secret="not-the-secret")
    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNVERIFIED_EVENT"
    assert (await User.get(user.id)).credits == 0


async def test_tampered_body_rejected(client, make_user):
    user = await make_user()
    payload = order_paid(str(user.id))
    headers = signed_webhook_headers(payload, "msg_t")
    r = await client.post("/v1/payments/webhook", content=order_paid(str(user.id), LARGE), headers=headers)
    assert r.status_code == 401
    assert (await User.get(user.id)).credits == 0


async def test_stale_timestamp_rejected(client, make_user):
    user = await make_user()
    r = await _post(client, order_paid(str(user.id)), timestamp=int(time.time()) - 3600)
    assert r.status_code == 401


async def test_missing_headers_rejected(client, make_user):
    user = await make_user()
    r = await client.post("/v1/payments/webhook", content=order_paid(str(user.id)))
    assert r.status_code == 401


async def test_missing_customer_is_failure(client, make_user):
    r = await _post(client, order_paid(None))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "UNKNOWN_CUSTOMER"


async def test_unresolvable_customer_is_failure(client, db):
    r = await _post(client, order_paid(str(PydanticObjectId())))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "UNKNOWN_CUSTOMER"
    r = await _post(client, order_paid("not-an-id"), "msg_2")
    assert r.status_code == 422


async def test_unknown_product_is_failure(client, make_user):
    user = await make_user()
    r = await _post(client, order_paid(str(user.id), "prod_unknown"))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "UNKNOWN_PRODUCT"
    assert (await User.get(user.id)).credits == 0


async def test_failed_event_can_be_retried(client, make_user):
    """A rejected delivery must not burn the event id."""
    user = await make_user()
    bad = await _post(client, order_paid(str(user.id), "prod_unknown"), "msg_retry")
    assert bad.status_code == 422
    good = await _post(client, order_paid(str(user.id)), "msg_retry")
    assert good.status_code == 200
    assert (await User.get(user.id)).credits == 70


async def test_other_event_types_acknowledged(client, make_user):
    user = await make_user()
    r = await _post(client, order_paid(str(user.id), event_type="checkout.updated"))
    assert r.status_code == 200
    assert r.json()["status"] == "ignored"
    assert (await User.get(user.id)).credits == 0


async def test_credits_for_product():
    assert payments_service.credits_for_product(MEDIUM) == 140
    with pytest.raises(UnknownProductError):
        payments_service.credits_for_product(None)
    with pytest.raises(UnknownProductError):
        payments_service.credits_for_product("prod_other")


class FakeCheckouts:
    def __init__(self) -> None:
        self.requests = []

    async def create_async(self, request):
        self.requests.append(request)
        return SimpleNamespace(id="chk_1", url="https://sandbox.polar.sh/checkout/chk_1")


async def test_create_checkout_binds_user(make_user):
    user = await make_user()
    polar = SimpleNamespace(checkouts=FakeCheckouts())

    out = await payments_service.create_checkout(user, "medium", polar=polar)

    assert out == {"checkout_id": "chk_1", "url": "https://sandbox.polar.sh/checkout/chk_1", "tier": "medium", "credits": 140}
    request = polar.checkouts.requests[0]
    assert request["products"] == [MEDIUM]
    assert request["external_customer_id"] == str(user.id)


async def test_create_checkout_unknown_tier(make_user):
    user = await make_user()
    with pytest.raises(UnknownProductError):
        await payments_service.create_checkout(user, "huge", polar=SimpleNamespace(checkouts=FakeCheckouts()))


async def test_checkout_endpoint_without_configuration(client, make_user):
    user = await make_user()
    login_as(client, user)
    r = await client.post("/v1/payments/checkout", json={"tier": "small"})
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Payments not configured"


async def test_packs_endpoint(client):
    r = await client.get("/v1/payments/packs")
    assert r.json()["packs"] == [
        {"tier": "small", "credits": 70},
        {"tier": "medium", "credits": 140},
        {"tier": "large", "credits": 300},
    ]


async def test_redelivery_finishes_interrupted_credit(client, make_user):
    """An event whose credit was claimed but never applied is applied on the next delivery."""
    user = await make_user()
    await CreditLedgerEntry(
        user_id=user.id,
        amount=70,
        balance_after=0,
        reason="purchase",
        reference_type="polar_order",
        reference_id="ord_1",
        idempotency_key="polar:msg_interrupted",
        status="pending",
    ).insert()

    r = await _post(client, order_paid(str(user.id)), "msg_interrupted")

    assert r.status_code == 200
    assert r.json()["status"] == "processed"
    assert (await User.get(user.id)).credits == 70
    second = await _post(client, order_paid(str(user.id)), "msg_interrupted")
    assert second.json()["status"] == "duplicate"
    assert (await User.get(user.id)).credits == 70

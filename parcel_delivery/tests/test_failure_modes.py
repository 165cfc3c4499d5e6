"""
Failure Injection Tests.

Validates resilience against store and payment gateway failures.
"""

from unittest.mock import MagicMock

import pytest
import stripe
from sqlalchemy.exc import OperationalError

from parcel_delivery.app.core.exceptions import (
    InputValidationError, PaymentDeclinedError, PaymentGatewayError, StoreUnavailableError
)
from parcel_delivery.app.core.reliability import CircuitBreaker, CircuitOpenError
from parcel_delivery.app.domain.payments.stores import SqlPaymentStore, store_call
from parcel_delivery.app.services.payment_gateway import StripePaymentGateway, build_circuit_breaker


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker("test", failure_threshold=2, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    assert cb.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_recovers_after_timeout():
    cb = CircuitBreaker("test", failure_threshold=1, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    async def healthy_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    # Pretend the reset timeout has elapsed
    cb.last_failure_time -= 61
    assert await cb.call(healthy_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_store_call_translates_connection_errors(db_session):
    with pytest.raises(StoreUnavailableError) as exc_info:
        async with store_call(db_session, "payment lookup"):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    assert exc_info.value.status_code == 503
    assert exc_info.value.details["operation"] == "payment lookup"


@pytest.mark.asyncio
async def test_store_outage_returns_503(client, user_headers, parcel_factory, mocker):
    parcel = await parcel_factory()
    mocker.patch.object(
        SqlPaymentStore,
        "find_by_transaction_id",
        side_effect=StoreUnavailableError("payment lookup")
    )

    response = await client.post(
        "/payments",
        json={
            "parcelId": parcel.id,
            "email": "sender@test.com",
            "amount": 500,
            "paymentMethod": "card",
            "transactionId": "tx-1"
        },
        headers=user_headers
    )

    assert response.status_code == 503
    assert response.json()["error_code"] == "ERR_STORE_001"

    unchanged = await client.get(f"/parcels/{parcel.id}", headers=user_headers)
    assert unchanged.json()["payment_status"] == "unpaid"


@pytest.mark.asyncio
async def test_stripe_gateway_creates_card_intent(mocker):
    create = mocker.patch(
        "stripe.PaymentIntent.create",
        return_value=MagicMock(id="pi_123", client_secret="pi_123_secret_abc")
    )
    gateway = StripePaymentGateway(api_key="sk_test_key", currency="usd")

    secret = await gateway.create_payment_intent(2500)

    assert secret == "pi_123_secret_abc"
    create.assert_called_once_with(
        amount=2500,
        currency="usd",
        payment_method_types=["card"],
        api_key="sk_test_key"
    )


@pytest.mark.asyncio
async def test_stripe_failure_maps_to_gateway_error(mocker):
    mocker.patch(
        "stripe.PaymentIntent.create",
        side_effect=stripe.APIConnectionError("Network down")
    )
    gateway = StripePaymentGateway(api_key="sk_test_key")

    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.create_payment_intent(2500)

    assert exc_info.value.status_code == 502
    assert exc_info.value.error_code == "ERR_GATEWAY_001"


@pytest.mark.asyncio
async def test_open_circuit_short_circuits_stripe(mocker):
    create = mocker.patch(
        "stripe.PaymentIntent.create",
        side_effect=stripe.APIConnectionError("Network down")
    )
    gateway = StripePaymentGateway(
        api_key="sk_test_key",
        circuit_breaker=build_circuit_breaker(failure_threshold=1)
    )

    with pytest.raises(PaymentGatewayError):
        await gateway.create_payment_intent(2500)

    with pytest.raises(PaymentGatewayError) as exc_info:
        await gateway.create_payment_intent(2500)

    assert exc_info.value.status_code == 503
    assert create.call_count == 1


@pytest.mark.asyncio
async def test_rejected_requests_do_not_open_circuit(mocker):
    """Client-side Stripe errors must not lock every other caller out."""
    mocker.patch(
        "stripe.PaymentIntent.create",
        side_effect=[stripe.InvalidRequestError("Amount must be at least 50 cents", "amount")] * 5
        + [MagicMock(id="pi_ok", client_secret="pi_ok_secret")]
    )
    gateway = StripePaymentGateway(
        api_key="sk_test_key",
        circuit_breaker=build_circuit_breaker(failure_threshold=5)
    )

    for _ in range(5):
        with pytest.raises(InputValidationError) as exc_info:
            await gateway.create_payment_intent(10)
        assert exc_info.value.status_code == 400
        assert exc_info.value.details["field"] == "amount"

    assert gateway.circuit_breaker.state == "CLOSED"
    assert await gateway.create_payment_intent(5000) == "pi_ok_secret"


@pytest.mark.asyncio
async def test_declined_card_maps_to_402(mocker):
    mocker.patch(
        "stripe.PaymentIntent.create",
        side_effect=stripe.CardError("Your card was declined.", None, "card_declined")
    )
    gateway = StripePaymentGateway(api_key="sk_test_key")

    with pytest.raises(PaymentDeclinedError) as exc_info:
        await gateway.create_payment_intent(2500)

    assert exc_info.value.status_code == 402
    assert exc_info.value.error_code == "ERR_GATEWAY_002"
    assert gateway.circuit_breaker.failures == 0


@pytest.mark.asyncio
async def test_circuit_breaker_ignores_unlisted_exceptions():
    cb = CircuitBreaker("test", failure_threshold=1, failure_exceptions=(ConnectionError,))

    async def rejected():
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await cb.call(rejected)

    assert cb.state == "CLOSED"
    assert cb.failures == 0

"""
Payment Gateway Service.

Creates Stripe PaymentIntents for the checkout client. Calls run in a
worker thread (the Stripe SDK is synchronous) behind a circuit breaker.
Only transport and server-side Stripe errors count against the breaker;
a declined card or a rejected request is the caller's problem.
"""

import logging

import stripe
from fastapi import Request, status
from starlette.concurrency import run_in_threadpool

from parcel_delivery.app.core.config import Settings
from parcel_delivery.app.core.exceptions import InputValidationError, PaymentDeclinedError, PaymentGatewayError
from parcel_delivery.app.core.reliability import CircuitBreaker, CircuitOpenError

logger = logging.getLogger("parcel_delivery.gateway")

# Errors that say Stripe itself is unhealthy
TRANSIENT_STRIPE_ERRORS = (stripe.APIConnectionError, stripe.APIError, stripe.RateLimitError)


def build_circuit_breaker(failure_threshold: int = 5, reset_timeout: int = 60) -> CircuitBreaker:
    return CircuitBreaker(
        "stripe",
        failure_threshold=failure_threshold,
        reset_timeout=reset_timeout,
        failure_exceptions=TRANSIENT_STRIPE_ERRORS,
    )


class StripePaymentGateway:

    def __init__(self, api_key: str, currency: str = "usd", circuit_breaker: CircuitBreaker = None):
        self.api_key = api_key
        self.currency = currency
        self.circuit_breaker = circuit_breaker or build_circuit_breaker()

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripePaymentGateway":
        return cls(
            api_key=settings.payment_gateway_key,
            currency=settings.payment_currency,
            circuit_breaker=build_circuit_breaker(
                failure_threshold=settings.gateway_failure_threshold,
                reset_timeout=settings.gateway_reset_timeout,
            ),
        )

    async def create_payment_intent(self, amount: int) -> str:
        """
        Create a card PaymentIntent for ``amount`` minor units.

        Returns:
            The intent's client secret

        Raises:
            PaymentDeclinedError: 402 when the card is declined
            InputValidationError: 400 when Stripe rejects the request parameters
            PaymentGatewayError: 502 when Stripe fails, 503 while the circuit is open
        """
        logger.info("Creating payment intent", extra={"amount": amount, "currency": self.currency})

        def _create() -> stripe.PaymentIntent:
            return stripe.PaymentIntent.create(
                amount=amount,
                currency=self.currency,
                payment_method_types=["card"],
                api_key=self.api_key,
            )

        try:
            intent = await self.circuit_breaker.call(run_in_threadpool, _create)
        except CircuitOpenError as e:
            raise PaymentGatewayError(
                "Payment gateway temporarily unavailable",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE
            ) from e
        except stripe.CardError as e:
            logger.info(
                "Payment intent declined",
                extra={"amount": amount, "stripe_code": e.code}
            )
            raise PaymentDeclinedError(e.user_message or "Payment was declined") from e
        except stripe.InvalidRequestError as e:
            logger.warning(
                "Payment intent request rejected",
                extra={"amount": amount, "stripe_param": e.param, "stripe_code": e.code}
            )
            raise InputValidationError(
                e.user_message or "Invalid payment request",
                field=e.param or "amount"
            ) from e
        except stripe.StripeError as e:
            logger.error(
                "Payment intent creation failed",
                extra={"amount": amount, "stripe_error": type(e).__name__, "stripe_code": getattr(e, "code", None)}
            )
            raise PaymentGatewayError(e.user_message or "Payment gateway error") from e

        logger.info("Payment intent created", extra={"payment_intent_id": intent.id})
        return intent.client_secret


async def get_payment_gateway(request: Request):
    """FastAPI dependency returning the gateway built at startup."""
    return request.app.state.payment_gateway

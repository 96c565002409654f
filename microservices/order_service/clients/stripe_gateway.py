"""
Stripe Payment Gateway for Order Service
"""

import logging
from typing import Dict, Optional

import stripe

from ..models import PaymentIntent
from ..protocols import PaymentGatewayError

logger = logging.getLogger(__name__)


class StripePaymentGateway:
    """Payment intents through the Stripe API"""

    def __init__(self, secret_key: Optional[str] = None):
        if secret_key:
            stripe.api_key = secret_key

        if not stripe.api_key:
            logger.warning("⚠️  Stripe secret key not configured, gateway calls will fail")
        elif stripe.api_key.startswith("sk_test_"):
            logger.info("Stripe gateway running in test mode")
        else:
            logger.info("Stripe gateway initialized")

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> PaymentIntent:
        """Create a payment intent; amount is in the smallest currency unit"""
        try:
            stripe_intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                description=description,
                metadata=metadata,
                automatic_payment_methods={
                    "enabled": True,
                    "allow_redirects": "never"
                },
                idempotency_key=idempotency_key
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe payment intent: {str(e)}")
            raise PaymentGatewayError(
                f"Failed to create payment intent: {e.user_message or str(e)}",
                processor_error_code=e.code
            ) from e

        logger.info(f"Stripe payment intent created: {stripe_intent.id}")
        return self._to_payment_intent(stripe_intent)

    async def confirm_payment_intent(
        self,
        payment_intent_id: str,
        payment_method: Optional[str] = None
    ) -> PaymentIntent:
        """Confirm a payment intent, optionally attaching a payment method"""
        params = {"payment_method": payment_method} if payment_method else {}
        try:
            stripe_intent = stripe.PaymentIntent.confirm(payment_intent_id, **params)
        except stripe.CardError as e:
            # Declines come back as a failed intent, not as a gateway fault
            logger.warning(f"Stripe payment intent {payment_intent_id} declined: {e.code}")
            return self._declined_intent(payment_intent_id, e)
        except stripe.StripeError as e:
            logger.error(f"Failed to confirm Stripe payment intent {payment_intent_id}: {str(e)}")
            raise PaymentGatewayError(
                f"Failed to confirm payment intent: {e.user_message or str(e)}",
                processor_error_code=e.code
            ) from e

        logger.info(f"Stripe payment intent confirmed: {payment_intent_id} (status: {stripe_intent.status})")
        return self._to_payment_intent(stripe_intent)

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        try:
            stripe_intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve Stripe payment intent {payment_intent_id}: {str(e)}")
            raise PaymentGatewayError(
                f"Failed to retrieve payment intent: {e.user_message or str(e)}",
                processor_error_code=e.code
            ) from e
        return self._to_payment_intent(stripe_intent)

    async def cancel_payment_intent(self, payment_intent_id: str) -> PaymentIntent:
        try:
            stripe_intent = stripe.PaymentIntent.cancel(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to cancel Stripe payment intent {payment_intent_id}: {str(e)}")
            raise PaymentGatewayError(
                f"Failed to cancel payment intent: {e.user_message or str(e)}",
                processor_error_code=e.code
            ) from e

        logger.info(f"Stripe payment intent cancelled: {payment_intent_id}")
        return self._to_payment_intent(stripe_intent)

    @staticmethod
    def _to_payment_intent(stripe_intent) -> PaymentIntent:
        return PaymentIntent(
            id=stripe_intent.id,
            client_secret=stripe_intent.client_secret,
            status=stripe_intent.status,
            amount=stripe_intent.amount,
            currency=stripe_intent.currency,
            metadata=dict(stripe_intent.metadata or {})
        )

    def _declined_intent(self, payment_intent_id: str, error: "stripe.CardError") -> PaymentIntent:
        """Current state of an intent whose confirmation was declined"""
        try:
            return self._to_payment_intent(stripe.PaymentIntent.retrieve(payment_intent_id))
        except stripe.StripeError as e:
            raise PaymentGatewayError(
                f"Payment declined and intent could not be retrieved: {str(e)}",
                processor_error_code=error.code
            ) from e

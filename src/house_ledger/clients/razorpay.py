"""Razorpay payment provider client."""

import logging

import httpx

from ..exceptions import PaymentProviderError
from ..models import ProviderOrder

logger = logging.getLogger(__name__)


class RazorpayClient:
    """Client for the Razorpay Orders API v1."""

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(self, key_id: str, key_secret: str):
        """Initialize the Razorpay client."""
        self.key_id = key_id
        self.client = httpx.Client(
            base_url=self.BASE_URL,
            auth=(key_id, key_secret),
            headers={"Content-Type": "application/json"},
            timeout=30.0,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def create_order(
        self, amount: int, currency: str, receipt: str | None = None
    ) -> ProviderOrder:
        """
        Create a payment order.

        The response is untrusted until a payment signature has been
        verified against it.

        Args:
            amount: Order amount in minor units (paise for INR)
            currency: ISO currency code
            receipt: Optional merchant receipt reference

        Returns:
            The provider's order

        Raises:
            PaymentProviderError: If the request fails or the response is unusable
        """
        payload: dict[str, str | int] = {"amount": amount, "currency": currency}
        if receipt:
            payload["receipt"] = receipt

        logger.debug(f"Creating Razorpay order: {payload}")

        try:
            response = self.client.post("/orders", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Razorpay API error: {e}")
            logger.error(f"Response body: {e.response.text}")
            raise PaymentProviderError(
                f"Order creation failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Razorpay request failed: {e}")
            raise PaymentProviderError(f"Order creation failed: {e}") from e

        data = response.json()
        try:
            order = ProviderOrder(
                id=data["id"],
                amount=int(data["amount"]),
                currency=data["currency"],
                receipt=data.get("receipt"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PaymentProviderError(f"Unexpected order response: {data}") from e

        if order.amount != amount:
            raise PaymentProviderError(
                f"Order {order.id} amount {order.amount} does not match "
                f"requested {amount}"
            )

        logger.info(f"Created Razorpay order {order.id}")
        return order

"""Post-payment fulfillment: cash receipts and dataset delivery links."""

import hashlib
import hmac
import logging
import secrets
from urllib.parse import quote

from src.core.exceptions import SideEffectFailure
from src.models.order import Order
from src.services.order_ledger import OrderLedger
from src.services.receipt_service import ReceiptService
from src.services.side_effects import EffectResult, SideEffectDispatcher

logger = logging.getLogger(__name__)

CASH_RECEIPT = "cash_receipt"
DELIVERY = "delivery"


class FulfillmentService:
    """Runs the effects owed to a completed order through the dispatcher."""

    def __init__(
        self,
        ledger: OrderLedger,
        dispatcher: SideEffectDispatcher,
        receipt_service: ReceiptService,
        delivery_base_url: str,
        signing_secret: str = "",
    ) -> None:
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.receipt_service = receipt_service
        self.delivery_base_url = delivery_base_url.rstrip("/")
        self.signing_secret = signing_secret

    async def fulfill(self, order: Order) -> dict[str, EffectResult]:
        """Trigger receipt issuance and delivery for a completed order."""
        return {
            CASH_RECEIPT: await self.dispatcher.run_once(
                order["id"], CASH_RECEIPT, lambda: self.issue_receipt(order)
            ),
            DELIVERY: await self.dispatcher.run_once(
                order["id"], DELIVERY, lambda: self.mint_delivery(order)
            ),
        }

    async def issue_receipt(self, order: Order) -> None:
        """Issue the cash receipt the buyer elected at checkout, if any.

        The identifier is the business number for business receipts and the
        buyer's contact number for personal ones.

        Raises:
            SideEffectFailure: Non-retryable when the identifier is missing.
        """
        receipt_type = order.get("receipt_type") or "none"
        if receipt_type not in ("personal", "business"):
            logger.debug("Order %s did not request a cash receipt", order["id"])
            return

        id_info = order.get("business_number") if receipt_type == "business" else order.get("buyer_contact")
        if not id_info:
            raise SideEffectFailure(
                f"Order {order['id']} requested a {receipt_type} receipt without an identifier",
                retryable=False,
            )

        await self.receipt_service.issue_cash_receipt(
            id_info=id_info,
            price=order["price"],
            receipt_type=receipt_type,
            good_name=order.get("display_name") or order.get("dataset_id") or "dataset",
            buyer_phone=order.get("buyer_contact") or "",
        )

    async def mint_delivery(self, order: Order) -> None:
        """Mint the download link and record it on the order."""
        await self.ledger.apply_delivery_mint(order["id"], self.mint_delivery_url(order))

    def mint_delivery_url(self, order: Order) -> str:
        """Build ``{base}/{dataset_id}?order={id}&token={token}``."""
        dataset_id = order.get("dataset_id") or "unknown"
        if self.signing_secret:
            token = self._sign(order["id"], dataset_id)
        else:
            logger.warning("DELIVERY_SIGNING_SECRET unset; order %s gets an unverifiable token", order["id"])
            token = secrets.token_urlsafe(32)
        return (
            f"{self.delivery_base_url}/{quote(dataset_id, safe='')}"
            f"?order={quote(order['id'], safe='')}&token={token}"
        )

    def verify_delivery_token(self, order_id: str, dataset_id: str, token: str) -> bool:
        """Check a token produced by mint_delivery_url."""
        if not self.signing_secret:
            return False
        return hmac.compare_digest(self._sign(order_id, dataset_id), token)

    def _sign(self, order_id: str, dataset_id: str) -> str:
        message = f"{order_id}:{dataset_id}".encode("utf-8")
        return hmac.new(self.signing_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    async def retry_failed_effects(self) -> int:
        """Re-run failed effects and expired claims of completed orders.

        Returns:
            int: Number of effects that succeeded on this pass.
        """
        succeeded = 0
        for record in await self.dispatcher.retryable_effects():
            order = await self.ledger.get_order(record["order_id"])
            if order is None or order["payment_status"] != "completed":
                continue

            if record["effect_type"] == CASH_RECEIPT:
                result = await self.dispatcher.run_once(
                    order["id"], CASH_RECEIPT, lambda order=order: self.issue_receipt(order)
                )
            elif record["effect_type"] == DELIVERY:
                result = await self.dispatcher.run_once(
                    order["id"], DELIVERY, lambda order=order: self.mint_delivery(order)
                )
            else:
                logger.warning("Unknown effect type %s for order %s", record["effect_type"], order["id"])
                continue

            if result.succeeded:
                succeeded += 1

        if succeeded:
            logger.info("Retried %d failed side effects", succeeded)
        return succeeded

"""Cash receipt (현금영수증) issuance through PayApp."""

import logging
from typing import Literal

from src.core.exceptions import SideEffectFailure
from src.core.payapp import PayAppClient

logger = logging.getLogger(__name__)

# val_type: 1 = income deduction (personal), 2 = expense proof (business)
VAL_TYPES = {"personal": "1", "business": "2"}


class ReceiptService:
    """Issues cash receipts with PayApp's cashreceipt_regist command."""

    def __init__(self, client: PayAppClient) -> None:
        self.client = client

    async def issue_cash_receipt(
        self,
        id_info: str,
        price: int,
        receipt_type: Literal["personal", "business"],
        good_name: str,
        buyer_phone: str,
    ) -> dict[str, str]:
        """Register a cash receipt.

        Args:
            id_info: Phone number (personal) or business registration number.
            price: Amount to declare.
            receipt_type: ``personal`` or ``business``.
            good_name: Product name shown on the receipt.
            buyer_phone: Buyer's phone number.

        Returns:
            dict: PayApp response fields.

        Raises:
            SideEffectFailure: If PayApp refuses the receipt.
            GatewayTimeoutError: If PayApp does not answer in time.
        """
        result = await self.client.call(
            "cashreceipt_regist",
            {
                "good_name": good_name,
                "buy_tel": buyer_phone.replace("-", ""),
                "id_info": id_info.replace("-", ""),
                "price": str(price),
                "val_type": VAL_TYPES[receipt_type],
            },
        )
        if result.get("state") != "1":
            message = result.get("errorMessage") or result.get("msg") or "PayApp refused the cash receipt"
            raise SideEffectFailure(message)

        logger.info("Cash receipt issued (%s, %d)", receipt_type, price)
        return result

"""Unit tests for FulfillmentService and ReceiptService."""

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest

from src.core.exceptions import SideEffectFailure
from src.services.fulfillment_service import CASH_RECEIPT, DELIVERY, FulfillmentService
from src.services.order_ledger import OrderLedger
from src.services.receipt_service import ReceiptService
from src.services.side_effects import SideEffectDispatcher
from src.stores.memory import InMemoryEffectStore, InMemoryOrderRepository


@pytest.fixture
def ledger() -> OrderLedger:
    return OrderLedger(InMemoryOrderRepository())


@pytest.fixture
def receipt_service() -> MagicMock:
    service = MagicMock()
    service.issue_cash_receipt = AsyncMock(return_value={"state": "1"})
    return service


@pytest.fixture
def fulfillment(ledger: OrderLedger, receipt_service: MagicMock) -> FulfillmentService:
    return FulfillmentService(
        ledger=ledger,
        dispatcher=SideEffectDispatcher(InMemoryEffectStore()),
        receipt_service=receipt_service,
        delivery_base_url="https://dl.test/datasets/",
        signing_secret="delivery-secret",
    )


async def completed_order(ledger: OrderLedger, receipt_type: str = "personal", business_number: str | None = None) -> dict:
    await ledger.create_pending_order(
        provider="payapp",
        provider_ref="mul-1",
        dataset_id="ds-weather",
        display_name="Weather",
        price=50000,
        buyer_contact="010-1234-5678",
        receipt_type=receipt_type,
        business_number=business_number,
    )
    result = await ledger.apply_payment_outcome("mul-1", "completed")
    return result.order


class TestFulfill:
    """Tests for fulfill."""

    @pytest.mark.asyncio
    async def test_issues_receipt_and_delivers(
        self, fulfillment: FulfillmentService, ledger: OrderLedger, receipt_service: MagicMock
    ) -> None:
        order = await completed_order(ledger)

        results = await fulfillment.fulfill(order)

        assert results[CASH_RECEIPT].succeeded is True
        assert results[DELIVERY].succeeded is True
        receipt_service.issue_cash_receipt.assert_awaited_once_with(
            id_info="010-1234-5678",
            price=50000,
            receipt_type="personal",
            good_name="Weather",
            buyer_phone="010-1234-5678",
        )

        stored = await ledger.get_order(order["id"])
        assert stored["delivery_status"] == "delivered"
        assert stored["delivery_url"].startswith("https://dl.test/datasets/ds-weather?order=")

    @pytest.mark.asyncio
    async def test_business_receipt_uses_business_number(
        self, fulfillment: FulfillmentService, ledger: OrderLedger, receipt_service: MagicMock
    ) -> None:
        order = await completed_order(ledger, "business", "123-45-67890")

        await fulfillment.fulfill(order)

        assert receipt_service.issue_cash_receipt.call_args.kwargs["id_info"] == "123-45-67890"
        assert receipt_service.issue_cash_receipt.call_args.kwargs["receipt_type"] == "business"

    @pytest.mark.asyncio
    async def test_no_receipt_requested(
        self, fulfillment: FulfillmentService, ledger: OrderLedger, receipt_service: MagicMock
    ) -> None:
        order = await completed_order(ledger, "none")

        await fulfillment.fulfill(order)

        receipt_service.issue_cash_receipt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_second_fulfill_does_nothing(
        self, fulfillment: FulfillmentService, ledger: OrderLedger, receipt_service: MagicMock
    ) -> None:
        order = await completed_order(ledger)

        await fulfillment.fulfill(order)
        results = await fulfillment.fulfill(order)

        assert not results[CASH_RECEIPT].ran
        assert not results[DELIVERY].ran
        receipt_service.issue_cash_receipt.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_receipt_failure_does_not_block_delivery(
        self, fulfillment: FulfillmentService, ledger: OrderLedger, receipt_service: MagicMock
    ) -> None:
        receipt_service.issue_cash_receipt.side_effect = SideEffectFailure("refused")
        order = await completed_order(ledger)

        results = await fulfillment.fulfill(order)

        assert results[CASH_RECEIPT].succeeded is False
        assert results[DELIVERY].succeeded is True

    @pytest.mark.asyncio
    async def test_retry_failed_effects(
        self, fulfillment: FulfillmentService, ledger: OrderLedger, receipt_service: MagicMock
    ) -> None:
        receipt_service.issue_cash_receipt.side_effect = [SideEffectFailure("refused"), {"state": "1"}]
        order = await completed_order(ledger)
        await fulfillment.fulfill(order)

        assert await fulfillment.retry_failed_effects() == 1
        assert await fulfillment.retry_failed_effects() == 0
        assert receipt_service.issue_cash_receipt.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_identifier_is_recorded_and_not_retried(
        self, fulfillment: FulfillmentService, ledger: OrderLedger, receipt_service: MagicMock
    ) -> None:
        order = await completed_order(ledger, "business", None)

        results = await fulfillment.fulfill(order)

        assert results[CASH_RECEIPT].ran is True
        assert results[CASH_RECEIPT].succeeded is False
        receipt_service.issue_cash_receipt.assert_not_awaited()

        record = await fulfillment.dispatcher.store.get(order["id"], CASH_RECEIPT)
        assert record["status"] == "abandoned"
        assert "without an identifier" in record["last_error"]
        assert await fulfillment.retry_failed_effects() == 0

    @pytest.mark.asyncio
    async def test_retry_picks_up_expired_claim(self, ledger: OrderLedger, receipt_service: MagicMock) -> None:
        store = InMemoryEffectStore(lease_seconds=0)
        fulfillment = FulfillmentService(
            ledger=ledger,
            dispatcher=SideEffectDispatcher(store),
            receipt_service=receipt_service,
            delivery_base_url="https://dl.test/datasets",
            signing_secret="delivery-secret",
        )
        order = await completed_order(ledger)
        # Worker died after claiming both effects
        await store.claim(order["id"], CASH_RECEIPT)
        await store.claim(order["id"], DELIVERY)

        assert await fulfillment.retry_failed_effects() == 2
        receipt_service.issue_cash_receipt.assert_awaited_once()
        stored = await ledger.get_order(order["id"])
        assert stored["delivery_status"] == "delivered"


class TestDeliveryTokens:
    """Tests for minted delivery URLs."""

    def test_minted_token_verifies(self, fulfillment: FulfillmentService) -> None:
        url = fulfillment.mint_delivery_url({"id": "order-1", "dataset_id": "ds-weather"})

        token = parse_qs(urlparse(url).query)["token"][0]

        assert fulfillment.verify_delivery_token("order-1", "ds-weather", token) is True
        assert fulfillment.verify_delivery_token("order-2", "ds-weather", token) is False

    def test_unsigned_tokens_never_verify(self, ledger: OrderLedger, receipt_service: MagicMock) -> None:
        service = FulfillmentService(
            ledger=ledger,
            dispatcher=SideEffectDispatcher(InMemoryEffectStore()),
            receipt_service=receipt_service,
            delivery_base_url="https://dl.test",
        )
        url = service.mint_delivery_url({"id": "order-1", "dataset_id": "ds"})
        token = parse_qs(urlparse(url).query)["token"][0]

        assert service.verify_delivery_token("order-1", "ds", token) is False


class TestReceiptService:
    """Tests for ReceiptService."""

    @pytest.mark.asyncio
    async def test_sends_cashreceipt_regist(self) -> None:
        client = MagicMock()
        client.call = AsyncMock(return_value={"state": "1"})

        await ReceiptService(client).issue_cash_receipt(
            id_info="123-45-67890",
            price=50000,
            receipt_type="business",
            good_name="Weather",
            buyer_phone="010-1234-5678",
        )

        cmd, fields = client.call.call_args.args
        assert cmd == "cashreceipt_regist"
        assert fields["id_info"] == "1234567890"
        assert fields["val_type"] == "2"
        assert fields["buy_tel"] == "01012345678"

    @pytest.mark.asyncio
    async def test_refusal_raises_side_effect_failure(self) -> None:
        client = MagicMock()
        client.call = AsyncMock(return_value={"state": "0", "errorMessage": "invalid id_info"})

        with pytest.raises(SideEffectFailure, match="invalid id_info"):
            await ReceiptService(client).issue_cash_receipt(
                id_info="1", price=1, receipt_type="personal", good_name="x", buyer_phone="01012345678"
            )

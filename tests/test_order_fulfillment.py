import re
from datetime import datetime, timezone

import pytest

from application.dtos.payments import MercadoPagoChargeback, MercadoPagoPayment
from application.services.order_fulfillment_service import generate_order_number
from domain.order.entity import DraftStatus, OrderPaymentStatus


def _payment(status: str, reference, payment_id: str = "pay-1") -> MercadoPagoPayment:
    return MercadoPagoPayment.model_validate({"id": payment_id, "status": status, "external_reference": reference})


def test_generate_order_number_format():
    number = generate_order_number(datetime(2025, 3, 9, tzinfo=timezone.utc))
    assert re.fullmatch(r"MIST-20250309-\d{4}", number)


@pytest.mark.asyncio
async def test_approved_payment_creates_order(fulfillment, make_draft, uow_factory):
    draft = await make_draft(notes="Entregar en recepción")
    outcome = await fulfillment.apply_payment(_payment("approved", draft.id))

    assert outcome.status == "APPROVED"
    assert outcome.order_id and outcome.order_number
    assert not outcome.already_processed

    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id(outcome.order_id)
        stored = await uow.order_draft_repository.get_by_id(draft.id)
    assert order.draft_id == draft.id
    assert order.mp_payment_id == "pay-1"
    assert order.notes == "Entregar en recepción"
    assert [i.product_id for i in order.items] == ["p-1"]
    assert stored.converted_order_id == outcome.order_id


@pytest.mark.asyncio
async def test_second_application_is_reported_as_already_processed(fulfillment, make_draft):
    draft = await make_draft()
    first = await fulfillment.apply_payment(_payment("approved", draft.id))
    second = await fulfillment.apply_payment(_payment("approved", draft.id))

    assert second.already_processed
    assert second.order_id == first.order_id
    assert second.order_number == first.order_number


@pytest.mark.asyncio
@pytest.mark.parametrize("mp_status,expected", [
    ("pending", "PENDING"),
    ("in_process", "PENDING"),
    ("rejected", "REJECTED"),
    ("cancelled", "CANCELLED"),
])
async def test_non_approved_statuses_do_not_convert(fulfillment, make_draft, uow_factory, mp_status, expected):
    draft = await make_draft()
    outcome = await fulfillment.apply_payment(_payment(mp_status, draft.id))

    assert outcome.status == expected
    assert outcome.order_id is None
    async with uow_factory(readonly=True) as uow:
        assert (await uow.order_draft_repository.get_by_id(draft.id)).status == DraftStatus.PENDING


@pytest.mark.asyncio
async def test_payment_without_reference_is_unknown(fulfillment):
    outcome = await fulfillment.apply_payment(_payment("approved", None))
    assert outcome.status == "unknown"


@pytest.mark.asyncio
async def test_payment_for_missing_draft(fulfillment):
    outcome = await fulfillment.apply_payment(_payment("approved", "no-such-draft"))
    assert outcome.status == "APPROVED"
    assert outcome.order_id is None


@pytest.mark.asyncio
async def test_refund_updates_order_payment_status(fulfillment, make_draft, uow_factory):
    draft = await make_draft()
    created = await fulfillment.apply_payment(_payment("approved", draft.id))
    await fulfillment.apply_payment(_payment("refunded", draft.id))

    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get_by_id(created.order_id)
    assert order.payment_status == OrderPaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_chargeback_without_payments_is_noop(fulfillment):
    assert await fulfillment.apply_chargeback(MercadoPagoChargeback(id="cb-1")) == 0

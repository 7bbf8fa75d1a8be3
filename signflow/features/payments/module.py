"""
Payments module: create, process once, history and invoices.
"""
import asyncio
from typing import Any, Optional

from sqlalchemy import select, update

from signflow.core.errors import BusinessRuleError, NotFoundError
from signflow.core.modules.base import BaseModule, ModuleContext, ModuleDescriptor, RequestPayload
from signflow.features.documents.models import Document
from signflow.features.payments.gateway import PaymentGateway, SimulatedPaymentGateway
from signflow.features.payments.models import Payment
from signflow.features.payments.schemas import PaymentCreate, PaymentProcess, PaymentResponse

INVOICE_URL = "https://invoices.signflow.local/invoices/{payment_id}.pdf"


def _serialize(payment: Payment) -> dict[str, Any]:
    return PaymentResponse.model_validate(payment).model_dump()


class PaymentsModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="payments",
        version="1.0.0",
        dependencies=("documents",),
        permissions=frozenset({"payments:read", "payments:create", "payments:process", "payments:invoice"}),
        routes=(
            "POST /create",
            "POST /{payment_id}/process",
            "GET /history",
            "POST /{payment_id}/invoice",
        ),
    )
    health_table = "payments"

    def __init__(self, context: ModuleContext, gateway: Optional[PaymentGateway] = None):
        super().__init__(context)
        self.gateway = gateway or SimulatedPaymentGateway()

    def get_routes(self):
        return {
            "POST /create": self.create_payment,
            "POST /{payment_id}/process": self.process_payment,
            "GET /history": self.payment_history,
            "POST /{payment_id}/invoice": self.generate_invoice,
        }

    async def create_payment(self, payload: RequestPayload) -> dict[str, Any]:
        data = PaymentCreate.model_validate(payload)

        async with self.db() as session:
            if await session.get(Document, data.document_id) is None:
                raise NotFoundError("Document")
            payment = Payment(
                user_id=payload["user"].subject_id,
                document_id=data.document_id,
                amount=data.amount,
                currency=data.currency.upper(),
            )
            session.add(payment)
            await session.commit()
            await session.refresh(payment)

        self.log.info("Payment %s created (%s %s)", payment.id, payment.amount, payment.currency)
        return {"message": "Payment created as pending", "payment": _serialize(payment)}

    async def process_payment(self, payload: RequestPayload) -> dict[str, Any]:
        """
        Charge a PENDING payment exactly once.

        The PENDING -> PROCESSING update is the claim; whoever loses it gets a
        400 and the gateway is never called twice for the same payment.
        """
        data = PaymentProcess.model_validate(payload)
        payment_id = payload["payment_id"]

        async with self.db() as session:
            claimed = await session.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == "PENDING")
                .values(status="PROCESSING", payment_method=data.payment_method)
            )
            await session.commit()
            if claimed.rowcount != 1:
                if await session.get(Payment, payment_id) is None:
                    raise NotFoundError("Payment")
                raise BusinessRuleError("Payment was already processed or is not pending")

            payment = await session.get(Payment, payment_id)
            try:
                result = await self.gateway.charge(
                    payment.amount, payment.currency, data.payment_method, data.payment_details
                )
            except (Exception, asyncio.CancelledError):
                self.log.error("Charging payment %s did not finish, releasing claim", payment_id)
                await asyncio.shield(self._release_claim(payment_id))
                raise

            if result.success:
                payment.status = "COMPLETED"
                payment.transaction_id = result.transaction_id
            else:
                payment.status = "FAILED"
            await session.commit()
            await session.refresh(payment)

        if not result.success:
            self.log.warning("Payment %s failed: %s", payment_id, result.message)
            raise BusinessRuleError(result.message or "Payment could not be processed")

        self.log.info("Payment %s completed with transaction %s", payment_id, result.transaction_id)
        return {"message": "Payment processed successfully", "payment": _serialize(payment)}

    async def _release_claim(self, payment_id: str) -> None:
        """Put a PROCESSING payment back to PENDING so it can be retried."""
        async with self.db() as session:
            await session.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status == "PROCESSING")
                .values(status="PENDING")
            )
            await session.commit()

    async def payment_history(self, payload: RequestPayload) -> list[dict[str, Any]]:
        user = payload["user"]
        stmt = select(Payment).order_by(Payment.created_at.desc())
        if not user.is_admin:
            stmt = stmt.where(Payment.user_id == user.subject_id)

        async with self.db() as session:
            result = await session.execute(stmt)
            return [_serialize(p) for p in result.scalars().all()]

    async def generate_invoice(self, payload: RequestPayload) -> dict[str, Any]:
        async with self.db() as session:
            payment = await session.get(Payment, payload["payment_id"])
        if payment is None:
            raise NotFoundError("Payment")
        if payment.status != "COMPLETED":
            raise BusinessRuleError("Invoice can only be generated for completed payments")
        return {
            "message": "Invoice generated",
            "url": INVOICE_URL.format(payment_id=payment.id),
            "payment": _serialize(payment),
        }

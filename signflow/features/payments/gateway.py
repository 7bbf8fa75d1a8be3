"""
Payment gateway seam.

The module talks to whatever implements PaymentGateway; the default one
simulates an external processor.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import ulid


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    transaction_id: Optional[str] = None
    message: Optional[str] = None


class PaymentGateway(Protocol):
    async def charge(self, amount: float, currency: str, method: str, details: dict[str, Any]) -> GatewayResult:
        ...


class SimulatedPaymentGateway:
    """Approves `success_rate` of charges after `latency` seconds."""

    def __init__(self, success_rate: float = 0.9, latency: float = 1.0, rng: Optional[random.Random] = None):
        self.success_rate = success_rate
        self.latency = latency
        self.rng = rng or random.Random()

    async def charge(self, amount: float, currency: str, method: str, details: dict[str, Any]) -> GatewayResult:
        await asyncio.sleep(self.latency)
        if self.rng.random() < self.success_rate:
            return GatewayResult(success=True, transaction_id=f"TRX-{ulid.ulid()}")
        return GatewayResult(success=False, message="Payment declined by the simulated gateway")

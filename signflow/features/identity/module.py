"""
Identity module: RUT validation, one-time codes and biometric checks.
"""
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import select, update

from signflow.core.errors import BusinessRuleError
from signflow.core.modules.base import BaseModule, ModuleContext, ModuleDescriptor, RequestPayload
from signflow.features.identity.models import OtpToken
from signflow.features.identity.schemas import BiometricVerify, OtpSend, OtpVerify, RutValidate

OTP_TTL = timedelta(minutes=5)
FACE_MATCH_THRESHOLD = 0.8


def rut_check_digit(body: str) -> str:
    """Modulo 11 check digit for the numeric part of a RUT."""
    total = 0
    multiplier = 2
    for digit in reversed(body):
        total += int(digit) * multiplier
        multiplier = 2 if multiplier == 7 else multiplier + 1
    remainder = 11 - (total % 11)
    if remainder == 11:
        return "0"
    if remainder == 10:
        return "K"
    return str(remainder)


def is_valid_rut(rut: str) -> bool:
    body, _, digit = rut.partition("-")
    return bool(body) and body.isdigit() and rut_check_digit(body) == digit.upper()


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def mask_phone(phone: str) -> str:
    return f"{'*' * (len(phone) - 4)}{phone[-4:]}"


class IdentityModule(BaseModule):
    descriptor = ModuleDescriptor(
        name="identity",
        version="1.0.0",
        permissions=frozenset({
            "identity:validate_rut", "identity:send_otp", "identity:verify_otp", "identity:verify_biometric",
        }),
        routes=(
            "POST /validate-rut",
            "POST /send-otp",
            "POST /verify-otp",
            "POST /verify-biometric",
        ),
    )
    health_table = "otp_tokens"

    def __init__(self, context: ModuleContext, code_factory: Optional[Callable[[], str]] = None):
        super().__init__(context)
        self.code_factory = code_factory or generate_otp

    def get_routes(self):
        return {
            "POST /validate-rut": self.validate_rut,
            "POST /send-otp": self.send_otp,
            "POST /verify-otp": self.verify_otp,
            "POST /verify-biometric": self.verify_biometric,
        }

    async def validate_rut(self, payload: RequestPayload) -> dict[str, Any]:
        data = RutValidate.model_validate(payload)
        if not is_valid_rut(data.rut):
            raise BusinessRuleError("Invalid RUT check digit")
        return {"success": True, "message": "RUT is valid", "rut": data.rut}

    async def send_otp(self, payload: RequestPayload) -> dict[str, Any]:
        data = OtpSend.model_validate(payload)
        code = self.code_factory()
        expires_at = datetime.now(timezone.utc) + OTP_TTL

        async with self.db() as session:
            session.add(OtpToken(
                user_id=data.user_id or payload["user"].subject_id,
                phone_number=data.phone,
                code_hash=hash_code(code),
                expires_at=expires_at,
            ))
            await session.commit()

        # Delivery is simulated; a real SMS provider would be called here
        self.log.info(
            "One-time code for %s sent via %s (expires %s)",
            mask_phone(data.phone), self.context.mail.sender or "default sender", expires_at.isoformat(),
        )
        return {"success": True, "message": "One-time code sent to the phone", "expires_in_seconds": int(OTP_TTL.total_seconds())}

    async def verify_otp(self, payload: RequestPayload) -> dict[str, Any]:
        """Consume the newest unexpired, unused code matching phone and code."""
        data = OtpVerify.model_validate(payload)
        now = datetime.now(timezone.utc)

        async with self.db() as session:
            token_id = await session.scalar(
                select(OtpToken.id)
                .where(
                    OtpToken.phone_number == data.phone,
                    OtpToken.code_hash == hash_code(data.code),
                    OtpToken.used_at.is_(None),
                    OtpToken.expires_at > now,
                )
                .order_by(OtpToken.created_at.desc())
                .limit(1)
            )
            if token_id is None:
                raise BusinessRuleError("Invalid or expired one-time code")

            consumed = await session.execute(
                update(OtpToken)
                .where(OtpToken.id == token_id, OtpToken.used_at.is_(None))
                .values(used_at=now)
            )
            await session.commit()

        if consumed.rowcount != 1:
            raise BusinessRuleError("Invalid or expired one-time code")
        return {"success": True, "message": "One-time code verified successfully"}

    async def verify_biometric(self, payload: RequestPayload) -> dict[str, Any]:
        data = BiometricVerify.model_validate(payload).biometric_data
        score = data.face_match_score
        if score is None or score <= FACE_MATCH_THRESHOLD or not data.liveness_detected:
            raise BusinessRuleError("Biometric verification failed")
        return {"success": True, "message": "Biometric verification succeeded", "face_match_score": score}

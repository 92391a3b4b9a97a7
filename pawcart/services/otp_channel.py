# pawcart/services/otp_channel.py
import asyncio
import hashlib
import hmac
import json
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

import redis.asyncio as aioredis

from pawcart.domain.models import OTPChallenge, VerificationOutcome
from pawcart.utils.settings import REDIS_URL, OTP_TTL_SECONDS, OTP_MAX_ATTEMPTS, OTP_TOMBSTONE_SECONDS
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hash(challenge_id: str, code: str) -> str:
    return hashlib.sha256(f"{challenge_id}:{code}".encode()).hexdigest()


def generate_code() -> str:
    #100000-999999, always 6 digits
    return str(100000 + secrets.randbelow(900000))


class RedisOtpChannel:
    """
    OTP issue/check backed by Redis.

    otp:order:{ref}       -> id of the one live challenge for that order
    otp:challenge:{id}    -> challenge record (hashed code, expiry, attempts)

    Expiry is decided against the stored expires_at. Expired and locked-out
    challenges stay behind as tombstones for tombstone_seconds, so a late
    verify answers Expired instead of finding nothing.
    """

    def __init__(
        self,
        client=None,
        url: str | None = None,
        ttl_seconds: int = OTP_TTL_SECONDS,
        max_attempts: int = OTP_MAX_ATTEMPTS,
        tombstone_seconds: int = OTP_TOMBSTONE_SECONDS,
        deliver: Callable[[str, str, str], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.redis = client or aioredis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.tombstone_seconds = tombstone_seconds
        self.deliver = deliver
        self.clock = clock

    @staticmethod
    def _order_key(order_ref: str) -> str:
        return f"otp:order:{order_ref}"

    @staticmethod
    def _challenge_key(challenge_id: str) -> str:
        return f"otp:challenge:{challenge_id}"

    async def _load(self, challenge_id: str) -> OTPChallenge | None:
        raw = await self.redis.get(self._challenge_key(challenge_id))
        if raw is None:
            return None
        data = json.loads(raw)
        return OTPChallenge(
            challenge_id=challenge_id,
            resource_type=data["resource_type"],
            resource_ref=data["resource_ref"],
            destination_email=data["destination_email"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            attempts_used=data["attempts_used"],
            code_hash=data["code_hash"],
            revoked=data.get("revoked", False),
        )

    def _key_ttl(self, challenge: OTPChallenge) -> int:
        remaining = int((challenge.expires_at - self.clock()).total_seconds()) + 1
        return max(remaining, 0) + self.tombstone_seconds

    async def _store(self, challenge: OTPChallenge) -> None:
        payload = json.dumps(
            {
                "resource_type": challenge.resource_type,
                "resource_ref": challenge.resource_ref,
                "destination_email": challenge.destination_email,
                "issued_at": challenge.issued_at.isoformat(),
                "expires_at": challenge.expires_at.isoformat(),
                "attempts_used": challenge.attempts_used,
                "code_hash": challenge.code_hash,
                "revoked": challenge.revoked,
            }
        )
        await self.redis.set(self._challenge_key(challenge.challenge_id), payload, ex=self._key_ttl(challenge))

    async def revoke(self, challenge: OTPChallenge) -> None:
        await self.redis.delete(self._challenge_key(challenge.challenge_id))
        if await self.redis.get(self._order_key(challenge.resource_ref)) == challenge.challenge_id:
            await self.redis.delete(self._order_key(challenge.resource_ref))

    async def issue(self, order_ref: str, destination: str, resource_type: str = "order") -> OTPChallenge:
        order_ref = str(order_ref)

        #one live challenge per order: the previous code dies here
        prior_id = await self.redis.get(self._order_key(order_ref))
        if prior_id:
            logger.info(f"Invalidating previous OTP challenge for {resource_type} {order_ref}")
            await self.redis.delete(self._challenge_key(prior_id))

        code = generate_code()
        now = self.clock()
        challenge_id = uuid.uuid4().hex
        challenge = OTPChallenge(
            challenge_id=challenge_id,
            resource_type=resource_type,
            resource_ref=order_ref,
            destination_email=destination,
            issued_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
            code_hash=_hash(challenge_id, code),
        )
        await self._store(challenge)
        await self.redis.set(self._order_key(order_ref), challenge_id, ex=self._key_ttl(challenge))

        logger.info(f"OTP challenge {challenge_id} issued for {resource_type} {order_ref}")
        logger.debug(f"OTP for {resource_type} {order_ref}: {code}")
        if self.deliver is not None:
            #delivery publishes to the broker, keep it off the event loop
            await asyncio.to_thread(self.deliver, destination, order_ref, code)
        return challenge

    async def latest_challenge(self, order_ref: str) -> OTPChallenge | None:
        """The order's most recent challenge, live or tombstoned."""
        challenge_id = await self.redis.get(self._order_key(str(order_ref)))
        if not challenge_id:
            return None
        return await self._load(challenge_id)

    async def live_challenge(self, order_ref: str) -> OTPChallenge | None:
        challenge = await self.latest_challenge(order_ref)
        if challenge is None or challenge.revoked or challenge.is_expired(self.clock()):
            return None
        return challenge

    async def _bury(self, challenge: OTPChallenge) -> None:
        challenge.revoked = True
        await self._store(challenge)

    async def check(self, challenge_id: str, code: str) -> VerificationOutcome:
        challenge = await self._load(challenge_id)
        if challenge is None:
            return VerificationOutcome.EXPIRED

        if challenge.revoked:
            return VerificationOutcome.EXPIRED
        #expired wins over a correct code
        if challenge.is_expired(self.clock()):
            await self._bury(challenge)
            logger.info(f"OTP challenge {challenge_id} expired")
            return VerificationOutcome.EXPIRED

        if hmac.compare_digest(challenge.code_hash, _hash(challenge_id, code)):
            await self.revoke(challenge)
            logger.info(f"OTP challenge {challenge_id} matched")
            return VerificationOutcome.MATCH

        challenge.attempts_used += 1
        if challenge.attempts_used >= self.max_attempts:
            #lockout: further checks answer Expired until a new challenge is issued
            logger.warning(f"OTP challenge {challenge_id} revoked after {challenge.attempts_used} attempts")
            await self._bury(challenge)
        else:
            await self._store(challenge)
        return VerificationOutcome.MISMATCH

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

LOGGER = logging.getLogger(__name__)


class VerifyResult(str, Enum):
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"
    FAILED = "failed"


def passphrase_matches(content: str, passphrase: str) -> bool:
    return (content or "").strip().lower() == passphrase.strip().lower()


async def verify_member(member: Any, role: Optional[Any]) -> VerifyResult:
    if role is None:
        LOGGER.warning("Verified role is not configured or missing")
        return VerifyResult.FAILED
    if any(r.id == role.id for r in member.roles):
        return VerifyResult.ALREADY_VERIFIED
    try:
        await member.add_roles(role, reason="Passed verification")
    except Exception as exc:
        LOGGER.warning("Failed verifying %s: %s", member.id, exc)
        return VerifyResult.FAILED
    LOGGER.info("Verified member %s", member.id)
    return VerifyResult.VERIFIED

"""Audience member mapping: idempotency key and upsert body.

The key is the MD5 hex digest of the lower-cased email, which is how the
upstream addresses an existing member. Replays of the same record therefore
always target the same upstream entity.
"""
from __future__ import annotations

import hashlib
from typing import Any

from relay_worker.app.domain.models import MemberUpsert

MEMBER_STATUS = "subscribed"


class InvalidPayloadError(ValueError):
    """Raised when a payload cannot be turned into a member upsert."""


def member_key(email: str) -> str:
    return hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()


def build_member_upsert(payload: Any) -> MemberUpsert:
    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload must be a JSON object")
    email = str(payload.get("email") or "").strip()
    if not email:
        raise InvalidPayloadError("payload missing required field: email")
    body = {
        "email_address": email,
        "status_if_new": MEMBER_STATUS,
        "status": MEMBER_STATUS,
        "merge_fields": {
            "FNAME": payload.get("firstName") or "",
            "LNAME": payload.get("lastName") or "",
        },
    }
    return MemberUpsert(key=member_key(email), body=body)

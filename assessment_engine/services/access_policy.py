from __future__ import annotations

import secrets
import string

from assessment_engine.models.access import (
    AccessDecision,
    AccessPolicy,
    Allow,
    ClassRestricted,
    CodeRestricted,
    Deny,
    EmailRestricted,
    Public,
    Requester,
)

ACCESS_CODE_LENGTH = 6
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def evaluate(policy: AccessPolicy, requester: Requester) -> AccessDecision:
    """Decide whether requester may attempt an assessment under policy.

    Pure: membership has already been resolved into requester.group_ids.
    """
    match policy:
        case ClassRestricted(group_id=group_id):
            if group_id in requester.group_ids:
                return Allow()
            return Deny("not enrolled")
        case Public():
            return Allow()
        case CodeRestricted(code=code):
            if requester.access_code is not None and requester.access_code == code:
                return Allow()
            return Deny("invalid code")
        case EmailRestricted(allowed_emails=allowed):
            email = (requester.email or "").strip().lower()
            if email and email in {e.strip().lower() for e in allowed}:
                return Allow()
            return Deny("email not permitted")


def generate_access_code(length: int = ACCESS_CODE_LENGTH) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))

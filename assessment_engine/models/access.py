from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ClassRestricted:
    group_id: UUID


@dataclass(frozen=True, slots=True)
class Public:
    pass


@dataclass(frozen=True, slots=True)
class CodeRestricted:
    code: str


@dataclass(frozen=True, slots=True)
class EmailRestricted:
    allowed_emails: frozenset[str]

    @staticmethod
    def of(emails) -> EmailRestricted:
        """Build from any iterable of addresses, normalizing case and spaces."""
        return EmailRestricted(
            frozenset(e.strip().lower() for e in emails if e and e.strip())
        )


AccessPolicy = ClassRestricted | Public | CodeRestricted | EmailRestricted


def policy_kind(policy: AccessPolicy) -> str:
    match policy:
        case ClassRestricted():
            return "class"
        case Public():
            return "public"
        case CodeRestricted():
            return "code"
        case EmailRestricted():
            return "email"


@dataclass(frozen=True, slots=True)
class Requester:
    """Who is asking to start or submit an attempt.

    group_ids is filled in by the attempt service from the membership
    collaborator; callers only supply identity and credentials.
    """

    taker_id: UUID
    email: str | None = None
    access_code: str | None = None
    group_ids: frozenset[UUID] = frozenset()


@dataclass(frozen=True, slots=True)
class Allow:
    pass


@dataclass(frozen=True, slots=True)
class Deny:
    reason: str


AccessDecision = Allow | Deny

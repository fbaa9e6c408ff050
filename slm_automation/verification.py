"""Membership checks used by the SLM reharvest."""
from __future__ import annotations

from .membership import MembershipManager
from .models import MembershipVerification

VERIFIED_REASON = "Verified container membership."


def verify_membership(
    object_identifier: str, container: str, manager: MembershipManager
) -> MembershipVerification:
    """Report whether ``object_identifier`` is a member of ``container``.

    A member matches on its name or its security identifier, compared
    exactly.
    """

    for name, sid in manager.list_members_with_security_id(container):
        if object_identifier in (name, sid):
            return MembershipVerification(True, VERIFIED_REASON)
    return MembershipVerification(False, f"{object_identifier} is not a member of {container}")


__all__ = ["VERIFIED_REASON", "verify_membership"]

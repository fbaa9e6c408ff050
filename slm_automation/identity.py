"""Resolve free-form identifiers to directory objects."""
from __future__ import annotations

import logging
import re
from typing import List, Protocol

from .models import DirectoryObject, IdentifierFormat, ObjectKind, ProvisioningValidation

logger = logging.getLogger(__name__)

_DN_PATTERN = re.compile(r"^\s*(CN|OU|DC)=[^,]+(,|$)", re.IGNORECASE)
_DOWN_LEVEL_PATTERN = re.compile(r"^[^\\@]+\\[^\\]+$")


class DirectoryLookup(Protocol):
    def search_objects(self, attribute: str, value: str, kind: ObjectKind) -> List[DirectoryObject]:
        ...


class ResolutionError(RuntimeError):
    """Raised when an identifier matches zero or several directory objects."""

    def __init__(self, message: str, value: str, kind: ObjectKind) -> None:
        super().__init__(message)
        self.value = value
        self.kind = kind


def classify_identifier(value: str) -> IdentifierFormat:
    """Guess which naming scheme ``value`` is written in.

    Plain names classify as ``SamAccountName``; the resolver falls back to
    ``CommonName`` when no account name matches.
    """

    if _DN_PATTERN.match(value):
        return IdentifierFormat.DISTINGUISHED_NAME
    if _DOWN_LEVEL_PATTERN.match(value):
        return IdentifierFormat.DOWN_LEVEL_LOGON_NAME
    if "@" in value:
        return IdentifierFormat.USER_PRINCIPAL_NAME
    return IdentifierFormat.SAM_ACCOUNT_NAME


# Lookups tried in order for each format; the first attribute with any match wins.
_LOOKUP_ORDER = {
    IdentifierFormat.DISTINGUISHED_NAME: ("distinguishedName",),
    IdentifierFormat.DOWN_LEVEL_LOGON_NAME: ("sAMAccountName",),
    IdentifierFormat.USER_PRINCIPAL_NAME: ("userPrincipalName", "sAMAccountName"),
    IdentifierFormat.SAM_ACCOUNT_NAME: ("sAMAccountName", "cn"),
    IdentifierFormat.COMMON_NAME: ("cn",),
}


class IdentityResolver:
    """Map usernames, UPNs, DNs, common names and DOMAIN\\user to one object."""

    def __init__(self, directory: DirectoryLookup) -> None:
        self.directory = directory

    def find(self, value: str, kind: ObjectKind) -> List[DirectoryObject]:
        cleaned = (value or "").strip()
        if not cleaned:
            return []
        identifier_format = classify_identifier(cleaned)
        lookup_value = cleaned
        if identifier_format is IdentifierFormat.DOWN_LEVEL_LOGON_NAME:
            lookup_value = cleaned.split("\\", 1)[1]

        matches: List[DirectoryObject] = []
        for attribute in _LOOKUP_ORDER[identifier_format]:
            matches = self.directory.search_objects(attribute, lookup_value, kind)
            if matches:
                break
            logger.debug("No %s matched %s=%s", kind.value, attribute, lookup_value)
        return matches

    def resolve(self, value: str, kind: ObjectKind) -> DirectoryObject:
        kind = ObjectKind.parse(kind)
        if not (value or "").strip():
            raise ResolutionError(f"No {kind.value} identifier supplied.", value or "", kind)

        matches = self.find(value, kind)
        if not matches:
            raise ResolutionError(
                f"Unable to find {kind.value} '{value}' in Active Directory.", value, kind
            )
        if len(matches) > 1:
            raise ResolutionError(
                f"'{value}' matches {len(matches)} {kind.value} objects; "
                "use a more specific identifier.",
                value,
                kind,
            )
        return matches[0]

    # Caller-facing lookups -------------------------------------------------
    def resolve_owner_account_name(self, value: str) -> str:
        owner = self.resolve(value, ObjectKind.USER)
        if not owner.sam_account_name:
            raise ResolutionError(
                f"User '{value}' has no sAMAccountName.", value, ObjectKind.USER
            )
        return owner.sam_account_name

    def resolve_approver_dn(self, value: str) -> str:
        return self.resolve(value, ObjectKind.USER).distinguished_name

    def resolve_container_dn(self, value: str) -> str:
        return self.resolve(value, ObjectKind.GROUP).distinguished_name

    def resolve_user_dn(self, value: str) -> str:
        return self.resolve(value, ObjectKind.USER).distinguished_name

    def resolve_computer_dn(self, value: str) -> str:
        return self.resolve(value, ObjectKind.COMPUTER).distinguished_name

    def validate_provisioning_item(self, item: str, kind: ObjectKind) -> ProvisioningValidation:
        kind = ObjectKind.parse(kind)
        if not (item or "").strip():
            return ProvisioningValidation(False, f"No {kind.value} supplied.")
        try:
            resolved = self.resolve(item, kind)
        except ResolutionError as exc:
            return ProvisioningValidation(False, str(exc))
        return ProvisioningValidation(
            True, f"Validated {kind.value} '{item}' as {resolved.distinguished_name}."
        )


__all__ = ["IdentityResolver", "ResolutionError", "classify_identifier"]

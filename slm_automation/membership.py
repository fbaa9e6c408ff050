"""Add, remove and list deployment-container members."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from .identity import DirectoryLookup, IdentityResolver, ResolutionError
from .models import (
    ApplicationRecord,
    DirectoryObject,
    MembershipChange,
    ObjectKind,
    computer_account_name,
)
from .templates import derive_deployment_type

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised when a request is missing the identity its kind requires."""


class Directory(DirectoryLookup, Protocol):
    def add_group_member(self, group_dn: str, member_dn: str) -> None:
        ...

    def remove_group_member(self, group_dn: str, member_dn: str) -> None:
        ...

    def list_group_members(self, group_dn: str) -> List[DirectoryObject]:
        ...

    def get_member_of(self, distinguished_name: str) -> List[DirectoryObject]:
        ...


class MembershipManager:
    """Membership operations on the AD groups that represent installs."""

    def __init__(self, directory: Directory, resolver: Optional[IdentityResolver] = None) -> None:
        self.directory = directory
        self.resolver = resolver or IdentityResolver(directory)

    def _select_member(
        self,
        user: Optional[str],
        computer: Optional[str],
        kind: Optional[ObjectKind | str],
        application_details_json: Optional[str | Dict[str, Any]],
    ) -> Tuple[ObjectKind, str]:
        if kind is None or kind == "":
            if not application_details_json:
                raise ValidationError(
                    "Either a kind or application details must be supplied."
                )
            if isinstance(application_details_json, dict):
                record = ApplicationRecord.from_dict(application_details_json)
            else:
                record = ApplicationRecord.from_json(application_details_json)
            resolved_kind = derive_deployment_type(record).kind
        else:
            try:
                resolved_kind = ObjectKind.parse(kind)
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc

        if resolved_kind is ObjectKind.USER:
            if not (user or "").strip():
                raise ValidationError("A user must be supplied when the kind is 'user'.")
            return resolved_kind, user.strip()
        if resolved_kind is ObjectKind.COMPUTER:
            if not (computer or "").strip():
                raise ValidationError("A computer must be supplied when the kind is 'computer'.")
            return resolved_kind, computer.strip()
        raise ValidationError("Only users and computers can be deployment container members.")

    def add_member(
        self,
        container: str,
        kind: Optional[ObjectKind | str] = None,
        user: Optional[str] = None,
        computer: Optional[str] = None,
        application_details_json: Optional[str | Dict[str, Any]] = None,
    ) -> MembershipChange:
        member_kind, identifier = self._select_member(user, computer, kind, application_details_json)
        member = self.resolver.resolve(identifier, member_kind)
        group = self.resolver.resolve(container, ObjectKind.GROUP)

        self.directory.add_group_member(group.distinguished_name, member.distinguished_name)
        logger.info(
            "Added %s %s to %s", member_kind.value, member.distinguished_name, group.distinguished_name
        )
        return MembershipChange(
            "added", member_kind, member.distinguished_name, group.distinguished_name
        )

    def remove_member(
        self,
        container: str,
        kind: Optional[ObjectKind | str] = None,
        user: Optional[str] = None,
        computer: Optional[str] = None,
        application_details_json: Optional[str | Dict[str, Any]] = None,
    ) -> MembershipChange:
        member_kind, identifier = self._select_member(user, computer, kind, application_details_json)
        # Removal addresses computers by account name; additions do not.
        if member_kind is ObjectKind.COMPUTER:
            identifier = computer_account_name(identifier)
        member = self.resolver.resolve(identifier, member_kind)
        group = self.resolver.resolve(container, ObjectKind.GROUP)

        self.directory.remove_group_member(group.distinguished_name, member.distinguished_name)
        logger.info(
            "Removed %s %s from %s",
            member_kind.value,
            member.distinguished_name,
            group.distinguished_name,
        )
        return MembershipChange(
            "removed", member_kind, member.distinguished_name, group.distinguished_name
        )

    def list_members(self, container: str) -> List[str]:
        group = self.resolver.resolve(container, ObjectKind.GROUP)
        return [
            member.sam_account_name
            for member in self.directory.list_group_members(group.distinguished_name)
            if member.sam_account_name
        ]

    def list_members_with_security_id(self, container: str) -> List[Tuple[str, str]]:
        group = self.resolver.resolve(container, ObjectKind.GROUP)
        return [
            (member.name or "", member.object_sid or "")
            for member in self.directory.list_group_members(group.distinguished_name)
        ]

    def _resolve_subject(self, subject: str) -> DirectoryObject:
        try:
            return self.resolver.resolve(subject, ObjectKind.USER)
        except ResolutionError:
            logger.debug("'%s' is not a user, retrying as a computer account", subject)
        try:
            return self.resolver.resolve(computer_account_name(subject), ObjectKind.COMPUTER)
        except ResolutionError as exc:
            raise ResolutionError(
                f"Unable to resolve identity '{subject}' as a user or computer.",
                subject,
                ObjectKind.COMPUTER,
            ) from exc

    def get_installed_deployment_targets(
        self, subject: str, candidate_containers: Iterable[str]
    ) -> List[str]:
        """Return the candidate containers the subject is already a member of."""

        principal = self._resolve_subject(subject)
        known = set()
        for group in self.directory.get_member_of(principal.distinguished_name):
            for value in (group.distinguished_name, group.name, group.sam_account_name):
                if value:
                    known.add(value.casefold())

        installed: List[str] = []
        for candidate in candidate_containers:
            if candidate in installed:
                continue
            if candidate and candidate.casefold() in known:
                installed.append(candidate)
        return installed


__all__ = ["MembershipManager", "ValidationError"]

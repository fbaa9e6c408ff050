"""Active Directory helper client based on ldap3."""
from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

import yaml
from ldap3 import ALL, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.protocol.formatters.formatters import format_sid
from ldap3.utils.conv import escape_filter_chars

from .config import LDAPConfig
from .models import DirectoryObject, ObjectKind

logger = logging.getLogger(__name__)

_KIND_FILTERS = {
    ObjectKind.USER: "(&(objectCategory=person)(objectClass=user))",
    ObjectKind.COMPUTER: "(objectClass=computer)",
    ObjectKind.GROUP: "(objectClass=group)",
}
_OBJECT_ATTRIBUTES = [
    "distinguishedName",
    "sAMAccountName",
    "name",
    "objectSid",
    "userPrincipalName",
    "objectClass",
]


class DirectoryError(RuntimeError):
    """Raised when Active Directory rejects or fails a request."""

    def __init__(self, message: str, result: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.result = result or {}


class MockDirectory:
    """Lightweight directory emulator used when ldap3 connectivity isn't available."""

    def __init__(self, data_file: Optional[Path]):
        self.data_file = data_file
        self._data: Dict[str, Any] = {"objects": []}
        self._load()

    def _load(self) -> None:
        if self.data_file and self.data_file.exists():
            with self.data_file.open("r", encoding="utf-8") as handle:
                self._data = yaml.safe_load(handle) or self._data
        self._data.setdefault("objects", [])

    def _save(self) -> None:
        if not self.data_file:
            return
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        with self.data_file.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(self._data, handle, sort_keys=False, indent=2)

    def _find(self, distinguished_name: str) -> Optional[Dict[str, Any]]:
        lowered = distinguished_name.lower()
        return next(
            (
                record
                for record in self._data["objects"]
                if str(record.get("distinguished_name", "")).lower() == lowered
            ),
            None,
        )

    def _group(self, group_dn: str) -> Dict[str, Any]:
        record = self._find(group_dn)
        if not record or record.get("kind") != ObjectKind.GROUP.value:
            raise DirectoryError(f"No such group: {group_dn}", {"description": "noSuchObject"})
        return record

    @staticmethod
    def _value(record: Dict[str, Any], attribute: str) -> Optional[str]:
        attrs = record.get("attributes", {})
        if attribute == "distinguishedName":
            return record.get("distinguished_name")
        if attribute == "cn":
            value = attrs.get("cn") or attrs.get("name")
        else:
            value = attrs.get(attribute)
        return None if value is None else str(value)

    @classmethod
    def _to_object(cls, record: Dict[str, Any]) -> DirectoryObject:
        return DirectoryObject(
            distinguished_name=str(record["distinguished_name"]),
            kind=ObjectKind.parse(record.get("kind")),
            sam_account_name=cls._value(record, "sAMAccountName"),
            name=cls._value(record, "name"),
            object_sid=cls._value(record, "objectSid"),
            user_principal_name=cls._value(record, "userPrincipalName"),
        )

    def search_objects(self, attribute: str, value: str, kind: ObjectKind) -> List[DirectoryObject]:
        lowered = value.lower()
        results: List[DirectoryObject] = []
        for record in self._data["objects"]:
            if record.get("kind") != kind.value:
                continue
            candidate = self._value(record, attribute)
            if candidate is not None and candidate.lower() == lowered:
                results.append(self._to_object(record))
        return results

    def add_group_member(self, group_dn: str, member_dn: str) -> None:
        group = self._group(group_dn)
        if not self._find(member_dn):
            raise DirectoryError(f"No such object: {member_dn}", {"description": "noSuchObject"})
        members = group.setdefault("members", [])
        if member_dn.lower() not in (str(member).lower() for member in members):
            members.append(member_dn)
            self._save()

    def remove_group_member(self, group_dn: str, member_dn: str) -> None:
        group = self._group(group_dn)
        lowered = member_dn.lower()
        members = group.setdefault("members", [])
        group["members"] = [member for member in members if str(member).lower() != lowered]
        self._save()

    def list_group_members(self, group_dn: str) -> List[DirectoryObject]:
        group = self._group(group_dn)
        members: List[DirectoryObject] = []
        for member_dn in group.get("members", []) or []:
            record = self._find(str(member_dn))
            if record:
                members.append(self._to_object(record))
        return members

    def get_member_of(self, distinguished_name: str) -> List[DirectoryObject]:
        lowered = distinguished_name.lower()
        groups: List[DirectoryObject] = []
        for record in self._data["objects"]:
            if record.get("kind") != ObjectKind.GROUP.value:
                continue
            members = [str(member).lower() for member in record.get("members", []) or []]
            if lowered in members:
                groups.append(self._to_object(record))
        return groups


class ADClient:
    """Wrapper around ldap3 that exposes the group-membership operations."""

    def __init__(self, config: LDAPConfig):
        self.config = config
        self._mock_directory: Optional[MockDirectory] = None
        self.connection: Optional[Connection] = None

        if config.server_uri.startswith("mock://"):
            self._mock_directory = MockDirectory(config.mock_data_file)
        else:
            with self._directory_call(f"connect to {config.server_uri}"):
                self.server = Server(config.server_uri, use_ssl=config.use_ssl, get_info=ALL)
                self.connection = Connection(
                    self.server,
                    user=config.user_dn,
                    password=config.password,
                    auto_bind=True,
                )

    def close(self) -> None:
        if self.connection and self.connection.bound:
            self.connection.unbind()

    def __enter__(self) -> "ADClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    # Lookup --------------------------------------------------------------
    def search_objects(self, attribute: str, value: str, kind: ObjectKind) -> List[DirectoryObject]:
        """Return every object of ``kind`` whose ``attribute`` equals ``value``."""

        if self._mock_directory:
            return self._mock_directory.search_objects(attribute, value, kind)

        assert self.connection is not None
        filter_str = f"(&{_KIND_FILTERS[kind]}({attribute}={escape_filter_chars(value)}))"
        with self._directory_call(f"search for {kind.value} '{value}'"):
            self.connection.search(
                search_base=self.config.base_dn,
                search_filter=filter_str,
                search_scope=SUBTREE,
                attributes=_OBJECT_ATTRIBUTES,
            )
        return [self._entry_to_object(entry, kind) for entry in self.connection.entries]

    def list_group_members(self, group_dn: str) -> List[DirectoryObject]:
        """Return the direct members of ``group_dn`` in directory order."""

        if self._mock_directory:
            return self._mock_directory.list_group_members(group_dn)

        assert self.connection is not None
        filter_str = f"(memberOf={escape_filter_chars(group_dn)})"
        members: List[DirectoryObject] = []
        with self._directory_call(f"list members of {group_dn}"):
            results = self.connection.extend.standard.paged_search(
                search_base=self.config.base_dn,
                search_filter=filter_str,
                search_scope=SUBTREE,
                attributes=_OBJECT_ATTRIBUTES,
                paged_size=500,
                generator=True,
            )
            for entry in results:
                if entry.get("type") != "searchResEntry":
                    continue
                members.append(self._paged_entry_to_object(entry))
        return members

    def get_member_of(self, distinguished_name: str) -> List[DirectoryObject]:
        """Return the groups that list ``distinguished_name`` as a member."""

        if self._mock_directory:
            return self._mock_directory.get_member_of(distinguished_name)

        assert self.connection is not None
        base_dn = self.config.group_search_base or self.config.base_dn
        search_filter = f"(&(objectClass=group)(member={escape_filter_chars(distinguished_name)}))"
        with self._directory_call(f"read group memberships of {distinguished_name}"):
            self.connection.search(
                search_base=base_dn,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=_OBJECT_ATTRIBUTES,
                paged_size=500,
            )
        return [
            self._entry_to_object(entry, ObjectKind.GROUP)
            for entry in self.connection.entries or []
        ]

    # Membership ----------------------------------------------------------
    def add_group_member(self, group_dn: str, member_dn: str) -> None:
        if self._mock_directory:
            self._mock_directory.add_group_member(group_dn, member_dn)
            return

        assert self.connection is not None
        with self._directory_call(f"add {member_dn} to {group_dn}"):
            added = self.connection.extend.microsoft.add_members_to_groups([member_dn], [group_dn])
        if not added:
            self._raise_for_result(f"Unable to add {member_dn} to {group_dn}")

    def remove_group_member(self, group_dn: str, member_dn: str) -> None:
        if self._mock_directory:
            self._mock_directory.remove_group_member(group_dn, member_dn)
            return

        assert self.connection is not None
        with self._directory_call(f"remove {member_dn} from {group_dn}"):
            removed = self.connection.extend.microsoft.remove_members_from_groups(
                [member_dn], [group_dn]
            )
        if not removed:
            self._raise_for_result(f"Unable to remove {member_dn} from {group_dn}")

    # Utilities -----------------------------------------------------------
    @contextlib.contextmanager
    def _directory_call(self, action: str) -> Iterator[None]:
        try:
            yield
        except LDAPException as exc:
            result = dict(self.connection.result or {}) if self.connection else {}
            raise DirectoryError(f"Active Directory failed to {action}: {exc}", result) from exc

    def _raise_for_result(self, prefix: str) -> None:
        result = dict(self.connection.result or {}) if self.connection else {}
        description = result.get("description", "Unknown error")
        message = result.get("message")
        raise DirectoryError(
            f"{prefix} ({description})." + (f" {message}" if message else ""),
            result,
        )

    @staticmethod
    def _kind_from_classes(classes: Iterable[Any], default: ObjectKind) -> ObjectKind:
        lowered = {str(value).lower() for value in classes or []}
        if "computer" in lowered:
            return ObjectKind.COMPUTER
        if "group" in lowered:
            return ObjectKind.GROUP
        if "user" in lowered:
            return ObjectKind.USER
        return default

    @staticmethod
    def _sid_to_str(value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray)):
            return format_sid(bytes(value))
        return str(value)

    @classmethod
    def _entry_to_object(cls, entry: Any, kind: ObjectKind) -> DirectoryObject:
        def _single_value(attr: str) -> Any:
            if attr not in entry:
                return None
            value = entry[attr].value
            if isinstance(value, (list, tuple)):
                return value[0] if value else None
            return value

        classes = entry["objectClass"].values if "objectClass" in entry else []
        name = _single_value("name")
        sam = _single_value("sAMAccountName")
        upn = _single_value("userPrincipalName")
        return DirectoryObject(
            distinguished_name=str(entry.entry_dn),
            kind=cls._kind_from_classes(classes, kind),
            sam_account_name=str(sam) if sam is not None else None,
            name=str(name) if name is not None else None,
            object_sid=cls._sid_to_str(_single_value("objectSid")),
            user_principal_name=str(upn) if upn is not None else None,
        )

    @classmethod
    def _paged_entry_to_object(cls, entry: Dict[str, Any]) -> DirectoryObject:
        attributes = entry.get("attributes", {})

        def _single_value(attr: str) -> Any:
            value = attributes.get(attr)
            if isinstance(value, (list, tuple)):
                return value[0] if value else None
            return value or None

        sid = _single_value("objectSid")
        if sid is None:
            raw = entry.get("raw_attributes", {}).get("objectSid")
            sid = raw[0] if raw else None
        name = _single_value("name")
        sam = _single_value("sAMAccountName")
        upn = _single_value("userPrincipalName")
        return DirectoryObject(
            distinguished_name=str(entry.get("dn")),
            kind=cls._kind_from_classes(attributes.get("objectClass", []), ObjectKind.USER),
            sam_account_name=str(sam) if sam is not None else None,
            name=str(name) if name is not None else None,
            object_sid=cls._sid_to_str(sid),
            user_principal_name=str(upn) if upn is not None else None,
        )


@contextlib.contextmanager
def ad_client(config: LDAPConfig) -> Iterator[ADClient]:
    client = ADClient(config)
    try:
        yield client
    finally:
        client.close()


__all__ = ["ADClient", "DirectoryError", "MockDirectory", "ad_client"]

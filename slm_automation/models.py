"""Data models shared by the directory, membership and template helpers."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


COMPUTER_ACCOUNT_SUFFIX = "$"
TIME_BASED = "TimeBased"


class ApplicationRecordError(ValueError):
    """Raised when an application record is malformed or incomplete."""


class ObjectKind(str, Enum):
    USER = "user"
    COMPUTER = "computer"
    GROUP = "group"

    @classmethod
    def parse(cls, value: Any) -> "ObjectKind":
        if isinstance(value, ObjectKind):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError as exc:
            raise ValueError(
                f"Unknown object type '{value}'. Expected one of: user, computer, group."
            ) from exc


class IdentifierFormat(str, Enum):
    SAM_ACCOUNT_NAME = "SamAccountName"
    USER_PRINCIPAL_NAME = "UserPrincipalName"
    DISTINGUISHED_NAME = "DistinguishedName"
    COMMON_NAME = "CommonName"
    DOWN_LEVEL_LOGON_NAME = "DownLevelLogonName"


class DeploymentType(str, Enum):
    USER = "User"
    COMPUTER = "Computer"

    @property
    def kind(self) -> ObjectKind:
        return ObjectKind.COMPUTER if self is DeploymentType.COMPUTER else ObjectKind.USER


class PublishLevel(str, Enum):
    INSTALL = "Install"
    UNINSTALL = "Uninstall"
    INSTALL_AND_UNINSTALL = "InstallAndUninstall"


def computer_account_name(name: str) -> str:
    """Return the sAMAccountName form of a computer name.

    AD stores computer accounts with a trailing ``$``. Only the removal path
    and the deployment-target fallback apply this; additions resolve the
    bare name.
    """

    return f"{name}{COMPUTER_ACCOUNT_SUFFIX}"


@dataclass(frozen=True)
class DirectoryObject:
    """A user, computer or group as returned by the directory."""

    distinguished_name: str
    kind: ObjectKind
    sam_account_name: Optional[str] = None
    name: Optional[str] = None
    object_sid: Optional[str] = None
    user_principal_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distinguishedName": self.distinguished_name,
            "kind": self.kind.value,
            "sAMAccountName": self.sam_account_name,
            "name": self.name,
            "objectSid": self.object_sid,
            "userPrincipalName": self.user_principal_name,
        }


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _to_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    raise ApplicationRecordError(f"Field '{key}' must be a boolean, got {value!r}.")


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


# Canonical field name -> accepted input keys.
_APPLICATION_FIELDS: Dict[str, tuple[str, ...]] = {
    "name": ("Name", "name"),
    "computer_group": ("ComputerGroup", "computer_group"),
    "user_group": ("UserGroup", "user_group"),
    "publish_level": ("PublishLevel", "publish_level"),
    "organizational_approval": ("OrganizationalApproval", "organizational_approval"),
    "application_owner_approval": ("ApplicationOwnerApproval", "application_owner_approval"),
    "uninstall_option": ("UninstallOption", "uninstall_option"),
    "subscription_extensions_days": (
        "SubscriptionExtensionsDays",
        "subscription_extensions_days",
    ),
    "image_file_name": ("ImageFileName", "image_file_name"),
}
_REQUIRED_APPLICATION_FIELDS = (
    "publish_level",
    "organizational_approval",
    "application_owner_approval",
    "uninstall_option",
)


@dataclass(frozen=True)
class ApplicationRecord:
    """Application metadata published by the asset system. Read-only."""

    publish_level: PublishLevel
    organizational_approval: bool
    application_owner_approval: bool
    uninstall_option: str
    name: Optional[str] = None
    computer_group: Optional[str] = None
    user_group: Optional[str] = None
    subscription_extensions_days: Optional[str] = None
    image_file_name: Optional[str] = None

    @property
    def is_time_based(self) -> bool:
        return self.uninstall_option == TIME_BASED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApplicationRecord":
        if not isinstance(data, dict):
            raise ApplicationRecordError("Application details must be a JSON object.")

        lookup = {alias: canonical for canonical, aliases in _APPLICATION_FIELDS.items() for alias in aliases}
        unknown = sorted(key for key in data if key not in lookup)
        if unknown:
            raise ApplicationRecordError(
                f"Unknown application field(s): {', '.join(unknown)}."
            )

        values: Dict[str, Any] = {}
        for key, value in data.items():
            values[lookup[key]] = value

        missing = [
            _APPLICATION_FIELDS[name][0]
            for name in _REQUIRED_APPLICATION_FIELDS
            if values.get(name) is None
        ]
        if missing:
            raise ApplicationRecordError(
                f"Missing required application field(s): {', '.join(missing)}."
            )

        try:
            publish_level = PublishLevel(str(values["publish_level"]).strip())
        except ValueError as exc:
            raise ApplicationRecordError(
                f"Unknown publish level '{values['publish_level']}'."
            ) from exc

        days = values.get("subscription_extensions_days")
        return cls(
            publish_level=publish_level,
            organizational_approval=_to_bool(
                values["organizational_approval"], "OrganizationalApproval"
            ),
            application_owner_approval=_to_bool(
                values["application_owner_approval"], "ApplicationOwnerApproval"
            ),
            uninstall_option=str(values["uninstall_option"]).strip(),
            name=_optional_str(values.get("name")),
            computer_group=_optional_str(values.get("computer_group")),
            user_group=_optional_str(values.get("user_group")),
            subscription_extensions_days=None if days is None else str(days).strip(),
            image_file_name=_optional_str(values.get("image_file_name")),
        )

    @classmethod
    def from_json(cls, raw: str) -> "ApplicationRecord":
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ApplicationRecordError(f"Application details are not valid JSON: {exc}") from exc
        return cls.from_dict(payload)


@dataclass(frozen=True)
class WorkflowActivity:
    """A workflow step, addressed by workflow name and step priority."""

    workflow: str
    priority: int
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"workflow": self.workflow, "priority": self.priority, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowActivity":
        return cls(
            workflow=str(data.get("workflow") or data.get("Workflow") or ""),
            priority=int(data.get("priority", data.get("Priority", 0))),
            name=_optional_str(data.get("name") or data.get("Name")),
        )


@dataclass
class ServiceTemplateAdjustment:
    """Instructions for the service import: workflows to unlink, steps to disable."""

    service_name: Optional[str] = None
    workflows_to_unlink: List[str] = field(default_factory=list)
    activities_to_disable: List[WorkflowActivity] = field(default_factory=list)
    user_uninstall_approval: Optional[bool] = None
    image: Optional[str] = None

    def copy(self) -> "ServiceTemplateAdjustment":
        return ServiceTemplateAdjustment(
            service_name=self.service_name,
            workflows_to_unlink=list(self.workflows_to_unlink),
            activities_to_disable=list(self.activities_to_disable),
            user_uninstall_approval=self.user_uninstall_approval,
            image=self.image,
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ServiceTemplateAdjustment":
        data = data or {}
        approval = data.get("user_uninstall_approval", data.get("UserUninstallApproval"))
        return cls(
            service_name=_optional_str(data.get("service_name") or data.get("Name")),
            workflows_to_unlink=[
                str(value)
                for value in data.get("workflows_to_unlink", data.get("WorkflowsToUnlink")) or []
            ],
            activities_to_disable=[
                WorkflowActivity.from_dict(entry)
                for entry in data.get("activities_to_disable", data.get("ActivitiesToDisable")) or []
            ],
            user_uninstall_approval=(
                None if approval is None else _to_bool(approval, "UserUninstallApproval")
            ),
            image=_optional_str(data.get("image") or data.get("Image")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "workflows_to_unlink": list(self.workflows_to_unlink),
            "activities_to_disable": [activity.to_dict() for activity in self.activities_to_disable],
            "user_uninstall_approval": self.user_uninstall_approval,
            "image": self.image,
        }


@dataclass(frozen=True)
class MembershipVerification:
    verified: bool
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"verified": self.verified, "reason": self.reason}


@dataclass(frozen=True)
class ProvisioningValidation:
    validated: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"validated": self.validated, "message": self.message}


@dataclass(frozen=True)
class MembershipChange:
    """Outcome of a successful add or remove."""

    action: str
    kind: ObjectKind
    member_dn: str
    container_dn: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "kind": self.kind.value,
            "member": self.member_dn,
            "container": self.container_dn,
        }


__all__ = [
    "ApplicationRecord",
    "ApplicationRecordError",
    "COMPUTER_ACCOUNT_SUFFIX",
    "DeploymentType",
    "DirectoryObject",
    "IdentifierFormat",
    "MembershipChange",
    "MembershipVerification",
    "ObjectKind",
    "ProvisioningValidation",
    "PublishLevel",
    "ServiceTemplateAdjustment",
    "TIME_BASED",
    "WorkflowActivity",
    "computer_account_name",
]

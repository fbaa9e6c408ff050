"""Shared fixtures backed by the YAML mock directory."""
from pathlib import Path

import pytest
import yaml

from slm_automation.ad_client import ADClient
from slm_automation.config import LDAPConfig
from slm_automation.membership import MembershipManager

JANE_DN = "CN=Jane Doe,OU=Users,DC=example,DC=com"
JANE_SID = "S-1-5-21-1004336348-1177238915-682003330-1105"
JOHN_DN = "CN=John Smith,OU=Users,DC=example,DC=com"
PC01_DN = "CN=PC01,OU=Workstations,DC=example,DC=com"
PC01_SID = "S-1-5-21-1004336348-1177238915-682003330-2201"
VISIO_DN = "CN=SLM-Visio,OU=Software Deployment,DC=example,DC=com"
PROJECT_DN = "CN=SLM-Project,OU=Software Deployment,DC=example,DC=com"
ACROBAT_DN = "CN=SLM-Acrobat,OU=Software Deployment,DC=example,DC=com"


def directory_data():
    return {
        "objects": [
            {
                "distinguished_name": JANE_DN,
                "kind": "user",
                "attributes": {
                    "sAMAccountName": "jdoe",
                    "name": "Jane Doe",
                    "userPrincipalName": "jdoe@example.com",
                    "objectSid": JANE_SID,
                },
            },
            {
                "distinguished_name": JOHN_DN,
                "kind": "user",
                "attributes": {
                    "sAMAccountName": "jsmith",
                    "name": "John Smith",
                    "userPrincipalName": "john.smith@example.com",
                    "objectSid": "S-1-5-21-1004336348-1177238915-682003330-1106",
                },
            },
            {
                "distinguished_name": "CN=John Smith,OU=Contractors,DC=example,DC=com",
                "kind": "user",
                "attributes": {
                    "sAMAccountName": "jsmith2",
                    "name": "John Smith",
                    "userPrincipalName": "jsmith2@example.com",
                    "objectSid": "S-1-5-21-1004336348-1177238915-682003330-1107",
                },
            },
            {
                "distinguished_name": PC01_DN,
                "kind": "computer",
                "attributes": {"sAMAccountName": "PC01$", "name": "PC01", "objectSid": PC01_SID},
            },
            {
                "distinguished_name": VISIO_DN,
                "kind": "group",
                "attributes": {"sAMAccountName": "SLM-Visio", "name": "SLM-Visio"},
                "members": [JANE_DN],
            },
            {
                "distinguished_name": PROJECT_DN,
                "kind": "group",
                "attributes": {"sAMAccountName": "SLM-Project", "name": "SLM-Project"},
                "members": [JANE_DN, PC01_DN],
            },
            {
                "distinguished_name": ACROBAT_DN,
                "kind": "group",
                "attributes": {"sAMAccountName": "SLM-Acrobat", "name": "SLM-Acrobat"},
                "members": [],
            },
        ]
    }


@pytest.fixture
def directory_file(tmp_path: Path) -> Path:
    path = tmp_path / "directory.yaml"
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(directory_data(), handle, sort_keys=False)
    return path


@pytest.fixture
def ldap_config(directory_file: Path) -> LDAPConfig:
    return LDAPConfig(
        server_uri="mock://",
        user_dn="",
        password="",
        base_dn="DC=example,DC=com",
        mock_data_file=directory_file,
    )


@pytest.fixture
def client(ldap_config: LDAPConfig):
    with ADClient(ldap_config) as ad:
        yield ad


@pytest.fixture
def manager(client) -> MembershipManager:
    return MembershipManager(client)


@pytest.fixture
def settings_file(tmp_path: Path, directory_file: Path) -> Path:
    path = tmp_path / "settings.yaml"
    settings = {
        "ldap": {
            "server_uri": "mock://",
            "base_dn": "DC=example,DC=com",
            "mock_data_file": str(directory_file),
        },
        "asset_service": {
            "base_uri": "https://slm.example.com",
            "username": "svc-slm",
            "password": "secret",
            "image_root_folder": str(tmp_path / "images"),
        },
        "logging": {"level": "DEBUG"},
    }
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(settings, handle, sort_keys=False)
    return path


@pytest.fixture
def application_dict():
    return {
        "Name": "Microsoft Visio",
        "ComputerGroup": "SLM-Visio",
        "UserGroup": None,
        "PublishLevel": "InstallAndUninstall",
        "OrganizationalApproval": True,
        "ApplicationOwnerApproval": True,
        "UninstallOption": "TimeBased",
        "SubscriptionExtensionsDays": "30",
        "ImageFileName": "visio.png",
    }

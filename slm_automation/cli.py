"""Command line interface for the SLM deployment helpers."""
from __future__ import annotations

import contextlib
import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer

from .ad_client import ADClient, DirectoryError
from .config import AppConfig, ConfigurationError, configure_logging, load_config
from .identity import IdentityResolver, ResolutionError
from .images import fetch_image
from .membership import MembershipManager, ValidationError
from .models import ApplicationRecord, ApplicationRecordError, ObjectKind, ServiceTemplateAdjustment
from .templates import (
    apply_template_activity_disables,
    apply_template_workflow_unlinks,
    customize_service_template,
    derive_deployment_type,
)
from .verification import verify_membership

app = typer.Typer(help="Manage SLM deployment groups in Active Directory.")

_CONFIG_OPTION_HELP = "Path to a specific settings file (overrides default)."


class ResolveAs(str, Enum):
    owner = "owner"
    approver = "approver"
    container = "container"
    user = "user"
    computer = "computer"


class TemplateStep(str, Enum):
    unlinks = "unlinks"
    disables = "disables"
    all = "all"


def _load_configuration(config_path: Optional[Path]) -> AppConfig:
    try:
        config = load_config(config_path)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)
    configure_logging(config.logging)
    return config


@contextlib.contextmanager
def _reporting_errors() -> Iterator[None]:
    try:
        yield
    except (ValidationError, ResolutionError, ApplicationRecordError, DirectoryError) as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)


@contextlib.contextmanager
def _membership(config: AppConfig) -> Iterator[MembershipManager]:
    with ADClient(config.ldap) as client:
        yield MembershipManager(client)


def _read_json_file(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Unable to read JSON from '{path}': {exc}")


def _read_application(path: Path) -> ApplicationRecord:
    with _reporting_errors():
        return ApplicationRecord.from_dict(_read_json_file(path))


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command("add-member")
def add_member(
    container: str = typer.Argument(..., help="Deployment group name or DN."),
    kind: Optional[str] = typer.Option(None, "--kind", help="user or computer."),
    user: Optional[str] = typer.Option(None, "--user", help="User to add."),
    computer: Optional[str] = typer.Option(None, "--computer", help="Computer to add."),
    application_details: Optional[str] = typer.Option(
        None, "--application-details", help="Application JSON used to derive the kind."
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Add a user or computer to a deployment group."""

    config = _load_configuration(config_path)
    with _reporting_errors(), _membership(config) as manager:
        change = manager.add_member(
            container,
            kind=kind,
            user=user,
            computer=computer,
            application_details_json=application_details,
        )
    _echo_json(change.to_dict())


@app.command("remove-member")
def remove_member(
    container: str = typer.Argument(..., help="Deployment group name or DN."),
    kind: Optional[str] = typer.Option(None, "--kind", help="user or computer."),
    user: Optional[str] = typer.Option(None, "--user", help="User to remove."),
    computer: Optional[str] = typer.Option(None, "--computer", help="Computer to remove."),
    application_details: Optional[str] = typer.Option(
        None, "--application-details", help="Application JSON used to derive the kind."
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Remove a user or computer from a deployment group."""

    config = _load_configuration(config_path)
    with _reporting_errors(), _membership(config) as manager:
        change = manager.remove_member(
            container,
            kind=kind,
            user=user,
            computer=computer,
            application_details_json=application_details,
        )
    _echo_json(change.to_dict())


@app.command("list-members")
def list_members(
    container: str = typer.Argument(..., help="Deployment group name or DN."),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Print the account names of a deployment group's members."""

    config = _load_configuration(config_path)
    with _reporting_errors(), _membership(config) as manager:
        members = manager.list_members(container)
    _echo_json(members)


@app.command("list-member-sids")
def list_member_sids(
    container: str = typer.Argument(..., help="Deployment group name or DN."),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Print name and security identifier for each member."""

    config = _load_configuration(config_path)
    with _reporting_errors(), _membership(config) as manager:
        members = manager.list_members_with_security_id(container)
    _echo_json([{"name": name, "sid": sid} for name, sid in members])


@app.command("installed-targets")
def installed_targets(
    subject: str = typer.Argument(..., help="User or computer to check."),
    containers: List[str] = typer.Argument(..., help="Candidate deployment groups."),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Print the candidate groups the subject is already a member of."""

    config = _load_configuration(config_path)
    with _reporting_errors(), _membership(config) as manager:
        installed = manager.get_installed_deployment_targets(subject, containers)
    _echo_json(installed)


@app.command("resolve")
def resolve(
    value: str = typer.Argument(..., help="Username, UPN, DN, common name or DOMAIN\\name."),
    resolve_as: ResolveAs = typer.Option(ResolveAs.user, "--as", help="What to resolve."),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Resolve an identifier to an account name or distinguished name."""

    config = _load_configuration(config_path)
    with _reporting_errors(), ADClient(config.ldap) as client:
        resolver = IdentityResolver(client)
        lookups = {
            ResolveAs.owner: resolver.resolve_owner_account_name,
            ResolveAs.approver: resolver.resolve_approver_dn,
            ResolveAs.container: resolver.resolve_container_dn,
            ResolveAs.user: resolver.resolve_user_dn,
            ResolveAs.computer: resolver.resolve_computer_dn,
        }
        result = lookups[resolve_as](value)
    typer.echo(result)


@app.command("validate")
def validate(
    item: str = typer.Argument(..., help="Identifier to validate."),
    item_type: str = typer.Option("user", "--type", help="user, computer or group."),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Check that an identifier resolves to exactly one directory object."""

    try:
        kind = ObjectKind.parse(item_type)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    config = _load_configuration(config_path)
    with _reporting_errors(), ADClient(config.ldap) as client:
        validation = IdentityResolver(client).validate_provisioning_item(item, kind)
    _echo_json(validation.to_dict())
    if not validation.validated:
        raise typer.Exit(code=1)


@app.command("verify")
def verify(
    object_identifier: str = typer.Argument(..., help="Member name or SID."),
    container: str = typer.Argument(..., help="Deployment group name or DN."),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Verify that an object is a member of a deployment group."""

    config = _load_configuration(config_path)
    with _reporting_errors(), _membership(config) as manager:
        verification = verify_membership(object_identifier, container, manager)
    _echo_json(verification.to_dict())


@app.command("deployment-type")
def deployment_type(
    application: Path = typer.Argument(..., help="Application record JSON file."),
) -> None:
    """Print User or Computer for an application record."""

    record = _read_application(application)
    with _reporting_errors():
        typer.echo(derive_deployment_type(record).value)


@app.command("customize-template")
def customize_template(
    application: Path = typer.Argument(..., help="Application record JSON file."),
    service: Optional[Path] = typer.Option(
        None, "--service", help="Service import JSON file to extend."
    ),
    step: TemplateStep = typer.Option(TemplateStep.all, "--step", help="Which rules to apply."),
) -> None:
    """Compute the workflows to unlink and activities to disable for a new service."""

    record = _read_application(application)
    with _reporting_errors():
        adjustment = ServiceTemplateAdjustment.from_dict(
            _read_json_file(service) if service else None
        )
    if step is TemplateStep.unlinks:
        adjustment = apply_template_workflow_unlinks(record, adjustment)
    elif step is TemplateStep.disables:
        adjustment = apply_template_activity_disables(record, adjustment)
    else:
        adjustment = customize_service_template(record, adjustment)
    _echo_json(adjustment.to_dict())


@app.command("fetch-image")
def fetch_image_command(
    application: Path = typer.Argument(..., help="Application record JSON file."),
    base_uri: Optional[str] = typer.Option(None, "--base-uri", help="Override the SLM base URI."),
    root_folder: Optional[Path] = typer.Option(
        None, "--root-folder", help="Override the local image root folder."
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Download the application's image and print the catalog reference."""

    config = _load_configuration(config_path)
    record = _read_application(application)
    uri = base_uri or config.asset_service.base_uri
    if not uri:
        typer.echo("Error: No asset service base URI configured.")
        raise typer.Exit(code=1)
    reference = fetch_image(
        record,
        uri,
        config.asset_service.credentials,
        root_folder or config.asset_service.image_root_folder,
    )
    typer.echo(reference)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(5000, help="Port to listen on."),
    config_path: Optional[Path] = typer.Option(None, "--config", help=_CONFIG_OPTION_HELP),
) -> None:
    """Run the JSON web service."""

    from .web import create_app

    create_app(config_path).run(host=host, port=port)


def run():
    app()


if __name__ == "__main__":
    run()

"""Flask-powered JSON service for the SLM deployment helpers."""
from __future__ import annotations

import contextlib
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from flask import Flask, g, has_request_context, jsonify, request

from .ad_client import ADClient, DirectoryError
from .config import (
    AppConfig,
    ConfigurationError,
    configure_logging,
    ensure_default_config,
    load_config,
)
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


def create_app(config_path: Optional[Path | str] = None) -> Flask:
    """Create and configure the Flask application."""

    resolved_config_path = Path(config_path) if config_path else None
    ensure_default_config(resolved_config_path)

    app = Flask(__name__)
    app.config["CONFIG_PATH"] = resolved_config_path
    app.json.sort_keys = False
    configure_logging(load_config(resolved_config_path).logging)

    register_error_handlers(app)
    register_routes(app)
    return app


def register_error_handlers(app: Flask) -> None:
    def _error(exc: Exception, status: int) -> Any:
        app.logger.warning("%s %s failed: %s", request.method, request.path, exc)
        return jsonify({"error": str(exc)}), status

    @app.errorhandler(ValidationError)
    def _validation_error(exc: ValidationError) -> Any:
        return _error(exc, 400)

    @app.errorhandler(ApplicationRecordError)
    def _application_error(exc: ApplicationRecordError) -> Any:
        return _error(exc, 400)

    @app.errorhandler(ResolutionError)
    def _resolution_error(exc: ResolutionError) -> Any:
        return _error(exc, 404)

    @app.errorhandler(DirectoryError)
    def _directory_error(exc: DirectoryError) -> Any:
        app.logger.error("Active Directory request failed: %s", exc)
        return jsonify({"error": str(exc)}), 502

    @app.errorhandler(ConfigurationError)
    def _configuration_error(exc: ConfigurationError) -> Any:
        app.logger.error("Settings could not be loaded: %s", exc)
        return jsonify({"error": str(exc)}), 500

    # Malformed request values that no narrower handler claims.
    @app.errorhandler(ValueError)
    def _value_error(exc: ValueError) -> Any:
        return _error(exc, 400)


def register_routes(app: Flask) -> None:
    """Attach all API routes to the provided Flask app."""

    @app.post("/api/members/add")
    def api_add_member() -> Any:
        payload = _json_body()
        with _membership(app) as manager:
            change = manager.add_member(
                _required(payload, "container"),
                kind=payload.get("kind"),
                user=payload.get("user"),
                computer=payload.get("computer"),
                application_details_json=payload.get("applicationDetails"),
            )
        return jsonify(change.to_dict())

    @app.post("/api/members/remove")
    def api_remove_member() -> Any:
        payload = _json_body()
        with _membership(app) as manager:
            change = manager.remove_member(
                _required(payload, "container"),
                kind=payload.get("kind"),
                user=payload.get("user"),
                computer=payload.get("computer"),
                application_details_json=payload.get("applicationDetails"),
            )
        return jsonify(change.to_dict())

    @app.get("/api/members")
    def api_list_members() -> Any:
        container = _required(request.args, "container")
        with _membership(app) as manager:
            members = manager.list_members(container)
        return jsonify({"items": members})

    @app.get("/api/members/sids")
    def api_list_member_sids() -> Any:
        container = _required(request.args, "container")
        with _membership(app) as manager:
            members = manager.list_members_with_security_id(container)
        return jsonify({"items": [{"name": name, "sid": sid} for name, sid in members]})

    @app.post("/api/deployment-targets")
    def api_installed_targets() -> Any:
        payload = _json_body()
        containers = payload.get("containers") or []
        if not isinstance(containers, list):
            raise ValidationError("'containers' must be a list.")
        with _membership(app) as manager:
            installed = manager.get_installed_deployment_targets(
                _required(payload, "subject"), [str(value) for value in containers]
            )
        return jsonify({"items": installed})

    @app.get("/api/resolve/<lookup>")
    def api_resolve(lookup: str) -> Any:
        value = _required(request.args, "q")
        with ADClient(_load_app_config(app).ldap) as client:
            resolver = IdentityResolver(client)
            lookups = {
                "owner": resolver.resolve_owner_account_name,
                "approver": resolver.resolve_approver_dn,
                "container": resolver.resolve_container_dn,
                "user": resolver.resolve_user_dn,
                "computer": resolver.resolve_computer_dn,
            }
            if lookup not in lookups:
                return jsonify({"error": f"Unknown lookup '{lookup}'."}), 404
            result = lookups[lookup](value)
        return jsonify({"value": value, "result": result})

    @app.post("/api/validate")
    def api_validate() -> Any:
        payload = _json_body()
        try:
            kind = ObjectKind.parse(payload.get("type"))
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        with ADClient(_load_app_config(app).ldap) as client:
            validation = IdentityResolver(client).validate_provisioning_item(
                str(payload.get("item") or ""), kind
            )
        return jsonify(validation.to_dict())

    @app.post("/api/verify")
    def api_verify() -> Any:
        payload = _json_body()
        with _membership(app) as manager:
            verification = verify_membership(
                _required(payload, "objectIdentifier"), _required(payload, "container"), manager
            )
        return jsonify(verification.to_dict())

    @app.post("/api/templates/deployment-type")
    def api_deployment_type() -> Any:
        record = ApplicationRecord.from_dict(_json_body().get("application"))
        return jsonify({"deploymentType": derive_deployment_type(record).value})

    @app.post("/api/templates/<step>")
    def api_customize_template(step: str) -> Any:
        rules = {
            "unlinks": apply_template_workflow_unlinks,
            "disables": apply_template_activity_disables,
            "customize": customize_service_template,
        }
        if step not in rules:
            return jsonify({"error": f"Unknown template step '{step}'."}), 404
        payload = _json_body()
        record = ApplicationRecord.from_dict(payload.get("application"))
        adjustment = ServiceTemplateAdjustment.from_dict(payload.get("service"))
        return jsonify(rules[step](record, adjustment).to_dict())

    @app.post("/api/images")
    def api_fetch_image() -> Any:
        config = _load_app_config(app)
        payload = _json_body()
        record = ApplicationRecord.from_dict(payload.get("application"))
        # The configured credentials only ever go to the configured SLM host.
        base_uri = config.asset_service.base_uri
        if not base_uri:
            raise ValidationError("No asset service base URI configured.")
        reference = fetch_image(
            record,
            base_uri,
            config.asset_service.credentials,
            config.asset_service.image_root_folder,
        )
        return jsonify({"image": reference})


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def _required(source: Any, key: str) -> str:
    value = str(source.get(key) or "").strip()
    if not value:
        raise ValidationError(f"'{key}' is required.")
    return value


@contextlib.contextmanager
def _membership(app: Flask) -> Iterator[MembershipManager]:
    with ADClient(_load_app_config(app).ldap) as client:
        yield MembershipManager(client)


def _load_app_config(app: Flask) -> AppConfig:
    if has_request_context():
        cached = getattr(g, "_app_config", None)
        if cached is None:
            cached = load_config(app.config.get("CONFIG_PATH"))
            g._app_config = cached
        return cached
    return load_config(app.config.get("CONFIG_PATH"))


__all__ = ["create_app", "register_routes"]

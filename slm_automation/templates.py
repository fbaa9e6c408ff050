"""Template customization rules for services provisioned from the template service.

Each rule is checked on its own and appends to the adjustment; rules never
short-circuit each other and results are not deduplicated. The import
process that consumes the adjustment applies every entry it is given.
"""
from __future__ import annotations

from .models import (
    ApplicationRecord,
    ApplicationRecordError,
    DeploymentType,
    PublishLevel,
    ServiceTemplateAdjustment,
    WorkflowActivity,
)

INSTALL_WORKFLOW = "Install software"
UNINSTALL_WORKFLOW = "Uninstall software"
EXTEND_SUBSCRIPTION_WORKFLOW = "Extend Subscription"

WAIT_FOR_ORGANIZATIONAL_APPROVAL = WorkflowActivity(
    INSTALL_WORKFLOW, 1, "Wait for organizational approval"
)
ORGANIZATIONAL_APPROVAL = WorkflowActivity(INSTALL_WORKFLOW, 2, "Organizational approval")
WAIT_FOR_OWNER_APPROVAL = WorkflowActivity(
    INSTALL_WORKFLOW, 3, "Wait for application owner approval"
)
OWNER_APPROVAL = WorkflowActivity(INSTALL_WORKFLOW, 4, "Application owner approval")
SUBSCRIPTION_ACTIVITY = WorkflowActivity(INSTALL_WORKFLOW, 7, "Set subscription end date")
UNINSTALL_TASK = WorkflowActivity(UNINSTALL_WORKFLOW, 1, "Uninstall task")
UNINSTALL_APPROVAL_TASK = WorkflowActivity(UNINSTALL_WORKFLOW, 2, "Uninstall approval task")


def derive_deployment_type(record: ApplicationRecord) -> DeploymentType:
    """Computer group wins over user group; one of them must be set."""

    if record.computer_group:
        return DeploymentType.COMPUTER
    if record.user_group:
        return DeploymentType.USER
    raise ApplicationRecordError("neither ComputerGroup nor UserGroup set")


def _keeps_extend_subscription(record: ApplicationRecord) -> bool:
    days = (record.subscription_extensions_days or "").strip()
    return record.is_time_based and days not in ("", "0")


def apply_template_workflow_unlinks(
    record: ApplicationRecord, adjustment: ServiceTemplateAdjustment
) -> ServiceTemplateAdjustment:
    result = adjustment.copy()
    unlink = result.workflows_to_unlink

    if record.publish_level is PublishLevel.UNINSTALL:
        unlink.append(INSTALL_WORKFLOW)
    if record.publish_level is PublishLevel.INSTALL:
        unlink.append(UNINSTALL_WORKFLOW)
    if not _keeps_extend_subscription(record):
        unlink.append(EXTEND_SUBSCRIPTION_WORKFLOW)
    return result


def apply_template_activity_disables(
    record: ApplicationRecord, adjustment: ServiceTemplateAdjustment
) -> ServiceTemplateAdjustment:
    result = adjustment.copy()
    disable = result.activities_to_disable

    if not record.is_time_based:
        disable.append(SUBSCRIPTION_ACTIVITY)
    if not record.organizational_approval:
        disable.extend([WAIT_FOR_ORGANIZATIONAL_APPROVAL, ORGANIZATIONAL_APPROVAL])
    if not record.application_owner_approval:
        disable.extend([WAIT_FOR_OWNER_APPROVAL, OWNER_APPROVAL])
    if result.user_uninstall_approval is False:
        disable.extend([UNINSTALL_TASK, UNINSTALL_APPROVAL_TASK])
    return result


def customize_service_template(
    record: ApplicationRecord, adjustment: ServiceTemplateAdjustment
) -> ServiceTemplateAdjustment:
    """Apply the workflow unlinks and then the activity disables."""

    return apply_template_activity_disables(
        record, apply_template_workflow_unlinks(record, adjustment)
    )


__all__ = [
    "EXTEND_SUBSCRIPTION_WORKFLOW",
    "INSTALL_WORKFLOW",
    "UNINSTALL_WORKFLOW",
    "apply_template_activity_disables",
    "apply_template_workflow_unlinks",
    "customize_service_template",
    "derive_deployment_type",
]

"""Tests for the template customization rules."""
import pytest

from slm_automation.models import (
    ApplicationRecord,
    ApplicationRecordError,
    DeploymentType,
    ServiceTemplateAdjustment,
    WorkflowActivity,
)
from slm_automation.templates import (
    EXTEND_SUBSCRIPTION_WORKFLOW,
    INSTALL_WORKFLOW,
    UNINSTALL_WORKFLOW,
    apply_template_activity_disables,
    apply_template_workflow_unlinks,
    customize_service_template,
    derive_deployment_type,
)


def make_record(**overrides):
    fields = {
        "publish_level": "InstallAndUninstall",
        "organizational_approval": True,
        "application_owner_approval": True,
        "uninstall_option": "TimeBased",
        "subscription_extensions_days": "5",
    }
    fields.update(overrides)
    return ApplicationRecord.from_dict(fields)


def disabled_keys(adjustment):
    return [(activity.workflow, activity.priority) for activity in adjustment.activities_to_disable]


class TestWorkflowUnlinks:
    def test_uninstall_publish_level_unlinks_install(self):
        result = apply_template_workflow_unlinks(
            make_record(publish_level="Uninstall"), ServiceTemplateAdjustment()
        )

        assert INSTALL_WORKFLOW in result.workflows_to_unlink
        assert UNINSTALL_WORKFLOW not in result.workflows_to_unlink

    def test_install_publish_level_unlinks_uninstall(self):
        result = apply_template_workflow_unlinks(
            make_record(publish_level="Install"), ServiceTemplateAdjustment()
        )

        assert UNINSTALL_WORKFLOW in result.workflows_to_unlink
        assert INSTALL_WORKFLOW not in result.workflows_to_unlink

    def test_time_based_with_extension_days_keeps_extend_subscription(self):
        result = apply_template_workflow_unlinks(
            make_record(subscription_extensions_days="5"), ServiceTemplateAdjustment()
        )

        assert result.workflows_to_unlink == []

    @pytest.mark.parametrize("days", ["0", "", None])
    def test_time_based_without_extension_days_unlinks_extend_subscription(self, days):
        result = apply_template_workflow_unlinks(
            make_record(subscription_extensions_days=days), ServiceTemplateAdjustment()
        )

        assert result.workflows_to_unlink == [EXTEND_SUBSCRIPTION_WORKFLOW]

    def test_not_time_based_unlinks_extend_subscription(self):
        result = apply_template_workflow_unlinks(
            make_record(uninstall_option="Manual"), ServiceTemplateAdjustment()
        )

        assert result.workflows_to_unlink == [EXTEND_SUBSCRIPTION_WORKFLOW]

    def test_rules_accumulate_onto_existing_list(self):
        initial = ServiceTemplateAdjustment(workflows_to_unlink=[EXTEND_SUBSCRIPTION_WORKFLOW])

        result = apply_template_workflow_unlinks(
            make_record(publish_level="Install", uninstall_option="Manual"), initial
        )

        assert result.workflows_to_unlink == [
            EXTEND_SUBSCRIPTION_WORKFLOW,
            UNINSTALL_WORKFLOW,
            EXTEND_SUBSCRIPTION_WORKFLOW,
        ]
        assert initial.workflows_to_unlink == [EXTEND_SUBSCRIPTION_WORKFLOW]


class TestActivityDisables:
    def test_organizational_approval_off_disables_steps_one_and_two(self):
        result = apply_template_activity_disables(
            make_record(organizational_approval=False, application_owner_approval=True),
            ServiceTemplateAdjustment(),
        )

        assert disabled_keys(result) == [(INSTALL_WORKFLOW, 1), (INSTALL_WORKFLOW, 2)]

    def test_owner_approval_off_disables_steps_three_and_four(self):
        result = apply_template_activity_disables(
            make_record(application_owner_approval=False), ServiceTemplateAdjustment()
        )

        assert disabled_keys(result) == [(INSTALL_WORKFLOW, 3), (INSTALL_WORKFLOW, 4)]

    def test_not_time_based_disables_subscription_step(self):
        result = apply_template_activity_disables(
            make_record(uninstall_option="Manual"), ServiceTemplateAdjustment()
        )

        assert disabled_keys(result) == [(INSTALL_WORKFLOW, 7)]

    def test_user_uninstall_approval_false_disables_uninstall_steps(self):
        result = apply_template_activity_disables(
            make_record(), ServiceTemplateAdjustment(user_uninstall_approval=False)
        )

        assert disabled_keys(result) == [(UNINSTALL_WORKFLOW, 1), (UNINSTALL_WORKFLOW, 2)]

    def test_user_uninstall_approval_absent_keeps_uninstall_steps(self):
        result = apply_template_activity_disables(make_record(), ServiceTemplateAdjustment())

        assert disabled_keys(result) == []

    def test_duplicates_are_kept(self):
        initial = ServiceTemplateAdjustment(
            activities_to_disable=[WorkflowActivity(INSTALL_WORKFLOW, 1)]
        )

        result = apply_template_activity_disables(
            make_record(organizational_approval=False), initial
        )

        assert disabled_keys(result) == [
            (INSTALL_WORKFLOW, 1),
            (INSTALL_WORKFLOW, 1),
            (INSTALL_WORKFLOW, 2),
        ]


def test_customize_service_template_applies_both_rule_sets():
    record = make_record(
        publish_level="Uninstall",
        uninstall_option="Manual",
        organizational_approval=False,
        application_owner_approval=False,
    )

    result = customize_service_template(record, ServiceTemplateAdjustment(service_name="Visio"))

    assert result.service_name == "Visio"
    assert result.workflows_to_unlink == [INSTALL_WORKFLOW, EXTEND_SUBSCRIPTION_WORKFLOW]
    assert disabled_keys(result) == [
        (INSTALL_WORKFLOW, 7),
        (INSTALL_WORKFLOW, 1),
        (INSTALL_WORKFLOW, 2),
        (INSTALL_WORKFLOW, 3),
        (INSTALL_WORKFLOW, 4),
    ]


class TestDeploymentType:
    def test_computer_group_takes_precedence(self):
        record = make_record(computer_group="SLM-Visio", user_group="SLM-Visio-Users")
        assert derive_deployment_type(record) is DeploymentType.COMPUTER

    def test_user_group_only(self):
        record = make_record(user_group="SLM-Visio-Users")
        assert derive_deployment_type(record) is DeploymentType.USER

    def test_neither_group_is_a_configuration_error(self):
        with pytest.raises(ApplicationRecordError, match="neither ComputerGroup nor UserGroup set"):
            derive_deployment_type(make_record())

"""Tests for the Flask JSON service."""
from unittest.mock import Mock, patch

import pytest

from conftest import JANE_DN, JANE_SID, PC01_DN
from slm_automation.web import create_app


@pytest.fixture
def web_client(settings_file):
    app = create_app(settings_file)
    app.config["TESTING"] = True
    return app.test_client()


class TestMembershipEndpoints:
    def test_add_and_list(self, web_client):
        response = web_client.post(
            "/api/members/add",
            json={"container": "SLM-Acrobat", "kind": "Computer", "computer": "PC01"},
        )
        assert response.status_code == 200
        assert response.get_json()["member"] == PC01_DN

        listed = web_client.get("/api/members", query_string={"container": "SLM-Acrobat"})
        assert listed.get_json() == {"items": ["PC01$"]}

    def test_remove_computer(self, web_client):
        response = web_client.post(
            "/api/members/remove",
            json={"container": "SLM-Project", "kind": "Computer", "computer": "PC01"},
        )

        assert response.status_code == 200
        assert response.get_json()["action"] == "removed"

    def test_validation_error_is_400(self, web_client):
        response = web_client.post(
            "/api/members/add", json={"container": "SLM-Visio", "kind": "User", "user": ""}
        )

        assert response.status_code == 400
        assert "user must be supplied" in response.get_json()["error"]

    def test_application_details_as_object(self, web_client, application_dict):
        response = web_client.post(
            "/api/members/add",
            json={
                "container": "SLM-Acrobat",
                "computer": "PC01",
                "applicationDetails": application_dict,
            },
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body["kind"] == "computer"
        assert body["member"] == PC01_DN

    def test_application_details_of_the_wrong_type_is_400(self, web_client):
        response = web_client.post(
            "/api/members/add",
            json={"container": "SLM-Acrobat", "computer": "PC01", "applicationDetails": 42},
        )

        assert response.status_code == 400
        assert "not valid JSON" in response.get_json()["error"]

    def test_resolution_error_is_404(self, web_client):
        response = web_client.post(
            "/api/members/add", json={"container": "SLM-Nope", "kind": "User", "user": "jdoe"}
        )

        assert response.status_code == 404
        assert "SLM-Nope" in response.get_json()["error"]

    def test_member_sids(self, web_client):
        response = web_client.get("/api/members/sids", query_string={"container": "SLM-Visio"})

        assert response.get_json() == {"items": [{"name": "Jane Doe", "sid": JANE_SID}]}

    def test_deployment_targets(self, web_client):
        response = web_client.post(
            "/api/deployment-targets",
            json={"subject": "jdoe", "containers": ["SLM-Visio", "SLM-Acrobat"]},
        )

        assert response.get_json() == {"items": ["SLM-Visio"]}

    def test_verify(self, web_client):
        response = web_client.post(
            "/api/verify", json={"objectIdentifier": "PC01", "container": "SLM-Visio"}
        )

        assert response.get_json() == {
            "verified": False,
            "reason": "PC01 is not a member of SLM-Visio",
        }


class TestLookupEndpoints:
    def test_resolve_approver(self, web_client):
        response = web_client.get("/api/resolve/approver", query_string={"q": "EXAMPLE\\jdoe"})

        assert response.get_json() == {"value": "EXAMPLE\\jdoe", "result": JANE_DN}

    def test_unknown_lookup(self, web_client):
        response = web_client.get("/api/resolve/printer", query_string={"q": "x"})

        assert response.status_code == 404

    def test_validate(self, web_client):
        response = web_client.post("/api/validate", json={"item": "PC01", "type": "Computer"})

        assert response.get_json()["validated"] is True


class TestTemplateEndpoints:
    def test_deployment_type_error(self, web_client, application_dict):
        application_dict["ComputerGroup"] = None

        response = web_client.post(
            "/api/templates/deployment-type", json={"application": application_dict}
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "neither ComputerGroup nor UserGroup set"

    def test_unlinks(self, web_client, application_dict):
        application_dict["PublishLevel"] = "Uninstall"

        response = web_client.post(
            "/api/templates/unlinks", json={"application": application_dict, "service": {}}
        )

        assert response.get_json()["workflows_to_unlink"] == ["Install software"]

    def test_unknown_step(self, web_client, application_dict):
        response = web_client.post("/api/templates/bogus", json={"application": application_dict})

        assert response.status_code == 404

    def test_image_import(self, web_client, application_dict):
        application_dict["ImageFileName"] = ""

        response = web_client.post("/api/images", json={"application": application_dict})

        assert response.get_json() == {"image": "noImage"}

    def test_image_import_uses_configured_service(self, web_client, application_dict):
        with patch("slm_automation.web.fetch_image", Mock(return_value="/StaticContent/ServiceImages/visio.png")) as fetch:
            response = web_client.post("/api/images", json={"application": application_dict})

        assert response.get_json() == {"image": "/StaticContent/ServiceImages/visio.png"}
        args = fetch.call_args.args
        assert args[1] == "https://slm.example.com"
        assert args[2] == ("svc-slm", "secret")

    def test_image_import_ignores_base_uri_from_the_request(self, web_client, application_dict):
        session = Mock()
        session.get.return_value = Mock(content=b"PNGDATA")

        with patch("slm_automation.images.requests.Session", Mock(return_value=session)):
            response = web_client.post(
                "/api/images",
                json={"application": application_dict, "baseUri": "https://elsewhere.example"},
            )

        assert response.get_json() == {"image": "/StaticContent/ServiceImages/visio.png"}
        url = session.get.call_args.args[0]
        assert url == "https://slm.example.com/Upload/Store/Images/visio.png"


def test_non_json_body_is_rejected(web_client):
    response = web_client.post("/api/verify", data="plain text")

    assert response.status_code == 400


def test_bad_activity_priority_is_400(web_client, application_dict):
    response = web_client.post(
        "/api/templates/disables",
        json={
            "application": application_dict,
            "service": {"ActivitiesToDisable": [{"workflow": "Install software", "priority": "first"}]},
        },
    )

    assert response.status_code == 400
    assert "first" in response.get_json()["error"]


def test_broken_settings_file_is_a_json_500(settings_file, web_client):
    settings_file.write_text("asset_service: {}\n", encoding="utf-8")

    response = web_client.get("/api/members", query_string={"container": "SLM-Visio"})

    assert response.status_code == 500
    assert "'ldap'" in response.get_json()["error"]

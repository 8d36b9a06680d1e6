"""Tests for the service user and SSO assignment steps."""

import httpx
import pytest

from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import StepStatus

USER_EMAIL = "azuread-provisioning@example.com"
USER_URL = f"{Endpoints.GOOGLE_USERS}/{USER_EMAIL}"

PROFILE_ID = "inboundSamlSsoProfiles/profile-1"
PROFILE_URL = Endpoints.google_resource(PROFILE_ID)
ROOT_UNITS = httpx.Response(
    200,
    json={
        "organizationUnits": [
            {"orgUnitId": "id:root", "orgUnitPath": "/"},
            {"orgUnitId": "id:auto", "parentOrgUnitId": "id:root"},
        ]
    },
)
AUTOMATION_UNIT = httpx.Response(200, json={"orgUnitId": "id:auto", "orgUnitPath": "/Automation"})


class TestCreateServiceUser:
    @pytest.mark.asyncio
    async def test_creates_user_with_generated_password(self, api, make_session) -> None:
        api.on("GET", USER_URL, httpx.Response(404, json={}))
        api.on("POST", Endpoints.GOOGLE_USERS, httpx.Response(201, json={"id": "u1", "primaryEmail": USER_EMAIL}))
        session = make_session(isDomainVerified=True, primaryDomain="example.com")

        result = await session.run("create-service-user")

        assert result.status == StepStatus.COMPLETE
        password = session.store.get("generatedPassword")
        assert len(password) == 16
        assert session.store.get("provisioningUserId") == "u1"
        body = api.body("POST", Endpoints.GOOGLE_USERS)
        assert body["primaryEmail"] == USER_EMAIL
        assert body["password"] == password
        assert body["orgUnitPath"] == "/Automation"

    @pytest.mark.asyncio
    async def test_password_not_in_step_logs(self, api, make_session) -> None:
        api.on("POST", Endpoints.GOOGLE_USERS, httpx.Response(201, json={"id": "u1", "primaryEmail": USER_EMAIL}))
        session = make_session(isDomainVerified=True, primaryDomain="example.com")

        await session.execute("create-service-user")

        password = session.store.get("generatedPassword")
        assert password not in repr([entry.model_dump() for entry in session.state("create-service-user").logs])

    @pytest.mark.asyncio
    async def test_existing_user_without_password_is_stale(self, api, make_session) -> None:
        api.on("GET", USER_URL, httpx.Response(200, json={"id": "u1", "primaryEmail": USER_EMAIL}))
        session = make_session(isDomainVerified=True, primaryDomain="example.com")

        result = await session.check("create-service-user")

        assert result.status == StepStatus.STALE
        assert session.store.get("provisioningUserId") == "u1"
        assert not session.store.has("generatedPassword")

    @pytest.mark.asyncio
    async def test_existing_user_with_password_is_complete(self, api, make_session) -> None:
        api.on("GET", USER_URL, httpx.Response(200, json={"id": "u1", "primaryEmail": USER_EMAIL}))
        session = make_session(isDomainVerified=True, primaryDomain="example.com", generatedPassword="Known1!pass")

        result = await session.check("create-service-user")

        assert result.status == StepStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_conflict_resets_password(self, api, make_session) -> None:
        api.on("POST", Endpoints.GOOGLE_USERS, httpx.Response(409, json={}))
        api.on("GET", USER_URL, httpx.Response(200, json={"id": "u1", "primaryEmail": USER_EMAIL}))
        api.on("PUT", f"{Endpoints.GOOGLE_USERS}/u1", httpx.Response(200, json={"id": "u1"}))
        session = make_session(isDomainVerified=True, primaryDomain="example.com")

        result = await session.execute("create-service-user")

        assert result.status == StepStatus.COMPLETE
        assert api.body("PUT", f"{Endpoints.GOOGLE_USERS}/u1") == {"password": session.store.get("generatedPassword")}

    @pytest.mark.asyncio
    async def test_undo_deletes_user_and_clears_password(self, api, make_session) -> None:
        api.on("DELETE", f"{Endpoints.GOOGLE_USERS}/u1", httpx.Response(204))
        session = make_session(
            isDomainVerified=True,
            primaryDomain="example.com",
            provisioningUserId="u1",
            provisioningUserEmail=USER_EMAIL,
            generatedPassword="Known1!pass",
        )

        result = await session.undo("create-service-user")

        assert result.status == StepStatus.READY
        assert set(result.cleared) == {"provisioningUserId", "provisioningUserEmail", "generatedPassword"}
        assert not session.store.has("generatedPassword")


class TestAssignUsersToSso:
    def route_profile(self, api) -> None:
        api.on(
            "GET",
            PROFILE_URL,
            httpx.Response(
                200,
                json={"idpConfig": {"entityId": "https://sts.windows.net/t/", "singleSignOnServiceUri": "https://sso"}},
            ),
        )
        credentials = {"idpCredentials": [{"name": "c"}]}
        api.on("GET", f"{PROFILE_URL}/idpCredentials", httpx.Response(200, json=credentials))
        api.on("GET", Endpoints.GOOGLE_ORG_UNITS, ROOT_UNITS)
        api.on("GET", f"{Endpoints.GOOGLE_ORG_UNITS}/Automation", AUTOMATION_UNIT)

    @pytest.mark.asyncio
    async def test_assigns_root_and_excludes_automation_ou(self, api, make_session) -> None:
        self.route_profile(api)
        operation = {"name": "operations/1", "done": True}
        api.on("POST", Endpoints.GOOGLE_SSO_ASSIGNMENTS, httpx.Response(200, json=operation))
        session = make_session(isDomainVerified=True, samlProfileId=PROFILE_ID)

        result = await session.execute("assign-users-to-sso")

        assert result.status == StepStatus.COMPLETE
        root = api.body("POST", Endpoints.GOOGLE_SSO_ASSIGNMENTS, 0)
        excluded = api.body("POST", Endpoints.GOOGLE_SSO_ASSIGNMENTS, 1)
        assert root == {
            "targetOrgUnit": "orgUnits/root",
            "samlSsoInfo": {"inboundSamlSsoProfile": PROFILE_ID},
            "ssoMode": "SAML_SSO",
        }
        assert excluded == {"targetOrgUnit": "orgUnits/auto", "ssoMode": "SSO_OFF"}
        assert session.state("assign-users-to-sso").lro.operation_type == "google-operation"

    @pytest.mark.asyncio
    async def test_unfinished_operation_is_pending(self, api, make_session) -> None:
        self.route_profile(api)
        operation = {"name": "operations/1", "done": False}
        api.on("POST", Endpoints.GOOGLE_SSO_ASSIGNMENTS, httpx.Response(200, json=operation))
        session = make_session(isDomainVerified=True, samlProfileId=PROFILE_ID)

        result = await session.execute("assign-users-to-sso")

        assert result.status == StepStatus.PENDING
        assert session.state("assign-users-to-sso").notes == "User assignment operation in progress"

    @pytest.mark.asyncio
    async def test_missing_profile_explains_next_step(self, api, make_session) -> None:
        api.on("GET", PROFILE_URL, httpx.Response(404, json={}))
        session = make_session(isDomainVerified=True, samlProfileId=PROFILE_ID)

        result = await session.execute("assign-users-to-sso")

        assert result.status == StepStatus.FAILED
        assert session.state("assign-users-to-sso").error == (
            "SAML profile missing. Run 'Complete Google SSO setup' first."
        )

    @pytest.mark.asyncio
    async def test_profile_without_certificate_fails(self, api, make_session) -> None:
        self.route_profile(api)
        api.on("GET", f"{PROFILE_URL}/idpCredentials", httpx.Response(200, json={}))
        session = make_session(isDomainVerified=True, samlProfileId=PROFILE_ID)

        result = await session.execute("assign-users-to-sso")

        assert result.status == StepStatus.FAILED
        assert session.state("assign-users-to-sso").error == "No SAML signing certificate on Google profile"

    @pytest.mark.asyncio
    async def test_check_complete_when_both_assignments_exist(self, api, make_session) -> None:
        self.route_profile(api)
        assignments = [
            {
                "name": "inboundSsoAssignments/a1",
                "targetOrgUnit": "orgUnits/root",
                "ssoMode": "SAML_SSO",
                "samlSsoInfo": {"inboundSamlSsoProfile": PROFILE_ID},
            },
            {"name": "inboundSsoAssignments/a2", "targetOrgUnit": "orgUnits/auto", "ssoMode": "SSO_OFF"},
        ]
        listing = {"inboundSsoAssignments": assignments}
        api.on("GET", Endpoints.GOOGLE_SSO_ASSIGNMENTS, httpx.Response(200, json=listing))
        session = make_session(isDomainVerified=True, samlProfileId=PROFILE_ID)

        result = await session.check("assign-users-to-sso")

        assert result.status == StepStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_check_incomplete_without_exclusion(self, api, make_session) -> None:
        self.route_profile(api)
        assignments = [
            {
                "name": "inboundSsoAssignments/a1",
                "targetOrgUnit": "orgUnits/root",
                "ssoMode": "SAML_SSO",
                "samlSsoInfo": {"inboundSamlSsoProfile": PROFILE_ID},
            }
        ]
        listing = {"inboundSsoAssignments": assignments}
        api.on("GET", Endpoints.GOOGLE_SSO_ASSIGNMENTS, httpx.Response(200, json=listing))
        session = make_session(isDomainVerified=True, samlProfileId=PROFILE_ID)

        result = await session.check("assign-users-to-sso")

        assert result.status == StepStatus.READY

"""Variable catalog.

Variables are the only channel between steps: a step declares the names it
requires and provides, and the engine gates invocation on their presence.
Names are stable wire tokens shared with persisted client state; renaming
one needs a migration.
"""

from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VarType(str, Enum):
    STRING = "string"
    BOOLEAN = "boolean"


class VarCategory(str, Enum):
    AUTH = "auth"
    DOMAIN = "domain"
    CONFIG = "config"
    STATE = "state"


class Var:
    """Names of the federation workflow variables."""

    GOOGLE_ACCESS_TOKEN = "googleAccessToken"
    MS_GRAPH_TOKEN = "msGraphToken"

    PRIMARY_DOMAIN = "primaryDomain"
    IS_DOMAIN_VERIFIED = "isDomainVerified"
    VERIFICATION_TOKEN = "verificationToken"

    AUTOMATION_OU_NAME = "automationOuName"
    AUTOMATION_OU_PATH = "automationOuPath"
    PROVISIONING_USER_PREFIX = "provisioningUserPrefix"
    ADMIN_ROLE_NAME = "adminRoleName"
    SAML_PROFILE_DISPLAY_NAME = "samlProfileDisplayName"
    PROVISIONING_APP_DISPLAY_NAME = "provisioningAppDisplayName"
    SSO_APP_DISPLAY_NAME = "ssoAppDisplayName"
    CLAIMS_POLICY_DISPLAY_NAME = "claimsPolicyDisplayName"

    PROVISIONING_USER_ID = "provisioningUserId"
    PROVISIONING_USER_EMAIL = "provisioningUserEmail"
    GENERATED_PASSWORD = "generatedPassword"
    ADMIN_ROLE_ID = "adminRoleId"
    DIRECTORY_SERVICE_ID = "directoryServiceId"
    SAML_PROFILE_ID = "samlProfileId"
    ENTITY_ID = "entityId"
    ACS_URL = "acsUrl"
    PROVISIONING_SERVICE_PRINCIPAL_ID = "provisioningServicePrincipalId"
    SSO_SERVICE_PRINCIPAL_ID = "ssoServicePrincipalId"
    SSO_APP_ID = "ssoAppId"
    CLAIMS_POLICY_ID = "claimsPolicyId"
    MS_SIGNING_CERTIFICATE = "msSigningCertificate"
    MS_SSO_LOGIN_URL = "msSsoLoginUrl"
    MS_SSO_ENTITY_ID = "msSsoEntityId"


class VariableSpec(BaseModel):
    """Metadata for one workflow variable.

    `producer` and `consumers` are filled in from the step graph when a
    workflow definition is built; a spec may name a producer explicitly for
    variables a step reports without declaring them in `provides`
    (ephemeral check results such as a DNS verification token).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: VarType = VarType.STRING
    category: VarCategory = VarCategory.STATE
    description: str = ""
    producer: str | None = None
    consumers: frozenset[str] = Field(default_factory=frozenset)
    configurable: bool = False
    sensitive: bool = False
    ephemeral: bool = False
    default: Any = None


def _spec(name: str, category: VarCategory, description: str, **kwargs: Any) -> VariableSpec:
    return VariableSpec(name=name, category=category, description=description, **kwargs)


FEDERATION_VARIABLES: tuple[VariableSpec, ...] = (
    # Auth
    _spec(Var.GOOGLE_ACCESS_TOKEN, VarCategory.AUTH, "Google Workspace admin access token", sensitive=True),
    _spec(Var.MS_GRAPH_TOKEN, VarCategory.AUTH, "Microsoft Graph access token", sensitive=True),
    # Domain
    _spec(Var.PRIMARY_DOMAIN, VarCategory.DOMAIN, "Primary Google Workspace domain"),
    _spec(
        Var.IS_DOMAIN_VERIFIED,
        VarCategory.DOMAIN,
        "Whether the primary domain is verified",
        type=VarType.BOOLEAN,
    ),
    _spec(
        Var.VERIFICATION_TOKEN,
        VarCategory.DOMAIN,
        "DNS TXT token for domain verification",
        producer="verify-primary-domain",
        ephemeral=True,
    ),
    # Config
    _spec(
        Var.AUTOMATION_OU_NAME,
        VarCategory.CONFIG,
        "Organizational unit holding automation accounts",
        configurable=True,
        default="Automation",
    ),
    _spec(
        Var.AUTOMATION_OU_PATH,
        VarCategory.CONFIG,
        "Full path of the automation organizational unit",
        configurable=True,
        default="/Automation",
    ),
    _spec(
        Var.PROVISIONING_USER_PREFIX,
        VarCategory.CONFIG,
        "Local part of the provisioning service account email",
        configurable=True,
        default="azuread-provisioning",
    ),
    _spec(
        Var.ADMIN_ROLE_NAME,
        VarCategory.CONFIG,
        "Name of the custom provisioning admin role",
        configurable=True,
        default="Microsoft Entra Provisioning",
    ),
    _spec(
        Var.SAML_PROFILE_DISPLAY_NAME,
        VarCategory.CONFIG,
        "Display name of the Google inbound SAML profile",
        configurable=True,
        default="Azure AD",
    ),
    _spec(
        Var.PROVISIONING_APP_DISPLAY_NAME,
        VarCategory.CONFIG,
        "Display name of the Microsoft provisioning enterprise app",
        configurable=True,
        default="Google Workspace Provisioning",
    ),
    _spec(
        Var.SSO_APP_DISPLAY_NAME,
        VarCategory.CONFIG,
        "Display name of the Microsoft SSO enterprise app",
        configurable=True,
        default="Google Workspace SSO",
    ),
    _spec(
        Var.CLAIMS_POLICY_DISPLAY_NAME,
        VarCategory.CONFIG,
        "Display name of the claims mapping policy",
        configurable=True,
        default="Google Workspace Basic Claims",
    ),
    # State
    _spec(Var.PROVISIONING_USER_ID, VarCategory.STATE, "Google user id of the provisioning account"),
    _spec(Var.PROVISIONING_USER_EMAIL, VarCategory.STATE, "Email of the provisioning account"),
    _spec(
        Var.GENERATED_PASSWORD,
        VarCategory.STATE,
        "Password set on the provisioning account",
        sensitive=True,
    ),
    _spec(Var.ADMIN_ROLE_ID, VarCategory.STATE, "Id of the custom admin role"),
    _spec(Var.DIRECTORY_SERVICE_ID, VarCategory.STATE, "Admin SDK directory service id"),
    _spec(Var.SAML_PROFILE_ID, VarCategory.STATE, "Resource name of the inbound SAML profile"),
    _spec(Var.ENTITY_ID, VarCategory.STATE, "Google service provider entity id"),
    _spec(Var.ACS_URL, VarCategory.STATE, "Google assertion consumer service URL"),
    _spec(
        Var.PROVISIONING_SERVICE_PRINCIPAL_ID,
        VarCategory.STATE,
        "Service principal id of the provisioning app",
    ),
    _spec(Var.SSO_SERVICE_PRINCIPAL_ID, VarCategory.STATE, "Service principal id of the SSO app"),
    _spec(Var.SSO_APP_ID, VarCategory.STATE, "Application (client) id of the SSO app"),
    _spec(Var.CLAIMS_POLICY_ID, VarCategory.STATE, "Id of the claims mapping policy"),
    _spec(
        Var.MS_SIGNING_CERTIFICATE,
        VarCategory.STATE,
        "Base64 SAML token signing certificate",
        sensitive=True,
    ),
    _spec(Var.MS_SSO_LOGIN_URL, VarCategory.STATE, "Microsoft SAML sign-in URL"),
    _spec(Var.MS_SSO_ENTITY_ID, VarCategory.STATE, "Microsoft identity provider entity id"),
)


def default_values(specs: Iterable[VariableSpec]) -> dict[str, Any]:
    """Initial values of configurable variables that carry a default."""
    return {spec.name: spec.default for spec in specs if spec.default is not None}


def sensitive_names(specs: Iterable[VariableSpec]) -> frozenset[str]:
    return frozenset(spec.name for spec in specs if spec.sensitive)


def ephemeral_names(specs: Iterable[VariableSpec]) -> frozenset[str]:
    return frozenset(spec.name for spec in specs if spec.ephemeral)


__all__ = [
    "VarType",
    "VarCategory",
    "Var",
    "VariableSpec",
    "FEDERATION_VARIABLES",
    "default_values",
    "sensitive_names",
    "ephemeral_names",
]

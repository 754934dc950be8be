"""Provider registry: credential models and adapter factories.

The provider set is closed. Adding a provider means writing one adapter
class and adding one entry to :data:`SOURCE_FACTORIES` or
:data:`DESTINATION_FACTORIES`. Resolution validates the credentials before
any resource work starts.
"""

import json
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from appwrite_transfer.client.exceptions import InvalidCredentialsError, UnsupportedProviderError
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.utils.logging import get_logger

if TYPE_CHECKING:
    from appwrite_transfer.destinations.base import Destination
    from appwrite_transfer.sources.base import Source

logger = get_logger(__name__)


class Provider(StrEnum):
    APPWRITE = "appwrite"
    FIREBASE = "firebase"
    SUPABASE = "supabase"
    NHOST = "nhost"


class ProviderCredentials(BaseModel):
    """Base for provider credential models (camelCase keys on the wire)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class AppwriteCredentials(ProviderCredentials):
    project_id: str = Field(alias="projectId", min_length=1)
    endpoint: str = Field(min_length=1)
    api_key: str = Field(alias="apiKey", min_length=1, repr=False)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate and normalize endpoint URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("endpoint must start with http:// or https://")
        return v.rstrip("/")


class ServiceAccount(BaseModel):
    """The fields of a Google service account key file the source uses."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    project_id: str = Field(min_length=1)
    client_email: str = Field(min_length=1)
    private_key: str = Field(min_length=1, repr=False)
    token_uri: str = "https://oauth2.googleapis.com/token"

    def key_file(self) -> dict[str, str]:
        """The key file mapping ``firebase_admin.credentials.Certificate`` accepts."""
        return {
            "type": "service_account",
            "project_id": self.project_id,
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": self.token_uri,
        }


class FirebaseCredentials(ProviderCredentials):
    service_account: ServiceAccount = Field(alias="serviceAccount")

    @field_validator("service_account", mode="before")
    @classmethod
    def parse_service_account(cls, v: Any) -> Any:
        """Accept the key file either as JSON text or as a decoded mapping."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError as e:
                raise ValueError(f"serviceAccount is not valid JSON: {e}") from e
        return v


class SupabaseCredentials(ProviderCredentials):
    endpoint: str = Field(min_length=1)
    api_key: str = Field(alias="apiKey", min_length=1, repr=False)
    database_host: str = Field(alias="databaseHost", min_length=1)
    database: str = "postgres"
    username: str = Field(min_length=1)
    password: str = Field(repr=False)
    port: int = Field(default=5432, ge=1, le=65535)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate and normalize endpoint URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("endpoint must start with http:// or https://")
        return v.rstrip("/")


class NhostCredentials(ProviderCredentials):
    subdomain: str = Field(min_length=1)
    region: str = Field(min_length=1)
    admin_secret: str = Field(alias="adminSecret", min_length=1, repr=False)
    database: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(repr=False)
    port: int = Field(default=5432, ge=1, le=65535)

    @property
    def database_host(self) -> str:
        return f"{self.subdomain}.db.{self.region}.nhost.run"

    @property
    def storage_endpoint(self) -> str:
        return f"https://{self.subdomain}.storage.{self.region}.nhost.run/v1"


def parse_credentials(
    model: type[ProviderCredentials], credentials: dict[str, Any], provider: str
) -> Any:
    """Validate a raw credential map.

    Raises:
        InvalidCredentialsError: If fields are missing or malformed
    """
    try:
        return model.model_validate(credentials or {})
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "credentials" for error in e.errors()
        )
        raise InvalidCredentialsError(
            f"Invalid credentials for {provider}: missing or malformed {fields}"
        ) from e


def _appwrite_source(credentials: dict[str, Any], config: WorkerConfig, **kwargs: Any) -> "Source":
    from appwrite_transfer.sources.appwrite import AppwriteSource

    parsed = parse_credentials(AppwriteCredentials, credentials, Provider.APPWRITE)
    return AppwriteSource(parsed, config, **kwargs)


def _firebase_source(credentials: dict[str, Any], config: WorkerConfig, **kwargs: Any) -> "Source":
    from appwrite_transfer.sources.firebase import FirebaseSource

    parsed = parse_credentials(FirebaseCredentials, credentials, Provider.FIREBASE)
    return FirebaseSource(parsed, config, **kwargs)


def _supabase_source(credentials: dict[str, Any], config: WorkerConfig, **kwargs: Any) -> "Source":
    from appwrite_transfer.sources.supabase import SupabaseSource

    parsed = parse_credentials(SupabaseCredentials, credentials, Provider.SUPABASE)
    return SupabaseSource(parsed, config, **kwargs)


def _nhost_source(credentials: dict[str, Any], config: WorkerConfig, **kwargs: Any) -> "Source":
    from appwrite_transfer.sources.nhost import NhostSource

    parsed = parse_credentials(NhostCredentials, credentials, Provider.NHOST)
    return NhostSource(parsed, config, **kwargs)


def _appwrite_destination(
    credentials: dict[str, Any], config: WorkerConfig, **kwargs: Any
) -> "Destination":
    from appwrite_transfer.destinations.appwrite import AppwriteDestination

    parsed = parse_credentials(AppwriteCredentials, credentials, Provider.APPWRITE)
    return AppwriteDestination(parsed, config, **kwargs)


SourceFactory = Callable[..., "Source"]
DestinationFactory = Callable[..., "Destination"]

SOURCE_FACTORIES: dict[str, SourceFactory] = {
    Provider.APPWRITE: _appwrite_source,
    Provider.FIREBASE: _firebase_source,
    Provider.SUPABASE: _supabase_source,
    Provider.NHOST: _nhost_source,
}

DESTINATION_FACTORIES: dict[str, DestinationFactory] = {
    Provider.APPWRITE: _appwrite_destination,
}


def create_source(
    provider: str,
    credentials: dict[str, Any],
    config: WorkerConfig | None = None,
    **kwargs: Any,
) -> "Source":
    """Build the source adapter for ``provider``.

    Extra keyword arguments are passed to the adapter (e.g. an HTTP
    transport in tests).

    Raises:
        UnsupportedProviderError: If no source is registered for the tag
        InvalidCredentialsError: If the credentials do not validate
    """
    factory = SOURCE_FACTORIES.get(provider)
    if factory is None:
        raise UnsupportedProviderError(provider, "source")
    source = factory(credentials, config or WorkerConfig(), **kwargs)
    logger.debug("source_created", provider=provider)
    return source


def create_destination(
    provider: str,
    credentials: dict[str, Any],
    config: WorkerConfig | None = None,
    **kwargs: Any,
) -> "Destination":
    """Build the destination adapter for ``provider``.

    Raises:
        UnsupportedProviderError: If no destination is registered for the tag
        InvalidCredentialsError: If the credentials do not validate
    """
    factory = DESTINATION_FACTORIES.get(provider)
    if factory is None:
        raise UnsupportedProviderError(provider, "destination")
    destination = factory(credentials, config or WorkerConfig(), **kwargs)
    logger.debug("destination_created", provider=provider)
    return destination

from dataclasses import dataclass
from enum import StrEnum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bitbucket_cloud_cli.errors import CredentialsError


class CredentialKind(StrEnum):
    PASSWORD = "password"
    OAUTH = "oauth"
    REPO_ACCESS_TOKEN = "repo_access_token"


@dataclass(frozen=True)
class Credentials:
    kind: CredentialKind
    username: str | None = None
    password: str | None = None
    oauth_key: str | None = None
    oauth_secret: str | None = None
    access_token: str | None = None

    @classmethod
    def basic(cls, username: str, password: str) -> "Credentials":
        return cls(CredentialKind.PASSWORD, username=username, password=password)

    @classmethod
    def oauth(cls, key: str, secret: str) -> "Credentials":
        return cls(CredentialKind.OAUTH, oauth_key=key, oauth_secret=secret)

    @classmethod
    def repo_token(cls, token: str) -> "Credentials":
        return cls(CredentialKind.REPO_ACCESS_TOKEN, access_token=token)

    def __repr__(self):
        # secrets stay out of repr
        return f"Credentials(kind={self.kind.value})"


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BITBUCKET_CLOUD_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    api_url: str = Field(default="https://api.bitbucket.org/2.0")
    oauth_url: str = Field(default="https://bitbucket.org/site/oauth2/access_token")
    repo_slug: str | None = Field(default=None, description="workspace/repo")
    pull_request_id: str | None = Field(
        default=None, validation_alias="BITBUCKET_CLOUD_PR_ID"
    )

    username: str | None = None
    password: str | None = None
    oauth_key: str | None = None
    oauth_secret: str | None = None
    repo_access_token: str | None = Field(
        default=None, validation_alias="BITBUCKET_CLOUD_REPO_ACCESSTOKEN"
    )
    uuid: str | None = Field(default=None, description="uuid of the bot account")

    timeout: float = Field(default=30.0)
    log_level: str = Field(default="INFO")

    def credentials(self) -> Credentials:
        if self.repo_access_token:
            return Credentials.repo_token(self.repo_access_token)
        if self.oauth_key and self.oauth_secret:
            return Credentials.oauth(self.oauth_key, self.oauth_secret)
        if self.username and self.password:
            return Credentials.basic(self.username, self.password)
        raise CredentialsError(
            "No Bitbucket Cloud credentials configured: set BITBUCKET_CLOUD_REPO_ACCESSTOKEN, "
            "BITBUCKET_CLOUD_OAUTH_KEY/BITBUCKET_CLOUD_OAUTH_SECRET "
            "or BITBUCKET_CLOUD_USERNAME/BITBUCKET_CLOUD_PASSWORD"
        )

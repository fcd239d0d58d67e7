import base64
import json
from dataclasses import dataclass, field
from typing import Any, Self, TypeVar
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel

from bitbucket_cloud_cli.config import AppConfig, CredentialKind, Credentials
from bitbucket_cloud_cli.errors import (
    BitbucketCloudAPIError,
    CredentialsError,
    MissingContextError,
)
from bitbucket_cloud_cli.models import (
    Account,
    Activity,
    BotInlineComment,
    BuildStatus,
    Comment,
    Commit,
    PagedResponse,
    PullRequest,
)
from bitbucket_cloud_cli.services import markers

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.bitbucket.org/2.0"
DEFAULT_OAUTH_URL = "https://bitbucket.org/site/oauth2/access_token"

M = TypeVar("M", bound=BaseModel)


@dataclass
class BitbucketCloudClient:
    """Bitbucket Cloud REST 2.0 client scoped to one repository and pull request.

    Every method is a single round trip (or one per page for list endpoints);
    nothing returned by the API is cached. The only state kept between calls is
    the OAuth access token and the resolved uuid of the bot account.
    """

    repo_slug: str | None
    pull_request_id: str | int | None
    credentials: Credentials
    uuid: str | None = None
    api_url: str = DEFAULT_API_URL
    oauth_url: str = DEFAULT_OAUTH_URL
    timeout: float = 30.0
    transport: httpx.BaseTransport | None = None

    _access_token: str | None = field(default=None, init=False, repr=False)
    _uuid_lookup_done: bool = field(default=False, init=False, repr=False)
    _http: httpx.Client = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.api_url = self.api_url.rstrip("/")
        self._http = httpx.Client(
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
            follow_redirects=True,
        )

    @classmethod
    def from_config(
        cls, config: AppConfig, transport: httpx.BaseTransport | None = None
    ) -> Self:
        return cls(
            repo_slug=config.repo_slug,
            pull_request_id=config.pull_request_id,
            credentials=config.credentials(),
            uuid=config.uuid,
            api_url=config.api_url,
            oauth_url=config.oauth_url,
            timeout=config.timeout,
            transport=transport,
        )

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    # URLs

    def base_repo_url(self, repo_slug: str | None = None) -> str:
        slug = repo_slug or self.repo_slug
        if not slug:
            raise MissingContextError("A repository slug (workspace/repo) is required")
        return f"{self.api_url}/repositories/{slug}"

    def pr_url(self) -> str:
        if self.pull_request_id in (None, ""):
            raise MissingContextError("A pull request id is required")
        return f"{self.base_repo_url()}/pullrequests/{self.pull_request_id}"

    # Transport

    def _auth_header(self) -> str:
        creds = self.credentials
        if creds.kind is CredentialKind.PASSWORD:
            token = base64.b64encode(f"{creds.username}:{creds.password}".encode()).decode()
            return f"Basic {token}"
        if creds.kind is CredentialKind.REPO_ACCESS_TOKEN:
            return f"Bearer {creds.access_token}"
        if self._access_token is None:
            self._access_token = self._fetch_oauth_token()
        return f"Bearer {self._access_token}"

    def _fetch_oauth_token(self) -> str:
        creds = self.credentials
        logger.debug("oauth token request", url=self.oauth_url)
        response = self._http.post(
            self.oauth_url,
            data={"grant_type": "client_credentials"},
            auth=(creds.oauth_key or "", creds.oauth_secret or ""),
        )
        if not response.is_success:
            raise self._api_error("POST", self.oauth_url, response)
        token = response.json().get("access_token")
        if not token:
            raise CredentialsError("OAuth token response did not contain an access_token")
        return token

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": self._auth_header(),
        }

    def _api_error(
        self, method: str, url: str, response: httpx.Response
    ) -> BitbucketCloudAPIError:
        try:
            data: Any = response.json()
        except ValueError:
            data = response.text
        message = f"{method} {url} failed"
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            detail = data["error"].get("message")
            if detail:
                message = f"{message}: {detail}"
        return BitbucketCloudAPIError(
            message, status_code=response.status_code, response_data=data
        )

    def _request(self, method: str, url: str, body: Any = None) -> httpx.Response:
        if method in ("POST", "PUT"):
            content = json.dumps(body)
        elif method == "DELETE":
            content = "{}"
        else:
            content = None

        logger.debug("request", method=method, url=url)
        response = self._http.request(
            method, url, headers=self._headers(), content=content
        )
        logger.debug(
            "response", method=method, url=url, status_code=response.status_code
        )
        if not response.is_success:
            raise self._api_error(method, url, response)
        return response

    def get(self, url: str) -> httpx.Response:
        return self._request("GET", url)

    def post(self, url: str, body: Any) -> httpx.Response:
        return self._request("POST", url, body)

    def put(self, url: str, body: Any) -> httpx.Response:
        return self._request("PUT", url, body)

    def delete(self, url: str) -> httpx.Response:
        return self._request("DELETE", url)

    def _get_all_pages(self, url: str, model: type[M]) -> list[M]:
        values: list[M] = []
        next_url: str | None = url
        pages = 0
        while next_url:
            page = PagedResponse[model].model_validate(self.get(next_url).json())
            values.extend(page.values)
            pages += 1
            logger.debug("page fetched", url=next_url, page=pages, count=len(page.values))
            next_url = page.next
            if next_url and not self._is_api_origin(next_url):
                # credentials only ever go to the configured API host
                raise BitbucketCloudAPIError(
                    f"Refusing to follow pagination link outside {self.api_url}: {next_url}"
                )
        return values

    def _is_api_origin(self, url: str) -> bool:
        api, other = httpx.URL(self.api_url), httpx.URL(url)
        return (api.scheme, api.host, api.port) == (other.scheme, other.host, other.port)

    # Pull requests

    def get_pull_requests_from_branch(self, branch: str) -> list[PullRequest]:
        query = quote(f'source.branch.name = "{branch}"', safe="=")
        return self._get_all_pages(
            f"{self.base_repo_url()}/pullrequests?q={query}", PullRequest
        )

    def get_pull_request_info(self) -> PullRequest:
        return PullRequest.model_validate(self.get(self.pr_url()).json())

    def get_pull_request_commits(self) -> list[Commit]:
        return self._get_all_pages(f"{self.pr_url()}/commits", Commit)

    def get_pull_request_diff(self) -> str:
        return self.get(f"{self.pr_url()}/diff").text

    def get_pull_request_activities(self) -> list[Activity]:
        return self._get_all_pages(f"{self.pr_url()}/activity", Activity)

    def get_file_contents(
        self, path: str, repo_slug: str | None = None, ref: str | None = None
    ) -> str:
        """Raw contents of a file at `ref`, or "" when the file does not exist there.

        Missing repo_slug or ref are taken from the pull request's source side, so
        files of a PR opened from a fork are read from the fork.
        """
        if not repo_slug or not ref:
            source = self.get_pull_request_info().source
            if not repo_slug and source is not None and source.repository is not None:
                repo_slug = source.repository.full_name
            if not ref:
                if source is None or source.commit is None or not source.commit.hash:
                    raise MissingContextError(
                        f"Pull request {self.pull_request_id} has no source commit to read {path} from"
                    )
                ref = source.commit.hash

        url = f"{self.base_repo_url(repo_slug)}/src/{ref}/{quote(path.lstrip('/'))}"
        try:
            return self.get(url).text
        except BitbucketCloudAPIError as exc:
            if exc.status_code == 404:
                logger.info("file not found", path=path, ref=ref)
                return ""
            raise

    def get_current_user(self) -> Account:
        return Account.model_validate(self.get(f"{self.api_url}/user").json())

    def bot_uuid(self) -> str | None:
        if self.uuid is None and not self._uuid_lookup_done:
            try:
                self.uuid = self.get_current_user().uuid
            except BitbucketCloudAPIError as exc:
                # repository access tokens are not allowed to read /user
                if exc.status_code not in (401, 403):
                    raise
                self._uuid_lookup_done = True
                logger.warning(
                    "bot uuid unknown, no comment will count as owned",
                    status_code=exc.status_code,
                )
        return self.uuid

    # Comments

    def get_pull_request_comments(self) -> list[Comment]:
        comments = self._get_all_pages(f"{self.pr_url()}/comments?q=deleted=false", Comment)
        return [comment for comment in comments if comment.raw]

    def get_bot_main_comments(self, bot_id: str) -> list[Comment]:
        candidates = [
            comment
            for comment in self.get_pull_request_comments()
            if comment.inline is None and markers.contains_id(comment.raw, bot_id)
        ]
        if not candidates:
            return []
        bot_uuid = self.bot_uuid()
        return [
            comment
            for comment in candidates
            if markers.is_owned(comment.raw, comment.author_uuid, bot_uuid, bot_id)
        ]

    def get_bot_inline_comments(self, bot_id: str) -> list[BotInlineComment]:
        candidates = [
            comment
            for comment in self.get_pull_request_comments()
            if comment.id is not None
            and comment.inline is not None
            and markers.contains_id(comment.raw, bot_id)
        ]
        if not candidates:
            return []
        bot_uuid = self.bot_uuid()
        return [
            BotInlineComment(
                id=str(comment.id),
                owned_by_bot=markers.is_owned(
                    comment.raw, comment.author_uuid, bot_uuid, bot_id
                ),
                body=comment.raw,
            )
            for comment in candidates
        ]

    def post_pr_comment(self, comment: str) -> Comment:
        response = self.post(f"{self.pr_url()}/comments", {"content": {"raw": comment}})
        return Comment.model_validate(response.json())

    def post_inline_pr_comment(self, comment: str, line: int, path: str) -> Comment:
        response = self.post(
            f"{self.pr_url()}/comments",
            {"content": {"raw": comment}, "inline": {"to": line, "path": path}},
        )
        return Comment.model_validate(response.json())

    def update_comment(self, comment_id: str | int, comment: str) -> Comment:
        response = self.put(
            f"{self.pr_url()}/comments/{comment_id}", {"content": {"raw": comment}}
        )
        return Comment.model_validate(response.json())

    def delete_comment(self, comment_id: str | int) -> None:
        self.delete(f"{self.pr_url()}/comments/{comment_id}")

    # Build statuses

    def post_build_status(self, commit_id: str, status: BuildStatus) -> BuildStatus:
        response = self.post(
            f"{self.base_repo_url()}/commit/{commit_id}/statuses/build", status.payload()
        )
        return BuildStatus.model_validate(response.json())

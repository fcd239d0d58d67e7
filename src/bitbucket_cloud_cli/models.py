from enum import StrEnum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class CloudModel(BaseModel):
    """Bitbucket Cloud adds fields to its payloads without notice, keep whatever it sends."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Link(CloudModel):
    href: str | None = None
    name: str | None = None


class Links(CloudModel):
    self_: Link | None = Field(default=None, alias="self")
    html: Link | None = None
    diff: Link | None = None
    diffstat: Link | None = None
    commits: Link | None = None
    comments: Link | None = None
    activity: Link | None = None
    statuses: Link | None = None
    avatar: Link | None = None


class Account(CloudModel):
    uuid: str | None = None
    display_name: str | None = None
    nickname: str | None = None
    account_id: str | None = None
    type: str | None = None
    links: Links | None = None

    def __str__(self):
        return f"<Account: {self.display_name} {self.uuid}>"


class Branch(CloudModel):
    name: str | None = None


class CommitRef(CloudModel):
    hash: str | None = None
    type: str | None = None
    links: Links | None = None


class RepositoryRef(CloudModel):
    uuid: str | None = None
    name: str | None = None
    full_name: str | None = None
    type: str | None = None
    links: Links | None = None

    def __str__(self):
        return f"<Repo: {self.full_name}>"


class PullRequestEndpoint(CloudModel):
    branch: Branch | None = None
    commit: CommitRef | None = None
    repository: RepositoryRef | None = None


class PullRequestState(StrEnum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    DECLINED = "DECLINED"
    SUPERSEDED = "SUPERSEDED"


class ParticipantRole(StrEnum):
    PARTICIPANT = "PARTICIPANT"
    REVIEWER = "REVIEWER"


class Participant(CloudModel):
    user: Account | None = None
    role: ParticipantRole | None = None
    approved: bool | None = None
    state: Literal["approved", "changes_requested"] | None = None
    participated_on: str | None = None


class PullRequest(CloudModel):
    id: int
    title: str | None = None
    description: str | None = None
    state: PullRequestState | None = None
    author: Account | None = None
    source: PullRequestEndpoint | None = None
    destination: PullRequestEndpoint | None = None
    merge_commit: CommitRef | None = None
    close_source_branch: bool | None = None
    closed_by: Account | None = None
    reason: str | None = None
    created_on: str | None = None
    updated_on: str | None = None
    comment_count: int | None = None
    task_count: int | None = None
    participants: list[Participant] | None = None
    reviewers: list[Account] | None = None
    links: Links | None = None

    def __str__(self):
        return f"<PullRequest: #{self.id} {self.title}>"


class CommitAuthor(CloudModel):
    # raw is "Name <email>"
    raw: str | None = None
    user: Account | None = None


class Commit(CloudModel):
    hash: str | None = None
    message: str | None = None
    date: str | None = None
    author: CommitAuthor | None = None
    parents: list[CommitRef] | None = None
    repository: RepositoryRef | None = None
    links: Links | None = None


class CommentContent(CloudModel):
    raw: str | None = None
    markup: str | None = None
    html: str | None = None


class CommentInline(CloudModel):
    # line in the old version of the file, None for added lines
    from_: int | None = Field(default=None, alias="from")
    # line in the new version of the file
    to: int | None = None
    path: str | None = None


class CommentParent(CloudModel):
    id: int | None = None


class Comment(CloudModel):
    id: int | None = None
    content: CommentContent | None = None
    user: Account | None = None
    inline: CommentInline | None = None
    parent: CommentParent | None = None
    deleted: bool | None = None
    pending: bool | None = None
    created_on: str | None = None
    updated_on: str | None = None
    type: str | None = None
    links: Links | None = None

    @property
    def raw(self) -> str:
        if self.content is None or self.content.raw is None:
            return ""
        return self.content.raw

    @property
    def author_uuid(self) -> str | None:
        return self.user.uuid if self.user else None


class Activity(CloudModel):
    """One entry of the pull request activity log.

    Exactly one of update, approval, changes_requested or comment is set; the
    shape of update is loosely documented so it stays a plain dict.
    """

    pull_request: dict[str, Any] | None = None
    update: dict[str, Any] | None = None
    approval: dict[str, Any] | None = None
    changes_requested: dict[str, Any] | None = None
    comment: Comment | None = None

    @property
    def kind(self) -> str | None:
        for name in ("update", "approval", "changes_requested", "comment"):
            if getattr(self, name) is not None:
                return name
        return None


class BuildStatusState(StrEnum):
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    INPROGRESS = "INPROGRESS"
    STOPPED = "STOPPED"


class BuildStatus(CloudModel):
    state: BuildStatusState
    key: str
    name: str | None = None
    url: str | None = None
    description: str | None = None
    refname: str | None = None
    created_on: str | None = None
    updated_on: str | None = None

    def payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


T = TypeVar("T")


class PagedResponse(BaseModel, Generic[T]):
    """Envelope of every list endpoint, `next` is an absolute URL to the following page."""

    model_config = ConfigDict(extra="allow")

    values: list[T] = Field(default_factory=list)
    next: str | None = None
    previous: str | None = None
    page: int | None = None
    pagelen: int | None = None
    size: int | None = None


class BotInlineComment(BaseModel):
    id: str
    owned_by_bot: bool
    body: str

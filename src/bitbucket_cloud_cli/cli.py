import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from pydantic import BaseModel

from bitbucket_cloud_cli.config import AppConfig
from bitbucket_cloud_cli.errors import BitbucketCloudError, CredentialsError
from bitbucket_cloud_cli.logging_config import configure_logging
from bitbucket_cloud_cli.models import BuildStatus, BuildStatusState
from bitbucket_cloud_cli.services import markers
from bitbucket_cloud_cli.services.bitbucket_client import BitbucketCloudClient

app = typer.Typer(help="Bitbucket Cloud pull request CLI", no_args_is_help=True)
auth_app = typer.Typer(help="Authentication commands")
pr_app = typer.Typer(help="Pull request commands")
comment_app = typer.Typer(help="Pull request comment commands")
status_app = typer.Typer(help="Commit build status commands")
file_app = typer.Typer(help="Repository file commands")

app.add_typer(auth_app, name="auth")
app.add_typer(pr_app, name="pr")
app.add_typer(comment_app, name="comment")
app.add_typer(status_app, name="status")
app.add_typer(file_app, name="file")


def build_client() -> BitbucketCloudClient:
    return BitbucketCloudClient.from_config(AppConfig())


@contextmanager
def _client() -> Iterator[BitbucketCloudClient]:
    try:
        with build_client() as client:
            yield client
    except BitbucketCloudError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(_dump(value), indent=2))


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Log as JSON lines"),
) -> None:
    level = "DEBUG" if verbose else AppConfig().log_level
    configure_logging(level, json_output=json_logs)


@auth_app.command("status")
def auth_status() -> None:
    config = AppConfig()
    try:
        kind = config.credentials().kind.value
    except CredentialsError:
        kind = "none"
    typer.echo(f"Target Bitbucket Cloud: {config.api_url}")
    typer.echo(f"Repository: {config.repo_slug or '-'}  Pull request: {config.pull_request_id or '-'}")
    typer.echo(f"Credentials: {kind}")


@pr_app.command("info")
def pr_info() -> None:
    with _client() as client:
        _echo_json(client.get_pull_request_info())


@pr_app.command("list")
def pr_list(branch: str = typer.Option(..., "--branch", "-b", help="Source branch name")) -> None:
    with _client() as client:
        _echo_json(client.get_pull_requests_from_branch(branch))


@pr_app.command("commits")
def pr_commits() -> None:
    with _client() as client:
        _echo_json(client.get_pull_request_commits())


@pr_app.command("diff")
def pr_diff() -> None:
    with _client() as client:
        typer.echo(client.get_pull_request_diff(), nl=False)


@pr_app.command("comments")
def pr_comments() -> None:
    with _client() as client:
        _echo_json(client.get_pull_request_comments())


@pr_app.command("activities")
def pr_activities() -> None:
    with _client() as client:
        _echo_json(client.get_pull_request_activities())


@pr_app.command("bot-comments")
def pr_bot_comments(
    bot_id: str = typer.Option(..., "--bot-id", help="Id written into the comment markers"),
    inline: bool = typer.Option(False, "--inline", help="Inline comments instead of main ones"),
) -> None:
    with _client() as client:
        if inline:
            _echo_json(client.get_bot_inline_comments(bot_id))
        else:
            _echo_json(client.get_bot_main_comments(bot_id))


@comment_app.command("post")
def comment_post(
    text: str,
    path: str | None = typer.Option(None, "--path", help="File for an inline comment"),
    line: int | None = typer.Option(None, "--line", help="Line for an inline comment"),
    bot_id: str | None = typer.Option(None, "--bot-id", help="Tag the comment with bot markers"),
    commit: str | None = typer.Option(None, "--commit", help="Commit named in the bot signature"),
) -> None:
    if (path is None) != (line is None):
        raise typer.BadParameter("--path and --line must be given together")

    if bot_id is not None:
        if path is not None:
            text = markers.render_inline_comment(bot_id, path, line, text)
        else:
            text = markers.render_main_comment(bot_id, text, commit)

    with _client() as client:
        if path is not None:
            _echo_json(client.post_inline_pr_comment(text, line, path))
        else:
            _echo_json(client.post_pr_comment(text))


@comment_app.command("edit")
def comment_edit(comment_id: str, text: str) -> None:
    with _client() as client:
        _echo_json(client.update_comment(comment_id, text))


@comment_app.command("delete")
def comment_delete(comment_id: str) -> None:
    with _client() as client:
        client.delete_comment(comment_id)
    typer.echo(f"Deleted comment {comment_id}")


@status_app.command("post")
def status_post(
    commit: str,
    state: BuildStatusState = typer.Option(..., "--state"),
    key: str = typer.Option(..., "--key"),
    name: str | None = typer.Option(None, "--name"),
    url: str | None = typer.Option(None, "--url"),
    description: str | None = typer.Option(None, "--description"),
) -> None:
    status = BuildStatus(state=state, key=key, name=name, url=url, description=description)
    with _client() as client:
        _echo_json(client.post_build_status(commit, status))


@file_app.command("get")
def file_get(
    path: str,
    ref: str | None = typer.Option(None, "--ref", help="Commit, branch or tag, defaults to the PR head"),
    repo: str | None = typer.Option(None, "--repo", help="workspace/repo, defaults to the PR source repository"),
) -> None:
    with _client() as client:
        typer.echo(client.get_file_contents(path, repo_slug=repo, ref=ref), nl=False)


if __name__ == "__main__":
    app()

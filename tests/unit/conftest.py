import json
from collections import defaultdict
from typing import Any

import httpx
import pytest

from bitbucket_cloud_cli.config import Credentials
from bitbucket_cloud_cli.services.bitbucket_client import BitbucketCloudClient

API = "https://api.bitbucket.org/2.0"
REPO_URL = f"{API}/repositories/foo/bar"
PR_URL = f"{REPO_URL}/pullrequests/1"
BOT_UUID = "{1234-1234-1234-1234}"
BASIC_AUTH = "Basic dXNlcm5hbWU6cGFzc3dvcmQ="  # username:password


class FakeBitbucket:
    """Canned responses keyed by method and path, served in the order they were added."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: dict[tuple[str, str], list[httpx.Response]] = defaultdict(list)

    def add(
        self,
        method: str,
        url: str,
        json_body: Any = None,
        text: str | None = None,
        status_code: int = 200,
    ) -> None:
        path = httpx.URL(url).path
        if text is not None:
            response = httpx.Response(status_code, text=text)
        elif json_body is not None:
            response = httpx.Response(status_code, json=json_body)
        else:
            response = httpx.Response(status_code)
        self._responses[(method, path)].append(response)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._responses.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"type": "error", "error": {"message": "no route"}})
        return queue.pop(0)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def body(self, index: int = -1) -> Any:
        return json.loads(self.requests[index].content)


@pytest.fixture
def bitbucket() -> FakeBitbucket:
    return FakeBitbucket()


@pytest.fixture
def client(bitbucket: FakeBitbucket):
    client = BitbucketCloudClient(
        repo_slug="foo/bar",
        pull_request_id="1",
        credentials=Credentials.basic("username", "password"),
        uuid=BOT_UUID,
        transport=bitbucket.transport(),
    )
    yield client
    client.close()

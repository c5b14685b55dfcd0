import httpx
import pytest

from app.errors import (
    AuthFailed, ContainerCreationFailed, ContainerRejected, PlatformError,
    PublishRejected, PublishTimeout, RateLimited,
)
from app.services.instagram_api import (
    Credential, InstagramClient, build_caption, container_fields, extract_first,
)

BASE = "https://graph.test/v20.0"
CRED = Credential(account_id="acc-1", platform_user_id="17841000", access_token="tok", username="brand")


class FakeGraph:
    """Scripted Graph API: status polls return the queued statuses in order."""

    def __init__(self, statuses=("FINISHED",), container=None, publish=None):
        self.statuses = list(statuses)
        self.container = container if container is not None else {"id": "c-1"}
        self.publish = publish if publish is not None else {"id": "m-1"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/media"):
            return self._reply(self.container)
        if request.method == "POST" and path.endswith("/media_publish"):
            return self._reply(self.publish)
        if request.method == "GET":
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return self._reply(status)
        return httpx.Response(404, json={"error": "unexpected"})

    @staticmethod
    def _reply(item):
        if isinstance(item, httpx.Response):
            return item
        if isinstance(item, str):
            return httpx.Response(200, json={"status_code": item, "id": "c-1"})
        return httpx.Response(200, json=item)

    def polls(self):
        return [r for r in self.requests if r.method == "GET"]


def make_client(graph, clock, max_polls=60):
    http = httpx.Client(transport=httpx.MockTransport(graph))
    return InstagramClient(
        base_url=BASE, poll_interval=1, max_polls=max_polls,
        client=http, sleep=clock.sleep, clock=clock,
    )


def test_publish_happy_path_three_polls(clock):
    graph = FakeGraph(statuses=["IN_PROGRESS", "IN_PROGRESS", "FINISHED"])
    client = make_client(graph, clock)

    media_id = client.publish("https://cdn.example.com/a.png", "hi", "photo", CRED)

    assert media_id == "m-1"
    assert len(graph.polls()) == 3
    assert clock.sleeps == [1, 1, 1]
    create = graph.requests[0]
    assert create.url.path == "/v20.0/17841000/media"
    assert create.headers["Authorization"] == "Bearer tok"
    publish = graph.requests[-1]
    assert publish.url.path == "/v20.0/17841000/media_publish"
    assert b"creation_id=c-1" in publish.content


def test_status_poll_asks_for_status_fields(clock):
    graph = FakeGraph()
    make_client(graph, clock).publish("https://x/a.png", "", "photo", CRED)
    poll = graph.polls()[0]
    assert poll.url.path == "/v20.0/c-1"
    assert poll.url.params["fields"] == "status_code,status"


def test_poll_gives_up_after_max_polls(clock):
    graph = FakeGraph(statuses=["IN_PROGRESS"])
    client = make_client(graph, clock)

    with pytest.raises(PublishTimeout):
        client.publish("https://x/a.png", "hi", "photo", CRED)

    assert len(graph.polls()) == 60
    # never reaches the publish step
    assert not any(r.url.path.endswith("/media_publish") for r in graph.requests)


@pytest.mark.parametrize("status", ["ERROR", "EXPIRED"])
def test_rejected_container_stops_polling(clock, status):
    graph = FakeGraph(statuses=["IN_PROGRESS", status])
    with pytest.raises(ContainerRejected):
        make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)
    assert len(graph.polls()) == 2


def test_transient_poll_error_is_retried(clock):
    graph = FakeGraph(statuses=[httpx.Response(500, text="boom"), "IN_PROGRESS", "FINISHED"])
    media_id = make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)
    assert media_id == "m-1"
    assert len(graph.polls()) == 3


def test_auth_failure_while_polling_propagates(clock):
    graph = FakeGraph(statuses=[httpx.Response(401, text="expired"), "FINISHED"])
    with pytest.raises(AuthFailed):
        make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)
    assert len(graph.polls()) == 1


def test_http_status_mapping(clock):
    graph = FakeGraph(container=httpx.Response(429, text="slow down"))
    with pytest.raises(RateLimited) as exc:
        make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)
    assert exc.value.status_code == 429

    graph = FakeGraph(container=httpx.Response(401, text="bad token"))
    with pytest.raises(AuthFailed):
        make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)

    graph = FakeGraph(container=httpx.Response(400, json={"error": {"message": "bad image"}}))
    with pytest.raises(PlatformError) as exc:
        make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)
    assert exc.value.status_code == 400
    assert not isinstance(exc.value, (RateLimited, AuthFailed))


def test_container_id_probed_from_alternate_fields(clock):
    graph = FakeGraph(container={"data": {"id": "c-nested"}})
    make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)
    assert graph.polls()[0].url.path == "/v20.0/c-nested"


def test_missing_container_id(clock):
    graph = FakeGraph(container={"success": True})
    with pytest.raises(ContainerCreationFailed):
        make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)


def test_missing_media_id(clock):
    graph = FakeGraph(publish={"ok": True})
    with pytest.raises(PublishRejected):
        make_client(graph, clock).publish("https://x/a.png", "hi", "photo", CRED)


def test_story_and_reel_container_fields():
    assert container_fields("story", "https://x/a.png", "ignored") == {
        "image_url": "https://x/a.png", "media_type": "STORIES",
    }
    reel = container_fields("reel", "https://x/v.mp4", "cap")
    assert reel == {"video_url": "https://x/v.mp4", "media_type": "REELS", "caption": "cap"}
    assert container_fields("video", "https://x/v.mp4", "cap")["media_type"] == "REELS"
    assert container_fields("photo", "https://x/a.png", "cap") == {"image_url": "https://x/a.png", "caption": "cap"}


def test_story_is_posted_without_caption(clock):
    graph = FakeGraph()
    make_client(graph, clock).publish("https://x/a.png", "caption", "story", CRED)
    body = graph.requests[0].content
    assert b"media_type=STORIES" in body
    assert b"caption" not in body


def test_extract_first():
    assert extract_first({"id": "1"}, [("id",)]) == "1"
    assert extract_first({"id": "", "data": {"id": 7}}, [("id",), ("data", "id")]) == "7"
    assert extract_first({"data": "flat"}, [("data", "id")]) is None


def test_build_caption():
    assert build_caption("Hello", ["sun", "#beach"]) == "Hello\n\n#sun #beach"
    assert build_caption("Hello", []) == "Hello"
    assert build_caption("Hello", None) == "Hello"
    assert build_caption("", ["sun"]) == "#sun"


def test_get_user_info(clock):
    def handler(request):
        assert request.url.path == "/v20.0/me"
        assert request.headers["Authorization"] == "Bearer tok"
        return httpx.Response(200, json={"id": "17841000", "username": "brand"})

    client = InstagramClient(base_url=BASE, client=httpx.Client(transport=httpx.MockTransport(handler)))
    assert client.get_user_info("tok") == ("17841000", "brand")


def test_poll_stops_at_wall_clock_deadline(clock):
    graph = FakeGraph(statuses=["IN_PROGRESS"])

    def slow_graph(request):
        if request.method == "GET":
            # each status request takes 2 s on top of the 1 s pause
            clock.now += 2
        return graph(request)

    http = httpx.Client(transport=httpx.MockTransport(slow_graph))
    client = InstagramClient(
        base_url=BASE, poll_interval=1, max_polls=60,
        client=http, sleep=clock.sleep, clock=clock,
    )

    with pytest.raises(PublishTimeout):
        client.publish("https://x/a.png", "hi", "photo", CRED)

    assert len(graph.polls()) == 20
    assert clock.now == 60

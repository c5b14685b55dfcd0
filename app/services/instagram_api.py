# app/services/instagram_api.py
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx
from app.config import settings
from app.errors import (
    PlatformError, RateLimited, AuthFailed,
    ContainerCreationFailed, ContainerRejected, PublishTimeout, PublishRejected,
)

logger = logging.getLogger(__name__)

# The platform is not consistent about where it puts ids; candidates are tried in order.
CONTAINER_ID_PATHS = (("id",), ("data", "id"), ("creation_id",), ("container_id",))
STATUS_PATHS = (("status_code",), ("data", "status_code"), ("status",))
MEDIA_ID_PATHS = (("id",), ("data", "id"), ("media_id",))

STATUS_IN_PROGRESS = "IN_PROGRESS"
REJECTED_STATUSES = ("ERROR", "EXPIRED")


@dataclass(frozen=True)
class Credential:
    account_id: str
    platform_user_id: str
    access_token: str
    username: Optional[str] = None


def extract_first(payload: Any, paths: Iterable[Sequence[str]]) -> Optional[str]:
    """Return the first non-empty value found at any of the candidate key paths."""
    for path in paths:
        node = payload
        for key in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(key)
        if node not in (None, ""):
            return str(node)
    return None


def build_caption(caption: str, hashtags: Optional[List[str]] = None) -> str:
    tags = [h.strip() for h in (hashtags or []) if h and h.strip()]
    if not tags:
        return caption or ""
    tag_line = " ".join(t if t.startswith("#") else f"#{t}" for t in tags)
    return f"{caption}\n\n{tag_line}" if caption else tag_line


def container_fields(content_subtype: str, asset_url: str, caption: str) -> Dict[str, str]:
    """Create-container form fields for each content subtype."""
    if content_subtype == "story":
        # stories carry no caption
        return {"image_url": asset_url, "media_type": "STORIES"}
    if content_subtype in ("reel", "video"):
        return {"video_url": asset_url, "media_type": "REELS", "caption": caption}
    return {"image_url": asset_url, "caption": caption}


class InstagramClient:
    """Three-step container publish: create container, poll it, publish it."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        max_polls: Optional[int] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = (base_url or settings.graph_api_url).rstrip("/")
        self.poll_interval = settings.poll_interval_seconds if poll_interval is None else poll_interval
        self.max_polls = settings.poll_max_attempts if max_polls is None else max_polls
        self.client = client or httpx.Client(timeout=httpx.Timeout(timeout or settings.http_timeout_seconds, connect=5))
        self._sleep = sleep
        self._clock = clock

    # --- transport ---

    def _request(self, method: str, path: str, access_token: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            r = self.client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            raise PlatformError(f"Request to {path} failed: {e}") from e

        if r.status_code == 429:
            raise RateLimited(f"Rate limit exceeded on {path}", status_code=429)
        if r.status_code == 401:
            raise AuthFailed(f"Authentication failed on {path}: {r.text[:300]}", status_code=401)
        if r.status_code >= 400:
            raise PlatformError(f"Platform error {r.status_code} on {path}: {r.text[:500]}", status_code=r.status_code)
        try:
            data = r.json()
        except ValueError:
            raise PlatformError(f"Non-JSON response from {path}: {r.text[:300]}", status_code=r.status_code)
        if isinstance(data, dict) and data.get("error"):
            raise PlatformError(f"Platform error on {path}: {data['error']}", status_code=r.status_code)
        return data if isinstance(data, dict) else {"data": data}

    # --- protocol steps ---

    def create_container(self, asset_url: str, caption: str, content_subtype: str, credential: Credential) -> str:
        fields = container_fields(content_subtype, asset_url, caption)
        data = self._request("POST", f"{credential.platform_user_id}/media", credential.access_token, data=fields)
        container_id = extract_first(data, CONTAINER_ID_PATHS)
        if not container_id:
            raise ContainerCreationFailed(f"Failed to create container: {data}")
        return container_id

    def get_container_status(self, container_id: str, credential: Credential) -> str:
        data = self._request(
            "GET", container_id, credential.access_token,
            params={"fields": "status_code,status"},
        )
        return (extract_first(data, STATUS_PATHS) or STATUS_IN_PROGRESS).upper()

    def wait_for_container(self, container_id: str, credential: Credential) -> str:
        """Poll until the container leaves IN_PROGRESS, bounded by count and wall time."""
        deadline = self._clock() + self.poll_interval * self.max_polls
        status = STATUS_IN_PROGRESS
        polls = 0
        while polls < self.max_polls:
            self._sleep(self.poll_interval)
            polls += 1
            try:
                status = self.get_container_status(container_id, credential)
            except AuthFailed:
                raise
            except PlatformError as e:
                logger.warning("Status check for container %s failed (poll %d/%d), retrying: %s",
                               container_id, polls, self.max_polls, e)
                status = STATUS_IN_PROGRESS
            if status in REJECTED_STATUSES:
                raise ContainerRejected(f"Instagram rejected the media (container {container_id}: {status})")
            if status != STATUS_IN_PROGRESS:
                return status
            if self.poll_interval > 0 and self._clock() >= deadline:
                break
        raise PublishTimeout(f"Container {container_id} still {status} after {polls} polls")

    def publish_container(self, container_id: str, credential: Credential) -> str:
        data = self._request(
            "POST", f"{credential.platform_user_id}/media_publish", credential.access_token,
            data={"creation_id": container_id},
        )
        media_id = extract_first(data, MEDIA_ID_PATHS)
        if not media_id:
            raise PublishRejected(f"Publish returned no media id: {data}")
        return media_id

    def publish(self, asset_url: str, caption: str, content_subtype: str, credential: Credential) -> str:
        container_id = self.create_container(asset_url, caption, content_subtype, credential)
        logger.info("Container %s created for account %s", container_id, credential.account_id)
        self.wait_for_container(container_id, credential)
        media_id = self.publish_container(container_id, credential)
        logger.info("Container %s published as media %s", container_id, media_id)
        return media_id

    # --- account validation ---

    def get_user_info(self, access_token: str) -> Tuple[str, Optional[str]]:
        data = self._request("GET", "me", access_token, params={"fields": "id,username"})
        user_id = extract_first(data, (("id",), ("data", "id"), ("user_id",)))
        if not user_id:
            raise AuthFailed(f"Token did not resolve to an Instagram user: {data}")
        return user_id, extract_first(data, (("username",), ("data", "username")))

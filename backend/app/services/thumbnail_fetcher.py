"""Piko thumbnail client.

Responsibilities:
- Resolve the image source for an event (best shot or area camera)
- Load connector address/credentials
- Download the image with a hard deadline

Never raises: every failure is logged and returns None, the event pipeline
continues without a thumbnail.
"""
from __future__ import annotations

import asyncio
import base64
import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.events import EventThumbnailData, StandardizedEvent
from models.connector import Connector
from services.thumbnail_gate import AreaCamera, ThumbnailSource, get_thumbnail_source

logger = logging.getLogger("fusion.thumbnails.fetcher")


class ThumbnailFetchError(Exception):
    """Connector misconfiguration or unusable vendor response."""


class PikoThumbnailClient:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        http: httpx.AsyncClient | None = None,
        *,
        timeout: float = 3.0,
        size: str = "640x0",
    ):
        self.session_factory = session_factory
        self._http = http or httpx.AsyncClient(timeout=timeout, verify=False)
        self.timeout = timeout
        self.size = size

    async def close(self) -> None:
        await self._http.aclose()

    async def fetch(
        self,
        event: StandardizedEvent,
        area_cameras: list[AreaCamera] | None = None,
    ) -> EventThumbnailData | None:
        source = get_thumbnail_source(event, area_cameras)
        if source is None:
            return None

        prefix = f"[{source.connector_id}][{source.camera_id}]"
        try:
            return await asyncio.wait_for(self._fetch_source(source), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("%s %s thumbnail timed out after %.1fs", prefix, source.kind, self.timeout)
        except (httpx.HTTPError, ThumbnailFetchError) as exc:
            logger.warning("%s failed to fetch %s thumbnail: %s", prefix, source.kind, exc)
        except Exception as exc:
            logger.error("%s unexpected thumbnail error: %s", prefix, exc)
        return None

    # ------------------------------------------------------------------
    async def _load_connector(self, connector_id: str) -> Connector:
        async with self.session_factory() as session:
            connector = await session.get(Connector, connector_id)
        if connector is None:
            raise ThumbnailFetchError(f"connector {connector_id} not found")
        if not (connector.config or {}).get("url"):
            raise ThumbnailFetchError(f"connector {connector_id} has no url configured")
        return connector

    @staticmethod
    def _auth_kwargs(config: dict) -> dict:
        token = config.get("token")
        if token:
            return {"headers": {"Authorization": f"Bearer {token}"}}
        username = config.get("username")
        if username:
            return {"auth": httpx.BasicAuth(username, config.get("password", ""))}
        return {}

    def _request_for(self, base_url: str, source: ThumbnailSource) -> tuple[str, dict]:
        if source.kind == "best-shot":
            return (
                f"{base_url}/ec2/analyticsTrackBestShot",
                {"objectTrackId": source.object_track_id, "cameraId": source.camera_id},
            )
        return (
            f"{base_url}/rest/v3/devices/{source.camera_id}/image",
            {"timestampMs": source.timestamp_ms, "size": self.size},
        )

    async def _fetch_source(self, source: ThumbnailSource) -> EventThumbnailData:
        connector = await self._load_connector(source.connector_id)
        config = connector.config or {}
        url, params = self._request_for(config["url"].rstrip("/"), source)

        resp = await self._http.get(url, params=params, **self._auth_kwargs(config))
        resp.raise_for_status()

        content = resp.content
        if not content:
            raise ThumbnailFetchError("empty image body")
        content_type = resp.headers.get("content-type", "image/jpeg").split(";")[0]
        if not content_type.startswith("image/"):
            raise ThumbnailFetchError(f"unexpected content type {content_type}")

        logger.info(
            "[%s][%s] fetched %s thumbnail (%d bytes, %s)",
            source.connector_id, source.camera_id, source.kind, len(content), content_type,
        )
        return EventThumbnailData(
            data=base64.b64encode(content).decode("ascii"),
            content_type=content_type,
            size=len(content),
        )

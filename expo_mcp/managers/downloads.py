"""Download cache for companion app bundles (Expo Go .app archives and .apk files)."""

from __future__ import annotations

import asyncio
import shutil
import tarfile
from pathlib import Path

import httpx
from loguru import logger

from expo_mcp.utils.exceptions import ErrorCategory, ExpoMcpError


class DownloadError(ExpoMcpError):
    def __init__(self, url: str, message: str):
        super().__init__(
            f"download of {url} failed: {message}",
            code="DOWNLOAD_FAILED",
            category=ErrorCategory.RETRYABLE,
            details={"url": url},
        )


class DownloadCache:
    """Files fetched once into a directory and reused by name afterwards."""

    def __init__(
        self,
        directory: Path,
        *,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.directory = Path(directory)
        self.timeout = timeout
        self._transport = transport

    def path_for(self, filename: str) -> Path:
        return self.directory / filename

    async def fetch(self, url: str, filename: str) -> Path:
        """Return the cached file, downloading it (following redirects) when absent."""
        target = self.path_for(filename)
        if target.exists():
            logger.info("Using cached {}", target)
            return target
        self.directory.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")
        logger.info("Downloading {} -> {}", url, target)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise DownloadError(url, f"HTTP {response.status_code}")
                    with open(partial, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
            partial.replace(target)
        except httpx.HTTPError as exc:
            partial.unlink(missing_ok=True)
            raise DownloadError(url, str(exc) or type(exc).__name__) from exc
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        return target

    async def fetch_app_bundle(self, url: str, bundle_name: str) -> Path:
        """
        Fetch a .tar.gz app bundle and unpack it to ``<dir>/<bundle_name>``.

        Archives either wrap a single ``*.app`` directory or hold the bundle contents
        at their root; both end up at the same path.
        """
        target = self.path_for(bundle_name)
        if target.exists():
            logger.info("Using cached {}", target)
            return target
        archive = await self.fetch(url, f"{bundle_name}.tar.gz")
        staging = self.path_for(f"{bundle_name}.extract")
        try:
            await asyncio.to_thread(_extract, archive, staging)
            wrapped = [p for p in staging.iterdir() if p.is_dir() and p.suffix == ".app"]
            source = wrapped[0] if len(wrapped) == 1 else staging
            source.rename(target)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
            archive.unlink(missing_ok=True)
        if not target.exists():
            raise DownloadError(url, "archive did not contain an app bundle")
        return target


def _extract(archive: Path, destination: Path) -> None:
    shutil.rmtree(destination, ignore_errors=True)
    destination.mkdir(parents=True)
    with tarfile.open(archive, "r:gz") as tar:
        tar.extractall(destination, filter="data")

from __future__ import annotations

import logging
import re

from alldownloads.db.models import Architecture, Platform
from alldownloads.sources.base import FetchCancelledError, FetchContext, FetchError, VersionRecord
from alldownloads.sources.http import SourceHttpClient

logger = logging.getLogger(__name__)

RELEASES_URL = "https://releases.ubuntu.com/"

_VERSION_HREF = re.compile(r'href="([0-9]+\.[0-9]+(?:\.[0-9]+)?)/?"')
_ISO_HREF = re.compile(r'href="(ubuntu-[^"]*\.iso)"')

# End-of-life releases still listed on the mirror index.
SKIPPED_VERSIONS = frozenset({"14.04", "16.04", "18.04", "19.04", "19.10", "21.04", "21.10"})


def _architecture_for(filename: str) -> str:
    if "i386" in filename:
        return Architecture.I386.value
    if "arm64" in filename:
        return Architecture.ARM64.value
    return Architecture.AMD64.value


def parse_release_index(html: str) -> list[str]:
    versions: list[str] = []
    for version in _VERSION_HREF.findall(html):
        if version in SKIPPED_VERSIONS or version in versions:
            continue
        versions.append(version)
    return versions


def parse_checksums(body: str) -> dict[str, str]:
    checksums: dict[str, str] = {}
    for line in body.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            checksums[parts[1].lstrip("*")] = parts[0]
    return checksums


class UbuntuCapability:
    product_id = "ubuntu"

    def __init__(self, client: SourceHttpClient, *, releases_url: str = RELEASES_URL):
        self._client = client
        self._releases_url = releases_url if releases_url.endswith("/") else f"{releases_url}/"

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        index = self._client.get_text(ctx, self._releases_url)
        records: list[VersionRecord] = []
        for version in parse_release_index(index):
            try:
                records.extend(self._fetch_release(ctx, version))
            except FetchCancelledError:
                raise
            except FetchError as exc:
                logger.warning("skipping ubuntu %s: %s", version, exc)
        if not records:
            raise FetchError("No Ubuntu ISO images found on the release index")
        return records

    def _fetch_release(self, ctx: FetchContext, version: str) -> list[VersionRecord]:
        release_url = f"{self._releases_url}{version}/"
        listing = self._client.get_text(ctx, release_url)
        try:
            checksums = parse_checksums(self._client.get_text(ctx, f"{release_url}SHA256SUMS"))
        except FetchCancelledError:
            raise
        except FetchError:
            checksums = {}

        records: list[VersionRecord] = []
        seen: set[tuple[str, str]] = set()
        for filename in _ISO_HREF.findall(listing):
            arch = _architecture_for(filename)
            key = (Platform.LINUX.value, arch)
            # Desktop images are listed first; server variants would shadow them.
            if key in seen:
                continue
            seen.add(key)

            download_url = f"{release_url}{filename}"
            checksum = checksums.get(filename, "")
            records.append(
                VersionRecord(
                    version=version,
                    platform=Platform.LINUX.value,
                    architecture=arch,
                    download_url=download_url,
                    filename=filename,
                    file_size=self._client.content_length(ctx, download_url),
                    checksum=checksum,
                    checksum_type="sha256" if checksum else "",
                )
            )
        return records

from __future__ import annotations

import logging
import re

from alldownloads.db.models import Architecture, Platform
from alldownloads.sources.base import FetchCancelledError, FetchContext, FetchError, VersionRecord
from alldownloads.sources.http import SourceHttpClient
from alldownloads.sources.ubuntu import parse_checksums

logger = logging.getLogger(__name__)

ISO_INDEX_URL = "https://cdimage.debian.org/debian-cd/current/amd64/iso-cd/"

_ISO_HREF = re.compile(r'href="(debian-[^"]*\.iso)"')
_VERSION = re.compile(r"debian-([0-9]+\.[0-9]+(?:\.[0-9]+)?)")


class DebianCapability:
    product_id = "debian"

    def __init__(self, client: SourceHttpClient, *, index_url: str = ISO_INDEX_URL):
        self._client = client
        self._index_url = index_url if index_url.endswith("/") else f"{index_url}/"

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        listing = self._client.get_text(ctx, self._index_url)
        try:
            checksums = parse_checksums(self._client.get_text(ctx, f"{self._index_url}SHA256SUMS"))
        except FetchCancelledError:
            raise
        except FetchError as exc:
            logger.warning("debian checksums unavailable: %s", exc)
            checksums = {}

        records: list[VersionRecord] = []
        seen: set[tuple[str, str]] = set()
        for filename in _ISO_HREF.findall(listing):
            match = _VERSION.search(filename)
            if match is None:
                continue
            arch = Architecture.I386.value if "i386" in filename else Architecture.AMD64.value
            key = (Platform.LINUX.value, arch)
            # netinst is listed ahead of the larger media on the index.
            if key in seen:
                continue
            seen.add(key)

            download_url = f"{self._index_url}{filename}"
            checksum = checksums.get(filename, "")
            records.append(
                VersionRecord(
                    version=match.group(1),
                    platform=Platform.LINUX.value,
                    architecture=arch,
                    download_url=download_url,
                    filename=filename,
                    file_size=self._client.content_length(ctx, download_url),
                    checksum=checksum,
                    checksum_type="sha256" if checksum else "",
                )
            )
        if not records:
            raise FetchError("No Debian ISO images found on the release index")
        return records

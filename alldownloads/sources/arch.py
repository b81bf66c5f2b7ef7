from __future__ import annotations

import logging
import re

from alldownloads.db.models import Architecture, Platform
from alldownloads.sources.base import FetchCancelledError, FetchContext, FetchError, VersionRecord
from alldownloads.sources.http import SourceHttpClient, response_size

logger = logging.getLogger(__name__)

ISO_FILENAME = "archlinux-x86_64.iso"
MIRRORS = (
    f"https://mirror.rackspace.com/archlinux/iso/latest/{ISO_FILENAME}",
    f"https://mirrors.kernel.org/archlinux/iso/latest/{ISO_FILENAME}",
)

_DATED_RELEASE = re.compile(r"archlinux-([0-9]{4}\.[0-9]{2}\.[0-9]{2})")


class ArchLinuxCapability:
    """Asks each mirror for the rolling ``latest`` ISO; the first that answers wins.

    Mirrors that redirect to a dated image reveal the release; otherwise the
    version is reported as ``latest``.
    """

    product_id = "arch"

    def __init__(self, client: SourceHttpClient, *, mirrors: tuple[str, ...] = MIRRORS):
        self._client = client
        self._mirrors = mirrors

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        for mirror in self._mirrors:
            try:
                response = self._client.head(ctx, mirror)
            except FetchCancelledError:
                raise
            except FetchError as exc:
                logger.warning("arch mirror unavailable %s: %s", mirror, exc)
                continue

            final_url = str(response.url)
            match = _DATED_RELEASE.search(final_url)
            return [
                VersionRecord(
                    version=match.group(1) if match else "latest",
                    platform=Platform.LINUX.value,
                    architecture=Architecture.AMD64.value,
                    download_url=final_url,
                    filename=ISO_FILENAME,
                    file_size=response_size(response),
                )
            ]
        raise FetchError("No Arch Linux mirror answered")

from __future__ import annotations

from dataclasses import dataclass

from alldownloads.db.models import Architecture, Platform
from alldownloads.sources.base import FetchContext, VersionRecord
from alldownloads.sources.http import SourceHttpClient, extract_filename


@dataclass(frozen=True)
class StaticDownload:
    platform: str
    architecture: str
    url: str


class StaticTableCapability:
    """Capability for vendors that publish stable, versioned download links.

    Only the file size is looked up over the network; everything else comes from
    the table.
    """

    def __init__(
        self,
        client: SourceHttpClient,
        *,
        product_id: str,
        version: str,
        downloads: tuple[StaticDownload, ...],
    ):
        self.product_id = product_id
        self._client = client
        self._version = version
        self._downloads = downloads

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        records: list[VersionRecord] = []
        for item in self._downloads:
            records.append(
                VersionRecord(
                    version=self._version,
                    platform=item.platform,
                    architecture=item.architecture,
                    download_url=item.url,
                    filename=extract_filename(item.url),
                    file_size=self._client.content_length(ctx, item.url),
                )
            )
        return records


KALI_VERSION = "2025.2"
KALI_DOWNLOADS = (
    StaticDownload(
        platform=Platform.LINUX.value,
        architecture=Architecture.AMD64.value,
        url="https://cdimage.kali.org/kali-2025.2/kali-linux-2025.2-installer-amd64.iso",
    ),
    StaticDownload(
        platform=Platform.LINUX.value,
        architecture=Architecture.ARM64.value,
        url="https://cdimage.kali.org/kali-2025.2/kali-linux-2025.2-installer-arm64.iso",
    ),
)


def kali_capability(client: SourceHttpClient) -> StaticTableCapability:
    return StaticTableCapability(client, product_id="kali", version=KALI_VERSION, downloads=KALI_DOWNLOADS)

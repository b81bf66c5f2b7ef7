from __future__ import annotations

from alldownloads.db.models import Architecture, Platform
from alldownloads.sources.base import FetchContext, FetchError, VersionRecord
from alldownloads.sources.http import SourceHttpClient, extract_filename

VERSIONS_URL = "https://versionhistory.googleapis.com/v1/chrome/platforms/win/channels/stable/versions"

DOWNLOADS: dict[tuple[str, str], str] = {
    (Platform.WINDOWS.value, Architecture.AMD64.value): (
        "https://dl.google.com/chrome/install/googlechromestandaloneenterprise64.msi"
    ),
    (Platform.WINDOWS.value, Architecture.I386.value): (
        "https://dl.google.com/chrome/install/googlechromestandaloneenterprise.msi"
    ),
    (Platform.MACOS.value, Architecture.AMD64.value): "https://dl.google.com/chrome/mac/stable/GGRO/googlechrome.dmg",
    (Platform.LINUX.value, Architecture.AMD64.value): (
        "https://dl.google.com/linux/direct/google-chrome-stable_current_amd64.deb"
    ),
}


class ChromeCapability:
    product_id = "chrome"

    def __init__(self, client: SourceHttpClient, *, versions_url: str = VERSIONS_URL):
        self._client = client
        self._versions_url = versions_url

    def _latest_version(self, ctx: FetchContext) -> str:
        payload = self._client.get_json(ctx, self._versions_url)
        versions = payload.get("versions") if isinstance(payload, dict) else None
        if not versions or not isinstance(versions[0], dict) or not versions[0].get("version"):
            raise FetchError("No Chrome versions found")
        return str(versions[0]["version"])

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        version = self._latest_version(ctx)
        records: list[VersionRecord] = []
        for (platform, arch), download_url in DOWNLOADS.items():
            records.append(
                VersionRecord(
                    version=version,
                    platform=platform,
                    architecture=arch,
                    download_url=download_url,
                    filename=extract_filename(download_url),
                    file_size=self._client.content_length(ctx, download_url),
                )
            )
        return records

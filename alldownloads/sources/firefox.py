from __future__ import annotations

from alldownloads.db.models import Architecture, Platform
from alldownloads.sources.base import FetchContext, FetchError, VersionRecord
from alldownloads.sources.http import SourceHttpClient

VERSIONS_URL = "https://product-details.mozilla.org/1.0/firefox_versions.json"
DOWNLOAD_BASE_URL = "https://download.mozilla.org/"

# (platform, architecture) -> (bouncer os token, filename)
VARIANTS: dict[tuple[str, str], tuple[str, str]] = {
    (Platform.WINDOWS.value, Architecture.AMD64.value): ("win64", "Firefox Setup.exe"),
    (Platform.WINDOWS.value, Architecture.I386.value): ("win", "Firefox Setup.exe"),
    (Platform.MACOS.value, Architecture.AMD64.value): ("osx", "Firefox.dmg"),
    (Platform.LINUX.value, Architecture.AMD64.value): ("linux64", "firefox.tar.bz2"),
}


class FirefoxCapability:
    product_id = "firefox"

    def __init__(
        self,
        client: SourceHttpClient,
        *,
        versions_url: str = VERSIONS_URL,
        download_base_url: str = DOWNLOAD_BASE_URL,
        language: str = "en-US",
    ):
        self._client = client
        self._versions_url = versions_url
        self._download_base_url = download_base_url
        self._language = language

    def _download_url(self, os_token: str) -> str:
        return f"{self._download_base_url}?product=firefox-latest&os={os_token}&lang={self._language}"

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        payload = self._client.get_json(ctx, self._versions_url)
        if not isinstance(payload, dict):
            raise FetchError("Unexpected Firefox versions payload")
        latest = payload.get("LATEST_FIREFOX_VERSION")
        if not latest:
            raise FetchError("Latest Firefox version not found")

        records: list[VersionRecord] = []
        for (platform, arch), (os_token, filename) in VARIANTS.items():
            download_url = self._download_url(os_token)
            records.append(
                VersionRecord(
                    version=str(latest),
                    platform=platform,
                    architecture=arch,
                    download_url=download_url,
                    filename=filename,
                    file_size=self._client.content_length(ctx, download_url),
                )
            )
        return records

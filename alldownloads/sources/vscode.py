from __future__ import annotations

from alldownloads.db.models import Architecture, Platform
from alldownloads.sources.base import FetchContext, FetchError, VersionRecord
from alldownloads.sources.http import SourceHttpClient

UPDATE_BASE_URL = "https://update.code.visualstudio.com"

# (platform, architecture) -> (update channel build, filename)
VARIANTS: dict[tuple[str, str], tuple[str, str]] = {
    (Platform.WINDOWS.value, Architecture.AMD64.value): ("win32-x64-user", "VSCodeUserSetup.exe"),
    (Platform.WINDOWS.value, Architecture.I386.value): ("win32-user", "VSCodeUserSetup.exe"),
    (Platform.MACOS.value, Architecture.AMD64.value): ("darwin", "VSCode-darwin.zip"),
    (Platform.LINUX.value, Architecture.AMD64.value): ("linux-x64", "code.tar.gz"),
}


class VSCodeCapability:
    product_id = "vscode"

    def __init__(self, client: SourceHttpClient, *, update_base_url: str = UPDATE_BASE_URL):
        self._client = client
        self._update_base_url = update_base_url.rstrip("/")

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        payload = self._client.get_json(ctx, f"{self._update_base_url}/api/update/win32-x64-user/stable/latest")
        version = payload.get("name") if isinstance(payload, dict) else None
        if not version:
            raise FetchError("Latest VS Code version not found")

        records: list[VersionRecord] = []
        for (platform, arch), (build, filename) in VARIANTS.items():
            download_url = f"{self._update_base_url}/latest/{build}/stable"
            records.append(
                VersionRecord(
                    version=str(version),
                    platform=platform,
                    architecture=arch,
                    download_url=download_url,
                    filename=filename,
                    file_size=self._client.content_length(ctx, download_url),
                )
            )
        return records

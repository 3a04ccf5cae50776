from typing import Any, Optional

import requests

from clubhouse.settings import Settings, load_settings


class StorageApiError(Exception):
    pass


class StorageClient:
    def __init__(self, service_url: str, service_key: str, timeout: int = 20):
        if not service_url or not service_key:
            raise StorageApiError("Missing service environment variables")
        self.base_url = f"{service_url.rstrip('/')}/storage/v1"
        self.service_key = service_key
        self.timeout = timeout

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        if extra:
            headers.update(extra)
        return headers

    def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> str:
        response = requests.post(
            f"{self.base_url}/object/{bucket}/{path}",
            data=content,
            headers=self._headers(
                {
                    "Content-Type": content_type,
                    "cache-control": f"max-age={cache_control}",
                    "x-upsert": "true" if upsert else "false",
                }
            ),
            timeout=self.timeout,
        )
        if response.status_code not in (200, 201):
            raise StorageApiError(f"Upload failed: {response.status_code} {response.text}")
        payload = response.json()
        key = payload.get("Key") if isinstance(payload, dict) else None
        prefix = f"{bucket}/"
        if key and key.startswith(prefix):
            return key[len(prefix):]
        return path

    def remove(self, bucket: str, paths: list[str]) -> list[dict[str, Any]]:
        response = requests.delete(
            f"{self.base_url}/object/{bucket}",
            json={"prefixes": paths},
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise StorageApiError(f"Delete failed: {response.status_code} {response.text}")
        return response.json()

    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        response = requests.post(
            f"{self.base_url}/object/sign/{bucket}/{path}",
            json={"expiresIn": expires_in},
            headers=self._headers(),
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise StorageApiError(
                f"Signed URL failed: {response.status_code} {response.text}"
            )
        payload = response.json()
        signed = payload.get("signedURL") if isinstance(payload, dict) else None
        if not signed:
            raise StorageApiError(f"Signed URL returned unexpected payload: {response.text}")
        return f"{self.base_url}{signed}"

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/public/{bucket}/{path}"


_client: Optional[StorageClient] = None


def get_storage_client(settings: Optional[Settings] = None) -> StorageClient:
    global _client
    if _client is None:
        current = settings or load_settings()
        _client = StorageClient(current.service_url, current.service_key)
    return _client


def reset_storage_client() -> None:
    global _client
    _client = None

"""
存储网关客户端

真正的 S3 读写由外部存储网关完成；这里只做目录浏览和文件锁列表查询
"""
import logging
from typing import Any, Dict, List, Optional
import httpx

from config.settings import settings
from services.bucket_resolver import Route
from services.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


class StorageGatewayClient:
    """存储网关 HTTP 客户端"""

    def __init__(
        self,
        base_url: str = settings.storage_gateway_url,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.base_url = base_url.rstrip("/")
        # 测试时可注入 httpx.MockTransport
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        if settings.storage_gateway_token:
            return {"Authorization": f"Bearer {settings.storage_gateway_token}"}
        return {}

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET 请求，传输错误时重试 http_max_retries 次"""
        url = f"{self.base_url}{path}"
        last_error: Optional[Exception] = None

        async with httpx.AsyncClient(
            timeout=settings.http_timeout,
            transport=self.transport,
            headers=self._headers()
        ) as client:
            for attempt in range(settings.http_max_retries + 1):
                try:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as e:
                    logger.error(f"Storage gateway returned error {e.response.status_code} for {path}")
                    raise UpstreamUnavailable(
                        f"Storage gateway error: {e.response.status_code}",
                        reason="gateway_error",
                        status=e.response.status_code
                    ) from e
                except httpx.TransportError as e:
                    last_error = e
                    logger.warning(f"Storage gateway request failed (attempt {attempt + 1}): {e}")

        raise UpstreamUnavailable(
            f"Storage gateway unreachable: {last_error}",
            reason="gateway_unreachable"
        ) from last_error

    async def browse(self, route: Route, prefix: str = "") -> Dict[str, Any]:
        """
        列出远端桶指定前缀下的目录和文件

        Returns:
            {"folders": [{name, prefix}], "files": [{key, size, lastModified}],
             "prefix": str, "isTruncated": bool}
        """
        data = await self._get("/internal/browse", params={
            "provider_id": route.provider_id,
            "bucket": route.remote_bucket_name,
            "prefix": prefix,
        })
        return {
            "folders": [
                {"name": folder.get("name"), "prefix": folder.get("prefix")}
                for folder in data.get("folders", [])
            ],
            "files": [
                {"key": f.get("key"), "size": f.get("size", 0), "lastModified": f.get("lastModified")}
                for f in data.get("files", [])
            ],
            "prefix": prefix,
            "isTruncated": bool(data.get("isTruncated", False)),
        }

    async def list_locks(self) -> List[Dict[str, Any]]:
        """当前活动的文件锁（只读，仅供参考）"""
        data = await self._get("/locks/list")
        return data.get("locks", [])


# 全局单例
storage_gateway = StorageGatewayClient()

"""
控制台 API 客户端

- 每个请求带 Bearer token 和组织请求头
- ACL 修改使用乐观更新：先改缓存，失败时恢复快照并抛出错误
- ActiveLocksPoller 定期拉取活动文件锁，失败时保留旧数据
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
import httpx

from config.settings import settings
from console.cache import GROUP_ACLS, USER_ACLS, QueryCache, apply_permission

logger = logging.getLogger(__name__)


class ConsoleAPIError(Exception):
    """服务端返回的错误（ErrorResponse）"""

    def __init__(self, status_code: int, message: str, error_code: Optional[str] = None,
                 reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_code = error_code
        self.reason = reason


class ConsoleClient:
    """VFX.sh 管理服务的 HTTP 客户端"""

    def __init__(
        self,
        base_url: str,
        token: str,
        org_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.org_id = org_id
        self.transport = transport

    @asynccontextmanager
    async def _client(self):
        headers = {"Authorization": f"Bearer {self.token}"}
        if self.org_id:
            headers[settings.organization_header] = self.org_id
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=settings.http_timeout,
            transport=self.transport
        ) as client:
            yield client

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        async with self._client() as client:
            response = await client.request(method, path, **kwargs)

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            details = body.get("details") or {}
            raise ConsoleAPIError(
                status_code=response.status_code,
                message=body.get("message") or body.get("detail") or response.text,
                error_code=body.get("error_code"),
                reason=details.get("reason") if isinstance(details, dict) else None
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @property
    def _scope(self) -> str:
        return self.org_id or ""

    # ==================== 查询 ====================

    async def get_me(self) -> Dict[str, Any]:
        return await self._request("GET", "/me")

    async def get_user_acl_matrix(self, cache: Optional[QueryCache] = None) -> Dict[str, Dict[str, str]]:
        matrix = (await self._request("GET", "/acls/users"))["acls"]
        if cache is not None:
            cache.set(USER_ACLS, self._scope, matrix)
        return matrix

    async def get_group_acl_matrix(self, cache: Optional[QueryCache] = None) -> Dict[str, Dict[str, str]]:
        matrix = (await self._request("GET", "/acls/groups"))["acls"]
        if cache is not None:
            cache.set(GROUP_ACLS, self._scope, matrix)
        return matrix

    async def list_locks(self) -> List[Dict[str, Any]]:
        return (await self._request("GET", "/locks/list"))["locks"]

    # ==================== 乐观更新 ====================

    async def set_user_bucket_permission(
        self,
        cache: QueryCache,
        user_id: str,
        bucket_name: str,
        permission: Optional[str]
    ) -> Optional[str]:
        """
        设置用户对存储桶的权限（None 表示移除）

        请求失败时缓存恢复到修改前的快照，并重新抛出错误
        """
        snapshot = cache.snapshot(USER_ACLS, self._scope)
        cache.update(USER_ACLS, self._scope,
                     lambda matrix: apply_permission(matrix, user_id, bucket_name, permission))
        try:
            if permission is None:
                await self._request("DELETE", f"/users/{user_id}/acl/{bucket_name}")
            else:
                await self._request("PUT", f"/users/{user_id}/acl/{bucket_name}", json={"permission": permission})
        except (ConsoleAPIError, httpx.HTTPError) as e:
            logger.warning(f"Rolling back user permission change for {user_id}/{bucket_name}: {e}")
            cache.restore(snapshot)
            raise
        return permission

    async def set_group_bucket_permission(
        self,
        cache: QueryCache,
        group_id: str,
        bucket_name: str,
        permission: Optional[str]
    ) -> Optional[str]:
        """设置用户组对存储桶的权限（None 表示移除），失败时回滚缓存"""
        snapshot = cache.snapshot(GROUP_ACLS, self._scope)
        cache.update(GROUP_ACLS, self._scope,
                     lambda matrix: apply_permission(matrix, group_id, bucket_name, permission))
        try:
            if permission is None:
                await self._request("DELETE", f"/groups/{group_id}/access/{bucket_name}")
            else:
                await self._request("POST", f"/groups/{group_id}/access",
                                    json={"bucket": bucket_name, "permission": permission})
        except (ConsoleAPIError, httpx.HTTPError) as e:
            logger.warning(f"Rolling back group permission change for {group_id}/{bucket_name}: {e}")
            cache.restore(snapshot)
            raise
        return permission


class ActiveLocksPoller:
    """
    活动文件锁轮询

    锁信息只供参考：拉取失败时记录警告并保留上一次的结果，从不向调用方抛出
    """

    def __init__(self, client: ConsoleClient, interval: float = settings.lock_poll_interval) -> None:
        self.client = client
        self.interval = interval
        self.locks: List[Dict[str, Any]] = []
        self.last_updated: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def stale(self) -> bool:
        return self.last_error is not None

    async def poll_once(self) -> List[Dict[str, Any]]:
        try:
            self.locks = await self.client.list_locks()
            self.last_updated = datetime.utcnow()
            self.last_error = None
        except (ConsoleAPIError, httpx.HTTPError) as e:
            self.last_error = str(e)
            logger.warning(f"Failed to refresh active locks, keeping previous data: {e}")
        return self.locks

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

"""
存储桶解析服务 (Bucket Resolver)

把逻辑桶名解析为物理位置：
- 标准桶：1:1 映射到某个提供方上的远端桶
- 虚拟桶：按 sort_order 升序排列的源目录列表

读取路由：按顺序探测，第一个挂载点匹配的源胜出（前面的源遮蔽后面的）
写入路由：最长匹配的挂载点胜出，没有匹配时回退到第一个源
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Bucket, BucketType, VirtualBucketSource
from services.exceptions import NoSourcesConfigured, NotFound
from services.resolution_cache import ResolutionCache, resolution_cache

logger = logging.getLogger(__name__)


def normalize_mount(mount_point: Optional[str]) -> str:
    """挂载点统一为 "a/b/" 形式，空字符串表示挂载在根目录"""
    mount = (mount_point or "").strip().lstrip("/")
    if mount and not mount.endswith("/"):
        mount += "/"
    return mount


def normalize_path(path: Optional[str]) -> str:
    return (path or "").lstrip("/")


def mount_matches(mount_point: str, path: str) -> bool:
    if not mount_point:
        return True
    return path.startswith(mount_point) or path == mount_point.rstrip("/")


@dataclass(frozen=True)
class Route:
    """一次读/写操作的物理目标"""
    bucket_name: str
    provider_id: Optional[str]
    remote_bucket_name: Optional[str]
    key: str
    source_id: Optional[int] = None
    source_bucket_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SourceMount:
    """虚拟桶的一个源目录（已解析到底层标准桶）"""
    id: int
    source_bucket_name: str
    source_prefix: str
    mount_point: str
    sort_order: int
    provider_id: Optional[str] = None
    remote_bucket_name: Optional[str] = None
    display_name: Optional[str] = None

    def matches(self, path: str) -> bool:
        return mount_matches(normalize_mount(self.mount_point), path)

    def translate(self, path: str) -> str:
        """虚拟路径 → 源桶中的对象键"""
        mount = normalize_mount(self.mount_point)
        if mount and path.startswith(mount):
            rest = path[len(mount):]
        elif mount and path == mount.rstrip("/"):
            rest = ""
        else:
            rest = path
        return normalize_mount(self.source_prefix) + rest


@dataclass(frozen=True)
class PhysicalLocation:
    """标准桶的解析结果"""
    bucket_name: str
    provider_id: str
    remote_bucket_name: str

    bucket_type = BucketType.STANDARD

    def route_read(self, path: str = "") -> Route:
        return Route(self.bucket_name, self.provider_id, self.remote_bucket_name, normalize_path(path))

    def read_candidates(self, path: str = "") -> List[Route]:
        return [self.route_read(path)]

    def route_write(self, path: str = "") -> Route:
        return self.route_read(path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket_type": self.bucket_type.value,
            "bucket_name": self.bucket_name,
            "provider_id": self.provider_id,
            "remote_bucket_name": self.remote_bucket_name,
        }


@dataclass(frozen=True)
class VirtualSet:
    """虚拟桶的解析结果，sources 已按 sort_order 升序排列"""
    bucket_name: str
    sources: tuple

    bucket_type = BucketType.VIRTUAL

    def _route(self, source: SourceMount, path: str) -> Route:
        return Route(
            bucket_name=self.bucket_name,
            provider_id=source.provider_id,
            remote_bucket_name=source.remote_bucket_name,
            key=source.translate(path),
            source_id=source.id,
            source_bucket_name=source.source_bucket_name,
        )

    def read_candidates(self, path: str = "") -> List[Route]:
        """所有挂载点匹配的源，按读取优先级排列"""
        path = normalize_path(path)
        return [self._route(source, path) for source in self.sources if source.matches(path)]

    def route_read(self, path: str = "") -> Route:
        candidates = self.read_candidates(path)
        if not candidates:
            raise NotFound(
                f"Path '{path}' is not mounted in virtual bucket {self.bucket_name}",
                reason="path_not_mounted",
                resource_id=self.bucket_name
            )
        return candidates[0]

    def route_write(self, path: str = "") -> Route:
        path = normalize_path(path)
        target = self.sources[0]
        best_length = -1
        for source in self.sources:
            if not source.matches(path):
                continue
            length = len(normalize_mount(source.mount_point))
            # 长度相同时保留 sort_order 更小的源
            if length > best_length:
                target, best_length = source, length
        return self._route(target, path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket_type": self.bucket_type.value,
            "bucket_name": self.bucket_name,
            "sources": [asdict(source) for source in self.sources],
        }


Resolution = Union[PhysicalLocation, VirtualSet]


def resolution_from_dict(data: Dict[str, Any]) -> Resolution:
    """从缓存中的 JSON 重建解析结果"""
    if data["bucket_type"] == BucketType.VIRTUAL.value:
        return VirtualSet(
            bucket_name=data["bucket_name"],
            sources=tuple(SourceMount(**source) for source in data["sources"]),
        )
    return PhysicalLocation(
        bucket_name=data["bucket_name"],
        provider_id=data["provider_id"],
        remote_bucket_name=data["remote_bucket_name"],
    )


def build_virtual_set(bucket_name: str, sources: List[SourceMount]) -> VirtualSet:
    if not sources:
        raise NoSourcesConfigured(
            f"Virtual bucket {bucket_name} has no sources configured",
            reason="no_sources_configured",
            resource_id=bucket_name
        )
    ordered = sorted(sources, key=lambda s: (s.sort_order, s.id))
    return VirtualSet(bucket_name=bucket_name, sources=tuple(ordered))


class BucketResolver:
    """
    存储桶解析服务

    查询顺序：解析缓存 → 数据库
    """

    def __init__(self, cache: ResolutionCache = resolution_cache) -> None:
        self.cache = cache

    async def resolve(self, bucket_name: str, db: AsyncSession) -> Resolution:
        """
        解析逻辑桶名

        Raises:
            NotFound: 没有该桶
            NoSourcesConfigured: 虚拟桶没有源
        """
        cached = await self.cache.get(bucket_name)
        if cached:
            return resolution_from_dict(cached)

        result = await db.execute(select(Bucket).where(Bucket.bucket_name == bucket_name))
        bucket = result.scalar_one_or_none()
        if bucket is None:
            raise NotFound(f"Bucket {bucket_name} not found", reason="bucket_not_found", resource_id=bucket_name)

        resolution: Resolution
        if bucket.bucket_type == BucketType.STANDARD:
            resolution = PhysicalLocation(
                bucket_name=bucket.bucket_name,
                provider_id=bucket.provider_id,
                remote_bucket_name=bucket.remote_bucket_name,
            )
        else:
            stmt = (
                select(VirtualBucketSource, Bucket)
                .join(Bucket, Bucket.bucket_name == VirtualBucketSource.source_bucket_name)
                .where(VirtualBucketSource.virtual_bucket_name == bucket_name)
                .order_by(VirtualBucketSource.sort_order, VirtualBucketSource.id)
            )
            rows = (await db.execute(stmt)).all()
            resolution = build_virtual_set(bucket_name, [
                SourceMount(
                    id=source.id,
                    source_bucket_name=source.source_bucket_name,
                    source_prefix=source.source_prefix or "",
                    mount_point=source.mount_point or "",
                    sort_order=source.sort_order,
                    provider_id=source_bucket.provider_id,
                    remote_bucket_name=source_bucket.remote_bucket_name,
                    display_name=source.display_name,
                )
                for source, source_bucket in rows
            ])

        await self.cache.set(bucket_name, resolution.to_dict())
        logger.debug(f"Resolved bucket {bucket_name} ({resolution.bucket_type.value})")
        return resolution

    async def invalidate(self, bucket_name: str) -> None:
        await self.cache.invalidate(bucket_name)


# 全局单例
bucket_resolver = BucketResolver()

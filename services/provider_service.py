"""
存储提供方服务

提供方是平台级资源；凭证只写，加密后存储，任何接口都不返回
"""
import logging
import re
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Bucket, Provider
from services.encryption import encryption_service
from services.exceptions import Conflict, NotFound, ValidationError

logger = logging.getLogger(__name__)

PROVIDER_ID_RE = re.compile(r"^[a-z0-9-]+$")


def validate_endpoint_url(endpoint_url: str) -> str:
    if not re.match(r"^https?://[^\s/]+", endpoint_url or ""):
        raise ValidationError(f"Invalid endpoint URL: {endpoint_url}", reason="invalid_url",
                              resource_id=endpoint_url)
    return endpoint_url.rstrip("/")


class ProviderService:
    """存储提供方服务"""

    def __init__(self) -> None:
        self.encryption = encryption_service

    async def list_providers(self, db: AsyncSession, enabled_only: bool = False) -> List[Provider]:
        stmt = select(Provider).order_by(Provider.name)
        if enabled_only:
            stmt = stmt.where(Provider.enabled.is_(True))
        return list((await db.execute(stmt)).scalars().all())

    async def get_provider(self, provider_id: str, db: AsyncSession) -> Provider:
        provider = await db.get(Provider, provider_id)
        if provider is None:
            raise NotFound(f"Provider {provider_id} not found", reason="provider_not_found",
                           resource_id=provider_id)
        return provider

    async def create_provider(
        self,
        provider_id: str,
        name: str,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        db: AsyncSession,
        region: str = "us-east-1"
    ) -> Provider:
        if not PROVIDER_ID_RE.match(provider_id or ""):
            raise ValidationError(f"Invalid provider id: {provider_id}", reason="invalid_slug",
                                  resource_id=provider_id)
        endpoint_url = validate_endpoint_url(endpoint_url)
        if await db.get(Provider, provider_id) is not None:
            raise Conflict(f"Provider {provider_id} already exists", reason="duplicate_provider",
                           resource_id=provider_id)

        provider = Provider(
            id=provider_id,
            name=name,
            endpoint_url=endpoint_url,
            region=region or "us-east-1",
            access_key_id=self.encryption.encrypt(access_key_id),
            secret_access_key=self.encryption.encrypt(secret_access_key),
            enabled=True,
        )
        db.add(provider)
        await db.commit()
        logger.info(f"Created provider: {provider_id} ({endpoint_url})")
        return provider

    async def update_provider(
        self,
        provider_id: str,
        db: AsyncSession,
        name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        enabled: Optional[bool] = None
    ) -> Provider:
        provider = await self.get_provider(provider_id, db)
        if name:
            provider.name = name
        if endpoint_url:
            provider.endpoint_url = validate_endpoint_url(endpoint_url)
        if region:
            provider.region = region
        # 凭证只在显式提供时替换
        if access_key_id:
            provider.access_key_id = self.encryption.encrypt(access_key_id)
        if secret_access_key:
            provider.secret_access_key = self.encryption.encrypt(secret_access_key)
        if enabled is not None:
            provider.enabled = enabled
        await db.commit()
        logger.info(f"Updated provider: {provider_id}")
        return provider

    async def delete_provider(self, provider_id: str, db: AsyncSession) -> None:
        """删除提供方，仍有存储桶引用时返回 Conflict"""
        provider = await self.get_provider(provider_id, db)
        count_stmt = select(func.count()).select_from(Bucket).where(Bucket.provider_id == provider_id)
        in_use = (await db.execute(count_stmt)).scalar_one()
        if in_use:
            raise Conflict(
                f"Provider {provider_id} is used by {in_use} bucket(s)",
                reason="provider_in_use",
                resource_id=provider_id
            )
        await db.delete(provider)
        await db.commit()
        logger.info(f"Deleted provider: {provider_id}")


# 全局单例
provider_service = ProviderService()

"""
访问密钥服务

负责 S3 访问密钥的生命周期：Secret 加密存储，只在创建和轮转时返回一次
"""
import logging
from typing import List, Optional
from datetime import datetime
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AccessKey
from services.encryption import encryption_service, generate_access_key_id, generate_secret_key
from services.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)


class AccessKeyService:
    """
    访问密钥服务

    使用数据库持久化访问密钥，并通过 Fernet 对称加密保护 Secret
    """

    def __init__(self) -> None:
        self.encryption = encryption_service

    async def create_key(
        self,
        user_id: str,
        org_id: str,
        db: AsyncSession,
        name: Optional[str] = None,
        expiration: Optional[datetime] = None
    ) -> tuple[AccessKey, str]:
        """
        创建访问密钥

        Returns:
            (密钥记录, 明文 Secret)；明文 Secret 之后无法再取回
        """
        if expiration is not None and expiration <= datetime.utcnow():
            raise ValidationError("Expiration must be in the future", reason="expiration_in_past")

        access_key_id = generate_access_key_id()
        while await db.get(AccessKey, access_key_id) is not None:
            access_key_id = generate_access_key_id()

        secret = generate_secret_key()
        key = AccessKey(
            access_key_id=access_key_id,
            secret_value=self.encryption.encrypt(secret),
            user_id=user_id,
            org_id=org_id,
            name=name,
            expiration=expiration,
            enabled=True,
        )
        db.add(key)
        await db.commit()
        logger.info(f"Created access key {access_key_id} for user {user_id}")
        return key, secret

    async def get_key(self, access_key_id: str, org_id: str, db: AsyncSession) -> AccessKey:
        key = await db.get(AccessKey, access_key_id)
        if key is None or key.org_id != org_id:
            raise NotFound(f"Access key {access_key_id} not found", reason="key_not_found",
                           resource_id=access_key_id)
        return key

    async def list_keys(
        self,
        org_id: str,
        db: AsyncSession,
        user_id: Optional[str] = None
    ) -> List[AccessKey]:
        """列出组织的访问密钥（可按用户过滤），不包含 Secret"""
        stmt = select(AccessKey).where(AccessKey.org_id == org_id)
        if user_id:
            stmt = stmt.where(AccessKey.user_id == user_id)
        stmt = stmt.order_by(AccessKey.created_at.desc())
        return list((await db.execute(stmt)).scalars().all())

    async def rotate_key(self, key: AccessKey, db: AsyncSession) -> str:
        """
        轮转 Secret

        新 Secret 覆盖旧的密文，同一次提交内完成，旧 Secret 此后不可恢复
        """
        secret = generate_secret_key()
        key.secret_value = self.encryption.encrypt(secret)
        key.rotated_at = datetime.utcnow()
        await db.commit()
        logger.info(f"Rotated access key {key.access_key_id}")
        return secret

    async def update_key(
        self,
        key: AccessKey,
        db: AsyncSession,
        name: Optional[str] = None,
        enabled: Optional[bool] = None,
        expiration: Optional[datetime] = None,
        clear_expiration: bool = False
    ) -> AccessKey:
        if name is not None:
            key.name = name
        if enabled is not None:
            key.enabled = enabled
        if clear_expiration:
            key.expiration = None
        elif expiration is not None:
            key.expiration = expiration
        await db.commit()
        logger.info(f"Updated access key {key.access_key_id}")
        return key

    async def delete_key(self, key: AccessKey, db: AsyncSession) -> None:
        await db.delete(key)
        await db.commit()
        logger.info(f"Deleted access key {key.access_key_id}")

    async def verify_secret(self, access_key_id: str, secret: str, db: AsyncSession) -> bool:
        """校验 Secret 是否为当前有效值（过期或禁用的密钥一律失败）"""
        key = await db.get(AccessKey, access_key_id)
        if key is None or not key.enabled:
            return False
        if key.expiration is not None and key.expiration <= datetime.utcnow():
            return False
        return self.encryption.decrypt(key.secret_value) == secret

    async def delete_user_keys(self, user_id: str, org_id: str, db: AsyncSession, commit: bool = True) -> None:
        """
        成员被移出组织时删除其在该组织的密钥

        commit=False 时由调用方在同一事务中提交
        """
        keys = await db.execute(
            select(AccessKey).where(and_(AccessKey.user_id == user_id, AccessKey.org_id == org_id))
        )
        for key in keys.scalars().all():
            await db.delete(key)
        if commit:
            await db.commit()


def is_expired(key: AccessKey) -> bool:
    return key.expiration is not None and key.expiration <= datetime.utcnow()


# 全局单例
key_service = AccessKeyService()

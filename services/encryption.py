"""凭证加密工具 - 使用 Fernet 对称加密保存提供方凭证和访问密钥 Secret"""
from cryptography.fernet import Fernet
import base64
import hashlib
import secrets
import string
from config.settings import settings

ACCESS_KEY_ALPHABET = string.ascii_uppercase + string.digits
SECRET_KEY_ALPHABET = string.ascii_letters + string.digits + "/+"


class EncryptionService:
    """凭证加密服务"""

    def __init__(self, key: str = settings.ENCRYPTION_KEY):
        # 从配置的密钥派生 Fernet 密钥（SHA256 → 32 字节 URL-safe base64）
        key_hash = hashlib.sha256(key.encode('utf-8')).digest()
        self.fernet = Fernet(base64.urlsafe_b64encode(key_hash))

    def encrypt(self, plaintext: str) -> str:
        """
        加密字符串

        Args:
            plaintext: 明文字符串

        Returns:
            加密后的字符串（base64 编码）
        """
        if not plaintext:
            return ""
        return self.fernet.encrypt(plaintext.encode('utf-8')).decode('utf-8')

    def decrypt(self, encrypted_text: str) -> str:
        """
        解密字符串

        Args:
            encrypted_text: 加密的字符串（base64 编码）

        Returns:
            解密后的明文字符串
        """
        if not encrypted_text:
            return ""
        return self.fernet.decrypt(encrypted_text.encode('utf-8')).decode('utf-8')


def generate_access_key_id(prefix: str = "VFX") -> str:
    """生成 20 位的 Access Key ID"""
    return prefix + "".join(secrets.choice(ACCESS_KEY_ALPHABET) for _ in range(20 - len(prefix)))


def generate_secret_key() -> str:
    """生成 40 位的 Secret"""
    return "".join(secrets.choice(SECRET_KEY_ALPHABET) for _ in range(40))


# 全局加密服务实例
encryption_service = EncryptionService()

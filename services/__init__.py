"""服务层"""
from .access_service import AccessDecisionService, access_service
from .acl_service import AccessControlService, acl_service
from .audit_service import AuditService, audit_service
from .bucket_resolver import BucketResolver, bucket_resolver
from .bucket_service import BucketService, bucket_service
from .key_service import AccessKeyService, key_service
from .membership_service import MembershipService, membership_service
from .platform_service import PlatformService, platform_service
from .provider_service import ProviderService, provider_service
from .resolution_cache import ResolutionCache, resolution_cache
from .storage_gateway import StorageGatewayClient, storage_gateway

__all__ = [
    "AccessDecisionService",
    "access_service",
    "AccessControlService",
    "acl_service",
    "AuditService",
    "audit_service",
    "BucketResolver",
    "bucket_resolver",
    "BucketService",
    "bucket_service",
    "AccessKeyService",
    "key_service",
    "MembershipService",
    "membership_service",
    "PlatformService",
    "platform_service",
    "ProviderService",
    "provider_service",
    "ResolutionCache",
    "resolution_cache",
    "StorageGatewayClient",
    "storage_gateway",
]

"""
控制台查询缓存

按 (资源类型, 作用域 ID) 保存服务端数据，作为显式对象传给修改操作；
乐观更新前取完整快照，失败时原样恢复
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]

USER_ACLS = "user_acls"
GROUP_ACLS = "group_acls"


@dataclass(frozen=True)
class Snapshot:
    """某个缓存条目在乐观更新前的完整副本"""
    resource_type: str
    scope_id: str
    present: bool
    value: Any = None


class QueryCache:
    """控制台查询缓存"""

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, Any] = {}

    def get(self, resource_type: str, scope_id: str, default: Any = None) -> Any:
        return self._entries.get((resource_type, scope_id), default)

    def set(self, resource_type: str, scope_id: str, value: Any) -> None:
        self._entries[(resource_type, scope_id)] = value

    def has(self, resource_type: str, scope_id: str) -> bool:
        return (resource_type, scope_id) in self._entries

    def invalidate(self, resource_type: str, scope_id: Optional[str] = None) -> None:
        """删除条目；不指定 scope_id 时删除该资源类型的全部条目"""
        if scope_id is not None:
            self._entries.pop((resource_type, scope_id), None)
            return
        for key in [key for key in self._entries if key[0] == resource_type]:
            del self._entries[key]

    def snapshot(self, resource_type: str, scope_id: str) -> Snapshot:
        key = (resource_type, scope_id)
        if key not in self._entries:
            return Snapshot(resource_type, scope_id, present=False)
        return Snapshot(resource_type, scope_id, present=True, value=copy.deepcopy(self._entries[key]))

    def restore(self, snapshot: Snapshot) -> None:
        """回滚到快照时的状态（包括快照时不存在的情况）"""
        key = (snapshot.resource_type, snapshot.scope_id)
        if snapshot.present:
            self._entries[key] = copy.deepcopy(snapshot.value)
        else:
            self._entries.pop(key, None)
        logger.debug(f"Query cache restored: {key}")

    def update(self, resource_type: str, scope_id: str, updater: Callable[[Any], Any]) -> Any:
        """对条目的副本应用 updater 并写回，返回新值"""
        current = copy.deepcopy(self._entries.get((resource_type, scope_id)))
        value = updater(current)
        self._entries[(resource_type, scope_id)] = value
        return value


def apply_permission(matrix: Optional[Dict[str, Dict[str, str]]], entity_id: str, bucket_name: str,
                     permission: Optional[str]) -> Dict[str, Dict[str, str]]:
    """在稀疏权限矩阵上设置或移除一个单元格"""
    matrix = matrix or {}
    row = matrix.setdefault(entity_id, {})
    if permission is None:
        row.pop(bucket_name, None)
        if not row:
            matrix.pop(entity_id, None)
    else:
        row[bucket_name] = permission
    return matrix

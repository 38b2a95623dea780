"""todo-core Store -- 存储适配器

提供工厂函数按配置创建内存或文件适配器。
"""

from pathlib import Path

from .file_store import FileStorageAdapter
from .memory_store import MemoryStorageAdapter
from .protocols import StorageAdapter


def create_storage_adapter(
    file_path: str | Path | None = None,
    *,
    in_memory: bool = False,
) -> StorageAdapter:
    """创建存储适配器

    Args:
        file_path: JSON 存储文件路径（in_memory=True 时忽略）
        in_memory: 是否使用非持久化内存适配器

    Returns:
        StorageAdapter 实例
    """
    if in_memory:
        return MemoryStorageAdapter()
    if file_path is None:
        return FileStorageAdapter()
    return FileStorageAdapter(file_path)


__all__ = [
    "StorageAdapter",
    "FileStorageAdapter",
    "MemoryStorageAdapter",
    "create_storage_adapter",
]

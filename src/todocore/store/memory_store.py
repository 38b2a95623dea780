"""StorageAdapter 内存实现 -- 测试 / 临时使用

读写均做深拷贝，调用方无法通过返回值改动已存储的数据。
"""

from collections.abc import Sequence

from ..models.todo import Todo, clone_todo


class MemoryStorageAdapter:
    """StorageAdapter 的内存实现"""

    def __init__(self, initial: Sequence[Todo] | None = None) -> None:
        self._todos: list[Todo] = [clone_todo(t) for t in initial or []]
        self.persist_count = 0

    async def load(self) -> list[Todo]:
        """返回已存储 Todo 的副本"""
        return [clone_todo(t) for t in self._todos]

    async def persist(self, todos: Sequence[Todo]) -> None:
        """以副本替换已存储的 Todo"""
        self._todos = [clone_todo(t) for t in todos]
        self.persist_count += 1

    async def dispose(self) -> None:
        """无需释放资源"""
        return None

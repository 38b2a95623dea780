"""Store Protocol 接口定义

定义 StorageAdapter 的抽象接口，使用 Python Protocol 实现结构化子类型；
内存实现与文件实现在构造时选择，可互换。
"""

from collections.abc import Sequence
from typing import Protocol

from ..models.todo import Todo


class StorageAdapter(Protocol):
    """Todo 存储接口"""

    async def load(self) -> list[Todo]:
        """加载全部 Todo（启动时调用一次）"""
        ...

    async def persist(self, todos: Sequence[Todo]) -> None:
        """持久化全部 Todo（整体覆盖）"""
        ...

    async def dispose(self) -> None:
        """释放资源（可为空实现）"""
        ...

"""Metrics 与完整性检查模型

Metrics 是对当前 Todo 全集的聚合快照；
IntegrityRepairSummary / IntegrityAnomaly 分别描述修复动作和只读检测结果。
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import AnomalyType, RepairAction, TodoStatus
from .todo import Todo


class Metrics(BaseModel):
    """聚合指标快照"""

    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    pending: int = 0
    in_progress: int = Field(default=0, alias="inProgress")
    completed: int = 0
    archived: int = 0
    active: int = Field(default=0, description="pending + in_progress")
    completion_ratio: float = Field(
        default=0.0,
        alias="completionRatio",
        description="completed / total，total 为 0 时为 0",
    )


def compute_metrics(todos: Iterable[Todo]) -> Metrics:
    """计算聚合指标"""
    counts = {status: 0 for status in TodoStatus}
    total = 0
    for todo in todos:
        counts[todo.status] += 1
        total += 1

    completed = counts[TodoStatus.COMPLETED]
    return Metrics(
        total=total,
        pending=counts[TodoStatus.PENDING],
        in_progress=counts[TodoStatus.IN_PROGRESS],
        completed=completed,
        archived=counts[TodoStatus.ARCHIVED],
        active=counts[TodoStatus.PENDING] + counts[TodoStatus.IN_PROGRESS],
        completion_ratio=completed / total if total else 0.0,
    )


class IntegrityRepairAction(BaseModel):
    """单条修复动作"""

    action: RepairAction
    details: dict[str, Any] = Field(default_factory=dict)


class IntegrityRepairSummary(BaseModel):
    """integrity_repair() 返回的修复摘要"""

    actions: list[IntegrityRepairAction] = Field(default_factory=list)
    changed: bool = False


class IntegrityAnomaly(BaseModel):
    """detect_anomalies() 报告的单条异常"""

    type: AnomalyType
    details: dict[str, Any] = Field(default_factory=dict)


class IntegrityCheckResult(BaseModel):
    """只读完整性检查结果"""

    timestamp: datetime
    metrics: Metrics
    anomalies: list[IntegrityAnomaly] = Field(default_factory=list)
    note: str = ""

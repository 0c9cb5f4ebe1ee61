"""
conference.services.reconciler
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间成员对账 —— 比较新旧两份成员快照，得出最小的加入/离开增量。
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field


@dataclass(frozen=True)
class MembershipDelta:
    """一次对账的结果。

    Attributes:
        joined: 新快照中有、旧快照中没有的 stream id（按新快照顺序）。
        left: 旧快照中有、新快照中没有的 stream id（按旧快照顺序）。
    """

    joined: list[str] = field(default_factory=list)
    left: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.joined and not self.left


def unique(stream_ids: Iterable[str]) -> list[str]:
    """去重并保留首次出现的顺序。"""
    return list(dict.fromkeys(stream_ids))


def reconcile(old: Sequence[str], new: Sequence[str]) -> MembershipDelta:
    """计算从 ``old`` 到 ``new`` 的成员增量。

    纯函数，只看集合成员关系，与元素顺序无关；输入中的重复元素只计一次。

    Args:
        old: 当前已知的成员列表。
        new: 服务端下发的最新成员列表。

    Returns:
        ``MembershipDelta``，``joined`` 与 ``left`` 永不相交。
    """
    old_set = set(old)
    new_set = set(new)
    return MembershipDelta(
        joined=[s for s in unique(new) if s not in old_set],
        left=[s for s in unique(old) if s not in new_set],
    )

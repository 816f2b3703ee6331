"""
任务运行状态注册表

进程内存中的 会话ID -> 运行状态 映射，决定任务是否允许继续执行。
进程重启后全部丢失（已暂停的会话可通过 resume 重新登记）。
"""
import itertools
import threading
from dataclasses import dataclass, replace
from typing import Dict, Optional

from ..models.crawl_session import SessionStatus


@dataclass(frozen=True)
class TaskRunState:
    """单个会话的运行状态（仅内存）"""
    status: str
    detail_start_time: Optional[float] = None
    crawled_in_session: int = 0
    run_id: int = 0


class TaskStateRegistry:
    """
    任务状态注册表

    编排任务与 pause / resume 请求会并发访问同一会话，所有读改写操作
    都在同一把锁内完成。返回的状态对象不可变，修改需通过 set_state / update。

    Example:
        >>> registry = TaskStateRegistry()
        >>> run_id = registry.begin_run(1)
        >>> registry.is_running(1, run_id)
        True
        >>> registry.transition(1, "running", "paused")
        True
    """

    def __init__(self):
        self._states: Dict[int, TaskRunState] = {}
        self._lock = threading.Lock()
        self._run_ids = itertools.count(1)

    def set_state(self, session_id: int, state: TaskRunState) -> None:
        with self._lock:
            self._states[session_id] = state

    def get_state(self, session_id: int) -> Optional[TaskRunState]:
        with self._lock:
            return self._states.get(session_id)

    def is_running(self, session_id: int, run_id: Optional[int] = None) -> bool:
        """
        会话是否处于运行状态

        Args:
            session_id: 会话ID
            run_id: 指定时还要求当前运行批次一致（旧批次视为已停止）
        """
        with self._lock:
            state = self._states.get(session_id)
        if state is None or state.status != SessionStatus.RUNNING.value:
            return False
        return run_id is None or state.run_id == run_id

    def begin_run(self, session_id: int) -> int:
        """登记一次新的运行（status=running），返回新的 run_id"""
        with self._lock:
            run_id = next(self._run_ids)
            self._states[session_id] = TaskRunState(
                status=SessionStatus.RUNNING.value,
                run_id=run_id,
            )
            return run_id

    def update(self, session_id: int, **changes) -> Optional[TaskRunState]:
        """原子地修改部分字段，会话不存在时返回 None"""
        with self._lock:
            state = self._states.get(session_id)
            if state is None:
                return None
            state = replace(state, **changes)
            self._states[session_id] = state
            return state

    def transition(self, session_id: int, expected: str, new: str, run_id: Optional[int] = None) -> bool:
        """
        状态为 expected 时切换为 new（比较并交换）

        Args:
            run_id: 指定时还要求当前运行批次一致
        """
        with self._lock:
            state = self._states.get(session_id)
            if state is None or state.status != expected:
                return False
            if run_id is not None and state.run_id != run_id:
                return False
            self._states[session_id] = replace(state, status=new)
            return True

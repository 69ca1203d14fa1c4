"""Session：事件日志 + 状态字典，以及内存版 SessionService"""

from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterator, MutableMapping, Optional
from uuid import uuid4

from .events import Event


class State(MutableMapping):
    """
    带增量追踪的状态视图

    读：优先读取 delta，再读取 value
    写：同时写入 value 和 delta

    回调/工具通过它修改状态，delta 就是事件的 actions.state_delta，
    因此修改会随事件一起被 SessionService 持久化。
    """

    TEMP_PREFIX = 'temp:'
    """以此为前缀的键只在本次调用中有效，不会写入 Session"""

    def __init__(self, value: dict[str, Any], delta: dict[str, Any]):
        self._value = value
        self._delta = delta

    def __getitem__(self, key: str) -> Any:
        if key in self._delta:
            return self._delta[key]
        return self._value[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._value[key] = value
        self._delta[key] = value

    def __delitem__(self, key: str) -> None:
        # 状态只追加，不支持删除
        raise TypeError('State does not support key deletion')

    def __iter__(self) -> Iterator[str]:
        return iter({**self._value, **self._delta})

    def __len__(self) -> int:
        return len({**self._value, **self._delta})

    def has_delta(self) -> bool:
        return bool(self._delta)

    def to_dict(self) -> dict[str, Any]:
        return {**self._value, **self._delta}


@dataclass
class Session:
    """
    一段对话：按时间顺序的事件列表和累计的状态

    events 只追加，state 是所有事件 state_delta 依次合并的结果。
    """
    app_name: str
    user_id: str
    id: str = field(default_factory=lambda: str(uuid4()))
    state: dict[str, Any] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
    last_update_time: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            'app_name': self.app_name,
            'user_id': self.user_id,
            'id': self.id,
            'state': self.state,
            'events': [e.to_dict() for e in self.events],
            'last_update_time': self.last_update_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            app_name=data['app_name'],
            user_id=data['user_id'],
            id=data['id'],
            state=data.get('state', {}),
            events=[Event.from_dict(e) for e in data.get('events', [])],
            last_update_time=data.get('last_update_time', time.time()),
        )


class SessionService:
    """
    内存中的 Session 存储，键为 (app_name, user_id, session_id)

    get_session 找不到时返回 None，不会隐式创建；
    append_event 在锁内写入事件并合并 state_delta。
    """

    def __init__(self):
        self._sessions: dict[tuple[str, str, str], Session] = {}
        self._lock = threading.Lock()

    async def get_session(
        self,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> Optional[Session]:
        return self.get_session_sync(app_name, user_id, session_id)

    def get_session_sync(
        self,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> Optional[Session]:
        return self._sessions.get((app_name, user_id, session_id))

    async def create_session(
        self,
        app_name: str,
        user_id: str,
        state: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        """
        session_id 为空时生成 uuid；state 会被深拷贝

        Raises:
            ValueError: 同一个键的 Session 已存在
        """
        return self.create_session_sync(app_name, user_id, state=state, session_id=session_id)

    def create_session_sync(
        self,
        app_name: str,
        user_id: str,
        state: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        session_id = session_id or str(uuid4())
        key = (app_name, user_id, session_id)

        with self._lock:
            if key in self._sessions:
                raise ValueError(f"Session already exists: {session_id}")
            session = Session(
                app_name=app_name,
                user_id=user_id,
                id=session_id,
                state=copy.deepcopy(state) if state else {},
            )
            self._sessions[key] = session
        return session

    async def append_event(self, session: Session, event: Event) -> Event:
        """
        partial 事件直接返回，不落库。
        temp: 开头的键从 state_delta 中剔除后再合并到 session.state。
        """
        if event.partial:
            return event

        with self._lock:
            delta = event.actions.state_delta
            for key in [k for k in delta if k.startswith(State.TEMP_PREFIX)]:
                del delta[key]
            session.state.update(delta)
            session.events.append(event)
            session.last_update_time = event.timestamp
        return event

    async def delete_session(
        self,
        app_name: str,
        user_id: str,
        session_id: str,
    ) -> bool:
        """删除 Session，返回是否成功删除"""
        with self._lock:
            return self._sessions.pop((app_name, user_id, session_id), None) is not None

    async def list_sessions(self, app_name: str, user_id: Optional[str] = None) -> list[Session]:
        """user_id 为 None 时列出该 app 下所有用户的 Session"""
        return [
            session
            for (app, uid, _), session in self._sessions.items()
            if app == app_name and (user_id is None or uid == user_id)
        ]

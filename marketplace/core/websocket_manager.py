# marketplace/core/websocket_manager.py
# 即時推播 (fan-out)：每條連線一個發送佇列，由獨立的 writer task 送出，
# 發布端只需要 put_nowait，不會等待任何客戶端

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncIterator, Dict, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


def session_channel(session_id: int) -> str:
    return f"session:{session_id}"


class Subscriber:
    """單一 WebSocket 連線"""

    def __init__(self, websocket: WebSocket, user_id: str):
        self.websocket = websocket
        self.user_id = user_id
        self.queue: asyncio.Queue = asyncio.Queue()
        self.channels: Set[str] = set()
        self.writer: Optional[asyncio.Task] = None
        # 第一次 subscribe 時由 ConnectionManager 設定
        self.hub: Optional["ConnectionManager"] = None
        self.active = True

    def start(self) -> None:
        self.writer = asyncio.create_task(self.pump())

    def enqueue(self, payload: Dict[str, Any]) -> None:
        if self.active:
            self.queue.put_nowait(payload)

    async def pump(self) -> None:
        # 依序送出佇列中的事件，None 代表結束
        while True:
            payload = await self.queue.get()
            if payload is None:
                break
            try:
                await self.websocket.send_json(payload)
            except Exception as e:
                logger.warning(f"Failed to deliver event to user {self.user_id}: {e}")
                # 送不出去的連線立即退出所有 channel，不再累積事件
                self.active = False
                if self.hub is not None:
                    self.hub.detach(self)
                break

    def close(self) -> None:
        self.queue.put_nowait(None)


class ConnectionManager:
    def __init__(self):
        # channel -> 訂閱中的連線
        self.channels: Dict[str, Set[Subscriber]] = {}
        # 每個聊天室一把鎖：寫入 + commit + 發布 期間持有，確保推播順序 = 插入順序
        self.session_locks: Dict[int, asyncio.Lock] = {}
        # 正在使用 (持有或等待) 各把鎖的 task 數，歸零時移除該鎖
        self.lock_holders: Dict[int, int] = {}

    async def connect(self, websocket: WebSocket, user_id: str) -> Subscriber:
        await websocket.accept()
        subscriber = Subscriber(websocket, user_id)
        subscriber.start()
        self.subscribe(user_channel(user_id), subscriber)
        logger.info(f"User {user_id} connected.")
        return subscriber

    def detach(self, subscriber: Subscriber) -> None:
        """將連線從所有 channel 移除"""
        for channel in list(subscriber.channels):
            self.unsubscribe(channel, subscriber)

    def disconnect(self, subscriber: Subscriber) -> None:
        self.detach(subscriber)
        subscriber.close()
        logger.info(f"User {subscriber.user_id} disconnected.")

    def subscribe(self, channel: str, subscriber: Subscriber) -> None:
        if not subscriber.active:
            return
        subscriber.hub = self
        self.channels.setdefault(channel, set()).add(subscriber)
        subscriber.channels.add(channel)

    def unsubscribe(self, channel: str, subscriber: Subscriber) -> None:
        members = self.channels.get(channel)
        if members is not None:
            members.discard(subscriber)
            if not members:
                del self.channels[channel]
        subscriber.channels.discard(channel)

    def is_subscribed(self, channel: str, user_id: str) -> bool:
        """該使用者是否有任何一條連線正在訂閱此 channel"""
        return any(s.user_id == user_id for s in self.channels.get(channel, ()))

    def publish(self, channel: str, event: str, data: Dict[str, Any]) -> int:
        """
        將事件放進所有訂閱者的佇列，回傳送達的連線數。
        沒有人訂閱時直接丟棄 (客戶端可透過輪詢 API 取得相同資料)。
        """
        subscribers = list(self.channels.get(channel, ()))
        payload = {"event": event, "data": data}
        for subscriber in subscribers:
            subscriber.enqueue(payload)
        return len(subscribers)

    @asynccontextmanager
    async def session_lock(self, session_id: int) -> AsyncIterator[None]:
        lock = self.session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self.session_locks[session_id] = lock
        self.lock_holders[session_id] = self.lock_holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self.lock_holders.get(session_id, 1) - 1
            if remaining > 0:
                self.lock_holders[session_id] = remaining
            else:
                self.lock_holders.pop(session_id, None)
                self.session_locks.pop(session_id, None)

    def reset(self) -> None:
        """清除所有訂閱與鎖 (測試用)"""
        for members in list(self.channels.values()):
            for subscriber in members:
                subscriber.close()
        self.channels.clear()
        self.session_locks.clear()
        self.lock_holders.clear()


# 實例化管理器 (全域單例)
manager = ConnectionManager()

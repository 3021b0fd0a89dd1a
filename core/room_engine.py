"""
RoomEngine：一個房間的單一寫入者（actor）

職責：
1. 序列化指令：所有指令（包含計時器到期）都在同一把 asyncio.Lock 內處理，
   asyncio.Lock 依到達順序喚醒，兩個修改操作不會交錯
2. 計時器：房間同時只有一個 call_later handle，state.timer 改變就取消舊的
3. 事件：在鎖內只放進 outbox，由單一的 publisher task 依序交給 EventSink，
   傳輸層慢或失敗都不會擋住下一個指令

被拒絕的指令只回傳給呼叫者（CommandResult），不廣播。
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Optional, Set
import logging

from core.commands import TimerFired
from core.events import EventSink, NullSink, RoomEvent
from core.exceptions import AuthorizationError, CommandRejected, StockTickerException
from core.transitions import apply_command, new_room_state
from models import RoomConfig, RoomState, TimerSpec
from services.dice_service import DiceRoller

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    value: Any = None
    error: Optional[StockTickerException] = None

    @property
    def code(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, "code", "error")


class RoomEngine:
    """
    房間 actor

    參數：
        room_id: 房間代碼
        sink: 事件接收者（預設 NullSink）
        config: RoomConfig
        dice: DiceRoller（測試可注入）
    """

    def __init__(
        self,
        room_id: str,
        sink: Optional[EventSink] = None,
        config: Optional[RoomConfig] = None,
        dice: Optional[DiceRoller] = None,
    ):
        self.room_id = room_id
        self.config = config or RoomConfig()
        self._sink = sink or NullSink()
        self._dice = dice or DiceRoller()
        self._state = new_room_state(room_id, self.config)
        self._lock = asyncio.Lock()
        self._timer_handle: Optional[asyncio.TimerHandle] = None
        self._timer_spec: Optional[TimerSpec] = None
        self._pending: Set[asyncio.Task] = set()
        self._outbox: "asyncio.Queue[RoomEvent]" = asyncio.Queue()
        self._publisher: Optional[asyncio.Task] = None
        self._closed = False
        self.last_activity_at = time.monotonic()

    @property
    def state(self) -> RoomState:
        return self._state

    @property
    def is_empty(self) -> bool:
        return not self._state.players

    async def dispatch(self, command) -> CommandResult:
        """
        處理一個指令（依到達順序排隊）

        返回：
            CommandResult：ok=False 時 error 為被拒絕的原因
        """
        async with self._lock:
            if not isinstance(command, TimerFired):
                self.last_activity_at = time.monotonic()
            return await self._dispatch_locked(command)

    async def _dispatch_locked(self, command) -> CommandResult:
        if self._closed:
            return CommandResult(ok=False)

        try:
            transition = apply_command(self._state, command, self.config, self._dice)
        except AuthorizationError as e:
            logger.warning(f"Room {self.room_id}: {e}")
            return CommandResult(ok=False, error=e)
        except CommandRejected as e:
            logger.info(f"Room {self.room_id}: rejected {type(command).__name__}: {e}")
            return CommandResult(ok=False, error=e)
        except StockTickerException as e:
            logger.error(f"Room {self.room_id}: {type(command).__name__} failed: {e}", exc_info=True)
            return CommandResult(ok=False, error=e)
        except Exception as e:
            logger.error(
                f"Room {self.room_id}: unexpected error handling {command!r}: {e}", exc_info=True
            )
            return CommandResult(ok=False, error=StockTickerException(str(e)))

        self._state = transition.state
        self._sync_timer()
        for event in transition.events:
            self._outbox.put_nowait(event)
        self._ensure_publisher()
        return CommandResult(ok=True, value=transition.result)

    # ============ 事件 ============

    def _ensure_publisher(self) -> None:
        if self._publisher is None or self._publisher.done():
            self._publisher = asyncio.ensure_future(self._run_publisher())

    async def _run_publisher(self) -> None:
        while True:
            event = await self._outbox.get()
            try:
                await self._publish(event)
            finally:
                self._outbox.task_done()

    async def drain(self) -> None:
        """等待 outbox 裡已排隊的事件全部送出"""
        await self._outbox.join()

    async def _publish(self, event: RoomEvent) -> None:
        try:
            await self._sink.publish(self.room_id, event)
        except Exception as e:
            logger.error(
                f"Room {self.room_id}: failed to publish {type(event).__name__}: {e}", exc_info=True
            )

    # ============ 計時器 ============

    def _sync_timer(self) -> None:
        """讓唯一的 call_later handle 跟 state.timer 一致"""
        spec = self._state.timer
        if spec == self._timer_spec:
            return

        self._cancel_timer()
        if spec is None:
            return

        loop = asyncio.get_running_loop()
        self._timer_spec = spec
        self._timer_handle = loop.call_later(spec.delay, self._on_timer, spec.token)

    def _cancel_timer(self) -> None:
        if self._timer_handle is not None:
            self._timer_handle.cancel()
        self._timer_handle = None
        self._timer_spec = None

    def _on_timer(self, token: int) -> None:
        self._timer_handle = None
        self._timer_spec = None
        task = asyncio.ensure_future(self.dispatch(TimerFired(token)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def close(self) -> None:
        """取消計時器與 publisher，之後的指令一律忽略"""
        async with self._lock:
            self._closed = True
            self._cancel_timer()
        if self._publisher is not None:
            self._publisher.cancel()
        for task in list(self._pending):
            if task is not asyncio.current_task():
                task.cancel()

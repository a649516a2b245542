from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Callable, Generic, Optional, TypeVar

from loguru import logger

from karuku_sizer.errors import SearchCancelledError

T = TypeVar("T")


@dataclass(frozen=True)
class JobResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and not self.cancelled


class BackgroundJob(Generic[T]):
    """1回分の処理をワーカースレッドで実行する。

    work にはキャンセル確認関数が渡される。処理側は試行の合間に
    それを呼び、True なら中断する。
    """

    def __init__(
        self,
        work: Callable[[Callable[[], bool]], T],
        *,
        on_done: Optional[Callable[[JobResult[T]], None]] = None,
        name: str = "karuku-job",
    ) -> None:
        self._work = work
        self._on_done = on_done
        self._name = name
        self._cancel_event = threading.Event()
        self._done_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._result: Optional[JobResult[T]] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._done_event.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def result(self) -> Optional[JobResult[T]]:
        return self._result

    def start(self) -> "BackgroundJob[T]":
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        if not self._cancel_event.is_set():
            logger.debug(f"ジョブのキャンセルを要求: {self._name}")
        self._cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[JobResult[T]]:
        self._done_event.wait(timeout)
        return self._result

    def run_inline(self) -> JobResult[T]:
        """スレッドを使わずに同期実行する"""
        return self._run()

    def _run(self) -> JobResult[T]:
        result: JobResult[T]
        try:
            value = self._work(self._cancel_event.is_set)
        except SearchCancelledError:
            result = JobResult(cancelled=True)
        except Exception as e:
            logger.error(f"ジョブ {self._name} が失敗しました: {e}")
            result = JobResult(error=e)
        else:
            if self._cancel_event.is_set():
                result = JobResult(cancelled=True)
            else:
                result = JobResult(value=value)

        self._result = result
        try:
            if self._on_done is not None:
                self._on_done(result)
        finally:
            # wait() が戻った時点で on_done は完了している
            self._done_event.set()
        return result

import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future
from typing import TypeVar

T = TypeVar("T")


class DaemonThreadExecutor(Executor):
    """Runs every submitted call on its own daemon thread.

    A call left running after its deadline never holds up interpreter exit,
    unlike ``ThreadPoolExecutor`` whose workers are joined at shutdown.
    """

    def __init__(self, thread_name_prefix: str = "bench") -> None:
        self._thread_name_prefix = thread_name_prefix
        self._counter = 0

    def submit(self, fn: Callable[..., T], /, *args: object, **kwargs: object) -> "Future[T]":
        future: Future[T] = Future()

        def work() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = fn(*args, **kwargs)
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(result)

        self._counter += 1
        name = f"{self._thread_name_prefix}_{self._counter}"
        threading.Thread(target=work, name=name, daemon=True).start()
        return future


def call_with_deadline(executor: Executor, timeout_ms: int, fn: Callable[..., T], *args: object) -> T:
    """Run ``fn`` on ``executor`` and wait at most ``timeout_ms`` for it.

    Raises the builtin ``TimeoutError`` when the deadline passes first. The
    submitted call is not cancelled and may keep running on its worker. A
    ``TimeoutError`` raised by ``fn`` itself is passed through unchanged.
    """
    future = executor.submit(fn, *args)
    try:
        return future.result(timeout=timeout_ms / 1000)
    except TimeoutError as e:
        if future.done() and future.exception() is e:
            raise
        future.cancel()
        raise TimeoutError(f"Timeout after {timeout_ms}ms") from None

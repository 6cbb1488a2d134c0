"""
单线程 I/O 分发器（selectors）。

说明：
- 管道 fd 设置为非阻塞后注册到 selector；每个 fd 绑定一个“可读”回调；
- `run_once()` 只处理一个就绪事件（exactly one completion），其余就绪 fd 留给下一轮；
  selector 是水平触发的，未处理的事件下一次 select 仍会返回；
- 本实现面向 macOS/Linux（Windows 的 selectors 不支持管道）。
"""

from __future__ import annotations

import os
import selectors
from typing import Callable, Dict

ReadCallback = Callable[[int], None]


class IoDispatcher:
    """由调用方线程驱动的 I/O 事件循环（不创建任何线程）。"""

    def __init__(self) -> None:
        """创建 dispatcher（内部持有一个 `DefaultSelector`）。"""

        self._selector = selectors.DefaultSelector()
        self._callbacks: Dict[int, ReadCallback] = {}
        self._closed = False

    def register(self, fd: int, callback: ReadCallback) -> None:
        """
        注册一个可读 fd。

        参数：
        - fd：文件描述符（会被设置为非阻塞）
        - callback：fd 可读时调用，参数为 fd 本身
        """

        os.set_blocking(fd, False)
        self._selector.register(fd, selectors.EVENT_READ, callback)
        self._callbacks[fd] = callback

    def unregister(self, fd: int) -> None:
        """注销 fd；未注册时为 no-op（EOF 回调与 close 都可能调用）。"""

        if fd not in self._callbacks:
            return
        self._callbacks.pop(fd, None)
        self._selector.unregister(fd)

    def is_registered(self, fd: int) -> bool:
        """判断 fd 是否仍在监听中。"""

        return fd in self._callbacks

    @property
    def active(self) -> bool:
        """是否还有任何 fd 在监听。"""

        return bool(self._callbacks)

    def run_once(self, timeout: float) -> bool:
        """
        等待最多 timeout 秒，处理一个就绪事件。

        返回：
        - True：处理了一个事件
        - False：超时内没有事件（或已无注册 fd）
        """

        if not self._callbacks:
            return False
        events = self._selector.select(max(0.0, timeout))
        if not events:
            return False
        key, _mask = events[0]
        key.data(key.fd)
        return True

    def drain(self, max_events: int = 256) -> int:
        """
        处理所有“当前已就绪”的事件（不等待）。

        参数：
        - max_events：上限，避免对持续写出的 fd 无限循环

        返回：
        - 实际处理的事件数
        """

        handled = 0
        while handled < max_events and self.run_once(0):
            handled += 1
        return handled

    def close(self) -> None:
        """注销全部 fd 并关闭 selector（幂等）。"""

        if self._closed:
            return
        for fd in list(self._callbacks):
            self.unregister(fd)
        self._selector.close()
        self._closed = True

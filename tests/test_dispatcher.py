from __future__ import annotations

import os
from typing import List

from sqlite_cli.core.dispatcher import IoDispatcher


def test_run_once_processes_exactly_one_ready_event() -> None:
    d = IoDispatcher()
    r1, w1 = os.pipe()
    r2, w2 = os.pipe()
    seen: List[int] = []
    try:
        d.register(r1, lambda fd: seen.append(len(os.read(fd, 100))))
        d.register(r2, lambda fd: seen.append(len(os.read(fd, 100))))
        os.write(w1, b"abc")
        os.write(w2, b"de")

        assert d.run_once(1.0) is True
        assert len(seen) == 1
        assert d.run_once(1.0) is True
        assert sorted(seen) == [2, 3]
        assert d.run_once(0) is False
    finally:
        d.close()
        for fd in (r1, w1, r2, w2):
            os.close(fd)


def test_run_once_times_out_without_events() -> None:
    d = IoDispatcher()
    r, w = os.pipe()
    try:
        d.register(r, lambda fd: None)
        assert d.run_once(0.01) is False
    finally:
        d.close()
        os.close(r)
        os.close(w)


def test_drain_handles_all_ready_events_and_unregister_is_idempotent() -> None:
    d = IoDispatcher()
    r, w = os.pipe()
    chunks: List[bytes] = []

    def _on_readable(fd: int) -> None:
        data = os.read(fd, 2)
        if data:
            chunks.append(data)
        else:
            d.unregister(fd)

    try:
        d.register(r, _on_readable)
        os.write(w, b"abcdef")
        os.close(w)
        d.drain()
        assert b"".join(chunks) == b"abcdef"
        assert d.active is False
        d.unregister(r)
        assert d.run_once(0) is False
    finally:
        d.close()
        d.close()
        os.close(r)

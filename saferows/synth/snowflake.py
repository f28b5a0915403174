from __future__ import annotations

import random
import threading
import time

EPOCH_MS = 1_609_459_200_000  # 2021-01-01T00:00:00Z
MACHINE_ID_BITS = 10
SEQUENCE_BITS = 12
MAX_MACHINE_ID = (1 << MACHINE_ID_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SnowflakeGenerator:
    """
    64-bit, time-ordered unique IDs: 41 bits of milliseconds since 2021-01-01,
    10 bits of machine id and a 12-bit per-millisecond sequence.

    Thread-safe; one instance is shared by the whole process.
    """

    def __init__(self, machine_id: int | None = None) -> None:
        if machine_id is None:
            machine_id = (_now_ms() + random.randrange(1000)) & MAX_MACHINE_ID
        if not 0 <= machine_id <= MAX_MACHINE_ID:
            raise ValueError(f"machine_id must be between 0 and {MAX_MACHINE_ID}")
        self.machine_id = machine_id
        self._sequence = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            now = _now_ms()
            if now < self._last_ms:
                raise RuntimeError("Clock moved backwards. Refusing to generate ID")
            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    while now <= self._last_ms:
                        now = _now_ms()
            else:
                self._sequence = 0
            self._last_ms = now
            return ((now - EPOCH_MS) << (SEQUENCE_BITS + MACHINE_ID_BITS)) | (
                self.machine_id << SEQUENCE_BITS
            ) | self._sequence

    def next_id_str(self) -> str:
        return str(self.next_id())


SNOWFLAKE = SnowflakeGenerator()

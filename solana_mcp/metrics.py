"""In-process counters for the gateway (single process only, reset on restart)."""

from __future__ import annotations

from collections import Counter, deque
from threading import Lock
from typing import Deque, Dict, Optional, Tuple

RECENT_DURATIONS = 100


class MetricsRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests = 0
        self._durations: Deque[Tuple[str, float]] = deque(maxlen=RECENT_DURATIONS)
        self._tool_success: Counter[str] = Counter()
        self._tool_error: Counter[str] = Counter()
        self._error_codes: Counter[str] = Counter()

    def incr_request(self) -> None:
        with self._lock:
            self._requests += 1

    def record_duration(self, request_id: str, duration_ms: float) -> None:
        with self._lock:
            self._durations.append((request_id, duration_ms))

    def record_tool(self, tool: str, *, success: bool, error_code: Optional[str] = None) -> None:
        with self._lock:
            if success:
                self._tool_success[tool] += 1
                return
            self._tool_error[tool] += 1
            if error_code:
                self._error_codes[error_code] += 1

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "requests": self._requests,
                "tool_success": dict(self._tool_success),
                "tool_error": dict(self._tool_error),
                "error_codes": dict(self._error_codes),
                "recent_request_durations_ms": dict(self._durations),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._durations.clear()
            self._tool_success.clear()
            self._tool_error.clear()
            self._error_codes.clear()


default_metrics = MetricsRecorder()

import json
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class AuditLogger:
    """Append-only JSON-lines record of every tool call. Never records credentials."""

    def __init__(self, path: Optional[str] = "logs/audit.log", enabled: bool = True) -> None:
        self._path = path
        self.enabled = bool(enabled and path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Optional[str]:
        return self._path

    def log_call(
        self,
        *,
        tool: str,
        layer: Optional[str],
        status: str,
        duration_ms: float,
        error_code: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        if not self.enabled:
            return
        entry: Dict[str, Any] = {
            "ts": time.time(),
            "tool": tool,
            "layer": layer,
            "status": status,
            "duration_ms": float(duration_ms),
            "error_code": error_code,
            "correlation_id": correlation_id,
        }
        line = json.dumps(entry, ensure_ascii=False, separators=(",", ":"))
        with self._lock:
            # created on first write, not at import
            os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")


@dataclass
class ToolMetrics:
    calls: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0

    def observe(self, duration_ms: float, error: bool) -> None:
        self.calls += 1
        self.total_latency_ms += float(duration_ms)
        if error:
            self.errors += 1

    @property
    def avg_latency_ms(self) -> float:
        if self.calls == 0:
            return 0.0
        return self.total_latency_ms / self.calls


class InMemoryMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tools: Dict[str, ToolMetrics] = {}

    def record(self, tool: str, duration_ms: float, error: bool) -> None:
        with self._lock:
            metrics = self._tools.get(tool)
            if metrics is None:
                metrics = ToolMetrics()
                self._tools[tool] = metrics
            metrics.observe(duration_ms, error)

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {
                name: {
                    "calls": float(m.calls),
                    "errors": float(m.errors),
                    "avg_latency_ms": float(m.avg_latency_ms),
                }
                for name, m in self._tools.items()
            }


def format_prometheus(snapshot: Dict[str, Dict[str, float]]) -> str:
    lines: List[str] = [
        "# HELP mcp_server_healthy MCP server health status",
        "# TYPE mcp_server_healthy gauge",
        "mcp_server_healthy 1",
    ]
    series = (
        ("mcp_tool_calls_total", "counter", "Total number of tool calls", "calls"),
        ("mcp_tool_errors_total", "counter", "Total number of failed tool calls", "errors"),
        ("mcp_tool_avg_latency_ms", "gauge", "Average tool latency in milliseconds", "avg_latency_ms"),
    )
    for metric, kind, help_text, key in series:
        lines.append(f"# HELP {metric} {help_text}")
        lines.append(f"# TYPE {metric} {kind}")
        for tool_name in sorted(snapshot):
            lines.append(f'{metric}{{tool="{tool_name}"}} {snapshot[tool_name][key]}')
    return "\n".join(lines) + "\n"

"""
Plugin Bridge - Host Command Transport

Sends host commands to the Figma plugin as `tool_call` messages over the
bridge WebSocket and resolves them when the matching `tool_response`
arrives. Every scene-graph primitive used during reconstruction travels
through this module.
"""

import asyncio
import json
import uuid
import logging
import time
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

MESSAGE_TYPE_TOOL_CALL = "tool_call"


class HostCommandError(Exception):
    """
    Raised when the plugin rejects a host command or the bridge fails.

    Carries the structured payload { code: str, message: str, details?: dict }
    so callers can turn it into a readable warning.
    """

    def __init__(self, payload: Any, command: str | None = None, params: Dict[str, Any] | None = None):
        self.command = command
        self.params = params

        if isinstance(payload, dict):
            self.code: str = str(payload.get("code", "unknown_plugin_error"))
            self.message: str = str(payload.get("message", ""))
            self.details: Dict[str, Any] = payload.get("details", {}) or {}
        else:
            self.code = "unknown_plugin_error"
            self.message = str(payload)
            self.details = {}

        self.payload = {"code": self.code, "message": self.message, "details": self.details}
        super().__init__(self.message if self.message else self.code)


class PluginBridge:
    """
    Request/response channel to the Figma plugin.

    Each command gets a unique id and a future; `handle_tool_response`
    resolves the future when the plugin answers. Requests that outlive
    `timeout` fail with a `timeout` HostCommandError.
    """

    def __init__(self, websocket, timeout: float = 30.0):
        self.websocket = websocket
        self.timeout = timeout
        self.pending_requests: Dict[str, asyncio.Future] = {}
        self.request_timestamps: Dict[str, float] = {}
        self.request_commands: Dict[str, str] = {}

    def generate_id(self) -> str:
        return str(uuid.uuid4())

    def _forget(self, request_id: str) -> Optional[float]:
        self.pending_requests.pop(request_id, None)
        self.request_commands.pop(request_id, None)
        return self.request_timestamps.pop(request_id, None)

    async def send_command(self, command: str, params: Dict[str, Any] = None) -> Any:
        """
        Send a host command and wait for the plugin's answer.

        Args:
            command: Host command name (e.g. "create_node")
            params: Command parameters

        Returns:
            The `result` field of the plugin response

        Raises:
            HostCommandError: plugin error, explicit failure result, or timeout
        """
        if not self.websocket:
            raise RuntimeError("WebSocket connection not available")

        request_id = self.generate_id()
        message = {
            "type": MESSAGE_TYPE_TOOL_CALL,
            "id": request_id,
            "command": command,
            "params": params or {},
        }

        future = asyncio.get_running_loop().create_future()
        self.pending_requests[request_id] = future
        self.request_timestamps[request_id] = time.time()
        self.request_commands[request_id] = command

        try:
            logger.debug(f"🚀 Sending {command} ({request_id})")
            await self.websocket.send(json.dumps(message))
            return await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError:
            start_time = self._forget(request_id)
            elapsed = time.time() - start_time if start_time else self.timeout
            logger.error(f"⏰ Host command {command} ({request_id}) timed out after {elapsed:.3f}s")
            raise HostCommandError(
                {"code": "timeout", "message": f"Host command '{command}' timed out after {elapsed:.1f} seconds"},
                command=command,
                params=params,
            )
        except HostCommandError:
            self._forget(request_id)
            raise
        except Exception as e:
            self._forget(request_id)
            logger.error(f"❌ Host command {command} ({request_id}) failed: {e}")
            raise

    def _reject(self, future: asyncio.Future, error: HostCommandError) -> None:
        if not future.done():
            future.set_exception(error)

    def handle_tool_response(self, message: Dict[str, Any]) -> None:
        """Resolve the pending request matching an incoming tool_response."""
        request_id = message.get("id")
        if not request_id:
            logger.warning("❌ Received tool_response without ID")
            return

        future = self.pending_requests.pop(request_id, None)
        start_time = self.request_timestamps.pop(request_id, None)
        command = self.request_commands.pop(request_id, None)

        if future is None:
            logger.warning(f"❌ Received tool_response for unknown ID: {request_id}")
            return
        if future.cancelled():
            logger.debug(f"⚠️ tool_response for cancelled request: {request_id}")
            return

        elapsed = time.time() - start_time if start_time else 0

        structured = message.get("error_structured")
        if isinstance(structured, dict):
            logger.error(f"❌ {command} failed after {elapsed:.3f}s: code={structured.get('code')}")
            self._reject(future, HostCommandError(structured, command=command))
            return

        if "error" in message:
            error_val = message.get("error")
            payload: Any = error_val
            if isinstance(error_val, str):
                try:
                    payload = json.loads(error_val)
                except json.JSONDecodeError:
                    payload = {"code": "unknown_plugin_error", "message": error_val}
            if not isinstance(payload, dict):
                payload = {"code": "unknown_plugin_error", "message": str(error_val)}
            logger.error(f"❌ {command} failed after {elapsed:.3f}s: {payload.get('message')}")
            self._reject(future, HostCommandError(payload, command=command))
            return

        result = message.get("result", {})
        if isinstance(result, dict) and result.get("success") is False:
            text = result.get("message") or "Host command reported failure"
            logger.error(f"❌ {command} reported failure after {elapsed:.3f}s: {text}")
            self._reject(future, HostCommandError(
                {"code": "plugin_reported_failure", "message": str(text), "details": {"result": result}},
                command=command,
            ))
            return

        logger.debug(f"✅ {command} ({request_id}) completed in {elapsed:.3f}s")
        if not future.done():
            future.set_result(result)

    def cleanup_pending_requests(self) -> None:
        """Cancel all pending requests (called on shutdown or disconnect)."""
        for request_id, future in self.pending_requests.items():
            if not future.done():
                future.cancel()
                logger.info(f"Cancelled pending request: {request_id}")
        self.pending_requests.clear()
        self.request_timestamps.clear()
        self.request_commands.clear()


# Process-wide bridge, set by the service once connected
_bridge: Optional[PluginBridge] = None


def set_bridge(bridge: Optional[PluginBridge]) -> None:
    global _bridge
    _bridge = bridge


def get_bridge() -> PluginBridge:
    if _bridge is None:
        raise RuntimeError("Plugin bridge not initialized. Call set_bridge() first.")
    return _bridge

import json
import os
import sys
import signal
import logging
import asyncio
from typing import Any, Callable, Dict, Optional

import websockets
from dotenv import load_dotenv
from websockets.exceptions import ConnectionClosed

from figma_host import FigmaHost
from plugin_bridge import HostCommandError, PluginBridge, set_bridge
from reconstruct import ReconstructionOptions, reconstruct_from_snapshot
from reconstruct_utils import ReconstructionError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Message type constants to avoid stringly-typed conditionals
MESSAGE_TYPE_JOIN = "join"
MESSAGE_TYPE_PING = "ping"
MESSAGE_TYPE_PONG = "pong"
MESSAGE_TYPE_SYSTEM = "system"
MESSAGE_TYPE_PROGRESS_UPDATE = "progress_update"
MESSAGE_TYPE_RECONSTRUCT = "reconstruct"
MESSAGE_TYPE_RECONSTRUCTION_COMPLETE = "reconstruction_complete"
MESSAGE_TYPE_NAVIGATE = "navigate"
MESSAGE_TYPE_TOOL_RESPONSE = "tool_response"
MESSAGE_TYPE_ERROR = "error"

DEFAULT_BRIDGE_URL = "ws://localhost:3055"
DEFAULT_CHANNEL = "figma-snapshot-restore"
DEFAULT_TOOL_TIMEOUT = 30.0


class RestoreAgent:
    """
    Bridge client that restores snapshots into the connected Figma file.

    Joins a bridge channel, answers `reconstruct` and `navigate` requests
    from the plugin UI, and routes `tool_response` messages back to the
    plugin bridge that the reconstruction engine is waiting on.
    """

    def __init__(self, bridge_url: str, channel: str, tool_timeout: float = DEFAULT_TOOL_TIMEOUT,
                 host_factory: Optional[Callable[[PluginBridge], FigmaHost]] = None):
        self.bridge_url = bridge_url
        self.channel = channel
        self.tool_timeout = tool_timeout
        self.websocket = None
        self.running = True
        self.reconnect_delay = 1  # Start with 1 second
        self.max_reconnect_delay = 30
        self._keep_alive_task: Optional[asyncio.Task] = None
        self._background_tasks: set[asyncio.Task] = set()
        # One reconstruction at a time against the shared document
        self._reconstruct_lock = asyncio.Lock()
        self._active_reconstruction: Optional[asyncio.Task] = None

        self.bridge: Optional[PluginBridge] = None
        self.host: Optional[FigmaHost] = None
        self._host_factory = host_factory or (lambda bridge: FigmaHost(bridge))

    async def _send_json(self, payload: Dict[str, Any]) -> None:
        """Send a JSON-serializable payload over the websocket if connected."""
        if not self.websocket:
            raise RuntimeError("WebSocket not connected")
        await self.websocket.send(json.dumps(payload))

    def attach(self, websocket) -> None:
        """Bind a connected websocket and build the bridge and host on top of it."""
        self.websocket = websocket
        self.bridge = PluginBridge(websocket, timeout=self.tool_timeout)
        set_bridge(self.bridge)
        self.host = self._host_factory(self.bridge)

    async def connect(self) -> bool:
        """Connect to the bridge and join the channel."""
        try:
            logger.info(f"Connecting to bridge at {self.bridge_url}")
            # Snapshots of large component sets easily exceed the default frame size
            websocket = await websockets.connect(self.bridge_url, max_size=None)
            self.attach(websocket)

            await self._send_json({"type": MESSAGE_TYPE_JOIN, "role": "agent", "channel": self.channel})
            logger.info(f"Sent join message for channel: {self.channel}")
            await self._send_json({"type": MESSAGE_TYPE_PING})

            self._keep_alive_task = asyncio.create_task(self._websocket_keep_alive())
            logger.info(f"Initialized plugin bridge (timeout: {self.tool_timeout}s)")

            self.reconnect_delay = 1
            return True
        except (OSError, asyncio.TimeoutError, ConnectionClosed, websockets.InvalidURI, websockets.InvalidHandshake) as e:
            logger.error(f"Failed to connect: {e}")
            return False

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Dispatch an incoming bridge message to its handler."""
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object message: {message!r}")
            return
        msg_type = message.get("type")
        logger.debug(f"🔍 Message received - Type: '{msg_type}', Keys: {list(message.keys())}")

        handlers = {
            MESSAGE_TYPE_SYSTEM: self._handle_system,
            MESSAGE_TYPE_PONG: self._handle_pong,
            MESSAGE_TYPE_PROGRESS_UPDATE: self._handle_progress_update,
            MESSAGE_TYPE_RECONSTRUCT: self._handle_reconstruct,
            MESSAGE_TYPE_NAVIGATE: self._handle_navigate,
            MESSAGE_TYPE_TOOL_RESPONSE: self._handle_tool_response,
            MESSAGE_TYPE_ERROR: self._handle_bridge_error,
        }

        handler = handlers.get(msg_type, self._handle_unknown)
        await handler(message)

    async def _handle_system(self, message: Dict[str, Any]) -> None:
        sys_msg = message.get("message")
        logger.info(f"🔧 System message: {sys_msg}")
        if isinstance(sys_msg, str) and "disconnected" in sys_msg.lower() and "plugin" in sys_msg.lower():
            await self.cancel_active_operations(reason="plugin_disconnected")

    async def _handle_pong(self, _: Dict[str, Any]) -> None:
        logger.info("🏓 Received pong from bridge")

    async def _handle_progress_update(self, message: Dict[str, Any]) -> None:
        logger.debug(f"📈 Progress update received: {message.get('message')}")

    async def _handle_reconstruct(self, message: Dict[str, Any]) -> None:
        snapshot = message.get("snapshot")
        component_name = message.get("componentName")
        logger.info(f"📥 Reconstruct request received (componentName={component_name})")

        if self.reconstruction_running():
            await self._send_json({"type": MESSAGE_TYPE_ERROR, "message": "A reconstruction is already running."})
            return

        task = asyncio.create_task(self.run_reconstruction(snapshot, component_name))
        self._active_reconstruction = task
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def reconstruction_running(self) -> bool:
        if self._active_reconstruction is not None and not self._active_reconstruction.done():
            return True
        return self._reconstruct_lock.locked()

    async def _drain_progress(self, queue: "asyncio.Queue[Optional[Dict[str, Any]]]") -> None:
        """Send queued progress updates in order until the `None` sentinel arrives."""
        while True:
            payload = await queue.get()
            if payload is None:
                return
            try:
                await self._send_json(payload)
            except (RuntimeError, ConnectionClosed) as e:
                logger.warning(f"📈 Progress update dropped: {e}")

    async def run_reconstruction(self, snapshot: Any, component_name: Optional[str] = None) -> None:
        async with self._reconstruct_lock:
            progress: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
            sender = asyncio.create_task(self._drain_progress(progress))

            def on_progress(message: str, percent: int) -> None:
                progress.put_nowait({
                    "type": MESSAGE_TYPE_PROGRESS_UPDATE,
                    "message": {"kind": "reconstruction_progress", "message": message, "percent": percent},
                })

            options = ReconstructionOptions(root_label=component_name, on_progress=on_progress)
            try:
                result = await reconstruct_from_snapshot(snapshot, options, self.host)
                reply = {"type": MESSAGE_TYPE_RECONSTRUCTION_COMPLETE, **result.to_message()}
            except asyncio.CancelledError:
                logger.info("🛑 Reconstruction cancelled")
                sender.cancel()
                raise
            except (ReconstructionError, HostCommandError) as e:
                logger.error(f"❌ Reconstruction failed: {e}")
                reply = {"type": MESSAGE_TYPE_ERROR, "message": f"Reconstruction failed: {e}"}
            except Exception as e:
                logger.error(f"❌ Unexpected reconstruction error: {e}", exc_info=True)
                reply = {"type": MESSAGE_TYPE_ERROR, "message": f"Reconstruction failed: {e}"}

            # The result goes out only after every progress update
            progress.put_nowait(None)
            await sender
            await self._send_json(reply)
            if reply["type"] == MESSAGE_TYPE_RECONSTRUCTION_COMPLETE:
                logger.info(f"✨ Sent reconstruction result for {result.root_node_id} ({len(result.warnings)} warnings)")

    async def _handle_navigate(self, message: Dict[str, Any]) -> None:
        node_id = message.get("nodeId")
        if not node_id or self.host is None:
            logger.warning(f"Ignoring navigate without node id: {message}")
            return
        task = asyncio.create_task(self._navigate(str(node_id)))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _navigate(self, node_id: str) -> None:
        try:
            await self.host.select_and_zoom([node_id])
        except HostCommandError as e:
            logger.error(f"❌ Navigate to {node_id} failed: {e}")

    async def _handle_tool_response(self, message: Dict[str, Any]) -> None:
        if self.bridge:
            self.bridge.handle_tool_response(message)
        else:
            logger.warning("Received tool_response but plugin bridge not initialized")

    async def _handle_bridge_error(self, message: Dict[str, Any]) -> None:
        logger.error(f"Bridge error: {message.get('message', 'Unknown error')}")

    async def _handle_unknown(self, message: Dict[str, Any]) -> None:
        logger.debug(f"Ignoring unknown message type: {message.get('type')}")

    async def cancel_active_operations(self, reason: str = "") -> None:
        """Cancel running reconstructions and pending host commands."""
        if self._background_tasks:
            logger.info(f"🧹 Cancelling {len(self._background_tasks)} active task(s) ({reason})")
            for task in list(self._background_tasks):
                if not task.done():
                    task.cancel()
            await asyncio.sleep(0)
        if self.bridge:
            self.bridge.cleanup_pending_requests()

    async def listen(self) -> None:
        """Listen for messages from the bridge."""
        logger.info("🎧 Starting to listen for messages from bridge")
        while self.running and self.websocket:
            try:
                raw_message = await self.websocket.recv()
            except ConnectionClosed as e:
                logger.error(f"❌ Connection closed: {e}")
                break
            if not raw_message:
                continue
            try:
                message = json.loads(raw_message)
                await self.handle_message(message)
            except json.JSONDecodeError as e:
                logger.error(f"❌ Failed to decode message: {e}")
            except Exception as e:
                logger.error(f"❌ Error handling message: {e}", exc_info=True)

    async def _websocket_keep_alive(self, interval: int = 30) -> None:
        """Keep the WebSocket connection alive with periodic pings."""
        try:
            while self.running and self.websocket:
                await asyncio.sleep(interval)
                try:
                    pong_waiter = await self.websocket.ping()
                    await asyncio.wait_for(pong_waiter, timeout=10)
                    logger.debug("💓 WebSocket keep-alive ping successful")
                except asyncio.TimeoutError:
                    logger.warning("💔 WebSocket keep-alive ping timed out")
                    break
                except ConnectionClosed as e:
                    logger.error(f"💔 WebSocket keep-alive ping failed: {e}")
                    break
        except asyncio.CancelledError:
            logger.debug("💓 WebSocket keep-alive task cancelled")

    async def run_with_reconnect(self) -> None:
        """Main loop with reconnection logic."""
        while self.running:
            try:
                if await self.connect():
                    logger.info("🌉 Connected to bridge successfully")
                    await self.listen()
                    await self.cancel_active_operations(reason="connection_lost")
                else:
                    logger.warning("Failed to connect to bridge")
            except Exception as e:
                logger.error(f"Unexpected error: {e}", exc_info=True)

            if self.running:
                logger.info(f"Reconnecting in {self.reconnect_delay} seconds...")
                await asyncio.sleep(self.reconnect_delay)
                self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    def shutdown(self) -> None:
        """Graceful shutdown."""
        logger.info("Shutting down restore agent")
        self.running = False
        if self._keep_alive_task and not self._keep_alive_task.done():
            self._keep_alive_task.cancel()
        if self.bridge:
            self.bridge.cleanup_pending_requests()
            set_bridge(None)
        self.websocket = None


def get_config(argv=None):
    """Get configuration from environment variables or CLI args."""
    bridge_url = os.getenv("BRIDGE_URL", DEFAULT_BRIDGE_URL)
    channel = os.getenv("FIGMA_CHANNEL")
    timeout_raw = os.getenv("FIGMA_TOOL_TIMEOUT", str(DEFAULT_TOOL_TIMEOUT))

    for arg in (sys.argv[1:] if argv is None else argv):
        if arg.startswith("--channel="):
            channel = arg.split("=", 1)[1]
        elif arg.startswith("--bridge-url="):
            bridge_url = arg.split("=", 1)[1]
        elif arg.startswith("--timeout="):
            timeout_raw = arg.split("=", 1)[1]

    if not channel:
        channel = DEFAULT_CHANNEL
        logger.info(f"No channel specified, using default: {channel}")

    try:
        tool_timeout = float(timeout_raw)
    except ValueError:
        logger.warning(f"Invalid tool timeout {timeout_raw!r}, using {DEFAULT_TOOL_TIMEOUT}")
        tool_timeout = DEFAULT_TOOL_TIMEOUT

    return bridge_url, channel, tool_timeout


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='[%(asctime)s] [restore] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S'
    )
    bridge_url, channel, tool_timeout = get_config()
    logger.info("Starting Figma snapshot restore agent")
    logger.info(f"Bridge URL: {bridge_url}")
    logger.info(f"Channel: {channel}")

    agent = RestoreAgent(bridge_url, channel, tool_timeout)

    def signal_handler(signum, frame):
        logger.info("Received shutdown signal")
        agent.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        asyncio.run(agent.run_with_reconnect())
    except KeyboardInterrupt:
        logger.info("Agent interrupted")
    finally:
        agent.shutdown()


if __name__ == "__main__":
    main()

"""
Figma Host - scene-graph commands used by the reconstruction engine

Thin async wrappers over the plugin bridge. Each method maps to one plugin
command; plugin errors surface as HostCommandError and any other transport
failure is wrapped as a `communication_error` so callers only ever handle
one exception type.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError

from plugin_bridge import PluginBridge, HostCommandError, get_bridge

logger = logging.getLogger(__name__)


class FontName(BaseModel):
    model_config = ConfigDict(extra='forbid', frozen=True)
    family: str
    style: str

    def as_params(self) -> Dict[str, str]:
        return {"family": self.family, "style": self.style}

    def __str__(self) -> str:
        return f"{self.family} {self.style}"


class SvgImport(BaseModel):
    """Result of `create_node_from_svg`: the wrapper frame and its direct children."""
    model_config = ConfigDict(extra='ignore')
    id: str
    children: List[str] = []


def _invalid_response(command: str, message: str, result: Any) -> HostCommandError:
    logger.error(f"❌ Invalid {command} response: {message}")
    return HostCommandError({
        "code": "invalid_response",
        "message": f"{command} {message}",
        "details": {"result": result},
    }, command=command)


def _node_id(result: Any, command: str) -> str:
    if isinstance(result, dict) and result.get("id"):
        return str(result["id"])
    if isinstance(result, str) and result:
        return result
    raise _invalid_response(command, "did not return a node id", result)


def _numbers(result: Any, command: str, *keys: str) -> Tuple[float, ...]:
    if not isinstance(result, dict):
        raise _invalid_response(command, "did not return an object", result)
    try:
        return tuple(float(result.get(key, 0)) for key in keys)
    except (TypeError, ValueError):
        raise _invalid_response(command, f"returned non-numeric {', '.join(keys)}", result)


class FigmaHost:
    """
    Host node-creation, font, vector-import and viewport API.

    Uses the given bridge, or the process-wide one registered by the service.
    """

    def __init__(self, bridge: Optional[PluginBridge] = None):
        self._bridge = bridge

    @property
    def bridge(self) -> PluginBridge:
        return self._bridge or get_bridge()

    async def _call(self, command: str, params: Dict[str, Any]) -> Any:
        try:
            return await self.bridge.send_command(command, params)
        except HostCommandError:
            raise
        except Exception as e:
            logger.error(f"❌ Communication/system error in {command}: {str(e)}")
            raise HostCommandError({
                "code": "communication_error",
                "message": f"Failed to communicate with plugin: {str(e)}",
                "details": {"command": command},
            }, command=command, params=params)

    # --- node creation ---

    async def create_node(self, node_type: str, parent_id: Optional[str] = None) -> str:
        """Create an empty node of `node_type` appended to `parent_id` (current page when omitted)."""
        params: Dict[str, Any] = {"type": node_type}
        if parent_id:
            params["parent_id"] = parent_id
        result = await self._call("create_node", params)
        return _node_id(result, "create_node")

    async def create_node_from_svg(self, svg: str, parent_id: Optional[str] = None) -> SvgImport:
        params: Dict[str, Any] = {"svg": svg}
        if parent_id:
            params["parent_id"] = parent_id
        result = await self._call("create_node_from_svg", params)
        if not isinstance(result, dict):
            raise _invalid_response("create_node_from_svg", "returned no node", result)
        try:
            return SvgImport.model_validate(result)
        except ValidationError as e:
            raise _invalid_response("create_node_from_svg", f"returned an invalid node ({e.error_count()} errors)", result)

    async def group_nodes(self, node_ids: List[str], parent_id: Optional[str] = None) -> str:
        params: Dict[str, Any] = {"node_ids": node_ids}
        if parent_id:
            params["parent_id"] = parent_id
        result = await self._call("group_nodes", params)
        return _node_id(result, "group_nodes")

    async def combine_as_variants(self, node_ids: List[str], parent_id: Optional[str] = None) -> str:
        params: Dict[str, Any] = {"node_ids": node_ids}
        if parent_id:
            params["parent_id"] = parent_id
        result = await self._call("combine_as_variants", params)
        return _node_id(result, "combine_as_variants")

    # --- node mutation ---

    async def set_properties(self, node_id: str, properties: Dict[str, Any]) -> None:
        """Assign properties in key order (layoutMode must precede padding and spacing)."""
        await self._call("set_node_properties", {"node_id": node_id, "properties": properties})

    async def resize(self, node_id: str, width: float, height: float) -> None:
        await self._call("resize_node", {"node_id": node_id, "width": float(width), "height": float(height)})

    async def get_node_size(self, node_id: str) -> Tuple[float, float]:
        result = await self._call("get_node_size", {"node_id": node_id})
        width, height = _numbers(result, "get_node_size", "width", "height")
        return width, height

    async def append_child(self, parent_id: Optional[str], node_id: str) -> None:
        params: Dict[str, Any] = {"node_id": node_id}
        if parent_id:
            params["parent_id"] = parent_id
        await self._call("append_child", params)

    async def remove_node(self, node_id: str) -> None:
        await self._call("remove_node", {"node_id": node_id})

    async def add_component_property(self, node_id: str, name: str, property_type: str, default_value: Any) -> None:
        await self._call("add_component_property", {
            "node_id": node_id,
            "name": name,
            "type": property_type,
            "default_value": default_value,
        })

    # --- fonts ---

    async def load_font(self, font: FontName) -> None:
        """Load a font; raises HostCommandError when the font is unavailable."""
        await self._call("load_font", {"font_name": font.as_params()})

    # --- viewport ---

    async def get_viewport_center(self) -> Tuple[float, float]:
        result = await self._call("get_viewport_center", {})
        x, y = _numbers(result, "get_viewport_center", "x", "y")
        return x, y

    async def select_and_zoom(self, node_ids: List[str]) -> None:
        await self._call("select_and_zoom", {"node_ids": node_ids})

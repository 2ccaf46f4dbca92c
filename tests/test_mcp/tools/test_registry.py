"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec creation and immutability
- ToolRegistry read-only filtering
- ToolRegistry list_tools, tool_count, call_tool
- call_tool error translation
"""

import asyncio
import unittest
from unittest.mock import MagicMock

import mcp.types as types
import requests

from sitelink_sync.core.client import MediaWikiRemoteError
from sitelink_sync.mcp.tools import ALL_SPECS
from sitelink_sync.mcp.tools.registry import ToolRegistry, ToolSpec


def _make_spec(name: str, writes: bool = False, handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(ctx, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        writes=writes,
        handler=handler,
    )


def _raising(exc):
    async def handler(ctx, args):
        raise exc

    return handler


class TestToolSpec(unittest.TestCase):
    """Test ToolSpec dataclass."""

    def test_creation(self):
        spec = _make_spec("sitelink_check", writes=True)
        self.assertEqual(spec.tool.name, "sitelink_check")
        self.assertTrue(spec.writes)
        self.assertIsNotNone(spec.handler)

    def test_frozen(self):
        """ToolSpec is immutable (frozen dataclass)."""
        spec = _make_spec("ping")
        with self.assertRaises(AttributeError):
            spec.writes = True

    def test_shipped_specs_flagged(self):
        """The check tool writes; the status tool does not."""
        writes = {spec.tool.name: spec.writes for spec in ALL_SPECS}
        self.assertEqual(writes, {"sitelink_check": True, "sitelink_status": False})


class TestToolRegistry(unittest.TestCase):
    """Test ToolRegistry class."""

    def setUp(self):
        self.specs = [
            _make_spec("ping"),
            _make_spec("sitelink_status"),
            _make_spec("sitelink_check", writes=True),
        ]

    def test_all_tools_registered(self):
        registry = ToolRegistry(self.specs)
        self.assertEqual(registry.tool_count(), 3)

    def test_read_only_hides_writing_tools(self):
        registry = ToolRegistry(self.specs, read_only=True)
        names = [t.name for t in registry.list_tools()]
        self.assertEqual(names, ["ping", "sitelink_status"])

    def test_list_tools_returns_tool_objects(self):
        for tool in ToolRegistry(self.specs).list_tools():
            self.assertIsInstance(tool, types.Tool)

    def test_call_tool_dispatches_to_handler(self):
        """call_tool() invokes the ToolSpec handler with (ctx, args)."""
        calls = []

        async def handler(ctx, args):
            calls.append((ctx, args))
            return types.CallToolResult(
                content=[types.TextContent(type="text", text="dispatched")]
            )

        registry = ToolRegistry([_make_spec("test_dispatch", handler=handler)])
        ctx = MagicMock()

        result = asyncio.run(
            registry.call_tool("test_dispatch", {"sites": ["enwiki"]}, ctx)
        )

        self.assertEqual(calls, [(ctx, {"sites": ["enwiki"]})])
        self.assertEqual(result.content[0].text, "dispatched")

    def test_call_tool_none_arguments(self):
        """call_tool() converts None arguments to empty dict."""
        calls = []

        async def handler(ctx, args):
            calls.append(args)
            return types.CallToolResult(
                content=[types.TextContent(type="text", text="ok")]
            )

        registry = ToolRegistry([_make_spec("t", handler=handler)])
        asyncio.run(registry.call_tool("t", None, MagicMock()))
        self.assertEqual(calls, [{}])

    def test_unknown_tool_raises(self):
        registry = ToolRegistry(self.specs)
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("nope", {}, MagicMock()))

    def test_filtered_tool_raises(self):
        registry = ToolRegistry(self.specs, read_only=True)
        with self.assertRaises(ValueError):
            asyncio.run(registry.call_tool("sitelink_check", {}, MagicMock()))


class TestCallToolErrors(unittest.TestCase):
    """Exceptions raised by handlers become structured error results."""

    def _call(self, exc) -> str:
        registry = ToolRegistry([_make_spec("t", handler=_raising(exc))])
        result = asyncio.run(registry.call_tool("t", {}, MagicMock()))
        self.assertTrue(result.isError)
        return result.content[0].text

    def test_remote_error(self):
        text = self._call(MediaWikiRemoteError("maxlag", "Waiting for db"))
        self.assertTrue(text.startswith("Error (rate_limited): maxlag"))

    def test_transport_error(self):
        text = self._call(requests.ConnectionError("refused"))
        self.assertTrue(text.startswith("Error (connection_error): refused"))

    def test_value_error(self):
        text = self._call(ValueError("bad namespace"))
        self.assertTrue(text.startswith("Error (validation_error): bad namespace"))

    def test_key_error(self):
        text = self._call(KeyError("dewiki"))
        self.assertIn("validation_error", text)

    def test_unexpected_error(self):
        text = self._call(RuntimeError("boom"))
        self.assertTrue(text.startswith("Error (server_error): boom"))

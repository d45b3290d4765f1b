"""
Connections to individual tool servers.

A local server is a child process speaking newline-delimited JSON over
stdio: each request carries an ``id`` and the answer with the same ``id``
resolves it, in any order. Besides tools, a local server may list resources
and prompts, which are offered to models as extra tools. A remote server is
an HTTP endpoint exposing ``POST /tools`` and ``POST /tools/call``.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from mcp_bridge._exceptions import (
    ConfigurationError,
    DiscoveryTimeoutError,
    ServerNotRunningError,
    ToolDiscoveryError,
    ToolServerConnectionError,
    ToolServerError,
)
from mcp_bridge.config import LocalServerConfig, RemoteServerConfig, ToolServerConfig
from mcp_bridge.types.tool import (
    OfferKind,
    PromptDescriptor,
    ResourceDescriptor,
    ToolDescriptor,
    ToolOffer,
    parse_prompt_descriptors,
    parse_resource_descriptors,
    parse_tool_descriptors,
    prompt_tool,
    resource_reader_tool,
)

__all__ = [
    "ToolServerConnection",
    "LocalToolServer",
    "RemoteToolServer",
    "create_connection",
    "result_text",
    "resource_text",
    "prompt_text",
]

# tool results can be large single lines
STREAM_LIMIT = 16 * 1024 * 1024


def result_text(result: Any) -> str:
    """Render a tool result as the text handed back to the model."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        parts = result["content"]
        texts = [
            p.get("text", "") for p in parts if isinstance(p, dict) and p.get("type") == "text"
        ]
        if parts and len(texts) == len(parts):
            text = "\n".join(texts)
            if result.get("isError"):
                raise ToolServerError(text or "Tool reported an error")
            return text
    return json.dumps(result, indent=2)


def resource_text(result: Any) -> str:
    """Render a ``resources/read`` answer; text contents are joined."""
    contents = result.get("contents") if isinstance(result, dict) else None
    if (
        isinstance(contents, list)
        and contents
        and all(isinstance(c, dict) and "text" in c for c in contents)
    ):
        return "\n".join(str(c["text"]) for c in contents)
    return json.dumps(result, indent=2)


def prompt_text(result: Any) -> str:
    """Render a ``prompts/get`` answer as ``role: text`` blocks."""
    messages = result.get("messages") if isinstance(result, dict) else None
    if not isinstance(messages, list) or not messages:
        return json.dumps(result, indent=2)
    blocks = []
    for message in messages:
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, dict) or content.get("type") != "text":
            return json.dumps(result, indent=2)
        blocks.append(f"{message.get('role', 'user')}: {content.get('text', '')}")
    return "\n\n".join(blocks)


class ToolServerConnection(ABC):
    """One configured tool server and its discovered tools."""

    def __init__(
        self,
        name: str,
        config: ToolServerConfig,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.running = False
        self.tools: list[ToolDescriptor] = []
        self.resources: list[ResourceDescriptor] = []
        self.prompts: list[PromptDescriptor] = []

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def _list_tools(self) -> Any:
        """Return the raw ``tools`` array from the server."""
        ...

    @abstractmethod
    async def _call(self, name: str, arguments: dict[str, Any]) -> Any:
        ...

    @abstractmethod
    async def _close(self) -> None:
        """Release the process or client. Must tolerate repeated calls."""
        ...

    # servers without resources or prompts keep these defaults
    async def _list_resources(self) -> Any:
        return []

    async def _list_prompts(self) -> Any:
        return []

    async def _read_resource(self, uri: str) -> Any:
        raise ToolServerError(f"Tool server '{self.name}' does not serve resources")

    async def _get_prompt(self, name: str, arguments: dict[str, Any]) -> Any:
        raise ToolServerError(f"Tool server '{self.name}' does not serve prompts")

    async def discover_tools(self) -> list[ToolDescriptor]:
        self._ensure_running()
        raw = await self._list_tools()
        self.tools = parse_tool_descriptors(raw, server=self.name, log=self.logger)
        self._log(f"Discovered {len(self.tools)} tools")
        return list(self.tools)

    async def refresh_tools(self) -> list[ToolDescriptor]:
        """Discover tools, treating any failure as an empty catalog."""
        try:
            return await self.discover_tools()
        except (ToolServerError, ServerNotRunningError) as exc:
            self._log(f"Tool discovery failed: {exc}", logging.WARNING)
            self.tools = []
            return []

    async def discover_resources(self) -> list[ResourceDescriptor]:
        self._ensure_running()
        raw = await self._list_resources()
        self.resources = parse_resource_descriptors(raw, server=self.name, log=self.logger)
        self._log(f"Discovered {len(self.resources)} resources", logging.DEBUG)
        return list(self.resources)

    async def discover_prompts(self) -> list[PromptDescriptor]:
        self._ensure_running()
        raw = await self._list_prompts()
        self.prompts = parse_prompt_descriptors(raw, server=self.name, log=self.logger)
        self._log(f"Discovered {len(self.prompts)} prompts", logging.DEBUG)
        return list(self.prompts)

    async def refresh_capabilities(self) -> list[ToolDescriptor]:
        """
        Refresh tools, resources and prompts, returning the tools.

        Like ``refresh_tools`` every failure leaves that listing empty;
        servers that do not implement resources or prompts simply have none.
        """
        tools = await self.refresh_tools()
        if not self.running:
            return tools
        self.resources, self.prompts = await asyncio.gather(
            self._optional_listing("resources", self.discover_resources),
            self._optional_listing("prompts", self.discover_prompts),
        )
        return tools

    async def _optional_listing(self, kind: str, discover: Any) -> list[Any]:
        try:
            return await discover()
        except (ToolServerError, ServerNotRunningError) as exc:
            self._log(f"No {kind} listed: {exc}", logging.DEBUG)
            return []

    def catalog(self) -> list[ToolOffer]:
        """Offers for this server's tools, followed by its resource reader and prompts."""
        offers = [ToolOffer(self.name, tool) for tool in self.tools]
        if self.resources:
            offers.append(
                ToolOffer(self.name, resource_reader_tool(self.resources), OfferKind.RESOURCE)
            )
        offers.extend(
            ToolOffer(self.name, prompt_tool(p), OfferKind.PROMPT, p.name) for p in self.prompts
        )
        return offers

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> Any:
        self._ensure_running()
        self._log(f"Calling tool {name}", logging.DEBUG)
        return await self._call(name, arguments or {})

    async def call_tool_text(self, name: str, arguments: Optional[dict[str, Any]] = None) -> str:
        return result_text(await self.call_tool(name, arguments))

    async def read_resource(self, uri: str) -> Any:
        self._ensure_running()
        self._log(f"Reading resource {uri}", logging.DEBUG)
        return await self._read_resource(uri)

    async def get_prompt(self, name: str, arguments: Optional[dict[str, Any]] = None) -> Any:
        self._ensure_running()
        self._log(f"Getting prompt {name}", logging.DEBUG)
        return await self._get_prompt(name, arguments or {})

    async def invoke(self, offer: ToolOffer, arguments: dict[str, Any]) -> str:
        """Run one of this server's catalog entries and return the text for the model."""
        match offer.kind:
            case OfferKind.RESOURCE:
                return resource_text(await self.read_resource(arguments["uri"]))
            case OfferKind.PROMPT:
                return prompt_text(await self.get_prompt(offer.remote_name, arguments))
            case _:
                return await self.call_tool_text(offer.remote_name, arguments)

    async def stop(self) -> None:
        was_running = self.running
        self.running = False
        self.tools = []
        self.resources = []
        self.prompts = []
        await self._close()
        if was_running:
            self._log("Stopped")

    def _ensure_running(self) -> None:
        if not self.running:
            raise ServerNotRunningError(f"Tool server '{self.name}' is not running")

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")


class LocalToolServer(ToolServerConnection):
    """A tool server run as a child process."""

    config: LocalServerConfig

    def __init__(
        self,
        name: str,
        config: LocalServerConfig,
        *,
        settle_interval: float = 2.0,
        startup_timeout: float = 10.0,
        discovery_timeout: float = 10.0,
        call_timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(name, config, logger=logger)
        self.settle_interval = settle_interval
        self.startup_timeout = startup_timeout
        self.discovery_timeout = discovery_timeout
        self.call_timeout = call_timeout
        self._process: Optional[asyncio.subprocess.Process] = None
        self._request_id = 0
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._stderr_task: Optional[asyncio.Task[None]] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        if self.running:
            return
        env = {**os.environ, **self.config.environment}
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.config.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            raise ToolServerConnectionError(
                f"Failed to start tool server '{self.name}': {exc}", exc
            ) from exc

        self._reader_task = asyncio.create_task(self._read_stdout(self._process))
        self._stderr_task = asyncio.create_task(self._read_stderr(self._process))

        # no readiness handshake: a server still alive after settling is considered up
        settle = min(self.settle_interval, self.startup_timeout)
        try:
            code = await asyncio.wait_for(self._process.wait(), timeout=settle)
        except asyncio.TimeoutError:
            self.running = True
            self._log(f"Started (pid {self._process.pid})")
            return

        await self._close()
        raise ToolServerConnectionError(
            f"Tool server '{self.name}' exited during startup with code {code}"
        )

    async def _list_tools(self) -> Any:
        return await self._listing("tools")

    async def _list_resources(self) -> Any:
        return await self._listing("resources")

    async def _list_prompts(self) -> Any:
        return await self._listing("prompts")

    async def _call(self, name: str, arguments: dict[str, Any]) -> Any:
        return await self._invoke(
            "tools/call", {"name": name, "arguments": arguments}, f"Tool '{name}'"
        )

    async def _read_resource(self, uri: str) -> Any:
        return await self._invoke("resources/read", {"uri": uri}, f"Resource '{uri}'")

    async def _get_prompt(self, name: str, arguments: dict[str, Any]) -> Any:
        return await self._invoke(
            "prompts/get", {"name": name, "arguments": arguments}, f"Prompt '{name}'"
        )

    async def _listing(self, kind: str) -> Any:
        """Send ``<kind>/list`` and return the array under ``kind``."""
        try:
            result = await self._request(f"{kind}/list", {}, self.discovery_timeout)
        except asyncio.TimeoutError as exc:
            raise DiscoveryTimeoutError(
                f"Tool server '{self.name}' did not list its {kind} within {self.discovery_timeout}s",
                exc,
            ) from exc
        except ToolServerError as exc:
            raise ToolDiscoveryError(f"Tool server '{self.name}' failed to list {kind}: {exc}", exc) from exc

        if isinstance(result, dict):
            return result.get(kind, [])
        return result if result is not None else []

    async def _invoke(self, method: str, params: dict[str, Any], label: str) -> Any:
        try:
            return await self._request(method, params, self.call_timeout)
        except asyncio.TimeoutError as exc:
            raise ToolServerError(
                f"{label} on '{self.name}' timed out after {self.call_timeout}s", exc
            ) from exc

    async def _request(self, method: str, params: dict[str, Any], timeout: float) -> Any:
        """Send a request and wait for the response carrying the same id."""
        process = self._process
        if process is None or process.stdin is None:
            raise ServerNotRunningError(f"Tool server '{self.name}' is not running")

        self._request_id += 1
        req_id = self._request_id
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future

        message = {"jsonrpc": "2.0", "id": req_id, "method": method, "params": params}
        try:
            process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
            await process.stdin.drain()
            return await asyncio.wait_for(future, timeout=timeout)
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ServerNotRunningError(f"Tool server '{self.name}' closed its input", exc) from exc
        finally:
            self._pending.pop(req_id, None)

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        while True:
            try:
                line = await process.stdout.readline()
            except ValueError as exc:
                self._log(f"Dropping oversized output line: {exc}", logging.WARNING)
                continue
            if not line:
                break
            self._handle_line(line)

        code = await process.wait()
        if self.running:
            self._log(f"Exited with code {code}", logging.WARNING)
        self.running = False
        self.tools = []
        self.resources = []
        self.prompts = []
        self._fail_pending(ServerNotRunningError(f"Tool server '{self.name}' exited with code {code}"))

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        while True:
            try:
                line = await process.stderr.readline()
            except ValueError:
                continue
            if not line:
                return
            self._log(f"stderr: {line.decode('utf-8', errors='replace').rstrip()}", logging.DEBUG)

    def _handle_line(self, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            self._log(f"stdout: {text}", logging.DEBUG)
            return

        req_id = message.get("id") if isinstance(message, dict) else None
        if not isinstance(req_id, int) or req_id not in self._pending:
            self._log(f"Ignoring unsolicited message: {text}", logging.DEBUG)
            return

        future = self._pending.pop(req_id)
        if future.done():
            return
        error = message.get("error")
        if error is not None:
            detail = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            future.set_exception(ToolServerError(detail))
        else:
            future.set_result(message.get("result"))

    def _fail_pending(self, exc: Exception) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)

    async def _close(self) -> None:
        process, self._process = self._process, None
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

        for task in (self._reader_task, self._stderr_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._reader_task = self._stderr_task = None
        self._fail_pending(ServerNotRunningError(f"Tool server '{self.name}' was stopped"))


class RemoteToolServer(ToolServerConnection):
    """A tool server reached over HTTP."""

    config: RemoteServerConfig

    def __init__(
        self,
        name: str,
        config: RemoteServerConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(name, config, logger=logger)
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _endpoint(self, path: str) -> str:
        return f"{self.config.url.rstrip('/')}/{path}"

    async def start(self) -> None:
        if self.running:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        try:
            response = await self._client.get(self.config.url, headers=self.config.headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            await self._close()
            raise ToolServerConnectionError(
                f"Cannot reach tool server '{self.name}' at {self.config.url}: {exc}", exc
            ) from exc
        self.running = True
        self._log(f"Connected to {self.config.url}")

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        assert self._client is not None
        response = await self._client.post(
            self._endpoint(path), json=payload, headers=self.config.headers
        )
        response.raise_for_status()
        return response.json()

    async def _list_tools(self) -> Any:
        try:
            body = await self._post("tools", {"method": "tools/list", "params": {}})
        except (httpx.HTTPError, ValueError) as exc:
            raise ToolDiscoveryError(f"Tool server '{self.name}' failed to list tools: {exc}", exc) from exc
        if isinstance(body, dict):
            return body.get("tools", [])
        return body

    async def _call(self, name: str, arguments: dict[str, Any]) -> Any:
        try:
            body = await self._post("tools/call", {"name": name, "arguments": arguments})
        except (httpx.HTTPError, ValueError) as exc:
            raise ToolServerError(f"Tool '{name}' on '{self.name}' failed: {exc}", exc) from exc
        if isinstance(body, dict):
            if body.get("error"):
                error = body["error"]
                detail = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                raise ToolServerError(f"Tool '{name}' on '{self.name}' failed: {detail}")
            if "result" in body:
                return body["result"]
        return body

    async def _close(self) -> None:
        client, self._client = self._client, None
        if client is not None and self._owns_client:
            await client.aclose()
        elif client is not None:
            # keep a caller-supplied client for a later restart
            self._client = client


def create_connection(
    name: str,
    config: ToolServerConfig,
    *,
    logger: Optional[logging.Logger] = None,
) -> ToolServerConnection:
    match config:
        case LocalServerConfig():
            return LocalToolServer(name, config, logger=logger)
        case RemoteServerConfig():
            return RemoteToolServer(name, config, logger=logger)
        case _:
            raise ConfigurationError(f"Unsupported tool server config for '{name}': {config!r}")

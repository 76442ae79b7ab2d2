"""
MCP (Model Context Protocol) server for SentinelOne.

This module implements an MCP server that exposes SentinelOne threat, agent
and Deep Visibility operations as tools that can be invoked by LLM clients
like Claude Desktop, Cline or Open WebUI.

The server implements JSON-RPC 2.0 over stdio as specified in the MCP protocol.
stdout carries protocol messages only; all logging goes to files and stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import threading
from typing import Any, Dict, List, Optional, Set

from ..core.config import AppConfig, resolve_config
from ..core.errors import (
    ConfigError,
    SearchCancelledError,
    SentinelMCPError,
    ValidationError,
    sanitize_error_message,
)
from ..core.logging import configure_logging, get_logger
from ..integrations.edr.sentinelone.dv_search import DVSearchOrchestrator
from ..integrations.edr.sentinelone.sentinelone_client import SentinelOneClient
from ..orchestrator import tools_agents, tools_dv, tools_threats
from .watchdog import ParentWatchdog

logger = get_logger(__name__)


def configure_mcp_logging(log_dir: str = "logs") -> None:
    """
    Configure dedicated logging for the MCP server in its own directory.

    Creates logs/mcp/ directory with:
    - mcp_requests.log: All incoming requests
    - mcp_responses.log: All outgoing responses
    - mcp_errors.log: All errors
    - mcp_all.log: Everything (for complete debugging)
    """
    mcp_log_dir = os.path.join(log_dir, "mcp")
    os.makedirs(mcp_log_dir, exist_ok=True)

    mcp_logger = logging.getLogger("sentinel_mcp.mcp")
    mcp_logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers
    if getattr(mcp_logger, "_mcp_logging_configured", False):
        return

    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s [%(funcName)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    all_handler = logging.FileHandler(os.path.join(mcp_log_dir, "mcp_all.log"))
    all_handler.setLevel(logging.DEBUG)
    all_handler.setFormatter(detailed_formatter)

    requests_handler = logging.FileHandler(os.path.join(mcp_log_dir, "mcp_requests.log"))
    requests_handler.setLevel(logging.INFO)
    requests_handler.setFormatter(detailed_formatter)

    responses_handler = logging.FileHandler(os.path.join(mcp_log_dir, "mcp_responses.log"))
    responses_handler.setLevel(logging.INFO)
    responses_handler.setFormatter(detailed_formatter)

    errors_handler = logging.FileHandler(os.path.join(mcp_log_dir, "mcp_errors.log"))
    errors_handler.setLevel(logging.ERROR)
    errors_handler.setFormatter(detailed_formatter)

    # Route records to the request/response logs by message prefix
    class RequestFilter(logging.Filter):
        def filter(self, record):
            msg = record.getMessage().upper()
            return "REQUEST" in msg or "EXECUTING" in msg

    class ResponseFilter(logging.Filter):
        def filter(self, record):
            msg = record.getMessage().upper()
            return "RESPONSE" in msg or record.levelno >= logging.ERROR

    requests_handler.addFilter(RequestFilter())
    responses_handler.addFilter(ResponseFilter())

    mcp_logger.addHandler(all_handler)
    mcp_logger.addHandler(requests_handler)
    mcp_logger.addHandler(responses_handler)
    mcp_logger.addHandler(errors_handler)

    mcp_logger._mcp_logging_configured = True  # type: ignore[attr-defined]

    logger.info(f"MCP dedicated logging configured in: {mcp_log_dir}")


def _string_list(description: str) -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


class SentinelOneMCPServer:
    """
    MCP server that exposes SentinelOne operations as tools.

    Implements the Model Context Protocol (MCP) specification using
    JSON-RPC 2.0 over stdio.
    """

    PROTOCOL_VERSION = "2024-11-05"
    SUPPORTED_PROTOCOL_VERSIONS = ["2024-11-05", "2025-03-26", "2025-06-18"]

    SERVER_NAME = "sentinelone"
    SERVER_VERSION = "1.0.0"

    def __init__(
        self,
        client: Optional[SentinelOneClient] = None,
        search: Optional[DVSearchOrchestrator] = None,
        secrets: Optional[List[str]] = None,
    ):
        """
        Initialize the MCP server.

        Args:
            client: SentinelOne REST client (threats, agents, DV events).
            search: Deep Visibility search orchestrator. Built on ``client``
                with default budgets when omitted.
            secrets: Strings to scrub from any error text sent to the client.
        """
        self.client = client
        if search is None and client is not None:
            search = DVSearchOrchestrator(client)
        self.search = search
        self._secrets = list(secrets or [])
        self._initialized = False
        # In-flight tools/call requests by JSON-RPC id, for notifications/cancelled.
        self._inflight: Dict[Any, threading.Event] = {}
        self._exec_lock = threading.Lock()
        self._mcp_logger = logging.getLogger("sentinel_mcp.mcp")
        self._register_tools()

    def _register_tools(self) -> None:
        """Register all available tools."""
        self.tools: Dict[str, Dict[str, Any]] = {}

        if not self.client:
            self._mcp_logger.warning(
                "SentinelOne tools not registered: no client configured. "
                "Set SENTINELONE_API_BASE and SENTINELONE_API_KEY."
            )
            return

        self._register_threat_tools()
        self._register_agent_tools()
        self._register_dv_tools()

    def _register_threat_tools(self) -> None:
        """
        Register threat tools.

        Available tools:
        - s1_list_threats: List threats with optional filters
        - s1_get_threat: Get one threat by ID
        - s1_mitigate_threat: kill / quarantine / remediate / rollback-remediation
        """
        self.tools["s1_list_threats"] = {
            "name": "s1_list_threats",
            "description": "List SentinelOne threats with optional filters",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "limit": {"type": "integer", "description": "Max threats to return (default 25)"},
                    "cursor": {"type": "string", "description": "Pagination cursor from a previous call"},
                    "siteIds": _string_list("Filter by site IDs"),
                    "groupIds": _string_list("Filter by group IDs"),
                    "resolved": {"type": "boolean", "description": "Filter by resolved state"},
                    "mitigationStatuses": _string_list("e.g. ['not_mitigated', 'mitigated']"),
                    "classifications": _string_list("e.g. ['Malware', 'PUA']"),
                    "analystVerdicts": _string_list("e.g. ['true_positive', 'undefined']"),
                    "computerName": {"type": "string", "description": "Endpoint name contains"},
                    "threatName": {"type": "string", "description": "Threat details contain"},
                },
            },
        }

        self.tools["s1_get_threat"] = {
            "name": "s1_get_threat",
            "description": "Get a specific SentinelOne threat by ID",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "threatId": {"type": "string", "description": "The threat ID"},
                },
                "required": ["threatId"],
            },
        }

        self.tools["s1_mitigate_threat"] = {
            "name": "s1_mitigate_threat",
            "description": (
                "Mitigate a threat: kill (terminate process), quarantine (isolate file), "
                "remediate (full cleanup), rollback-remediation (undo)"
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "threatId": {"type": "string", "description": "The threat ID"},
                    "action": {
                        "type": "string",
                        "enum": ["kill", "quarantine", "remediate", "rollback-remediation"],
                        "description": "Mitigation action",
                    },
                },
                "required": ["threatId", "action"],
            },
        }

    def _register_agent_tools(self) -> None:
        """
        Register agent tools.

        Available tools:
        - s1_list_agents / s1_get_agent
        - s1_isolate_agent: network isolation (CRITICAL ACTION - use with caution)
        - s1_reconnect_agent: remove network isolation
        """
        self.tools["s1_list_agents"] = {
            "name": "s1_list_agents",
            "description": "List SentinelOne agents with optional filters",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "limit": {"type": "integer", "description": "Max agents to return (default 25)"},
                    "cursor": {"type": "string", "description": "Pagination cursor from a previous call"},
                    "siteIds": _string_list("Filter by site IDs"),
                    "groupIds": _string_list("Filter by group IDs"),
                    "computerName": {"type": "string", "description": "Endpoint name contains"},
                    "osTypes": _string_list("e.g. ['windows', 'linux', 'macos']"),
                    "isActive": {"type": "boolean", "description": "Filter by active state"},
                    "isInfected": {"type": "boolean", "description": "Filter by infected state"},
                    "networkStatuses": _string_list("e.g. ['connected', 'disconnected']"),
                },
            },
        }

        agent_id_schema = {
            "type": "object",
            "properties": {
                "agentId": {"type": "string", "description": "The agent ID"},
            },
            "required": ["agentId"],
        }

        self.tools["s1_get_agent"] = {
            "name": "s1_get_agent",
            "description": "Get a specific SentinelOne agent by ID",
            "inputSchema": agent_id_schema,
        }

        self.tools["s1_isolate_agent"] = {
            "name": "s1_isolate_agent",
            "description": "Network isolate an agent (disconnect from network while maintaining S1 communication)",
            "inputSchema": agent_id_schema,
        }

        self.tools["s1_reconnect_agent"] = {
            "name": "s1_reconnect_agent",
            "description": "Remove network isolation from an agent",
            "inputSchema": agent_id_schema,
        }

    def _register_dv_tools(self) -> None:
        """
        Register Deep Visibility tools.

        Available tools:
        - s1_hash_reputation: hunt a hash across the fleet (last 14 days)
        - s1_dv_query: run a free-text query to completion
        - s1_dv_get_events: fetch (more) events for an existing queryId
        """
        self.tools["s1_hash_reputation"] = {
            "name": "s1_hash_reputation",
            "description": (
                "Hunt a SHA1/SHA256 hash across the fleet via Deep Visibility. Returns endpoints, "
                "processes, and file paths where the hash was seen in the last 14 days."
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "hash": {
                        "type": "string",
                        "description": "SHA1 (40 chars) or SHA256 (64 chars) hash to hunt across the fleet via Deep Visibility",
                    },
                },
                "required": ["hash"],
            },
        }

        self.tools["s1_dv_query"] = {
            "name": "s1_dv_query",
            "description": (
                "Run a Deep Visibility query. Returns queryId when complete. "
                'Example query: ProcessName Contains "python"'
            ),
            "inputSchema": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Deep Visibility query text"},
                    "fromDate": {"type": "string", "description": "ISO-8601 start (default: 24 hours ago)"},
                    "toDate": {"type": "string", "description": "ISO-8601 end (default: now)"},
                    "siteIds": _string_list("Limit to site IDs"),
                    "groupIds": _string_list("Limit to group IDs"),
                    "accountIds": _string_list("Limit to account IDs"),
                },
                "required": ["query"],
            },
        }

        self.tools["s1_dv_get_events"] = {
            "name": "s1_dv_get_events",
            "description": "Get events from a completed Deep Visibility query",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "queryId": {"type": "string", "description": "queryId returned by a previous query"},
                    "limit": {"type": "integer", "description": "Max events to return (default 50)"},
                    "cursor": {"type": "string", "description": "Pagination cursor"},
                },
                "required": ["queryId"],
            },
        }

    def _create_response(
        self, request_id: Optional[Any], result: Optional[Any] = None, error: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Create a JSON-RPC 2.0 response.
        """
        response: Dict[str, Any] = {"jsonrpc": "2.0"}

        if error:
            response["error"] = error
        elif result is not None:
            response["result"] = result

        if request_id is not None:
            if isinstance(request_id, (str, int, float)):
                response["id"] = request_id
            else:
                response["id"] = str(request_id)

        return response

    def _create_error_response(
        self, request_id: Optional[Any], code: int, message: str, data: Optional[Any] = None
    ) -> Dict[str, Any]:
        """
        Create a JSON-RPC 2.0 error response.
        """
        error: Dict[str, Any] = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return self._create_response(request_id, error=error)

    def _tool_text(self, text: str, is_error: bool = False) -> Dict[str, Any]:
        result: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
        if is_error:
            result["isError"] = True
        return result

    async def handle_request(self, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Handle an MCP request.

        Returns:
            MCP response dictionary, or None for notifications.
        """
        self._mcp_logger.debug(f"Raw request received: {json.dumps(request)[:1000]}")

        method = request.get("method")
        params = request.get("params") or {}
        request_id = request.get("id")
        is_notification = request_id is None

        if is_notification:
            self._mcp_logger.info(f"NOTIFICATION received: method={method}")
            if method == "notifications/cancelled":
                self._cancel_request(params.get("requestId"), params.get("reason"))
            elif method != "notifications/initialized":
                self._mcp_logger.warning(f"Unknown notification method: {method}")
            return None

        self._mcp_logger.info(
            f"REQUEST [id={request_id}] method={method}, params={json.dumps(params)[:500]}"
        )

        try:
            if method == "initialize":
                return await self._handle_initialize(request_id, params)
            elif method == "tools/list":
                return await self._handle_tools_list(request_id)
            elif method == "tools/call":
                return await self._handle_tools_call(request_id, params)
            elif method == "ping":
                return self._create_response(request_id, result={})
            else:
                self._mcp_logger.warning(f"Unknown method: {method}")
                return self._create_error_response(
                    request_id,
                    -32601,
                    f"Method not found: {method}",
                )
        except Exception as e:
            self._mcp_logger.error(
                f"RESPONSE [id={request_id}] Error handling request: {e}",
                exc_info=True,
            )
            return self._create_error_response(request_id, -32603, "Internal error")

    async def _handle_initialize(
        self, request_id: Optional[Any], params: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Handle initialize request."""
        client_protocol = params.get("protocolVersion", "unknown")
        self._mcp_logger.info(
            f"Initialize request: client protocol={client_protocol}, client_info={params.get('clientInfo', {})}"
        )

        protocol_version = self.PROTOCOL_VERSION
        if client_protocol in self.SUPPORTED_PROTOCOL_VERSIONS:
            protocol_version = client_protocol
        else:
            self._mcp_logger.warning(
                f"Client protocol version {client_protocol} not explicitly supported, using {protocol_version}"
            )

        self._initialized = True
        self._mcp_logger.info(f"RESPONSE [id={request_id}] initialize successful")

        return self._create_response(
            request_id,
            result={
                "protocolVersion": protocol_version,
                "capabilities": {"tools": {}},
                "serverInfo": {
                    "name": self.SERVER_NAME,
                    "version": self.SERVER_VERSION,
                },
            },
        )

    async def _handle_tools_list(self, request_id: Optional[Any]) -> Dict[str, Any]:
        """Handle tools/list request."""
        if not self._initialized:
            self._mcp_logger.warning(
                f"tools/list called before initialization complete (id={request_id})"
            )

        tools_list = list(self.tools.values())
        self._mcp_logger.info(
            f"RESPONSE [id={request_id}] tools/list: {len(tools_list)} tools available"
        )
        return self._create_response(request_id, result={"tools": tools_list})

    async def _handle_tools_call(
        self, request_id: Optional[Any], params: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Handle tools/call request.

        Tool failures are reported inside the result with ``isError`` so the
        LLM can read them; only protocol problems become JSON-RPC errors.
        The tool runs on a worker thread so that a later
        ``notifications/cancelled`` for this id can stop a running search.
        Returns None when the request was cancelled.
        """
        tool_name = params.get("name")
        tool_args = params.get("arguments") or {}

        if not tool_name:
            return self._create_error_response(
                request_id,
                -32602,
                "Invalid params: 'name' is required",
            )

        if tool_name not in self.tools:
            self._mcp_logger.error(f"RESPONSE [id={request_id}] Tool not found: {tool_name}")
            return self._create_error_response(
                request_id,
                -32601,
                f"Tool not found: {tool_name}",
            )

        self._mcp_logger.info(
            f"EXECUTING [id={request_id}] tool={tool_name}, args={json.dumps(tool_args)[:500]}"
        )

        cancel_event = threading.Event()
        self._inflight[request_id] = cancel_event
        try:
            text = await asyncio.to_thread(self._run_tool, tool_name, tool_args, cancel_event)
        except SearchCancelledError as e:
            # A cancelled request gets no response.
            self._mcp_logger.info(f"RESPONSE [id={request_id}] tool={tool_name} cancelled: {e}")
            return None
        except ValidationError as e:
            self._mcp_logger.warning(f"RESPONSE [id={request_id}] tool={tool_name} invalid arguments: {e}")
            return self._create_response(request_id, result=self._tool_text(str(e), is_error=True))
        except SentinelMCPError as e:
            message = sanitize_error_message(str(e), secrets=self._secrets)
            self._mcp_logger.error(f"RESPONSE [id={request_id}] tool={tool_name} failed: {message}")
            return self._create_response(
                request_id,
                result=self._tool_text(f"Error running {tool_name}: {message}", is_error=True),
            )
        except Exception as e:
            # Unexpected failures keep their details in the log only.
            self._mcp_logger.error(f"Tool {tool_name} execution failed: {e}", exc_info=True)
            return self._create_response(
                request_id,
                result=self._tool_text(f"Error running {tool_name}: internal error", is_error=True),
            )
        finally:
            self._inflight.pop(request_id, None)

        preview = text[:500]
        self._mcp_logger.info(f"RESPONSE [id={request_id}] tool={tool_name} completed: {preview}")
        return self._create_response(request_id, result=self._tool_text(text))

    def _cancel_request(self, request_id: Optional[Any], reason: Optional[str] = None) -> None:
        cancel_event = self._inflight.get(request_id)
        if cancel_event is None:
            self._mcp_logger.debug(f"Cancellation for unknown or finished request id={request_id}")
            return
        self._mcp_logger.info(f"Cancelling request id={request_id}: {reason or 'no reason given'}")
        cancel_event.set()

    def _run_tool(self, tool_name: str, args: Dict[str, Any], cancel_event: threading.Event) -> str:
        """Run one tool on a worker thread; tools execute one at a time."""
        with self._exec_lock:
            if cancel_event.is_set():
                raise SearchCancelledError()
            return self._execute_tool(tool_name, args, cancel_event)

    def _execute_tool(
        self,
        tool_name: str,
        args: Dict[str, Any],
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Execute a tool by name and return its text output.
        """
        # Threat tools
        if tool_name == "s1_list_threats":
            return tools_threats.list_threats(args, client=self.client)
        elif tool_name == "s1_get_threat":
            return tools_threats.get_threat(args, client=self.client)
        elif tool_name == "s1_mitigate_threat":
            return tools_threats.mitigate_threat(args, client=self.client)
        # Agent tools
        elif tool_name == "s1_list_agents":
            return tools_agents.list_agents(args, client=self.client)
        elif tool_name == "s1_get_agent":
            return tools_agents.get_agent(args, client=self.client)
        elif tool_name == "s1_isolate_agent":
            return tools_agents.isolate_agent(args, client=self.client)
        elif tool_name == "s1_reconnect_agent":
            return tools_agents.reconnect_agent(args, client=self.client)
        # Deep Visibility tools
        elif tool_name == "s1_hash_reputation":
            return tools_dv.hash_reputation(args, orchestrator=self.search, cancel_event=cancel_event)
        elif tool_name == "s1_dv_query":
            return tools_dv.dv_query(args, orchestrator=self.search, cancel_event=cancel_event)
        elif tool_name == "s1_dv_get_events":
            return tools_dv.dv_get_events(args, client=self.client)

        raise ValueError(f"Tool not available: {tool_name}")

    @classmethod
    def from_config(cls, config: AppConfig) -> "SentinelOneMCPServer":
        client = SentinelOneClient.from_config(config)
        search = DVSearchOrchestrator.from_config(client, config.search)
        return cls(client=client, search=search, secrets=[config.sentinelone.api_key])


async def _read_stdio():
    """
    Read lines from stdin asynchronously.

    Reading happens in a background thread, which works with both pipes and
    TTY stdin.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def read_stdin() -> None:
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\n\r"))
        finally:
            loop.call_soon_threadsafe(queue.put_nowait, None)

    loop.run_in_executor(None, read_stdin)

    while True:
        item = await queue.get()
        if item is None:
            logging.getLogger("sentinel_mcp.mcp").debug("stdin closed (EOF)")
            return
        if item:
            yield item


def _write_message(message: Dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(message, ensure_ascii=False) + "\n")
    sys.stdout.flush()


async def _respond(server: SentinelOneMCPServer, request: Dict[str, Any]) -> None:
    response = await server.handle_request(request)
    if response is None:
        return

    _write_message(response)
    logging.getLogger("sentinel_mcp.mcp").info(
        f"RESPONSE [id={request.get('id')}] {request.get('method')} sent successfully"
    )


async def serve(server: SentinelOneMCPServer) -> None:
    """Serve JSON-RPC requests from stdin until EOF."""
    mcp_logger = logging.getLogger("sentinel_mcp.mcp")
    pending: Set[asyncio.Task] = set()

    async for line in _read_stdio():
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            mcp_logger.error(f"Invalid JSON received: {e}")
            _write_message({
                "jsonrpc": "2.0",
                "id": None,
                "error": {"code": -32700, "message": "Parse error"},
            })
            continue

        if not isinstance(request, dict):
            _write_message(server._create_error_response(None, -32600, "Invalid Request"))
            continue

        if request.get("method") == "tools/call":
            # Keep reading stdin while the tool runs so cancellations get through.
            task = asyncio.create_task(_respond(server, request))
            pending.add(task)
            task.add_done_callback(pending.discard)
        else:
            await _respond(server, request)

    if pending:
        await asyncio.gather(*pending)


async def main() -> None:
    """Main entry point for the MCP server."""
    try:
        config = resolve_config()
    except ConfigError as e:
        sys.stderr.write(f"Configuration error: {e}\n")
        sys.exit(1)

    configure_logging(config.logging)
    configure_mcp_logging(config.logging.log_dir)

    mcp_logger = logging.getLogger("sentinel_mcp.mcp")
    mcp_logger.info("=" * 80)
    mcp_logger.info("MCP Server Starting")
    mcp_logger.info("=" * 80)
    mcp_logger.info(f"  SentinelOne console: {config.sentinelone.api_base}")

    watchdog = ParentWatchdog()
    watchdog.start()

    server = SentinelOneMCPServer.from_config(config)
    mcp_logger.info(f"Registered {len(server.tools)} tools")

    try:
        await serve(server)
    except KeyboardInterrupt:
        mcp_logger.info("MCP Server Shutting Down (KeyboardInterrupt)")
    finally:
        watchdog.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

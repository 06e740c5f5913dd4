"""
CDP Client - Chrome DevTools Protocol WebSocket transport.

Connects to the browser endpoint, attaches flattened sessions to targets and
routes each session's events into its Session inbox. Browser-level target
notifications are routed to the primary page session, which is where the
frame manager expects them.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import httpx
import websockets
from websockets.asyncio.client import connect

from browser_frames.cdp.session import Session, Transport
from browser_frames.core.config import FrameTrackerConfig
from browser_frames.core.errors import (
    BrowserFramesError,
    CDPConnectionError,
    CDPProtocolError,
    CDPTimeoutError,
    SessionAttachError,
)

logger = logging.getLogger("browser_frames")


async def get_browser_ws_url(host="localhost", port=9222):
    """Get the browser-level WebSocket URL from the DevTools HTTP endpoint."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(f"http://{host}:{port}/json/version")
            version = response.json()
    except httpx.RequestError as e:
        raise CDPConnectionError(
            f"Failed to connect to Chrome at {host}:{port}",
            method="get_browser_ws_url"
        ) from e

    ws_url = version.get("webSocketDebuggerUrl")
    if not ws_url:
        raise CDPConnectionError(
            f"No browser WebSocket URL advertised at {host}:{port}",
            method="get_browser_ws_url"
        )
    logger.debug(f"Found browser endpoint, ws_url={ws_url}")
    return ws_url


class CDPSession(Session):
    """A flattened CDP session multiplexed over the client's WebSocket."""

    def __init__(self, client: "CDPClient", session_id: str, target_id: str,
                 target_type: str = "page"):
        super().__init__(session_id, target_id, target_type)
        self._client = client

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.is_open:
            raise CDPConnectionError(
                "Session is closed",
                session_id=self.session_id,
                target_id=self.target_id,
                method=method,
            )
        return await self._client.send(method, params, session_id=self.session_id)


class CDPClient(Transport):
    """Chrome DevTools Protocol WebSocket client."""

    def __init__(self, ws_url: str, config: Optional[FrameTrackerConfig] = None):
        self.ws_url = ws_url
        self.config = config or FrameTrackerConfig()
        self.debug = self.config.debug
        self.message_id = 0
        self.pending_message: Dict[int, asyncio.Future] = {}
        self.sessions: Dict[str, CDPSession] = {}
        self.primary_session: Optional[CDPSession] = None
        self.ws = None
        self._listen_task: Optional[asyncio.Task] = None
        self._retry_config = {
            "max_attempts": 3,
            "initial_delay": 0.1,
            "max_delay": 2.0,
            "backoff_multiplier": 2.0,
        }

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    def _is_retryable_error(self, error: Exception) -> bool:
        """Check if an error is retryable (transient)."""
        return isinstance(error, (CDPTimeoutError, CDPConnectionError))

    async def _with_retry(
        self,
        operation: Callable[[], Any],
        operation_name: str = "operation",
        session_id: Optional[str] = None,
    ) -> Any:
        """Execute an operation with exponential backoff retry."""
        max_attempts = self._retry_config["max_attempts"]
        delay = self._retry_config["initial_delay"]
        last_error = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e
                if not self._is_retryable_error(e):
                    raise

                if attempt < max_attempts:
                    logger.warning(
                        f"{operation_name} failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {delay:.2f}s...",
                        extra={"session_id": session_id, "error_type": type(e).__name__}
                    )
                    await asyncio.sleep(delay)
                    delay = min(
                        delay * self._retry_config["backoff_multiplier"],
                        self._retry_config["max_delay"],
                    )
                else:
                    logger.error(
                        f"{operation_name} failed after {max_attempts} attempts: {e}",
                        extra={"session_id": session_id, "error_type": type(e).__name__}
                    )

        raise last_error

    async def connect(self) -> CDPSession:
        """
        Connect to Chrome, attach to the first page and return its session.

        Target discovery is switched on so that out-of-process iframes show
        up as ``Target.targetCreated`` events on the returned session.
        """
        logger.info(f"Connecting to Chrome via WebSocket: {self.ws_url}")

        try:
            self.ws = await connect(self.ws_url, max_size=None)
        except Exception as e:
            logger.error(f"Failed to establish WebSocket connection: {e}")
            raise CDPConnectionError(
                f"Failed to connect to Chrome WebSocket: {e}",
                method="connect"
            ) from e

        self._listen_task = asyncio.create_task(self.listen())

        try:
            targets_result = await self.send("Target.getTargets", {}, use_retry=False)
            target_infos = targets_result.get("targetInfos", [])
            logger.debug(f"Found {len(target_infos)} targets")

            match = next((t for t in target_infos if t.get("type") == "page"), None)
            if not match:
                raise CDPConnectionError("No page target found after connecting", method="connect")

            self.primary_session = await self.attach_session(match["targetId"])
            await self.send("Target.setDiscoverTargets", {"discover": True}, use_retry=False)
            return self.primary_session
        except BrowserFramesError:
            raise
        except Exception as e:
            logger.error(f"Error during connection setup: {e}", exc_info=True)
            raise CDPConnectionError(
                f"Failed to complete connection setup: {e}",
                method="connect"
            ) from e

    async def attach_session(self, target_id: str) -> CDPSession:
        """Attach to a target and return its session."""
        try:
            res = await self.send("Target.attachToTarget", {
                "targetId": target_id,
                "flatten": True
            }, use_retry=False)
        except BrowserFramesError as e:
            raise SessionAttachError(
                f"Failed to attach to target {target_id}: {e.message}",
                target_id=target_id,
                method="Target.attachToTarget"
            ) from e

        session_id = res["sessionId"]
        target_type = res.get("targetInfo", {}).get("type", "page")
        session = CDPSession(self, session_id, target_id, target_type)
        self.sessions[session_id] = session
        logger.info(
            "Attached to target",
            extra={"session_id": session_id, "target_id": target_id}
        )
        return session

    async def detach_session(self, session: Session) -> None:
        """Detach a session; targets that are already gone are not an error."""
        self.sessions.pop(session.session_id, None)
        if session.is_open:
            try:
                await self.send(
                    "Target.detachFromTarget",
                    {"sessionId": session.session_id},
                    use_retry=False,
                )
            except BrowserFramesError as e:
                logger.debug(
                    f"Detach failed, target already gone: {e}",
                    extra={"session_id": session.session_id}
                )
        session.mark_closed()

    async def send(self, method, params=None, session_id: Optional[str] = None, use_retry: bool = True):
        """Send a CDP command and wait for response."""
        if use_retry:
            async def operation():
                return await self._send_internal(method, params, session_id)
            return await self._with_retry(
                operation,
                operation_name=f"CDP.send({method})",
                session_id=session_id,
            )
        return await self._send_internal(method, params, session_id)

    async def _send_internal(self, method, params=None, session_id: Optional[str] = None):
        """Internal send implementation without retry."""
        if not self.ws:
            raise CDPConnectionError(
                "WebSocket connection not established",
                session_id=session_id,
                method=method,
            )

        self.message_id += 1
        msg_id = self.message_id
        future = asyncio.get_running_loop().create_future()
        self.pending_message[msg_id] = future

        message = {"id": msg_id, "method": method, "params": params or {}}
        if session_id is not None:
            message["sessionId"] = session_id

        if self.debug:
            logger.debug(
                f"CDP command: {method}",
                extra={"method": method, "session_id": session_id, "message_id": msg_id}
            )

        start_time = self._now()
        try:
            await self.ws.send(json.dumps(message))
            return await asyncio.wait_for(future, self.config.command_timeout)
        except asyncio.TimeoutError as e:
            duration = self._now() - start_time
            raise CDPTimeoutError(
                f"CDP command {method} timed out after {duration:.3f}s",
                timeout=duration,
                session_id=session_id,
                method=method,
            ) from e
        except BrowserFramesError:
            raise
        except Exception as e:
            raise CDPConnectionError(
                f"CDP command {method} failed: {e}",
                session_id=session_id,
                method=method,
            ) from e
        finally:
            self.pending_message.pop(msg_id, None)

    def _handle_message(self, data: dict) -> None:
        """Resolve a command response or route an event to its session."""
        if "id" in data:
            future = self.pending_message.pop(data["id"], None)
            if future is None or future.done():
                return
            if "error" in data:
                error_data = data["error"]
                future.set_exception(CDPProtocolError(
                    f"CDP Error: {error_data.get('message', 'Unknown CDP error')}",
                    code=error_data.get("code"),
                    cdp_error=error_data,
                    session_id=data.get("sessionId"),
                ))
            else:
                future.set_result(data.get("result", {}))
            return

        method = data.get("method")
        if not method:
            return
        params = data.get("params", {})
        detached = None

        if method == "Target.detachedFromTarget":
            detached = self.sessions.pop(params.get("sessionId", ""), None)
            if detached is not None:
                params = dict(params, targetId=detached.target_id)

        session_id = data.get("sessionId")
        if session_id is not None:
            session = self.sessions.get(session_id)
        else:
            session = self.primary_session

        if session is None:
            if self.debug:
                logger.debug(f"CDP event without session: {method}", extra={"session_id": session_id})
            return

        session.deliver(method, params)

        if detached is not None:
            detached.mark_closed()

    async def listen(self):
        """Listen for CDP responses and events."""
        try:
            async for raw in self.ws:
                self._handle_message(json.loads(raw))
        except websockets.exceptions.ConnectionClosed:
            logger.error("WebSocket connection closed", exc_info=True)
        except Exception as e:
            logger.error(f"Error in listen loop: {e}", exc_info=True)
        finally:
            for future in self.pending_message.values():
                if not future.done():
                    future.set_exception(CDPConnectionError(
                        "WebSocket connection closed",
                        method="listen"
                    ))
            self.pending_message.clear()
            for session in list(self.sessions.values()):
                session.mark_closed()

    async def close(self) -> None:
        """Close the WebSocket connection gracefully."""
        if self.ws:
            try:
                await self.ws.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")
            finally:
                self.ws = None
        if self._listen_task is not None:
            self._listen_task.cancel()
            self._listen_task = None

"""HTTP client for communicating with the agent."""

from pathlib import Path
from typing import Any, Dict, Optional

import httpx


DEFAULT_SOCKET = "./state/prismsync-agent.sock"


class IPCError(Exception):
    """Communication error."""
    pass


class IPCClient:
    """Client for communicating with the agent via its Unix socket."""

    def __init__(self, socket_path: Optional[str] = None, timeout: float = 300.0):
        """Initialize IPC client."""
        self.socket_path = Path(socket_path or DEFAULT_SOCKET)
        self.timeout = timeout
        self.base_url = "http://localhost"
        self.transport = httpx.HTTPTransport(uds=str(self.socket_path))

    def request(self, command: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a command to the agent and return its data payload."""
        if not self.socket_path.exists():
            raise IPCError(f"Agent socket not found at {self.socket_path}")

        payload = {
            "command": command,
            "args": args or {}
        }

        try:
            with httpx.Client(transport=self.transport, base_url=self.base_url, timeout=self.timeout) as client:
                response = client.post("/api/v1/command", json=payload)
                data = response.json()
        except httpx.RequestError as e:
            raise IPCError(f"Connection error: {e}")
        except ValueError as e:
            raise IPCError(f"Invalid response from agent: {e}")

        if not data.get("success"):
            raise IPCError(f"Agent error: {data.get('error')}")

        return data.get("data", {})

"""
Minimal stdio tool server: newline-delimited JSON-RPC on stdin/stdout.

Run by the bridge through examples/mcp-servers.example.json.
"""
import json
import sys
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TOOLS = [
    {
        "name": "current_time",
        "description": "Current local time in an IANA time zone",
        "inputSchema": {
            "type": "object",
            "properties": {"timezone": {"type": "string", "description": "e.g. Asia/Tokyo"}},
            "required": ["timezone"],
        },
    }
]


def current_time(timezone: str) -> str:
    try:
        now = datetime.now(ZoneInfo(timezone))
    except ZoneInfoNotFoundError:
        raise ValueError(f"Unknown time zone: {timezone}")
    return now.strftime("%Y-%m-%d %H:%M:%S %Z")


def handle(request: dict) -> dict:
    method = request.get("method")
    params = request.get("params") or {}
    if method == "tools/list":
        return {"tools": TOOLS}
    if method == "tools/call" and params.get("name") == "current_time":
        text = current_time(**params.get("arguments", {}))
        return {"content": [{"type": "text", "text": text}]}
    raise ValueError(f"Unsupported request: {method}")


def main() -> None:
    for line in sys.stdin:
        if not line.strip():
            continue
        request = json.loads(line)
        reply = {"jsonrpc": "2.0", "id": request.get("id")}
        try:
            reply["result"] = handle(request)
        except (ValueError, TypeError) as exc:
            reply["error"] = {"code": -32000, "message": str(exc)}
        print(json.dumps(reply), flush=True)


if __name__ == "__main__":
    main()

"""Newline-delimited JSON tool server used by the local connection tests.

Modes (first argument):
  --exit-immediately   exit with code 3 before answering anything
  --silent             never answer any listing
  --tools-only         reject resources/* and prompts/* as unknown methods
"""
import json
import os
import sys
import threading
import time

TOOLS = [
    {
        "name": "echo",
        "description": "Echo text back",
        "inputSchema": {
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
    },
    {
        "name": "add",
        "description": "Add two numbers",
        "inputSchema": {
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        },
    },
    {"name": "sleep", "description": "Sleep then answer"},
    {"name": "env", "description": "Read FAKE_GREETING"},
    {"name": "fail", "description": "Always fails"},
    {"name": "crash", "description": "Kills the server"},
    {"description": "not a tool, no name"},
]

RESOURCES = [
    {"uri": "file:///notes.txt", "name": "notes", "mimeType": "text/plain"},
    {"uri": "file:///logo.png", "name": "logo", "mimeType": "image/png"},
    {"name": "no uri"},
]

PROMPTS = [
    {
        "name": "summarize",
        "description": "Summarize a topic",
        "arguments": [
            {"name": "topic", "description": "What to summarize", "required": True},
            {"name": "style"},
        ],
    },
]

_write_lock = threading.Lock()


def send(message):
    with _write_lock:
        sys.stdout.write(json.dumps(message) + "\n")
        sys.stdout.flush()


def call(req_id, name, args):
    if name == "echo":
        send({"id": req_id, "result": {"content": [{"type": "text", "text": args["text"]}]}})
    elif name == "add":
        send({"id": req_id, "result": args["a"] + args["b"]})
    elif name == "sleep":
        time.sleep(args.get("seconds", 0.3))
        send({"id": req_id, "result": f"slept {args.get('seconds', 0.3)}"})
    elif name == "env":
        send({"id": req_id, "result": os.environ.get("FAKE_GREETING", "")})
    elif name == "crash":
        os._exit(1)
    else:
        send({"id": req_id, "error": {"code": -32000, "message": f"{name} failed"}})


def read_resource(req_id, uri):
    if uri == "file:///notes.txt":
        send({"id": req_id, "result": {"contents": [{"uri": uri, "mimeType": "text/plain", "text": "buy milk"}]}})
    elif uri == "file:///logo.png":
        send({"id": req_id, "result": {"contents": [{"uri": uri, "mimeType": "image/png", "blob": "iVBO"}]}})
    else:
        send({"id": req_id, "error": {"code": -32002, "message": f"Resource not found: {uri}"}})


def get_prompt(req_id, name, args):
    if name != "summarize":
        send({"id": req_id, "error": {"code": -32602, "message": f"Unknown prompt: {name}"}})
        return
    text = f"Summarize {args.get('topic')} in a {args.get('style', 'short')} style."
    send({"id": req_id, "result": {"messages": [{"role": "user", "content": {"type": "text", "text": text}}]}})


def main():
    mode = sys.argv[1] if len(sys.argv) > 1 else ""
    if mode == "--exit-immediately":
        sys.exit(3)

    print("fake tool server ready", flush=True)
    print("starting up", file=sys.stderr, flush=True)

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        message = json.loads(line)
        method = message.get("method")
        params = message.get("params", {})
        if mode == "--silent" and method.endswith("/list"):
            continue
        if mode == "--tools-only" and not method.startswith("tools/"):
            send({"id": message["id"], "error": {"code": -32601, "message": f"Method not found: {method}"}})
        elif method == "tools/list":
            send({"id": message["id"], "result": {"tools": TOOLS}})
        elif method == "tools/call":
            threading.Thread(
                target=call,
                args=(message["id"], params.get("name"), params.get("arguments", {})),
                daemon=True,
            ).start()
        elif method == "resources/list":
            send({"id": message["id"], "result": {"resources": RESOURCES}})
        elif method == "resources/read":
            read_resource(message["id"], params.get("uri"))
        elif method == "prompts/list":
            send({"id": message["id"], "result": {"prompts": PROMPTS}})
        elif method == "prompts/get":
            get_prompt(message["id"], params.get("name"), params.get("arguments") or {})
        else:
            send({"id": message["id"], "error": {"code": -32601, "message": f"Method not found: {method}"}})


if __name__ == "__main__":
    main()

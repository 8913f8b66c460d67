#!/usr/bin/env python3
"""
SigmaGPT CLI.

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    serve           start, up       Start the SigmaGPT backend
    chat            talk            Chat in the terminal over the streaming API
    status          ping, health    Ping a running instance
    list            ls              List conversations on a running instance
"""

import argparse
import asyncio
import sys

from sigmagpt import __version__

DEFAULT_URL = "http://localhost:3001/api"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_serve(args):
    """Start the SigmaGPT backend."""
    import uvicorn
    from sigmagpt.config import get_config

    cfg = get_config()
    host = args.host or cfg["server"]["host"]
    port = args.port or cfg["server"]["port"]

    print(f"  SigmaGPT v{__version__} on {host}:{port} ({cfg.get('environment')})")
    print(f"  Health check: http://localhost:{port}/api/health")
    print()

    uvicorn.run(
        "sigmagpt.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


class StreamPrinter:
    """Re-assembles streamed fragments and echoes them as they arrive."""

    def __init__(self, out=None):
        self.out = out or sys.stdout
        self.text = ""
        self.error = ""
        self.title = ""

    def on_data(self, event: dict):
        kind = event.get("type")
        data = event.get("data") or {}
        if kind == "assistant_start":
            self.out.write("sigma> ")
        elif kind == "assistant_chunk":
            chunk = data.get("content", "")
            self.text += chunk
            self.out.write(chunk)
            self.out.flush()
        elif kind == "assistant_complete":
            self.title = (data.get("conversation") or {}).get("title", "")
            self.out.write("\n")
        elif kind == "error":
            self.error = data.get("message", "error")
            self.out.write(f"\n  [error] {self.error}\n")

    def on_error(self, exc: Exception):
        self.error = str(exc)
        self.out.write(f"\n  [connection error] {exc}\n")


async def _chat_loop(url: str, conversation_id: str | None):
    from sigmagpt.client import ChatClient

    async with ChatClient(url) as client:
        if not conversation_id:
            conv = await client.create_conversation()
            conversation_id = conv["id"]
        print(f"  Conversation {conversation_id}. Ctrl-D or 'exit' to quit.\n")

        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                print()
                break
            line = line.strip()
            if line in ("exit", "quit"):
                break
            if not line:
                continue
            printer = StreamPrinter()
            await client.stream_message(
                conversation_id, line,
                on_data=printer.on_data,
                on_error=printer.on_error,
            )


def cmd_chat(args):
    """Chat in the terminal over the streaming API."""
    try:
        asyncio.run(_chat_loop(args.url, args.conversation))
    except KeyboardInterrupt:
        print()


def cmd_status(args):
    """Ping a running SigmaGPT instance."""
    import httpx
    from sigmagpt.client import ChatClient

    async def _status():
        async with ChatClient(args.url, timeout=5) as client:
            return await client.health(), await client.debug()

    try:
        health, debug = asyncio.run(_status())
    except httpx.HTTPError as e:
        print(f"  Could not reach {args.url}: {e}")
        sys.exit(1)

    print(f"  {health.get('status')}: {health.get('message')}")
    print(f"  Provider:    {debug.get('provider')}")
    print(f"  Environment: {debug.get('environment')}")
    stats = debug.get("stats", {})
    print(f"  Conversations: {stats.get('conversations', 0)}  Messages: {stats.get('messages', 0)}")


def cmd_list(args):
    """List conversations on a running instance."""
    import httpx
    from sigmagpt.client import ChatClient

    async def _list():
        async with ChatClient(args.url, timeout=5) as client:
            return await client.get_conversations()

    try:
        convs = asyncio.run(_list())
    except httpx.HTTPError as e:
        print(f"  Could not reach {args.url}: {e}")
        sys.exit(1)

    if not convs:
        print("  No conversations.")
        return
    for c in convs:
        print(f"  {c['id']}  {c['updatedAt'][:19]}  {c['title']}")


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def _url_option(p):
    p.add_argument("--url", "-u", default=DEFAULT_URL, help=f"API base URL (default: {DEFAULT_URL})")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sigmagpt",
        description="SigmaGPT: ChatGPT-style chat backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"sigmagpt {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_serve(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["serve", "start", "up"], "Start the SigmaGPT backend", cmd_serve, setup_serve)

    def setup_chat(p):
        _url_option(p)
        p.add_argument("--conversation", "-c", default=None, help="Continue an existing conversation id")

    _add_command(sub, ["chat", "talk"], "Chat in the terminal", cmd_chat, setup_chat)
    _add_command(sub, ["status", "ping", "health"], "Ping a running instance", cmd_status, _url_option)
    _add_command(sub, ["list", "ls"], "List conversations", cmd_list, _url_option)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()

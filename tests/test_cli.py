"""
Tests for the CLI parser and the terminal stream printer.
"""

import io

import httpx
import pytest

from sigmagpt.cli import DEFAULT_URL, StreamPrinter, build_parser, cmd_chat, cmd_serve, cmd_status, main
from sigmagpt.client import ChatClient


def test_aliases_resolve_to_same_command():
    parser = build_parser()
    assert parser.parse_args(["serve"]).func is cmd_serve
    assert parser.parse_args(["start", "--port", "4000"]).port == 4000
    assert parser.parse_args(["ping"]).func is cmd_status
    assert parser.parse_args(["talk", "-c", "abc"]).conversation == "abc"
    assert parser.parse_args(["chat"]).func is cmd_chat
    assert parser.parse_args(["ls"]).url == DEFAULT_URL


def test_stream_printer_reassembles_chunks():
    out = io.StringIO()
    printer = StreamPrinter(out)
    printer.on_data({"type": "user_message", "data": {"content": "hi"}})
    printer.on_data({"type": "assistant_start", "data": {"id": "1"}})
    for chunk in ["Hello ", "there", "!"]:
        printer.on_data({"type": "assistant_chunk", "data": {"content": chunk}})
    printer.on_data({"type": "assistant_complete", "data": {
        "message": {"content": "Hello there!"},
        "conversation": {"id": "c", "title": "hi", "updatedAt": "x"},
    }})

    assert printer.text == "Hello there!"
    assert printer.title == "hi"
    assert out.getvalue() == "sigma> Hello there!\n"


def test_stream_printer_error_event():
    out = io.StringIO()
    printer = StreamPrinter(out)
    printer.on_data({"type": "error", "data": {"message": "Failed to get response from AI"}})
    assert printer.error == "Failed to get response from AI"
    assert "[error]" in out.getvalue()


def test_list_unreachable_server_exits_cleanly(monkeypatch, capsys):
    async def refuse(self):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(ChatClient, "get_conversations", refuse)
    with pytest.raises(SystemExit) as exc:
        main(["ls", "--url", "http://localhost:1/api"])
    assert exc.value.code == 1
    assert "Could not reach http://localhost:1/api" in capsys.readouterr().out

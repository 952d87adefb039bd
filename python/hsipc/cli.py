"""hsipc command-line client."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from .client import CLIClient
from .config import ClientConfig, configure_logging, default_settings_path, resolve_log_level
from .errors import IPCError
from .history import HistoryStore
from .protocol import MessageTag
from .settings import SettingsStore
from .transport import SocketTransport


LOG = logging.getLogger("hsipc.cli")

PROMPT = "> "
CONTINUATION = "\\"


class ClientREPL:
    """prompt_toolkit loop that submits each entry as a COMMAND."""

    def __init__(
        self,
        client: CLIClient,
        *,
        history_store: Optional[HistoryStore] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.client = client
        self.history_store = history_store
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr

    def run(self) -> int:
        history = InMemoryHistory()
        if self.history_store:
            self.history_store.seed(history)
        session = PromptSession(PROMPT, history=history)
        buffer: List[str] = []
        while True:
            try:
                with patch_stdout():
                    line = session.prompt("... " if buffer else PROMPT)
            except KeyboardInterrupt:
                buffer.clear()
                continue
            except EOFError:
                print(file=self.stdout)
                return 0
            if self._handle_multiline(buffer, line):
                continue
            payload = "\n".join(buffer) if buffer else line
            buffer.clear()
            if not payload.strip():
                continue
            self._record_history(payload)
            self.submit(payload)

    def submit(self, code: str) -> bool:
        try:
            ok, text = self.client.execute(code)
        except IPCError as exc:
            LOG.error("command failed: %s", exc)
            print(f"error: {exc}", file=self.stderr)
            return False
        (self.stdout if ok else self.stderr).write(text)
        return ok

    @staticmethod
    def _handle_multiline(buffer: List[str], line: str) -> bool:
        stripped = line.rstrip()
        if stripped.endswith(CONTINUATION):
            buffer.append(stripped[:-1])
            return True
        if buffer:
            buffer.append(stripped)
        return False

    def _record_history(self, entry: str) -> None:
        if self.history_store:
            self.history_store.record(entry)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hsipc", description="Send code to a running hsipc host")
    parser.add_argument("-c", dest="commands", action="append", default=[], metavar="CODE", help="Execute CODE (repeatable)")
    parser.add_argument("-i", dest="interactive", action="store_true", help="Enter the REPL after -c/-s/script")
    parser.add_argument("-s", dest="stdin", action="store_true", help="Read code from stdin")
    parser.add_argument("-q", dest="quiet", action="store_true", help="Suppress print output and console mirroring")
    parser.add_argument("-C", dest="mirror", action="store_true", help="Mirror the host console to this client")
    parser.add_argument("-P", dest="legacy_print", action="store_true", help="Echo this session's print output on the host console")
    parser.add_argument("-m", dest="name", default=None, metavar="NAME", help="Host listener name")
    parser.add_argument("-t", dest="timeout", type=float, default=None, metavar="SECONDS", help="Reply timeout")
    parser.add_argument("--runtime-dir", type=Path, default=None, help="Directory holding endpoint sockets")
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings, else WARNING)")
    parser.add_argument("script", nargs="?", default=None, help="File whose contents are executed")
    parser.add_argument("script_args", nargs=argparse.REMAINDER, help="Arguments made available as _cli.script_args")
    return parser


def _print_output(tag: MessageTag, text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def build_client(args: argparse.Namespace, config: ClientConfig, raw_args: List[str]) -> CLIClient:
    transport = SocketTransport(config.runtime_dir, timeout=config.timeout)
    return CLIClient(
        transport,
        config.listener_name,
        args=raw_args,
        on_output=_print_output,
        timeout=config.timeout,
    )


def main(argv: Optional[List[str]] = None, *, client_factory=build_client) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    store = SettingsStore(default_settings_path())
    configure_logging(resolve_log_level(store, args.log_level))
    config = ClientConfig.from_settings(store)
    if args.name:
        config.listener_name = args.name
    if args.runtime_dir is not None:
        config.runtime_dir = args.runtime_dir
    if args.timeout is not None:
        config.timeout = args.timeout

    code_blocks: List[str] = []
    if args.stdin:
        code_blocks.append(sys.stdin.read())
    if args.script:
        try:
            code_blocks.append(Path(args.script).expanduser().read_text(encoding="utf-8"))
        except OSError as exc:
            print(f"hsipc: cannot read {args.script}: {exc}", file=sys.stderr)
            return 2
    code_blocks.extend(args.commands)
    interactive = args.interactive or not code_blocks

    client = client_factory(args, config, ["hsipc", *argv])
    try:
        client.connect()
    except IPCError as exc:
        print(f"hsipc: cannot connect to {config.listener_name}: {exc}", file=sys.stderr)
        return 1
    try:
        repl = ClientREPL(
            client,
            history_store=HistoryStore(config.effective_history_path, limit=config.history_limit),
        )
        status = 0
        for code in code_blocks:
            if not repl.submit(code):
                status = 1
        if interactive:
            repl.run()
        return status
    except KeyboardInterrupt:
        print()
        return 130
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())

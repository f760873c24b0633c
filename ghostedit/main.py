"""Entry point for ghostedit.

Usage:
    python -m ghostedit.main models                          # list models on the server
    python -m ghostedit.main complete FILE --line 3 --column 5   # or --offset N
    python -m ghostedit.main replace FILE "make the header blue" --lines 4-9 [--response REPLY] [--write]
    python -m ghostedit.main edit FILE                       # Qt editor with ghost text
                                                             # Ctrl+Shift+C capture, Ctrl+Enter instruct
"""
import sys
import signal
import asyncio
import logging
import argparse


def setup_logging(debug: bool = False):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _read_file(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        return ""


def _write_file(path: str, text: str):
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def _offset_for(text: str, line: int, column: int) -> int:
    """1-based line/column to a character offset, clamped to the document."""
    lines = text.split("\n")
    line = max(1, min(line, len(lines)))
    offset = sum(len(l) + 1 for l in lines[:line - 1])
    return offset + max(0, min(column - 1, len(lines[line - 1])))


def _parse_line_range(value: str):
    start, sep, end = value.partition("-")
    try:
        first = int(start)
        last = int(end) if sep else first
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid line range: {value!r}")
    if first < 1 or last < first:
        raise argparse.ArgumentTypeError(f"invalid line range: {value!r}")
    return first, last


def _client(config):
    from ghostedit.api_client import OllamaClient
    return OllamaClient(config.api_url, connect_timeout_ms=config.connect_timeout_ms)


def run_models(config, args) -> int:
    models = _client(config).fetch_models()
    if not models:
        logging.getLogger(__name__).error("No models available at %s", config.api_url)
        return 1
    for m in models:
        marker = "*" if m["id"] == config.completion_model else " "
        print(f"{marker} {m['id']}")
    return 0


def run_complete(config, args) -> int:
    from ghostedit.context import ContextBuilder
    from ghostedit.prompts import build_invocation
    from ghostedit.streaming import StreamingConsumer
    from ghostedit.surface import TextDocumentSurface

    text = _read_file(args.file)
    if args.offset is not None:
        cursor = max(0, min(args.offset, len(text)))
    else:
        cursor = _offset_for(text, args.line, args.column)
    surface = TextDocumentSurface(text, file_path=args.file, cursor=cursor)
    context = ContextBuilder(config).from_surface(surface)
    if context is None:
        return 1
    model = args.model or config.completion_model

    async def _run():
        consumer = StreamingConsumer(_client(config), config)
        request = consumer.begin(context)
        return await consumer.consume(request, build_invocation(context, model, config))

    completion = asyncio.run(_run())
    if not completion:
        logging.getLogger(__name__).info("No completion")
        return 1
    print(completion)
    return 0


def run_replace(config, args) -> int:
    from ghostedit.assistant import Assistant
    from ghostedit.surface import TextDocumentSurface

    log = logging.getLogger(__name__)
    text = _read_file(args.file)
    surface = TextDocumentSurface(text, file_path=args.file)
    first, last = args.lines
    start = surface.line_start_offset(first - 1)
    end = surface.line_start_offset(last - 1) + len(surface.get_line(last - 1))
    surface.select(start, end)

    def _notify(notice):
        if notice.level == "info":
            log.info("%s", notice.message)
        else:
            log.warning("%s", notice.message)

    assistant = Assistant(config, _client(config), notify=_notify)
    if assistant.capture_selection(surface) is None:
        log.error("Lines %d-%d are empty", first, last)
        return 1

    if args.response:
        # Apply a saved assistant reply without contacting the server
        report = assistant.replacer.process(_read_file(args.response), args.instruction)
    else:
        report = asyncio.run(assistant.request_edit(args.instruction, model=args.model))
    if not report.applied:
        return 1
    if args.write:
        _write_file(args.file, surface.get_text())
        log.info("Wrote %s", args.file)
    else:
        print(surface.get_text(), end="")
    return 0


def _start_loop_pump(loop: asyncio.AbstractEventLoop):
    """Start a QTimer that runs pending asyncio callbacks in the Qt main thread.

    Debounce timers, streamed tokens and executor results are all delivered
    through the asyncio loop; each tick drains whatever is ready.
    """
    from PyQt5.QtCore import QTimer

    _log = logging.getLogger(__name__ + '.loop_pump')

    def _pump():
        try:
            loop.call_soon(loop.stop)
            loop.run_forever()
        except Exception as e:
            _log.error("Event loop error: %s", e, exc_info=True)

    timer = QTimer()
    timer.setInterval(15)
    timer.timeout.connect(_pump)
    timer.start()
    return timer  # caller must keep reference to prevent GC


def run_edit(config, args) -> int:
    from PyQt5.QtGui import QFont, QKeySequence
    from PyQt5.QtWidgets import (
        QApplication, QInputDialog, QMainWindow, QPlainTextEdit, QShortcut,
    )
    from ghostedit.assistant import Assistant
    from ghostedit.qt_surface import QtEditorSurface

    log = logging.getLogger(__name__)
    app = QApplication(sys.argv)
    app.setApplicationName("ghostedit")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    window = QMainWindow()
    window.setWindowTitle(f"ghostedit — {args.file}")
    window.resize(900, 640)
    editor = QPlainTextEdit()
    editor.setFont(QFont("Monospace", 11))
    editor.setPlainText(_read_file(args.file))
    window.setCentralWidget(editor)

    def _notify(notice):
        window.statusBar().showMessage(notice.message, 8000)
        if notice.level == "info":
            log.info("%s", notice.message)
        else:
            log.warning("%s", notice.message)

    if args.model:
        config.override("completion_model", args.model)
    assistant = Assistant(config, _client(config), notify=_notify)
    surface = QtEditorSurface(editor, file_path=args.file)
    engine = assistant.attach(surface, loop=loop)
    surface.key_handler = engine.on_key
    surface.pointer_handler = engine.on_pointer

    def _save():
        _write_file(args.file, surface.get_text())
        editor.document().setModified(False)
        window.statusBar().showMessage(f"Saved {args.file}", 3000)
        log.info("Saved %s", args.file)

    def _capture():
        chunk = assistant.capture_selection(surface)
        if chunk is not None:
            window.statusBar().showMessage(
                f"Captured chunk {len(assistant.chunks)}: {chunk.location}", 3000)

    def _ask():
        if not len(assistant.chunks):
            _capture()
        if not len(assistant.chunks):
            window.statusBar().showMessage("Select some code first", 3000)
            return
        instruction, ok = QInputDialog.getText(window, "ghostedit", "Instruction:")
        if ok and instruction.strip():
            loop.create_task(assistant.request_edit(instruction.strip()))

    shortcuts = []
    for keys, slot in ((QKeySequence.Save, _save), ("Ctrl+Shift+C", _capture),
                       ("Ctrl+Return", _ask), ("Ctrl+Shift+X", assistant.clear_chunks)):
        shortcut = QShortcut(QKeySequence(keys), window)
        shortcut.activated.connect(slot)
        shortcuts.append(shortcut)

    window.show()
    pump = _start_loop_pump(loop)
    exit_code = app.exec_()

    pump.stop()
    log.debug("Completion metrics: %s", engine.metrics())
    assistant.close()
    loop.run_until_complete(loop.shutdown_asyncgens())
    loop.close()
    return exit_code


def main(argv=None):
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    parser = argparse.ArgumentParser(description="ghostedit — inline inference-driven editing")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", help="Path to config.json")
    sub = parser.add_subparsers(dest="command")
    sub.required = True

    sub.add_parser("models", help="List models available on the inference server")

    p = sub.add_parser("complete", help="Print the completion at a cursor position")
    p.add_argument("file")
    where = p.add_mutually_exclusive_group(required=True)
    where.add_argument("--offset", type=int, help="0-based character offset")
    where.add_argument("--line", type=int, help="1-based line")
    p.add_argument("--column", type=int, default=1, help="1-based column")
    p.add_argument("--model", help="Override the completion model")

    p = sub.add_parser("replace", help="Ask the assistant to rewrite a line range")
    p.add_argument("file")
    p.add_argument("instruction")
    p.add_argument("--lines", type=_parse_line_range, required=True, help="e.g. 4-9")
    p.add_argument("--model", help="Override the chat model")
    p.add_argument("--response", help="Apply an assistant reply saved in this file instead of asking the server")
    p.add_argument("--write", action="store_true", help="Write the result back to FILE")

    p = sub.add_parser("edit", help="Open FILE in an editor with ghost text completion")
    p.add_argument("file")
    p.add_argument("--model", help="Override the completion model")

    args = parser.parse_args(argv)

    from ghostedit.config import Config
    config = Config(args.config)
    setup_logging(args.debug or config.debug_logging)

    handlers = {
        "models": run_models,
        "complete": run_complete,
        "replace": run_replace,
        "edit": run_edit,
    }
    return handlers[args.command](config, args)


if __name__ == "__main__":
    sys.exit(main())

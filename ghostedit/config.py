"""Configuration management — JSON-based, stored in ~/.config/ghostedit/."""
import json
from pathlib import Path

DEFAULT_CONFIG = {
    "enabled": True,
    "api_url": "http://localhost:11434",
    "completion_model": "codegemma:2b",
    "chat_model": "codellama:7b",
    "connect_timeout_ms": 3000,
    "debug_logging": False,
    # Debounce delays per interaction mode
    "typing_delay_ms": 50,
    "drag_delay_ms": 800,
    "selection_growing_delay_ms": 500,
    "selection_shrinking_delay_ms": 400,
    "selection_stable_delay_ms": 250,
    # Context windows (characters)
    "prefix_window": 150,
    "empty_line_prefix_window": 300,
    "suffix_window": 60,
    "fingerprint_window": 500,
    # Multi-line caps for ghost text
    "max_block_lines": 5,
    "max_continuation_lines": 2,
    "max_blank_line_lines": 4,
    "cache_size": 50,
    "history_size": 1000,
    "context_tokens": 2048,
}

CONFIG_DIR = Path.home() / ".config" / "ghostedit"
CONFIG_FILE = CONFIG_DIR / "config.json"


class Config:
    def __init__(self, path=None):
        self._path = Path(path) if path else CONFIG_FILE
        self._data = dict(DEFAULT_CONFIG)
        self.load()

    @property
    def path(self):
        return self._path

    def load(self):
        if self._path.exists():
            try:
                with open(self._path, "r") as f:
                    stored = json.load(f)
                self._data.update(stored)
            except (json.JSONDecodeError, IOError):
                pass

    def save(self):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(self._data, f, indent=2, ensure_ascii=False)

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value
        self.save()

    def override(self, key, value):
        """Change a value for this session only (not saved)."""
        self._data[key] = value

    @property
    def enabled(self):
        return self._data["enabled"]

    @enabled.setter
    def enabled(self, val):
        self._data["enabled"] = bool(val)
        self.save()

    @property
    def api_url(self):
        return self._data["api_url"]

    @property
    def completion_model(self):
        return self._data["completion_model"]

    @completion_model.setter
    def completion_model(self, val):
        self._data["completion_model"] = val
        self.save()

    @property
    def chat_model(self):
        return self._data.get("chat_model", self.completion_model)

    @property
    def connect_timeout_ms(self):
        return self._data.get("connect_timeout_ms", 3000)

    @property
    def debug_logging(self):
        return self._data["debug_logging"]

    def delay_ms(self, mode_key: str) -> int:
        """Debounce delay for an interaction mode key, e.g. 'typing'."""
        return int(self._data.get(f"{mode_key}_delay_ms", DEFAULT_CONFIG["typing_delay_ms"]))

    @property
    def prefix_window(self):
        return self._data.get("prefix_window", 150)

    @property
    def empty_line_prefix_window(self):
        return self._data.get("empty_line_prefix_window", 300)

    @property
    def suffix_window(self):
        return self._data.get("suffix_window", 60)

    @property
    def fingerprint_window(self):
        return self._data.get("fingerprint_window", 500)

    @property
    def max_block_lines(self):
        return self._data.get("max_block_lines", 5)

    @property
    def max_continuation_lines(self):
        return self._data.get("max_continuation_lines", 2)

    @property
    def max_blank_line_lines(self):
        return self._data.get("max_blank_line_lines", 4)

    @property
    def cache_size(self):
        return self._data.get("cache_size", 50)

    @property
    def history_size(self):
        return self._data.get("history_size", 1000)

    @property
    def context_tokens(self):
        return self._data.get("context_tokens", 2048)

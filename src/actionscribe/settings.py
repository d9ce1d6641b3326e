from __future__ import annotations

from dataclasses import asdict, dataclass, fields
import json
from pathlib import Path
import tempfile
from typing import Any

from .models import RecordingMode

CONFIG_DIR = Path.home() / ".actionscribe"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass(slots=True)
class RecorderSettings:
    auto_save: bool = True
    highlight_elements: bool = True
    show_tooltips: bool = True
    recording_mode: RecordingMode = RecordingMode.MANUAL
    highlight_interval_ms: int = 16
    input_debounce_ms: int = 300
    click_value_limit: int = 50
    text_min_length: int = 2
    text_max_length: int = 80
    ui_namespace: str = "actionscribe"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["recording_mode"] = self.recording_mode.value
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RecorderSettings:
        defaults = cls()
        values: dict[str, Any] = {}
        for item in fields(cls):
            default = getattr(defaults, item.name)
            raw = payload.get(item.name, default)
            values[item.name] = _coerce(raw, default)
        return cls(**values)


def _coerce(raw: Any, default: Any) -> Any:
    if isinstance(default, RecordingMode):
        try:
            return RecordingMode(str(raw))
        except ValueError:
            return default
    if isinstance(default, bool):
        return raw if isinstance(raw, bool) else default
    if isinstance(default, int):
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return default
        return value if value >= 0 else default
    if isinstance(default, str):
        return str(raw) if raw is not None else default
    return raw


def load_settings(config_path: Path | None = None) -> RecorderSettings:
    path = config_path or CONFIG_PATH
    if not path.exists() or not path.is_file():
        return RecorderSettings()

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, TypeError):
        return RecorderSettings()

    if not isinstance(payload, dict):
        return RecorderSettings()
    return RecorderSettings.from_dict(payload)


def save_settings(settings: RecorderSettings, config_path: Path | None = None) -> tuple[bool, str | None]:
    path = config_path or CONFIG_PATH

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return False, f"Could not create config folder: {exc}"

    payload = json.dumps(settings.to_dict(), ensure_ascii=True, indent=2, sort_keys=True)
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            handle.write(payload)
            handle.flush()
            temp_path = Path(handle.name)
        temp_path.replace(path)
    except OSError as exc:
        if temp_path and temp_path.exists():
            temp_path.unlink(missing_ok=True)
        return False, f"Could not write recorder settings: {exc}"

    return True, None

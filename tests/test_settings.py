from pathlib import Path

from actionscribe.models import RecordingMode
from actionscribe.settings import RecorderSettings, load_settings, save_settings


def test_settings_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    original = RecorderSettings(
        auto_save=False,
        recording_mode=RecordingMode.AUTO,
        input_debounce_ms=150,
        ui_namespace="scribe",
    )

    ok, message = save_settings(original, config_path)

    assert ok is True
    assert message is None
    assert load_settings(config_path) == original
    assert not list(tmp_path.glob("*.tmp"))


def test_settings_load_fallbacks(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    assert load_settings(config_path) == RecorderSettings()
    config_path.write_text("{invalid", encoding="utf-8")
    assert load_settings(config_path) == RecorderSettings()
    config_path.write_text("[1, 2]", encoding="utf-8")
    assert load_settings(config_path) == RecorderSettings()


def test_settings_coerce_bad_values_to_defaults() -> None:
    settings = RecorderSettings.from_dict(
        {
            "auto_save": "yes",
            "recording_mode": "sideways",
            "highlight_interval_ms": -4,
            "input_debounce_ms": "250",
            "click_value_limit": "many",
            "show_tooltips": False,
        }
    )

    assert settings.auto_save is True
    assert settings.recording_mode is RecordingMode.MANUAL
    assert settings.highlight_interval_ms == 16
    assert settings.input_debounce_ms == 250
    assert settings.click_value_limit == 50
    assert settings.show_tooltips is False


def test_settings_serialize_mode_as_value() -> None:
    assert RecorderSettings(recording_mode=RecordingMode.AUTO).to_dict()["recording_mode"] == "auto"


def test_save_settings_reports_unwritable_folder(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a folder", encoding="utf-8")

    ok, message = save_settings(RecorderSettings(), blocker / "config.json")

    assert ok is False
    assert message is not None
    assert message.startswith("Could not create config folder")

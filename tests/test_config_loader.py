from __future__ import annotations

import logging
from pathlib import Path
from textwrap import dedent

import pytest

from irkeys.config.loader import (
    build_decoder_settings,
    build_handler,
    build_handler_chain,
    build_match_settings,
    load_handler_config,
)
from irkeys_core.decoder import DecoderSettings
from irkeys_core.errors import ConfigurationError
from irkeys_core.handlers import (
    ContinuousRepeatCommand,
    ExactOrPrefixCommand,
    HierarchicalMenuNavigator,
    NumericParameterizedCommand,
    RotaryPickerMenu,
)
from irkeys_core.patterns import MatchSettings


def _write(directory: Path, contents: str, name: str = "handlers.yaml") -> Path:
    target = directory / name
    target.write_text(dedent(contents).lstrip(), encoding="utf8")
    return target


def test_bundled_configuration_builds_every_handler() -> None:
    config = load_handler_config()

    chain = build_handler_chain(config)

    assert len(chain) == len(config["handlers"])
    kinds = {type(handler) for handler in chain}
    assert kinds == {
        ContinuousRepeatCommand,
        ExactOrPrefixCommand,
        HierarchicalMenuNavigator,
        NumericParameterizedCommand,
        RotaryPickerMenu,
    }
    assert build_decoder_settings(config) == DecoderSettings()
    assert build_match_settings(config) == MatchSettings()


def test_loaded_configuration_is_read_only(tmp_path: Path) -> None:
    path = _write(tmp_path, "handlers: []\n")

    config = load_handler_config(path)

    with pytest.raises(TypeError):
        config["handlers"] = None  # type: ignore[index]


def test_explicit_path_must_exist(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_handler_config(tmp_path / "missing.yaml")


def test_search_paths_use_first_existing_file(tmp_path: Path) -> None:
    site = tmp_path / "site"
    site.mkdir()
    _write(site, "decoder: {min_periods: 12}\n")

    config = load_handler_config(search_paths=[tmp_path / "nowhere", site])

    assert build_decoder_settings(config).min_periods == 12


def test_search_paths_fall_back_to_bundled_defaults(tmp_path: Path) -> None:
    config = load_handler_config(search_paths=[tmp_path])

    assert "menu_keymaps" in config


def test_invalid_documents_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_handler_config(_write(tmp_path, "handlers: [\n", name="broken.yaml"))
    with pytest.raises(TypeError):
        load_handler_config(_write(tmp_path, "- a\n- b\n", name="list.yaml"))
    assert dict(load_handler_config(_write(tmp_path, "", name="empty.yaml"))) == {}


def test_misconfigured_handlers_are_refused(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config = load_handler_config(
        _write(
            tmp_path,
            """
            handlers:
              - {type: command, sequences: [[record]], action: toggle_strip}
              - {type: command, action: missing_sequences}
              - {type: teleport, action: nowhere}
              - type: menu
                keymaps: {tvtuner: {menu: n5, up: n2}}
                tree: {label: "", children: [{label: A, action: a}]}
              - {type: picker, remote: encoder_right, items: []}
              - {type: numeric, prefix: power, modes: [{label: Sleep}]}
              - {type: numeric, prefix: power, modes: [Sleep]}
              - {type: picker, remote: encoder_right, items: [News]}
            """,
        )
    )

    with caplog.at_level(logging.WARNING, logger="irkeys.config.loader"):
        chain = build_handler_chain(config)

    assert len(chain) == 1
    rejected = [record for record in caplog.records if getattr(record, "event", None) == "handlers.rejected"]
    assert [record.position for record in rejected] == [1, 2, 3, 4, 5, 6, 7]


def test_handlers_section_must_be_a_list() -> None:
    with pytest.raises(ConfigurationError):
        build_handler_chain({"handlers": {"type": "command"}})
    assert len(build_handler_chain({})) == 0


def test_menu_uses_top_level_keymaps() -> None:
    config = {
        "menu_keymaps": {"tvtuner": {"menu": "n5", "up": "n2", "down": "n8", "left": "n4", "right": "n6"}},
    }
    handler = build_handler(
        {
            "type": "menu",
            "wait_ms": 4000,
            "tree": {"label": "", "children": [{"label": "Lights", "children": [{"label": "On", "action": "on"}]}]},
        },
        config,
    )

    assert isinstance(handler, HierarchicalMenuNavigator)
    assert handler.keymap_for("tvtuner") is not None
    resolution = handler.resolve("tvtuner", ["n5", "n6", "n6"])
    assert resolution is not None and resolution.selected


def test_numeric_without_prefix() -> None:
    handler = build_handler(
        {"type": "numeric", "prefix": None, "modes": [{"label": "Channel", "action": "switch_channel"}]}
    )

    assert isinstance(handler, NumericParameterizedCommand)
    assert handler.split(["n1", "n2"]) == (0, ["n1", "n2"])


def test_command_accepts_single_key_list() -> None:
    handler = build_handler({"type": "command", "keys": ["stop"], "action": "toggle_corridor"})

    assert isinstance(handler, ExactOrPrefixCommand)
    assert handler.sequences == (("stop",),)


def test_decoder_and_matching_overrides() -> None:
    config = {
        "decoder": {"start_marker_us": [4000, 4800], "noise_floor_us": 80},
        "matching": {"ratio_low": 0.8, "ratio_high": 1.25},
    }

    decoder = build_decoder_settings(config)
    matching = build_match_settings(config)

    assert (decoder.start_marker_low_us, decoder.start_marker_high_us) == (4000, 4800)
    assert decoder.noise_floor_us == 80
    assert (matching.ratio_low, matching.ratio_high) == (0.8, 1.25)


@pytest.mark.parametrize(
    "config",
    [
        {"decoder": {"start_marker_us": "4100-4700"}},
        {"decoder": {"start_marker_us": [4800, 4000]}},
        {"decoder": {"min_periods": "many"}},
        {"decoder": ["not", "a", "mapping"]},
    ],
)
def test_invalid_decoder_settings(config: dict[str, object]) -> None:
    with pytest.raises(ConfigurationError):
        build_decoder_settings(config)


def test_invalid_matching_settings() -> None:
    with pytest.raises(ConfigurationError):
        build_match_settings({"matching": {"ratio_low": 2.0}})

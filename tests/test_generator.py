"""
Tests for the declarative configuration generator: rendering, diffing
and persistence of the last applied transaction.
"""

import pytest

from nixgen.generator import (
    GENERATED_MARKER,
    NO_CHANGES,
    AppConfig,
    Generator,
    Transaction,
    diff,
    diff_lines,
    generate_config,
)
from utils.errors import StorageError


def tx(**apps) -> Transaction:
    return Transaction({name: cfg for name, cfg in apps.items()})


# ── Rendering ──────────────────────────────────────────────────────


class TestGenerateConfig:
    def test_empty_transaction(self):
        out = generate_config(Transaction())
        assert out == f"{GENERATED_MARKER}\n{{ config, lib, pkgs, ... }}:\n\n{{\n}}\n"

    def test_enabled_apps_sorted(self):
        t = Transaction({
            "sonarr": AppConfig(enabled=True),
            "jellyfin": AppConfig(enabled=True),
            "qbittorrent": AppConfig(enabled=True),
        })
        lines = generate_config(t).splitlines()
        enabled = [line.strip() for line in lines if line.strip().startswith("hearth.apps")]
        assert enabled == [
            "hearth.apps.jellyfin.enable = true;",
            "hearth.apps.qbittorrent.enable = true;",
            "hearth.apps.sonarr.enable = true;",
        ]

    def test_disabled_apps_omitted(self):
        t = Transaction({"jellyfin": AppConfig(enabled=False), "sonarr": AppConfig(enabled=True)})
        out = generate_config(t)
        assert "jellyfin" not in out
        assert "hearth.apps.sonarr.enable = true;" in out

    def test_deterministic_regardless_of_insertion_order(self):
        a = Transaction({"b": AppConfig(enabled=True), "a": AppConfig(enabled=True)})
        b = Transaction({"a": AppConfig(enabled=True), "b": AppConfig(enabled=True)})
        assert generate_config(a) == generate_config(b)
        assert generate_config(a) == generate_config(a)

    def test_integrations_do_not_change_output(self):
        plain = Transaction({"sonarr": AppConfig(enabled=True)})
        wired = Transaction({"sonarr": AppConfig(enabled=True, integrations={"downloadClient": "qbittorrent"})})
        assert generate_config(plain) == generate_config(wired)

    def test_ends_with_single_newline(self):
        out = generate_config(Transaction({"a": AppConfig(enabled=True)}))
        assert out.endswith("}\n")
        assert not out.endswith("\n\n")


# ── Diff ───────────────────────────────────────────────────────────


class TestDiff:
    def test_no_changes(self):
        assert diff(Transaction(), Transaction()) == NO_CHANGES
        same = tx(jellyfin=AppConfig(enabled=True))
        assert diff(same, same.copy()) == NO_CHANGES

    def test_install(self):
        assert diff(Transaction(), tx(jellyfin=AppConfig(enabled=True))) == "Install jellyfin"

    def test_remove(self):
        assert diff(tx(jellyfin=AppConfig(enabled=True)), Transaction()) == "Remove jellyfin"

    def test_disable_counts_as_remove(self):
        current = tx(jellyfin=AppConfig(enabled=True))
        proposed = tx(jellyfin=AppConfig(enabled=False))
        assert diff_lines(current, proposed) == ["Remove jellyfin"]

    def test_disabled_in_proposed_is_not_install(self):
        assert diff(Transaction(), tx(jellyfin=AppConfig(enabled=False))) == NO_CHANGES

    def test_configure_changed_integration(self):
        current = tx(sonarr=AppConfig(enabled=True))
        proposed = tx(sonarr=AppConfig(enabled=True, integrations={"downloadClient": "qbittorrent"}))
        assert diff(current, proposed) == "Configure sonarr.downloadClient = qbittorrent"

    def test_unchanged_integration_not_reported(self):
        cfg = AppConfig(enabled=True, integrations={"downloadClient": "qbittorrent"})
        current = tx(sonarr=cfg)
        proposed = tx(sonarr=AppConfig(enabled=True, integrations={"downloadClient": "qbittorrent"}))
        assert diff(current, proposed) == NO_CHANGES

    def test_lines_sorted_by_app_then_key(self):
        current = tx(
            sonarr=AppConfig(enabled=True),
            jellyfin=AppConfig(enabled=True),
        )
        proposed = tx(
            sonarr=AppConfig(enabled=True, integrations={"indexer": "prowlarr", "downloadClient": "qbittorrent"}),
            qbittorrent=AppConfig(enabled=True),
            prowlarr=AppConfig(enabled=True),
        )
        assert diff_lines(current, proposed) == [
            "Remove jellyfin",
            "Install prowlarr",
            "Install qbittorrent",
            "Configure sonarr.downloadClient = qbittorrent",
            "Configure sonarr.indexer = prowlarr",
        ]
        assert diff(current, proposed) == "\n".join(diff_lines(current, proposed))


# ── Persistence ────────────────────────────────────────────────────


class TestGenerator:
    def test_load_current_missing_is_empty(self, generator):
        assert generator.load_current().apps == {}

    def test_apply_round_trip(self, generator):
        t = tx(sonarr=AppConfig(enabled=True, integrations={"downloadClient": "qbittorrent"}),
               qbittorrent=AppConfig(enabled=True))
        generator.apply(t)

        loaded = generator.load_current()
        assert loaded.to_dict() == t.to_dict()
        assert generator.config_path.read_text() == generate_config(t)

    def test_apply_creates_nested_directories(self, tmp_path):
        gen = Generator(tmp_path / "a" / "b" / "c" / "apps.nix")
        gen.apply(Transaction())
        assert gen.config_path.exists()
        assert gen.state_path.name == "apps-state.json"

    def test_preview_matches_written_file(self, generator):
        t = tx(jellyfin=AppConfig(enabled=True))
        preview = generator.preview(t)
        generator.apply(t)
        assert generator.config_path.read_text() == preview

    def test_invalid_state_json_raises(self, generator):
        generator.state_path.parent.mkdir(parents=True, exist_ok=True)
        generator.state_path.write_text("{not json")
        with pytest.raises(StorageError, match="failed to parse state file"):
            generator.load_current()

    def test_null_state_is_empty(self, generator):
        generator.state_path.parent.mkdir(parents=True, exist_ok=True)
        generator.state_path.write_text("null")
        assert generator.load_current().apps == {}

    def test_diff_against_loaded_state(self, generator):
        generator.apply(tx(jellyfin=AppConfig(enabled=True)))
        current = generator.load_current()
        proposed = current.copy()
        proposed.apps["jellyfin"].enabled = False
        assert generator.diff(current, proposed) == "Remove jellyfin"
        # copy() must not alias the original
        assert current.apps["jellyfin"].enabled is True

    def test_snapshot_restore(self, generator):
        first = tx(jellyfin=AppConfig(enabled=True))
        generator.apply(first)
        snap = generator.snapshot()

        generator.apply(tx(sonarr=AppConfig(enabled=True)))
        generator.restore(snap)

        assert generator.load_current().to_dict() == first.to_dict()
        assert generator.config_path.read_text() == generate_config(first)

    def test_restore_removes_files_that_did_not_exist(self, generator):
        snap = generator.snapshot()
        generator.apply(tx(jellyfin=AppConfig(enabled=True)))
        generator.restore(snap)
        assert not generator.state_path.exists()
        assert not generator.config_path.exists()

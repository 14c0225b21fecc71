"""Tests for the command-line interface."""

import json

import pytest
import yaml
from typer.testing import CliRunner

from lockstep_radio.cli import app, format_offset

runner = CliRunner()

RECORDS = [
    {"id": "a", "title": "Alpha", "artist": "Band", "duration": 180, "mediaUri": "file:///a.mp3"},
    {"id": "b", "title": "Beta", "artist": "Band", "duration": 120, "mediaUri": "file:///b.mp3"},
    {"id": "c", "title": "Gamma", "artist": "Band", "duration": 90, "mediaUri": "file:///c.mp3"},
]


@pytest.fixture
def config_file(tmp_path):
    (tmp_path / "2024-03-01.json").write_text(json.dumps(RECORDS), encoding="utf-8")
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "provider": {"path": str(tmp_path / "{date}.json")},
        "cache": {"path": str(tmp_path / "cache.db")},
    }), encoding="utf-8")
    return path


def test_seed():
    result = runner.invoke(app, ["seed", "--at", "2024-03-01T18:00:00Z"])
    assert result.exit_code == 0
    assert "1709251200" in result.output
    assert "2024-03-01" in result.output


def test_seed_rejects_bad_instant():
    result = runner.invoke(app, ["seed", "--at", "yesterday"])
    assert result.exit_code != 0


def test_now(config_file):
    result = runner.invoke(app, ["now", "-c", str(config_file), "--at", "2024-03-01T00:00:00Z"])
    assert result.exit_code == 0, result.output
    assert "Band - " in result.output
    assert "of 3" in result.output
    assert "Seed: 1709251200" in result.output


def test_now_without_playlist_fails(config_file):
    result = runner.invoke(app, ["now", "-c", str(config_file), "--at", "2024-03-05T00:00:00Z"])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_schedule(config_file):
    result = runner.invoke(
        app, ["schedule", "-c", str(config_file), "--at", "2024-03-01T00:00:00Z", "-n", "4"]
    )
    assert result.exit_code == 0, result.output
    assert "Schedule for 2024-03-01" in result.output
    for title in ("Alpha", "Beta", "Gamma"):
        assert title in result.output


def test_cached_after_fetch(config_file):
    runner.invoke(app, ["now", "-c", str(config_file), "--at", "2024-03-01T00:00:00Z"])
    result = runner.invoke(app, ["cached", "-c", str(config_file)])
    assert result.exit_code == 0
    assert "2024-03-01" in result.output


def test_events_on_empty_history(config_file):
    result = runner.invoke(app, ["events", "-c", str(config_file)])
    assert result.exit_code == 0
    assert "No sync events recorded" in result.output


def test_init_config(tmp_path):
    output = tmp_path / "config.yaml"
    result = runner.invoke(app, ["init-config", "-o", str(output)])
    assert result.exit_code == 0
    assert output.exists()

    result = runner.invoke(app, ["init-config", "-o", str(output)], input="n\n")
    assert "Cancelled" in result.output


@pytest.mark.parametrize("seconds,expected", [
    (0, "0:00"),
    (95.7, "1:35"),
    (3725, "1:02:05"),
])
def test_format_offset(seconds, expected):
    assert format_offset(seconds) == expected


def test_now_help_mentions_rotation_window():
    result = runner.invoke(app, ["now", "--help"])
    assert result.exit_code == 0
    assert "midnight" in result.output
    assert "keeps" in result.output

from unittest import mock

import pytest

import config
import db_manager
import voice_assistant
from conftest import SILENCE, FakeSpeaker, ScriptedSpeechInput
from models import ItemDelta, PhotoUpdates


@pytest.fixture
def app(temp_db, tmp_path, monkeypatch):
    """Entry point with speech hardware and models replaced by fakes."""
    script = []
    monkeypatch.setattr(config, "OPENAI_API_KEY", "")
    monkeypatch.setattr(config, "PHOTO_DIR", str(tmp_path / "photos"))
    monkeypatch.setattr(voice_assistant, "VoiceListener", mock.Mock())
    monkeypatch.setattr(voice_assistant, "SpeechInput", lambda listener: ScriptedSpeechInput(script))
    monkeypatch.setattr(voice_assistant, "Speaker", FakeSpeaker)
    monkeypatch.setattr("builtins.input", lambda prompt="": "")
    return script


@pytest.fixture
def checklist(tmp_path):
    path = tmp_path / "list.csv"
    path.write_text("item_id,text,critical\nx1,Ice bins clean,0\nx2,Floor mats down,0\n", encoding="utf-8")
    return str(path)


def test_audit_session_runs_to_completion(app, checklist):
    app.extend(["yes", "no"])

    assert voice_assistant.main(["--list", "bar_open", "--csv", checklist, "--session", "s1"]) == 0

    assert [(r.item_id, r.status) for r in db_manager.get_responses("s1")] == [("x1", "pass"), ("x2", "fail")]
    assert db_manager.get_session("s1")["completed_at"] is not None


def test_paused_session_resumes_at_first_open_item(app, checklist):
    app.extend(["yes", "stop"])
    voice_assistant.main(["--list", "bar_open", "--csv", checklist, "--session", "s2"])
    assert db_manager.get_session("s2")["completed_at"] is None

    items = db_manager.load_items("bar_open")
    answers, counts = voice_assistant.load_progress("s2")
    assert voice_assistant.resume_position(items, answers) == 1
    assert answers == {"x1": ("pass", "yes")}
    assert counts == {}

    app[:] = ["no"]
    voice_assistant.main(["--list", "bar_open", "--session", "s2"])
    assert [r.status for r in db_manager.get_responses("s2")] == ["pass", "fail"]
    assert db_manager.get_session("s2")["completed_at"] is not None


def test_inventory_session(app, tmp_path):
    path = tmp_path / "inventory.csv"
    path.write_text("item_id,text,size_ml\nv1,Grey Goose Vodka,1000\n", encoding="utf-8")
    app.extend(["three"])

    voice_assistant.main(["--mode", "inventory", "--list", "back_bar", "--csv", str(path), "--session", "inv"])

    assert db_manager.get_counts("inv") == {"v1": 3.0}


def test_unknown_list(app, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "CHECKLIST_CSV_PATH", str(tmp_path / "missing.csv"))
    assert voice_assistant.main(["--list", "nowhere"]) == 1


def test_silence_pauses_session(app, checklist, monkeypatch):
    monkeypatch.setattr(config, "MAX_SILENT_RETRIES", 2)
    app.extend([SILENCE, SILENCE])

    assert voice_assistant.main(["--list", "bar_open", "--csv", checklist, "--session", "quiet"]) == 0
    assert db_manager.get_responses("quiet") == []
    assert db_manager.get_session("quiet")["completed_at"] is None


def test_parser_selection():
    assert voice_assistant.build_command_parser("audit", semantic=False) is None
    assert voice_assistant.build_command_parser("inventory", semantic=True) is None


def test_no_analyzer_without_key(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "")
    monkeypatch.setattr(config, "AI_FEATURES_ENABLED", True)
    assert voice_assistant.build_analyzer() is None


def test_resumed_note_keeps_saved_answer(app, checklist):
    app.extend(["yes", "stop"])
    voice_assistant.main(["--list", "bar_open", "--csv", checklist, "--session", "s3"])

    app[:] = ["previous", "add note", "lid cracked", "stop"]
    voice_assistant.main(["--list", "bar_open", "--session", "s3"])

    responses = db_manager.get_responses("s3")
    assert [(r.item_id, r.status, r.notes) for r in responses] == [("x1", "pass", "lid cracked")]


@pytest.fixture
def bar_stock(tmp_path):
    path = tmp_path / "inventory.csv"
    path.write_text(
        "item_id,text,size_ml,par_level\n"
        "v1,Grey Goose Vodka,1000,6\n"
        "v2,Tito's Handmade Vodka,1000,2\n",
        encoding="utf-8")
    return str(path)


def test_resumed_scan_adds_to_saved_count(app, bar_stock, monkeypatch):
    app.extend(["four", "stop"])
    voice_assistant.main(["--mode", "inventory", "--list", "back_bar", "--csv", bar_stock, "--session", "inv2"])
    assert db_manager.get_counts("inv2") == {"v1": 4.0}

    flow = mock.Mock()
    flow.run.return_value = PhotoUpdates(items={"v1": ItemDelta(quantity=2)})
    monkeypatch.setattr(voice_assistant, "PhotoReviewFlow", mock.Mock(return_value=flow))
    app[:] = ["previous", "scan", "stop"]
    voice_assistant.main(["--mode", "inventory", "--list", "back_bar", "--session", "inv2"])

    assert db_manager.get_counts("inv2") == {"v1": 6.0}


def test_inventory_summary_lists_items_below_par(app, bar_stock, capsys):
    app.extend(["three", "five"])

    voice_assistant.main(["--mode", "inventory", "--list", "back_bar", "--csv", bar_stock, "--session", "inv3"])

    out = capsys.readouterr().out
    assert "--- Below Par ---" in out
    assert "Grey Goose Vodka: 3 on hand, par 6 -> order 3" in out
    assert "Tito's Handmade Vodka:" not in out.split("--- Below Par ---")[1]

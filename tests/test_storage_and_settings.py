# -*- coding: utf-8 -*-
import json
import os

from staff_bot.results import OperationResult
from staff_bot.storage import ensure_json, read_json, write_json
from unified_settings import UnifiedSettings

from .conftest import GUILD_ID, OWNER_ID


def test_read_missing_returns_copy_of_default(tmp_path):
    default = {"a": []}
    data = read_json(str(tmp_path / "missing.json"), default)
    data["a"].append(1)
    assert default == {"a": []}


def test_read_corrupt_file_returns_default(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    assert read_json(str(path), {"ok": True}) == {"ok": True}


def test_write_json_is_atomic_and_creates_dirs(tmp_path):
    path = str(tmp_path / "nested" / "file.json")
    assert write_json(path, {"ключ": "значение"})
    assert not os.path.exists(path + ".tmp")
    with open(path, encoding="utf-8") as f:
        assert json.load(f) == {"ключ": "значение"}


def test_ensure_json_does_not_overwrite(tmp_path):
    path = str(tmp_path / "data.json")
    write_json(path, [1, 2])
    ensure_json(path, [])
    assert read_json(path, []) == [1, 2]


def test_operation_result_truthiness():
    assert OperationResult.ok(x=1)
    assert OperationResult.ok(x=1).data == {"x": 1}
    failed = OperationResult.fail("нет")
    assert not failed
    assert failed.error == "нет"


def test_guild_defaults_are_filled(settings):
    apply_settings = settings.get_apply_settings(GUILD_ID)
    assert apply_settings["max_pending_per_admin"] == 3
    assert apply_settings["reject_cooldown_hours"] == 24
    assert settings.get_promote_settings(GUILD_ID)["log_channel"] is None


def test_updates_persist_across_instances(settings):
    settings.update_promote_settings(GUILD_ID, {"log_channel": 555})
    settings.set_admin_roles(GUILD_ID, [3, 1, 3])

    reloaded = UnifiedSettings(settings.settings_file)
    assert reloaded.get_promote_settings(GUILD_ID)["log_channel"] == 555
    assert reloaded.get_admin_roles(GUILD_ID) == [1, 3]
    assert OWNER_ID in reloaded.get_bot_owners()


def test_bot_owners_merge_env(settings, monkeypatch):
    monkeypatch.setenv("BOT_OWNERS", "77, 88,junk")
    assert settings.get_bot_owners() == {OWNER_ID, 77, 88}


def test_export_import_roundtrip(settings, tmp_path):
    settings.update_resp_settings(GUILD_ID, {"embed_channel": 10})
    other = UnifiedSettings(str(tmp_path / "other.json"))
    assert other.import_settings(settings.export_settings())
    assert other.get_resp_settings(GUILD_ID)["embed_channel"] == 10

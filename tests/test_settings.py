# tests/test_settings.py
"""
Unit tests for CashTag.settings.lib
(covers the item validator, ConfigPaths and SettingsAPI).

Run with:
    python -m unittest tests.test_settings
"""
import json
import unittest
from pathlib import Path
from typing import Any, Dict

from CashTag.settings import lib
from CashTag.settings.lib import SETTINGS_SCHEMA, SettingsAPI, _validate_items
from CashTag.signals import signals
from CashTag.status import status
from tests.base import BaseTestCase

DUMMY_SECRET = {
    "installed": {
        "client_id": "dummy",
        "project_id": "dummy",
        "client_secret": "dummy",
        "auth_uri": "https://example",
        "token_uri": "https://example",
    }
}


def minimal_settings() -> Dict[str, Any]:
    return {
        "spreadsheet": {"filename": "cash-tag-db.csv"},
        "defaults": {
            "seed": True,
            "person_name": "Me",
            "source_name": "Cash Wallet",
            "category_name": "Food & Dining",
        },
        "sync": {"on_failure": "unsynced"},
    }


def write_json(p: Path, data: Dict[str, Any]) -> None:
    with p.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=4, ensure_ascii=False)


class ValidatorTests(unittest.TestCase):
    def test_validate_items_good(self):
        _validate_items("sync", {"on_failure": "revert"}, SETTINGS_SCHEMA["sync"]["item_schema"])

    def test_validate_items_missing_required(self):
        with self.assertRaises(ValueError):
            _validate_items("spreadsheet", {}, SETTINGS_SCHEMA["spreadsheet"]["item_schema"])

    def test_validate_items_optional_may_be_missing(self):
        data = minimal_settings()["defaults"]
        self.assertNotIn("category_emoji", data)
        _validate_items("defaults", data, SETTINGS_SCHEMA["defaults"]["item_schema"])

    def test_validate_items_wrong_type(self):
        data = minimal_settings()["defaults"]
        data["seed"] = "yes"
        with self.assertRaises(TypeError):
            _validate_items("defaults", data, SETTINGS_SCHEMA["defaults"]["item_schema"])

    def test_validate_items_not_allowed(self):
        with self.assertRaises(ValueError):
            _validate_items("sync", {"on_failure": "retry"}, SETTINGS_SCHEMA["sync"]["item_schema"])


class RealTemplateSmokeTest(BaseTestCase):
    def test_templates_exist(self):
        cp = lib.ConfigPaths()
        self.assertTrue(cp.client_secret_template.exists())
        self.assertTrue(cp.settings_template.exists())

    def test_template_settings_are_valid(self):
        with lib.settings.settings_template.open("r", encoding="utf-8") as f:
            data = json.load(f)
        lib.settings.validate_settings_data(data)
        self.assertEqual(data["spreadsheet"]["filename"], "cash-tag-db.csv")
        self.assertEqual(data["sync"]["on_failure"], "unsynced")

    def test_config_files_are_created(self):
        self.assertTrue(lib.settings.settings_path.exists())
        self.assertTrue(lib.settings.client_secret_path.exists())
        self.assertTrue(lib.settings.auth_dir.is_dir())


class SettingsAPITests(BaseTestCase):

    def test_get_section_returns_copy(self):
        section = lib.settings.get_section("spreadsheet")
        section["filename"] = "changed"
        self.assertEqual(lib.settings.get_section("spreadsheet")["filename"], "cash-tag-db.csv")

    def test_get_unknown_section(self):
        with self.assertRaises(KeyError):
            lib.settings.get_section("nope")

    def test_set_section_persists_and_emits(self):
        emitted = []

        def _slot(section: str) -> None:
            emitted.append(section)

        signals.configSectionChanged.connect(_slot)
        try:
            lib.settings.set_section("sync", {"on_failure": "revert"})
        finally:
            signals.configSectionChanged.disconnect(_slot)

        self.assertEqual(emitted, ["sync"])
        with lib.settings.settings_path.open("r", encoding="utf-8") as f:
            self.assertEqual(json.load(f)["sync"]["on_failure"], "revert")

    def test_set_section_invalid_rolls_back(self):
        with self.assertRaises(ValueError):
            lib.settings.set_section("sync", {"on_failure": "retry"})
        self.assertEqual(lib.settings.get_section("sync")["on_failure"], "unsynced")

    def test_set_unknown_section(self):
        with self.assertRaises(ValueError):
            lib.settings.set_section("nope", {})

    def test_revert_section(self):
        lib.settings.set_section("spreadsheet", {"filename": "other"})
        lib.settings.revert_section("spreadsheet")
        self.assertEqual(lib.settings.get_section("spreadsheet")["filename"], "cash-tag-db.csv")

    def test_reload_section(self):
        data = minimal_settings()
        data["spreadsheet"]["filename"] = "from-disk"
        write_json(lib.settings.settings_path, data)

        lib.settings.reload_section("spreadsheet")
        self.assertEqual(lib.settings.get_section("spreadsheet")["filename"], "from-disk")

    def test_invalid_settings_file(self):
        lib.settings.settings_path.write_text("not json", encoding="utf-8")
        with self.assertRaises(status.SettingsInvalidException):
            lib.settings.load_settings()

    def test_missing_settings_file(self):
        lib.settings.settings_path.unlink()
        with self.assertRaises(status.SettingsNotFoundException):
            lib.settings.load_settings()

    def test_custom_paths(self):
        settings_path = lib.settings.config_dir / "custom_settings.json"
        secret_path = lib.settings.config_dir / "custom_secret.json"
        write_json(settings_path, minimal_settings())
        write_json(secret_path, DUMMY_SECRET)

        api = SettingsAPI(settings_path=str(settings_path), client_secret_path=str(secret_path))
        self.assertEqual(api.get_section("client_secret"), DUMMY_SECRET)
        self.assertEqual(api.get_section("defaults")["person_name"], "Me")

    def test_client_secret_validation(self):
        self.assertEqual(lib.settings.validate_client_secret(DUMMY_SECRET), "installed")
        with self.assertRaises(status.ClientSecretInvalidException):
            lib.settings.validate_client_secret({"web": {"client_id": "x"}})
        with self.assertRaises(status.ClientSecretInvalidException):
            lib.settings.validate_client_secret({})

    def test_set_client_secret(self):
        lib.settings.set_section("client_secret", DUMMY_SECRET)
        with lib.settings.client_secret_path.open("r", encoding="utf-8") as f:
            self.assertEqual(json.load(f), DUMMY_SECRET)

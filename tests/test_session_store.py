import copy
import os
import sys
import tempfile
import time
import unittest
from pathlib import Path

import yaml

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from scriptlab.config import DEFAULT_CONFIG
from scriptlab.environment import EnvironmentRegistry
from scriptlab.errors import InvalidLanguageTag, MalformedEvent, PlaygroundError, SectionMismatch, UnknownEnvironment
from scriptlab.events import ChannelState, Event, EventChannel
from scriptlab.models import Profile, Snippet
from scriptlab.session import SessionStore

ORIGIN = "https://runner.example.com"


class SessionStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp_dir.cleanup)
        self.data_dir = Path(self._temp_dir.name)
        os.environ["SCRIPTLAB_HOME"] = self._temp_dir.name
        self.addCleanup(os.environ.pop, "SCRIPTLAB_HOME", None)
        self.registry = EnvironmentRegistry.from_config(DEFAULT_CONFIG)

    def _store(self, **kwargs) -> SessionStore:
        return SessionStore(self.registry, data_dir=self.data_dir, **kwargs)


class EditorEventTests(SessionStoreTestCase):
    def test_content_edit_updates_section_and_bumps_last_modified(self) -> None:
        store = self._store()
        opened = store.open({"script": {"content": "x=1", "language": "typescript"}})
        opened_at = opened.last_modified or 0

        updated = store.apply_editor_event({"type": "edit", "action": 1, "data": {"view": "script", "content": "x=2"}})

        self.assertEqual(updated.script.content, "x=2")
        self.assertEqual(updated.script.language, "typescript")
        self.assertGreater(updated.last_modified, opened_at)

    def test_every_accepted_edit_moves_time_forward(self) -> None:
        store = self._store()
        store.open({"script": {"content": "", "language": "javascript"}})
        stamps = []
        for index in range(20):
            snippet = store.apply_editor_event(
                {"type": "edit", "action": 1, "data": {"view": "script", "content": str(index)}}
            )
            stamps.append(snippet.last_modified)

        self.assertEqual(stamps, sorted(set(stamps)))

    def test_unknown_view_is_rejected_without_mutation(self) -> None:
        store = self._store()
        store.open({"script": {"content": "x=1", "language": "typescript"}, "lastModified": 7})

        with self.assertRaises(SectionMismatch):
            store.apply_editor_event({"type": "edit", "action": 1, "data": {"view": "markup", "content": "x"}})

        snippet = store.snippet
        self.assertEqual(snippet.script.content, "x=1")
        self.assertEqual(snippet.last_modified, 7)
        self.assertIsNone(store.editor_state("markup"))

    def test_event_objects_are_validated_before_use(self) -> None:
        store = self._store()
        store.open({"script": {"content": "x=1", "language": "typescript"}, "lastModified": 7})

        with self.assertRaises(MalformedEvent):
            store.apply_editor_event(Event("edit", 1, {"view": "script"}))

        self.assertEqual(store.snippet.script.content, "x=1")
        self.assertEqual(store.snippet.last_modified, 7)

    def test_invalid_language_is_rejected_without_mutation(self) -> None:
        store = self._store()
        store.open({"style": {"content": "p {}", "language": "css"}, "lastModified": 7})

        with self.assertRaises(InvalidLanguageTag):
            store.apply_editor_event(
                {"type": "edit", "action": 1, "data": {"view": "style", "content": "", "language": "stylus"}}
            )

        self.assertEqual(store.snippet.style.content, "p {}")
        self.assertEqual(store.snippet.last_modified, 7)

    def test_view_state_is_round_tripped_without_bumping(self) -> None:
        store = self._store()
        store.open({"template": {"content": "<p></p>", "language": "html"}, "lastModified": 3})
        blob = {"cursorState": [{"position": {"lineNumber": 1, "column": 4}}]}

        store.apply_editor_event({"type": "edit", "action": 2, "data": {"view": "template", "viewState": blob}})

        self.assertEqual(store.editor_state("template").view_state, blob)
        self.assertEqual(store.snippet.last_modified, 3)

    def test_switch_marks_active_view(self) -> None:
        store = self._store()
        store.open({"script": {"content": "", "language": "typescript"}})

        store.apply_editor_event({"type": "edit", "action": 3, "data": {"view": "libraries", "name": "Libraries"}})

        self.assertEqual(store.active_view, "libraries")

    def test_non_edit_event_is_a_section_mismatch(self) -> None:
        store = self._store()
        store.open({})

        with self.assertRaises(SectionMismatch):
            store.apply_editor_event({"type": "settings", "action": 1, "data": {"theme": True}})

    def test_edit_without_open_snippet_fails(self) -> None:
        store = self._store()

        with self.assertRaises(PlaygroundError):
            store.apply_editor_event({"type": "edit", "action": 1, "data": {"view": "script", "content": ""}})

    def test_tabs_project_editor_states(self) -> None:
        store = self._store()
        store.open(
            {
                "script": {"content": "a", "language": "typescript"},
                "style": {"content": "b", "language": "less"},
                "libraries": "jquery",
            }
        )

        tabs = [tab.to_dict() for tab in store.tabs()]

        self.assertEqual(
            tabs,
            [
                {"name": "Script", "language": "typescript", "content": "a"},
                {"name": "Style", "language": "less", "content": "b"},
                {"name": "Libraries", "content": "jquery"},
            ],
        )

    def test_store_hands_out_copies(self) -> None:
        store = self._store()
        store.open({"name": "original", "script": {"content": "x=1", "language": "javascript"}})

        snippet = store.snippet
        snippet.libraries = "mutated outside"
        store.settings.last_opened.write_section("script", "hacked")

        self.assertIsNone(store.snippet.libraries)
        self.assertEqual(store.settings.last_opened.script.content, "x=1")
        self.assertEqual(store.snippet.script.content, "x=1")


class SettingsTests(SessionStoreTestCase):
    def test_open_writes_last_opened(self) -> None:
        store = self._store()
        store.open(Snippet.from_dict({"name": "first"}))
        store.open(Snippet.from_dict({"name": "second"}))

        self.assertEqual(store.settings.last_opened.name, "second")

    def test_switch_environment_validates_name(self) -> None:
        store = self._store()

        self.assertEqual(store.switch_environment("edge"), "edge")
        self.assertEqual(store.settings.env, "edge")
        with self.assertRaises(UnknownEnvironment):
            store.switch_environment("staging")
        self.assertEqual(store.settings.env, "edge")

    def test_save_and_load_round_trip(self) -> None:
        store = self._store(profile=Profile(login="octocat"))
        store.open({"name": "persisted", "script": {"content": "x=1", "language": "typescript"}})
        store.apply_editor_event({"type": "edit", "action": 1, "data": {"view": "script", "content": "x=3"}})
        store.set_theme(True)
        store.set_language("ZH-TW")
        store.switch_environment("insiders")

        path = store.save()

        self.assertEqual(path, self.data_dir / "profiles" / "octocat" / "settings.yaml")
        self.assertEqual(yaml.safe_load(path.read_text(encoding="utf-8"))["env"], "insiders")

        reloaded = self._store(profile=Profile(login="octocat"))
        settings = reloaded.load()
        self.assertTrue(settings.theme)
        self.assertEqual(settings.language, "zh-tw")
        self.assertEqual(settings.env, "insiders")
        self.assertEqual(reloaded.snippet.script.content, "x=3")
        self.assertEqual(reloaded.editor_state("script").content, "x=3")

    def test_open_does_not_persist(self) -> None:
        store = self._store()
        store.open({"name": "draft"})

        self.assertFalse(store.settings_path.exists())

    def test_load_ignores_unknown_environment(self) -> None:
        path = self.data_dir / "profiles" / "default" / "settings.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("env: staging\ntheme: false\n", encoding="utf-8")

        settings = self._store(default_env="local").load()

        self.assertEqual(settings.env, "local")

    def test_profile_key_must_be_a_single_segment(self) -> None:
        store = self._store()

        with self.assertRaises(ValueError):
            store.set_profile(Profile(login="../escape"))


class ChannelBindingTests(SessionStoreTestCase):
    def test_bound_channel_routes_events_into_store(self) -> None:
        alerts = []
        store = self._store()
        store.open({"script": {"content": "x=1", "language": "typescript"}})
        channel = EventChannel(alert_sink=alerts.append, diagnostics=lambda payload: None)
        self.addCleanup(channel.close)
        store.bind(channel)
        channel.begin_handshake(ORIGIN, timeout_s=5)

        channel.receive({"type": "runner", "action": 1, "data": {}}, ORIGIN)
        channel.receive({"type": "edit", "action": 1, "data": {"view": "script", "content": "x=2"}}, ORIGIN)
        channel.receive({"type": "settings", "action": 1, "data": {"theme": True}}, ORIGIN)
        channel.receive({"type": "settings", "action": 3, "data": {"env": "nowhere"}}, ORIGIN)
        self.assertTrue(channel.wait_for_idle(timeout=2))

        self.assertEqual(store.snippet.script.content, "x=2")
        self.assertTrue(store.settings.theme)
        self.assertEqual(channel.state, ChannelState.READY)
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].title, "Unknown environment")

    def test_connect_runner_uses_configured_handshake_timeout(self) -> None:
        config = copy.deepcopy(DEFAULT_CONFIG)
        config["scriptlab"]["handshake_timeout_s"] = 0.05
        config["scriptlab"]["default_env"] = "edge"
        store = SessionStore.from_config(config, data_dir=self.data_dir)
        alerts = []

        channel = store.connect_runner(ORIGIN, transport=lambda message: None, alert_sink=alerts.append)
        self.addCleanup(channel.close)

        self.assertEqual(store.handshake_timeout_s, 0.05)
        self.assertEqual(store.settings.env, "edge")
        self.assertEqual(channel.state, ChannelState.HANDSHAKING)
        deadline = time.monotonic() + 2
        while not alerts and time.monotonic() < deadline:
            time.sleep(0.01)
        self.assertEqual(channel.state, ChannelState.TORN_DOWN)
        self.assertEqual(alerts[0].title, "Runner did not respond")

    def test_connected_runner_edits_reach_store(self) -> None:
        store = SessionStore.from_config(DEFAULT_CONFIG, data_dir=self.data_dir)
        store.open({"script": {"content": "x=1", "language": "typescript"}})

        channel = store.connect_runner(ORIGIN, transport=lambda message: None)
        self.addCleanup(channel.close)
        self.assertTrue(channel.receive({"type": "runner", "action": 1, "data": {}}, ORIGIN))
        self.assertTrue(
            channel.receive({"type": "edit", "action": 1, "data": {"view": "script", "content": "x=5"}}, ORIGIN)
        )
        self.assertTrue(channel.wait_for_idle(timeout=2))

        self.assertEqual(store.snippet.script.content, "x=5")


if __name__ == "__main__":
    unittest.main()

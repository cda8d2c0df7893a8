import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from scriptlab.errors import InvalidLanguageTag, SectionMismatch
from scriptlab.models import Alert, Settings, Snippet, SnippetSection, Template, parse_libraries


class SnippetSerializationTests(unittest.TestCase):
    def test_round_trip_keeps_every_field(self) -> None:
        raw = {
            "id": "abc123",
            "gist": "0f1e2d",
            "author": "octocat",
            "source": "gist",
            "name": "Basic API call",
            "description": "Reads the selected range",
            "script": {"content": "await Excel.run(async () => {});", "language": "typescript"},
            "template": {"content": "<button id='run'>Run</button>", "language": "html"},
            "style": {"content": "body { color: red; }", "language": "css"},
            "libraries": "https://appsforoffice.microsoft.com/lib/1/hosted/office.js\n@types/office-js",
            "lastModified": 1700000000000,
        }

        self.assertEqual(Snippet.from_dict(raw).to_dict(), raw)

    def test_absent_optional_fields_stay_absent(self) -> None:
        raw = {"script": {"content": "x=1", "language": "typescript"}}

        payload = Snippet.from_dict(raw).to_dict()

        self.assertEqual(payload, raw)
        for key in ("id", "gist", "name", "template", "style", "libraries", "lastModified"):
            self.assertNotIn(key, payload)

    def test_empty_string_is_not_confused_with_absence(self) -> None:
        raw = {"name": "", "libraries": ""}

        payload = Snippet.from_dict(raw).to_dict()

        self.assertEqual(payload, {"name": "", "libraries": ""})

    def test_language_tags_are_validated_per_section(self) -> None:
        with self.assertRaises(InvalidLanguageTag) as ctx:
            Snippet.from_dict({"style": {"content": "", "language": "typescript"}})
        self.assertEqual(ctx.exception.section, "style")

        with self.assertRaises(InvalidLanguageTag):
            Snippet.from_dict({"script": {"content": "", "language": "python"}})

    def test_language_tags_are_case_insensitive(self) -> None:
        snippet = Snippet.from_dict({"script": {"content": "", "language": "TypeScript"}})

        self.assertEqual(snippet.script.language, "typescript")

    def test_mixed_case_section_round_trips(self) -> None:
        snippet = Snippet(script=SnippetSection("x=1", "TypeScript")).validate()

        self.assertEqual(snippet.script.language, "typescript")
        self.assertEqual(Snippet.from_dict(snippet.to_dict()).to_dict(), snippet.to_dict())

    def test_invalid_language_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            Snippet.from_dict({"template": {"content": "", "language": "markdown"}})


class SnippetMutationTests(unittest.TestCase):
    def test_touch_is_strictly_increasing(self) -> None:
        snippet = Snippet()
        values = [snippet.touch() for _ in range(50)]

        self.assertEqual(values, sorted(set(values)))

    def test_touch_moves_past_future_timestamp(self) -> None:
        snippet = Snippet(last_modified=10**15)

        self.assertEqual(snippet.touch(), 10**15 + 1)

    def test_write_section_rejects_bad_language_without_mutation(self) -> None:
        snippet = Snippet.from_dict({"script": {"content": "x=1", "language": "typescript"}, "lastModified": 5})

        with self.assertRaises(InvalidLanguageTag):
            snippet.write_section("script", "x=2", "css")

        self.assertEqual(snippet.script.content, "x=1")
        self.assertEqual(snippet.last_modified, 5)

    def test_write_section_rejects_unknown_view(self) -> None:
        snippet = Snippet()

        with self.assertRaises(SectionMismatch):
            snippet.write_section("markup", "<p></p>")

    def test_write_section_creates_missing_section_with_default_language(self) -> None:
        snippet = Snippet()

        snippet.write_section("style", "p {}")

        self.assertEqual(snippet.style.language, "css")
        self.assertIsNotNone(snippet.last_modified)


class IdentityTests(unittest.TestCase):
    def test_id_wins_over_gist(self) -> None:
        self.assertEqual(Template(id="a", gist="b").reference(), ("id", "a"))
        self.assertEqual(Template(gist="b").reference(), ("gist", "b"))
        self.assertIsNone(Template(name="local").reference())

    def test_snippet_without_reference_is_local(self) -> None:
        self.assertTrue(Snippet.from_dict({"name": "draft"}).is_local)
        self.assertFalse(Snippet.from_dict({"gist": "123"}).is_local)


class LibrariesTests(unittest.TestCase):
    def test_parse_keeps_order_and_skips_comments(self) -> None:
        text = "jquery@3.1.1\n# comment\n\n// another\nhttps://cdn.example.com/a.css; lodash\n"

        self.assertEqual(parse_libraries(text), ["jquery@3.1.1", "https://cdn.example.com/a.css", "lodash"])

    def test_parse_empty(self) -> None:
        self.assertEqual(parse_libraries(None), [])
        self.assertEqual(parse_libraries(""), [])


class AlertAndSettingsTests(unittest.TestCase):
    def test_alert_requires_an_action(self) -> None:
        with self.assertRaises(ValueError):
            Alert(title="t", message="m", actions=[])
        self.assertEqual(Alert(title="t", message="m", actions=["Yes", "No"]).default_action, "Yes")

    def test_settings_round_trip(self) -> None:
        raw = {
            "lastOpened": {"name": "s", "script": {"content": "", "language": "javascript"}},
            "profile": {"login": "octocat"},
            "theme": True,
            "language": "zh-tw",
            "env": "edge",
        }

        self.assertEqual(Settings.from_dict(raw).to_dict(), raw)


if __name__ == "__main__":
    unittest.main()

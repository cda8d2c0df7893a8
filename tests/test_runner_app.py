import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from scriptlab.config import DEFAULT_CONFIG
from scriptlab.environment import EnvironmentRegistry
from scriptlab.errors import InvalidLanguageTag, OriginMismatch
from scriptlab_runner.config import RunnerLimits, RunnerSettings
from scriptlab_runner.runner import SnippetRunner

ENVIRONMENT = EnvironmentRegistry.from_config(DEFAULT_CONFIG).environment("local")


def _request(**overrides) -> dict:
    payload = {
        "snippet": {
            "name": "Run me",
            "author": "octocat",
            "script": {"content": "console.log('hi')", "language": "javascript"},
            "template": {"content": "<p>hello</p>", "language": "html"},
        },
        "origin": "https://localhost:3000",
        "host": "EXCEL",
        "platform": "PC",
    }
    payload.update(overrides)
    return payload


class SnippetRunnerTests(unittest.TestCase):
    def test_render_produces_outer_document(self) -> None:
        runner = SnippetRunner(RunnerSettings(), environment=ENVIRONMENT)

        document = runner.render(_request(returnUrl="https://localhost:3000/edit"))

        self.assertIn("<title>Run me</title>", document)
        self.assertIn('href="https://localhost:3000/edit"', document)
        self.assertIn("office.js", document)
        self.assertEqual(runner.health_snapshot()["rendered"], 1)

    def test_invalid_language_is_rejected(self) -> None:
        runner = SnippetRunner(RunnerSettings(), environment=ENVIRONMENT)
        request = _request(snippet={"script": {"content": "", "language": "ruby"}})

        with self.assertRaises(InvalidLanguageTag):
            runner.render(request)

    def test_missing_fields_are_value_errors(self) -> None:
        runner = SnippetRunner(RunnerSettings(), environment=ENVIRONMENT)

        with self.assertRaises(ValueError):
            runner.render({"snippet": {}})

    def test_allowed_origins_are_enforced(self) -> None:
        settings = RunnerSettings(allowed_origins=("https://script-lab.example.com/",))
        runner = SnippetRunner(settings, environment=ENVIRONMENT)

        with self.assertRaises(OriginMismatch):
            runner.render(_request())
        self.assertIn("Run me", runner.render(_request(origin="https://SCRIPT-LAB.example.com")))

    def test_limits(self) -> None:
        settings = RunnerSettings(limits=RunnerLimits(max_snippet_bytes=64, max_libraries=1))
        runner = SnippetRunner(settings, environment=ENVIRONMENT)

        with self.assertRaises(ValueError):
            runner.render(_request())


class RunnerAppTests(unittest.TestCase):
    def _create_test_client(self, app):
        try:
            from fastapi.testclient import TestClient
        except (ImportError, RuntimeError) as exc:
            if "requires the httpx package" in str(exc):
                self.skipTest("httpx not installed")
            self.skipTest("fastapi testclient not installed")

        try:
            return TestClient(app)
        except RuntimeError as exc:
            if "requires the httpx package" in str(exc):
                self.skipTest("httpx not installed")
            raise

    def _client(self, settings: RunnerSettings | None = None):
        try:
            from scriptlab_runner.app import create_app

            app = create_app(settings or RunnerSettings(), environment=ENVIRONMENT)
        except RuntimeError as exc:
            self.skipTest(str(exc))
        return self._create_test_client(app)

    def test_health(self) -> None:
        client = self._client()

        response = client.get("/health")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["environment"], "local")

    def test_render_returns_html(self) -> None:
        client = self._client()

        response = client.post("/render", json=_request())

        self.assertEqual(response.status_code, 200)
        self.assertIn("text/html", response.headers["content-type"])
        self.assertIn('class="host-excel"', response.text)

    def test_render_invalid_language_returns_alert(self) -> None:
        client = self._client()

        response = client.post("/render", json=_request(snippet={"style": {"content": "", "language": "sass"}}))

        self.assertEqual(response.status_code, 422)
        payload = response.json()
        self.assertEqual(payload["title"], "Unsupported language")
        self.assertTrue(payload["actions"])

    def test_render_rejects_script_return_url(self) -> None:
        client = self._client()

        response = client.post("/render", json=_request(returnUrl="javascript:alert(1)"))

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["title"], "Unable to render snippet")

    def test_render_malformed_body(self) -> None:
        client = self._client()

        response = client.post("/render", json=["not", "an", "object"])

        self.assertEqual(response.status_code, 400)

    def test_render_rejects_disallowed_origin(self) -> None:
        client = self._client(RunnerSettings(allowed_origins=("https://script-lab.example.com",)))

        response = client.post("/render", json=_request())

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["title"], "Untrusted runner message")


if __name__ == "__main__":
    unittest.main()

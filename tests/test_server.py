"""Tests for the FastAPI surface."""
import unittest

from fastapi.testclient import TestClient
from fakes import FakeConnector, FakeSynthesizer

from chatia.orchestrator import Orchestrator
from chatia.providers.registry import CapabilityRegistry
from chatia.server import app


class TestServer(unittest.TestCase):
    def setUp(self):
        self.registry = CapabilityRegistry(health_timeout_ms=500)
        for connector in (
            FakeConnector("openai", text="answer one"),
            FakeConnector("gemini", text="answer two", healthy=False),
        ):
            self.registry.register(connector)
            self.registry.enable(connector.name)
        self.synth = FakeSynthesizer("merged answer")
        app.state.orchestrator = Orchestrator(self.registry, self.synth, timeout_ms=1000)
        app.state.registry = self.registry
        self.addCleanup(self._reset_state)
        self.client = TestClient(app)

    def _reset_state(self):
        app.state.orchestrator = None
        app.state.registry = None

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")

    def test_chat(self):
        response = self.client.post("/api/chat", json={"message": "Oi", "caller_id": "u1"})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["combined"], "merged answer")
        self.assertEqual([r["provider"] for r in data["provider_responses"]], ["openai", "gemini"])
        self.assertEqual(data["provider_responses"][0]["type"], "text")
        self.assertEqual(data["combiner_meta"]["provider"], "fake-combiner")
        self.assertEqual(len(data["combiner_meta"]["trace"]), 2)

    def test_chat_with_subset(self):
        response = self.client.post("/api/chat", json={"message": "Oi", "providers": ["gemini", "ghost"]})
        data = response.json()
        self.assertEqual([r["provider"] for r in data["provider_responses"]], ["gemini", "ghost"])
        self.assertEqual(data["provider_responses"][1]["error_kind"], "not_found")

    def test_chat_requires_message(self):
        response = self.client.post("/api/chat", json={"message": "   "})
        self.assertEqual(response.status_code, 400)

    def test_chat_rejects_bad_timeout(self):
        response = self.client.post("/api/chat", json={"message": "Oi", "timeout_ms": "soon"})
        self.assertEqual(response.status_code, 400)

    def test_chat_include_memory_must_be_boolean(self):
        for value in ("false", 0, "yes"):
            response = self.client.post("/api/chat", json={"message": "Oi", "include_memory": value})
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["error"], "include_memory must be a boolean")
        self.assertEqual(self.synth.messages, [])
        response = self.client.post("/api/chat", json={"message": "Oi", "include_memory": False})
        self.assertEqual(response.status_code, 200)

    def test_list_providers(self):
        data = self.client.get("/api/providers").json()
        self.assertEqual([p["name"] for p in data["providers"]], ["openai", "gemini"])

    def test_enable_and_disable(self):
        self.assertEqual(self.client.post("/api/providers/gemini/disable").json(), {"success": True})
        self.assertFalse(self.registry.is_enabled("gemini"))
        data = self.client.post("/api/chat", json={"message": "Oi"}).json()
        self.assertEqual([r["provider"] for r in data["provider_responses"]], ["openai"])
        self.assertEqual(self.client.post("/api/providers/gemini/enable").json(), {"success": True})
        self.assertTrue(self.registry.is_enabled("gemini"))

    def test_toggle_unknown_provider(self):
        self.assertEqual(self.client.post("/api/providers/ghost/enable").json(), {"success": False})

    def test_health_check_all(self):
        data = self.client.post("/api/providers/health").json()
        self.assertEqual(data["results"], {"openai": True, "gemini": False})
        healthy = {p["name"]: p["healthy"] for p in data["providers"]}
        self.assertEqual(healthy, {"openai": True, "gemini": False})


if __name__ == "__main__":
    unittest.main()

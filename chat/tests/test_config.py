from types import SimpleNamespace as NS

from django.test import SimpleTestCase, override_settings

from chat.checks import check_environment
from chat.config import DEFAULT_TIMEOUT_S, DEFAULT_TITLE_MODEL, DuckConfig


class DuckConfigTests(SimpleTestCase):
    def test_strips_quotes_and_whitespace_from_keys(self):
        cfg = DuckConfig.from_settings(NS(
            OPENROUTER_API_KEY=' "sk-or-abc" ',
            SUPABASE_URL="https://x.supabase.co",
            SUPABASE_SERVICE_ROLE_KEY="'service'",
        ))
        self.assertEqual(cfg.openrouter_api_key, "sk-or-abc")
        self.assertEqual(cfg.supabase_key, "service")
        self.assertTrue(cfg.has_openrouter)
        self.assertTrue(cfg.has_supabase)

    def test_defaults_when_unset(self):
        cfg = DuckConfig.from_settings(NS(OPENROUTER_API_KEY="", DUCK_TITLE_MODEL=None))
        self.assertIsNone(cfg.openrouter_api_key)
        self.assertFalse(cfg.has_openrouter)
        self.assertFalse(cfg.has_supabase)
        self.assertEqual(cfg.title_model, DEFAULT_TITLE_MODEL)
        self.assertEqual(cfg.request_timeout_s, DEFAULT_TIMEOUT_S)

    def test_timeout_and_base_url(self):
        cfg = DuckConfig.from_settings(NS(OPENROUTER_TIMEOUT_S="15", OPENROUTER_BASE_URL="https://proxy/v1/"))
        self.assertEqual(cfg.request_timeout_s, 15.0)
        self.assertEqual(cfg.openrouter_base_url, "https://proxy/v1")

    def test_bad_timeout_falls_back(self):
        cfg = DuckConfig.from_settings(NS(OPENROUTER_TIMEOUT_S="soon"))
        self.assertEqual(cfg.request_timeout_s, DEFAULT_TIMEOUT_S)

    def test_summary_has_no_secrets(self):
        summary = DuckConfig(openrouter_api_key="sk-or-secret", supabase_key="service").summary()
        self.assertTrue(summary["hasOpenRouterKey"])
        self.assertNotIn("sk-or-secret", repr(summary))
        self.assertNotIn("service", repr(summary.values()))


class EnvironmentCheckTests(SimpleTestCase):
    def _ids(self):
        return {w.id for w in check_environment(None)}

    @override_settings(OPENROUTER_API_KEY=None, SUPABASE_URL=None, SUPABASE_SERVICE_ROLE_KEY=None)
    def test_missing_everything(self):
        self.assertEqual(self._ids(), {"chat.W001", "chat.W004"})

    @override_settings(OPENROUTER_API_KEY="abc123", SUPABASE_URL="https://x.supabase.co",
                       SUPABASE_SERVICE_ROLE_KEY="service")
    def test_unexpected_key_prefix(self):
        self.assertEqual(self._ids(), {"chat.W002"})

    @override_settings(OPENROUTER_API_KEY="sk-or-abc", SUPABASE_URL="not a url",
                       SUPABASE_SERVICE_ROLE_KEY="service")
    def test_invalid_supabase_url(self):
        self.assertEqual(self._ids(), {"chat.W003"})

    @override_settings(OPENROUTER_API_KEY="sk-or-abc", SUPABASE_URL="https://x.supabase.co",
                       SUPABASE_SERVICE_ROLE_KEY="service")
    def test_clean_environment(self):
        self.assertEqual(self._ids(), set())

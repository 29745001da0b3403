"""
CLIのユニットテスト
"""

import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

import httpx

from oauthflow import __version__
from oauthflow.__main__ import main
from oauthflow.cli import ArgumentParser, OAuthCLI
from oauthflow.config import Config, OAuthSettings
from oauthflow.flow import OAuth2Module
from oauthflow.session import MemoryStore, SessionStore
from oauthflow.transport import HttpTransport
from oauthflow.user_agent import UserAgent


class StubUserAgent(UserAgent):
    def load(self, url):
        pass

    def cancel(self):
        pass


class TestArgumentParser(unittest.TestCase):
    """ArgumentParserのテスト"""

    def setUp(self):
        self.parser = ArgumentParser()

    def test_parse_command_and_options(self):
        parsed = self.parser.parse(["status", "--config", "conf.yaml", "--format", "JSON", "--verbose"])

        self.assertEqual(parsed.command, "status")
        self.assertEqual(parsed.config_path, Path("conf.yaml"))
        self.assertEqual(parsed.output_format, "json")
        self.assertTrue(parsed.options["verbose"])
        self.assertTrue(self.parser.validate(parsed).is_valid)

    def test_help_and_version_flags(self):
        self.assertTrue(self.parser.parse(["-h"]).options["help"])
        self.assertTrue(self.parser.parse(["--version"]).options["version"])
        self.assertTrue(self.parser.validate(self.parser.parse(["--help", "--bogus"])).is_valid)

    def test_missing_option_value(self):
        result = self.parser.validate(self.parser.parse(["login", "--config"]))
        self.assertFalse(result.is_valid)
        self.assertIn("Option --config requires a value.", result.errors)

    def test_unknown_format_command_and_option(self):
        result = self.parser.validate(self.parser.parse(["launch", "--format", "xml", "--bogus"]))
        self.assertFalse(result.is_valid)
        self.assertEqual(len(result.errors), 3)

    def test_command_is_required(self):
        result = self.parser.validate(self.parser.parse([]))
        self.assertFalse(result.is_valid)


class TestOAuthCLI(unittest.TestCase):
    """OAuthCLIのテスト"""

    def setUp(self):
        self.config = Config(
            client_id="cli-client",
            base_url="https://idp.example.com",
            authorization_endpoint="/authorize",
            access_token_endpoint="/token",
            redirect_url="http://127.0.0.1:8765/callback",
            revoke_token_endpoint="/revoke",
            user_info_endpoint="/userinfo",
        )
        self.backend = MemoryStore()
        self.store = SessionStore(self.config.account_id, self.backend)
        self.requests = []
        self.responses = {}
        self.interactive = []

    def _handle(self, request):
        self.requests.append(request)
        return self.responses.get(request.url.path, httpx.Response(500, text="unexpected"))

    def _factory(self, interactive):
        self.interactive.append(interactive)
        client = httpx.AsyncClient(transport=httpx.MockTransport(self._handle))
        return OAuth2Module(
            self.config,
            StubUserAgent(),
            session_store=SessionStore(self.config.account_id, self.backend),
            transport=HttpTransport(self.config.base_url, client=client),
            settings=OAuthSettings(_env_file=None),
        )

    def run_cli(self, command, output_format="text"):
        cli = OAuthCLI(self.config, output_format=output_format, module_factory=self._factory)
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            exit_code = cli.run(command, [])
        return exit_code, stdout.getvalue(), stderr.getvalue()

    def test_status_without_tokens(self):
        exit_code, output, _ = self.run_cli("status", "json")

        self.assertEqual(exit_code, 2)
        status = json.loads(output)
        self.assertFalse(status["authorized"])
        self.assertEqual(status["account_id"], "ACCOUNT_FOR_CLIENTID_cli-client")
        self.assertEqual(self.interactive, [False])

    def test_status_with_token(self):
        self.store.save_tokens("AT", "RT", 4102444800.0)

        exit_code, output, _ = self.run_cli("status", "json")

        self.assertEqual(exit_code, 0)
        status = json.loads(output)
        self.assertTrue(status["has_refresh_token"])
        self.assertEqual(status["access_token_expiration"], "2100-01-01T00:00:00+00:00")

    def test_header(self):
        self.store.save_tokens("AT", None)
        exit_code, output, _ = self.run_cli("header")
        self.assertEqual(exit_code, 0)
        self.assertEqual(output.strip(), "Authorization: Bearer AT")

    def test_header_without_token(self):
        exit_code, _, error = self.run_cli("header")
        self.assertEqual(exit_code, 2)
        self.assertIn("oauthflow login", error)

    def test_login_with_stored_token_prints_claims(self):
        self.store.save_tokens("AT", None)
        self.responses["/userinfo"] = httpx.Response(200, json={"sub": "u-1", "email": "u@example.com"})

        exit_code, output, _ = self.run_cli("login", "json")

        self.assertEqual(exit_code, 0)
        payload = json.loads(output)
        self.assertTrue(payload["authorized"])
        self.assertEqual(payload["claims"], {"sub": "u-1", "email": "u@example.com"})
        self.assertEqual(self.interactive, [True])

    def test_login_refresh_failure(self):
        """更新に失敗したらエラー終了"""
        self.store.save_tokens(None, "RT")

        exit_code, _, error = self.run_cli("login")

        self.assertEqual(exit_code, 1)
        self.assertIn("HTTP_001", error)

    def test_revoke(self):
        self.store.save_tokens("AT", "RT")
        self.responses["/revoke"] = httpx.Response(200)

        exit_code, output, _ = self.run_cli("revoke")

        self.assertEqual(exit_code, 0)
        self.assertEqual(output.strip(), "Access revoked.")
        self.assertTrue(self.store.get().is_empty)

    def test_revoke_without_token(self):
        exit_code, _, _ = self.run_cli("revoke")
        self.assertEqual(exit_code, 2)
        self.assertEqual(self.requests, [])

    def test_logout(self):
        self.store.save_tokens("AT", "RT")
        exit_code, _, _ = self.run_cli("logout")
        self.assertEqual(exit_code, 0)
        self.assertTrue(self.store.get().is_empty)

    def test_help_and_version(self):
        exit_code, output, _ = self.run_cli("help")
        self.assertEqual(exit_code, 0)
        self.assertIn("Commands:", output)

        exit_code, output, _ = self.run_cli("version")
        self.assertEqual(output.strip(), f"oauthflow {__version__}")
        self.assertEqual(self.interactive, [])

    def test_unknown_command(self):
        exit_code, _, error = self.run_cli("launch")
        self.assertEqual(exit_code, 1)
        self.assertIn("Unknown command", error)


class TestMain(unittest.TestCase):
    """__main__.mainのテスト"""

    def setUp(self):
        env_patcher = patch.dict(os.environ, {}, clear=True)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)

    def test_version(self):
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            self.assertEqual(main(["--version"]), 0)
        self.assertIn(__version__, stdout.getvalue())

    def test_invalid_arguments(self):
        with redirect_stderr(io.StringIO()):
            self.assertEqual(main(["status", "--bogus"]), 1)

    def test_missing_configuration(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "oauthflow.yaml"
            path.write_text("client_id: abc\n", encoding="utf-8")
            stderr = io.StringIO()
            with redirect_stderr(stderr):
                self.assertEqual(main(["status", "--config", str(path)]), 1)
        self.assertIn("Configuration error", stderr.getvalue())

    @patch("oauthflow.__main__.OAuthCLI")
    def test_dispatches_to_cli(self, mock_cli):
        mock_cli.return_value.run.return_value = 0
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "oauthflow.yaml"
            path.write_text(
                "client_id: abc\n"
                "base_url: https://idp.example.com\n"
                "authorization_endpoint: /authorize\n"
                "access_token_endpoint: /token\n"
                "redirect_url: http://127.0.0.1:8765/callback\n",
                encoding="utf-8",
            )
            self.assertEqual(main(["header", "--config", str(path), "--format", "json"]), 0)

        config = mock_cli.call_args.args[0]
        self.assertEqual(config.client_id, "abc")
        self.assertEqual(mock_cli.call_args.kwargs["output_format"], "json")
        mock_cli.return_value.run.assert_called_once()


if __name__ == "__main__":
    unittest.main()

import importlib.util
import socket
import unittest
from pathlib import Path

import pytest


def _load_script_module():
    path = Path(__file__).resolve().parents[1] / "scripts" / "serve_files.py"
    spec = importlib.util.spec_from_file_location("serve_files", path)
    module = importlib.util.module_from_spec(spec)
    assert spec is not None and spec.loader is not None
    spec.loader.exec_module(module)
    return module


serve_files = _load_script_module()


class ServeFilesParserTests(unittest.TestCase):
    def test_file_and_dir_flags_share_destination(self):
        parser = serve_files.build_parser()
        self.assertEqual(parser.parse_args(["-f", "report.txt"]).path, "report.txt")
        self.assertEqual(parser.parse_args(["-d", "site"]).path, "site")
        self.assertEqual(parser.parse_args(["--dir", "site"]).path, "site")

    def test_unset_flags_stay_none_for_env_fallback(self):
        args = serve_files.build_parser().parse_args([])
        self.assertIsNone(args.path)
        self.assertIsNone(args.port)
        self.assertIsNone(args.interface)
        self.assertIsNone(args.root_policy)

    def test_root_policy_choices(self):
        parser = serve_files.build_parser()
        self.assertEqual(parser.parse_args(["--root-policy", "redirect"]).root_policy, "redirect")
        with self.assertRaises(SystemExit):
            parser.parse_args(["--root-policy", "bounce"])


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    for name in ("FILESERVE_PATH", "FILESERVE_PORT", "FILESERVE_INTERFACE", "FILESERVE_BIND", "FILESERVE_ROOT_POLICY", "FILESERVE_ACCESS_LOG", "FILESERVE_DOTENV_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_missing_path_exits_with_config_code(clean_env, capsys) -> None:
    rc = serve_files.main(["-d", str(clean_env / "does-not-exist")])
    assert rc == serve_files.EXIT_CONFIG_ERROR == 10
    assert "does-not-exist" in capsys.readouterr().err


def test_invalid_port_from_env_exits_with_config_code(clean_env, monkeypatch, capsys) -> None:
    monkeypatch.setenv("FILESERVE_PORT", "not-a-port")
    assert serve_files.main(["-d", str(clean_env)]) == 10
    assert "invalid port" in capsys.readouterr().err


def test_port_in_use_exits_with_config_code(clean_env, capsys) -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        port = busy.getsockname()[1]
        rc = serve_files.main(["-d", str(clean_env), "-p", str(port), "--bind", "127.0.0.1"])
    assert rc == 10
    assert f"cannot listen on 127.0.0.1:{port}" in capsys.readouterr().err


if __name__ == "__main__":
    unittest.main()

import json

from forge_gateway.__main__ import main
from forge_gateway.catalog import default_providers
from forge_gateway.settings import Settings


def test_main_invokes_uvicorn(monkeypatch):
    called = {}

    def fake_run(*args, host, port, reload, **kwargs):
        called["host"] = host
        called["port"] = port
        called["reload"] = reload

    monkeypatch.setattr("forge_gateway.__main__.uvicorn.run", fake_run)

    assert main(["--host", "127.0.0.1", "--port", "9001", "--reload"]) == 0
    assert called == {"host": "127.0.0.1", "port": 9001, "reload": True}


def test_list_providers(monkeypatch, tmp_path, capsys):
    for entry in default_providers():
        monkeypatch.delenv(entry.api_key, raising=False)
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or")
    settings = Settings(
        workflow_path=tmp_path / "forge.yaml",
        app_config_path=tmp_path / ".config.json",
    )
    monkeypatch.setattr("forge_gateway.__main__.get_settings", lambda: settings)

    assert main(["--list-providers"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output == {"active": "openrouter", "providers": ["openrouter"]}

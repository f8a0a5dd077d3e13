import pytest

from forge_gateway.catalog import (
    AppConfig,
    LoginInfo,
    append_login_provider,
    build_provider_config,
    default_providers,
    load_app_config,
    load_workflow,
    merge_providers,
    resolve_env_providers,
    select_provider,
)
from forge_gateway.errors import NoProviderSelectedError
from forge_gateway.provider import ProviderDetails


def _entry(provider_id: str, api_key: str = "CUSTOM_KEY", base_url: str = "https://custom.dev/v1") -> ProviderDetails:
    return ProviderDetails(
        id=provider_id,
        name=provider_id.title(),
        api_key=api_key,
        provider_type="openai",
        base_url=base_url,
    )


def test_merge_replaces_in_place_and_appends_new_ids():
    defaults = default_providers()
    overrides = [_entry("custom"), _entry("anthropic"), _entry("custom", base_url="https://second.dev")]

    merged = merge_providers(defaults, overrides)
    ids = [entry.id for entry in merged]

    assert ids == ["openai", "anthropic", "forge", "openrouter", "requesty", "custom"]
    assert len(ids) == len(set(ids))
    assert merged[1].provider_type == "openai"
    assert merged[-1].base_url == "https://second.dev/"


def test_merge_without_overrides_keeps_defaults():
    assert merge_providers(default_providers(), []) == default_providers()


def test_entries_without_credentials_are_dropped():
    environ = {"OPENAI_API_KEY": "sk-openai", "OPENROUTER_API_KEY": "sk-or", "ANTHROPIC_API_KEY": ""}

    resolved = resolve_env_providers(default_providers(), environ)

    assert [entry.id for entry in resolved] == ["openai", "openrouter"]
    assert resolved[0].api_key == "sk-openai"
    assert resolved[1].api_key == "sk-or"


def test_login_provider_appended_when_brand_missing():
    providers = resolve_env_providers(default_providers(), {"OPENAI_API_KEY": "sk"})
    app_config = AppConfig(key_info=LoginInfo(api_key="login-key"))

    result = append_login_provider(providers, app_config)

    assert [entry.id for entry in result] == ["openai", "forge"]
    assert result[-1].api_key == "login-key"
    assert result[-1].base_url == "https://antinomy.ai/api/v1/"


def test_login_provider_skipped_when_brand_present():
    providers = resolve_env_providers(default_providers(), {"FORGE_KEY": "env-key"})
    app_config = AppConfig(key_info=LoginInfo(api_key="login-key"))

    result = append_login_provider(providers, app_config)

    assert [entry.api_key for entry in result] == ["env-key"]


def test_build_defaults_to_first_resolved_entry():
    config = build_provider_config(environ={"ANTHROPIC_API_KEY": "a", "REQUESTY_API_KEY": "r"})

    assert config.active_provider_id == "anthropic"
    assert select_provider(config).api_key == "a"


def test_empty_catalog_has_no_provider_selected():
    config = build_provider_config(environ={})

    assert config.active_provider_id is None
    with pytest.raises(NoProviderSelectedError):
        select_provider(config)


def test_load_workflow_reads_provider_overrides(tmp_path):
    path = tmp_path / "forge.yaml"
    path.write_text(
        "provider: local\n"
        "provider_config:\n"
        "  - id: local\n"
        "    name: Local vLLM\n"
        "    api_key: LOCAL_KEY\n"
        "    provider_type: openai\n"
        "    base_url: http://localhost:8000/v1\n",
        encoding="utf-8",
    )

    workflow = load_workflow(path)

    assert workflow.provider == "local"
    assert workflow.provider_config[0].base_url == "http://localhost:8000/v1/"


def test_invalid_or_missing_workflow_is_empty(tmp_path):
    broken = tmp_path / "forge.yaml"
    broken.write_text("provider_config: [unclosed", encoding="utf-8")

    assert load_workflow(broken).provider_config == []
    assert load_workflow(tmp_path / "absent.yaml").provider is None


def test_load_app_config(tmp_path):
    path = tmp_path / ".config.json"
    path.write_text('{"key_info": {"api_key": "from-login"}}', encoding="utf-8")

    assert load_app_config(path).key_info.api_key == "from-login"
    assert load_app_config(tmp_path / "missing.json").key_info is None

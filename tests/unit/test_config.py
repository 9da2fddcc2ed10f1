from mbee.config import ServerConfig, get_config, refresh_config_cache


def test_defaults(monkeypatch):
    for var in ("MBEE_AUTH_STRATEGY", "MBEE_TOKEN_TTL_MINUTES", "MBEE_ADMIN_USERNAMES", "MBEE_WEBHOOK_TIMEOUT",
                "MBEE_DEFAULT_ORG_ID", "MBEE_CORS_ORIGINS"):
        monkeypatch.delenv(var, raising=False)
    cfg = ServerConfig.from_env()
    assert cfg.auth_strategy == "local"
    assert cfg.token_ttl_minutes == 60 * 24
    assert cfg.default_org_id == "default"
    assert cfg.webhook_timeout == 10.0
    assert cfg.admin_usernames == set()
    assert "http://localhost:3000" in cfg.cors_origins


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("MBEE_AUTH_STRATEGY", "Proxy")
    monkeypatch.setenv("MBEE_TOKEN_TTL_MINUTES", "15")
    monkeypatch.setenv("MBEE_ADMIN_USERNAMES", "Alice, bob")
    monkeypatch.setenv("MBEE_WEBHOOK_TIMEOUT", "2.5")
    monkeypatch.setenv("MBEE_CORS_ORIGINS", "https://mbee.example.com")
    monkeypatch.setenv("MBEE_ALLOW_GUEST_WRITES", "yes")
    cfg = ServerConfig.from_env()
    assert cfg.auth_strategy == "proxy"
    assert cfg.token_ttl_minutes == 15
    assert cfg.admin_usernames == {"alice", "bob"}
    assert cfg.webhook_timeout == 2.5
    assert cfg.cors_origins == ["https://mbee.example.com"]
    assert cfg.allow_guest_writes is True


def test_invalid_values_fall_back(monkeypatch):
    monkeypatch.setenv("MBEE_AUTH_STRATEGY", "ldap")
    monkeypatch.setenv("MBEE_TOKEN_TTL_MINUTES", "soon")
    monkeypatch.setenv("MBEE_WEBHOOK_TIMEOUT", "fast")
    cfg = ServerConfig.from_env()
    assert cfg.auth_strategy == "local"
    assert cfg.token_ttl_minutes == 60 * 24
    assert cfg.webhook_timeout == 10.0


def test_get_config_is_cached_until_refreshed(monkeypatch):
    monkeypatch.setenv("MBEE_DEFAULT_ORG_NAME", "First")
    refresh_config_cache()
    assert get_config().default_org_name == "First"
    monkeypatch.setenv("MBEE_DEFAULT_ORG_NAME", "Second")
    assert get_config().default_org_name == "First"
    refresh_config_cache()
    assert get_config().default_org_name == "Second"

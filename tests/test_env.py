import pytest

from oauthgate import env


def test_load_properties_maps_oauth2_variables() -> None:
    properties = env.load_properties(
        {
            "OAUTH2_GOOGLE_CLIENT_ID": "abc",
            "OAUTH2_GOOGLE_SCOPE": " profile ",
            "OAUTH2_OIDC_DISCOVERY_URL": "https://idp.example.com/.well-known/openid-configuration",
            "OAUTH2_": "ignored",
            "OAUTH2_GOOGLE": "ignored",
            "HOME": "/root",
        }
    )

    assert properties == {
        "oauth2.google.client_id": "abc",
        "oauth2.google.scope": "profile",
        "oauth2.oidc.discovery_url": "https://idp.example.com/.well-known/openid-configuration",
    }


def test_load_properties_reads_process_environment(monkeypatch) -> None:
    monkeypatch.setenv("OAUTH2_GOOGLE_SCOPE", "email")

    assert env.load_properties()["oauth2.google.scope"] == "email"


def test_validate_env_requires_public_url(monkeypatch) -> None:
    monkeypatch.delenv("OAUTHGATE_PUBLIC_URL", raising=False)

    with pytest.raises(RuntimeError, match="OAUTHGATE_PUBLIC_URL"):
        env.validate_env()


def test_validate_env_requires_https(monkeypatch) -> None:
    monkeypatch.setenv("OAUTHGATE_PUBLIC_URL", "http://auth.example.com")

    with pytest.raises(RuntimeError, match="HTTPS"):
        env.validate_env()


def test_validate_env_rejects_non_positive_ttl(monkeypatch) -> None:
    monkeypatch.setenv("OAUTHGATE_PUBLIC_URL", "https://auth.example.com")
    monkeypatch.setenv("OAUTHGATE_PENDING_TTL", "0")

    with pytest.raises(RuntimeError, match="OAUTHGATE_PENDING_TTL"):
        env.validate_env()


def test_validate_env_accepts_defaults(monkeypatch) -> None:
    monkeypatch.setenv("OAUTHGATE_PUBLIC_URL", "https://auth.example.com")
    monkeypatch.delenv("OAUTHGATE_PROVIDER", raising=False)
    monkeypatch.delenv("OAUTHGATE_PENDING_TTL", raising=False)

    env.validate_env()

    assert env.provider_name() == "google"


def test_get_env_int(monkeypatch) -> None:
    monkeypatch.setenv("OAUTHGATE_HTTP_TIMEOUT", "12")
    assert env._get_env_int("OAUTHGATE_HTTP_TIMEOUT", 30) == 12

    monkeypatch.setenv("OAUTHGATE_HTTP_TIMEOUT", "soon")
    with pytest.raises(RuntimeError, match="must be an integer"):
        env._get_env_int("OAUTHGATE_HTTP_TIMEOUT", 30)


@pytest.mark.parametrize("value, expected", [("1", True), ("Yes", True), ("0", False), (None, False)])
def test_is_truthy(value, expected) -> None:
    assert env.is_truthy(value) is expected


def test_load_env_reads_dotenv_file(monkeypatch, tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("OAUTHGATE_PROVIDER=oidc\n", encoding="utf-8")
    monkeypatch.setattr(env, "ENV_FILE", env_file)
    monkeypatch.setenv("OAUTHGATE_PROVIDER", "google")

    env.load_env()

    assert env.provider_name() == "oidc"


def test_load_env_without_file(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(env, "ENV_FILE", tmp_path / "missing.env")

    env.load_env()

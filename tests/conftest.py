import pytest


@pytest.fixture(autouse=True)
def isolate_user_config(tmp_path, monkeypatch):
    """Keep the user's configuration out of the tests.

    The configuration directory is redirected to an empty temporary
    directory and the environment variables read by the loader are removed,
    so every test starts from the built-in defaults.
    """
    config_dir = tmp_path / "distill-config"
    config_dir.mkdir()
    monkeypatch.setattr(
        "distill_commit.config.loader._get_config_directory", lambda: config_dir
    )
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("DISTILL_MODEL", raising=False)
    yield config_dir

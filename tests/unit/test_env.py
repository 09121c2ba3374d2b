import os

from slidejobs.utils.env import load_env_file, read_env_file


def test_read_env_file_parses_quotes_comments_and_exports(tmp_path) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text('# local overrides\nSLIDEJOBS_DEBUG=true\nexport SLIDES_SERVICE_URL="http://localhost:8080"\nSLIDEJOBS_TASK_SECRET=\'s3cret\'\nnot a pair\n=orphan\n', encoding="utf-8")

  assert read_env_file(env_file) == {"SLIDEJOBS_DEBUG": "true", "SLIDES_SERVICE_URL": "http://localhost:8080", "SLIDEJOBS_TASK_SECRET": "s3cret"}
  assert read_env_file(tmp_path / "missing.env") == {}


def test_load_env_file_keeps_real_environment_unless_overridden(tmp_path, monkeypatch) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("SLIDEJOBS_ENV=staging\nSLIDEJOBS_RENDERER=decks.render:build\n", encoding="utf-8")
  monkeypatch.setenv("SLIDEJOBS_ENV", "production")
  # Registers the variable with monkeypatch so the value written below is undone.
  monkeypatch.setenv("SLIDEJOBS_RENDERER", "unset")
  monkeypatch.delenv("SLIDEJOBS_RENDERER")

  assert load_env_file(env_file) == 1
  assert load_env_file(env_file, override=True) == 2

  assert os.environ["SLIDEJOBS_ENV"] == "staging"
  assert os.environ["SLIDEJOBS_RENDERER"] == "decks.render:build"

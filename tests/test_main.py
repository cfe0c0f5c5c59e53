"""
CLI entry point tests.

Run with:
    python -m pytest tests/test_main.py -v
"""

import logging
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import main
from services.async_jobs import AsyncJobClient, ErrorDetail, JobTimeoutError, RemoteJobError, VideoPrompt


def fake_client(run):
    client = MagicMock()
    client.run = AsyncMock(side_effect=run)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


class TestGenerate:

    @pytest.mark.asyncio
    async def test_writes_artifact(self, tmp_path):
        client = fake_client(lambda payload, options, config: b"mp4-bytes")
        output = tmp_path / "clips" / "scene.mp4"

        with patch.object(AsyncJobClient, "from_config", return_value=client):
            code = await main.generate_video("A fox", output=str(output), poll_interval=0, max_attempts=3)

        assert code == 0
        assert output.read_bytes() == b"mp4-bytes"
        payload, options, config = client.run.call_args.args
        assert payload == VideoPrompt(prompt="A fox")
        assert config.max_attempts == 3
        assert config.poll_interval_seconds == 0

    @pytest.mark.asyncio
    async def test_permission_failure_exit_code(self, tmp_path):
        def run(payload, options, config):
            raise RemoteJobError(ErrorDetail("Requested entity was not found."), is_permission_issue=True)

        with patch.object(AsyncJobClient, "from_config", return_value=fake_client(run)):
            code = await main.generate_video("A fox", output=str(tmp_path / "out.mp4"))

        assert code == main.EXIT_PERMISSION
        assert not (tmp_path / "out.mp4").exists()

    def test_load_prompt_with_image(self, tmp_path):
        image = tmp_path / "seed.jpg"
        image.write_bytes(b"jpeg")

        prompt = main.load_prompt("Slow zoom", str(image))

        assert prompt.image == b"jpeg"
        assert prompt.image_mime_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_zero_attempts_rejected_before_submitting(self, tmp_path):
        client = fake_client(lambda payload, options, config: b"mp4-bytes")

        with patch.object(AsyncJobClient, "from_config", return_value=client):
            with pytest.raises(ValueError):
                await main.generate_video("A fox", output=str(tmp_path / "out.mp4"), max_attempts=0)

        client.run.assert_not_called()

    def test_explicit_zero_attempts_is_not_the_default(self):
        with pytest.raises(ValueError):
            main.build_poll_config(None, 0)

    def test_unset_attempts_use_config(self, monkeypatch):
        monkeypatch.setenv("ASYNC_JOB_MAX_ATTEMPTS", "7")
        monkeypatch.setattr("core.config._config", None)

        assert main.build_poll_config(None, None).max_attempts == 7


class TestBatch:

    @pytest.mark.asyncio
    async def test_writes_one_file_per_scene(self, tmp_path):
        prompts = tmp_path / "scenes.txt"
        prompts.write_text("First scene\n\nSecond scene\n", encoding="utf-8")
        client = fake_client(lambda payload, options, config: payload.prompt.encode())

        with patch.object(AsyncJobClient, "from_config", return_value=client):
            code = await main.generate_batch(str(prompts), output_dir=str(tmp_path / "out"))

        assert code == 0
        assert (tmp_path / "out" / "scene_1.mp4").read_bytes() == b"First scene"
        assert (tmp_path / "out" / "scene_2.mp4").read_bytes() == b"Second scene"

    @pytest.mark.asyncio
    async def test_writes_each_scene_as_it_finishes(self, tmp_path):
        prompts = tmp_path / "scenes.txt"
        prompts.write_text("First scene\nSecond scene\n", encoding="utf-8")
        out = tmp_path / "out"
        on_disk_at_second_call = []

        def run(payload, options, config):
            if payload.prompt == "Second scene":
                on_disk_at_second_call.append((out / "scene_1.mp4").exists())
                raise JobTimeoutError("too slow", job_id="op-2", attempts=3)
            return b"first"

        with patch.object(AsyncJobClient, "from_config", return_value=fake_client(run)):
            code = await main.generate_batch(str(prompts), output_dir=str(out))

        assert code == main.EXIT_FAILED
        assert on_disk_at_second_call == [True]
        assert (out / "scene_1.mp4").read_bytes() == b"first"
        assert not (out / "scene_2.mp4").exists()

    @pytest.mark.asyncio
    async def test_existing_scenes_are_skipped(self, tmp_path):
        prompts = tmp_path / "scenes.txt"
        prompts.write_text("First scene\nSecond scene\n", encoding="utf-8")
        out = tmp_path / "out"
        out.mkdir()
        (out / "scene_1.mp4").write_bytes(b"kept")
        client = fake_client(lambda payload, options, config: payload.prompt.encode())

        with patch.object(AsyncJobClient, "from_config", return_value=client):
            code = await main.generate_batch(str(prompts), output_dir=str(out))

        assert code == 0
        assert [c.args[0].prompt for c in client.run.call_args_list] == ["Second scene"]
        assert (out / "scene_1.mp4").read_bytes() == b"kept"
        assert (out / "scene_2.mp4").read_bytes() == b"Second scene"

    @pytest.mark.asyncio
    async def test_nothing_left_to_generate(self, tmp_path):
        prompts = tmp_path / "scenes.txt"
        prompts.write_text("Only scene\n", encoding="utf-8")
        (tmp_path / "scene_1.mp4").write_bytes(b"kept")

        with patch.object(AsyncJobClient, "from_config") as from_config:
            code = await main.generate_batch(str(prompts), output_dir=str(tmp_path))

        assert code == 0
        from_config.assert_not_called()

    @pytest.mark.asyncio
    async def test_force_regenerates_existing_scenes(self, tmp_path):
        prompts = tmp_path / "scenes.txt"
        prompts.write_text("First scene\n", encoding="utf-8")
        (tmp_path / "scene_1.mp4").write_bytes(b"old")
        client = fake_client(lambda payload, options, config: b"new")

        with patch.object(AsyncJobClient, "from_config", return_value=client):
            code = await main.generate_batch(str(prompts), output_dir=str(tmp_path), force=True)

        assert code == 0
        assert (tmp_path / "scene_1.mp4").read_bytes() == b"new"

    def test_force_flag_reaches_batch(self, monkeypatch, tmp_path):
        generate_batch = AsyncMock(return_value=0)
        monkeypatch.setattr(main, "generate_batch", generate_batch)
        monkeypatch.setattr(sys, "argv", ["main.py", "batch", "-f", str(tmp_path / "s.txt"), "--force"])

        with pytest.raises(SystemExit) as exc_info:
            main.main()

        assert exc_info.value.code == 0
        assert generate_batch.call_args.kwargs["force"] is True

    @pytest.mark.asyncio
    async def test_empty_prompts_file(self, tmp_path):
        prompts = tmp_path / "scenes.txt"
        prompts.write_text("\n\n", encoding="utf-8")

        assert await main.generate_batch(str(prompts)) == main.EXIT_FAILED


class TestLogging:

    def test_http_request_lines_are_not_logged_at_info(self):
        main.configure_logging()

        for name in ("httpx", "httpcore"):
            assert not logging.getLogger(name).isEnabledFor(logging.INFO)
        assert logging.getLogger("asyncjobs").isEnabledFor(logging.INFO)


class TestCheckConfig:

    def test_reports_missing_key(self, monkeypatch, capsys):
        monkeypatch.delenv("API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setattr("core.config._config", None)

        assert main.check_config() == main.EXIT_FAILED
        assert "No API key configured" in capsys.readouterr().out

    def test_ok(self, monkeypatch, capsys):
        monkeypatch.setenv("API_KEY", "k")
        monkeypatch.setattr("core.config._config", None)

        assert main.check_config() == 0
        assert "Configuration OK" in capsys.readouterr().out

"""Unit tests for the SSH client and remote executor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from common.exceptions import ExecutionError
from orchestrator.deployment.ssh_client import SSHClient, SSHCommandResult, SSHRemoteExecutor


def fake_process(returncode=0, stdout=b"", stderr=b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


class TestSSHCommandResult:
    """Tests for SSHCommandResult."""

    def test_output_combines_streams(self):
        result = SSHCommandResult(exit_code=0, stdout="out\n", stderr="err")

        assert result.success
        assert result.output == "out\nerr"

    def test_output_single_stream(self):
        assert SSHCommandResult(exit_code=1, stdout="", stderr="err").output == "err"
        assert not SSHCommandResult(exit_code=1, stdout="", stderr="err").success


class TestSSHClientCommand:
    """Tests for ssh argument construction."""

    def test_build_command(self):
        client = SSHClient("10.0.0.5", username="ubuntu", port=2222)

        cmd = client._build_ssh_command("bash -s")

        assert cmd[0] == "ssh"
        assert cmd[-2:] == ["ubuntu@10.0.0.5", "bash -s"]
        assert "BatchMode=yes" in cmd
        assert cmd[cmd.index("-p") + 1] == "2222"
        assert "-i" not in cmd

    def test_existing_key_is_used(self, temp_dir):
        key = temp_dir / "id_rsa"
        key.write_text("key")

        cmd = SSHClient("10.0.0.5", private_key_path=str(key))._build_ssh_command("true")

        assert cmd[cmd.index("-i") + 1] == str(key)

    def test_missing_key_is_skipped(self, temp_dir):
        cmd = SSHClient("10.0.0.5", private_key_path=str(temp_dir / "nope"))._build_ssh_command("true")

        assert "-i" not in cmd


@pytest.mark.asyncio
class TestSSHClientRun:
    """Tests for running commands through the subprocess."""

    async def test_run_script_pipes_stdin(self):
        proc = fake_process(stdout=b"hello\n")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as exec_mock:
            result = await SSHClient("10.0.0.5").run_script("echo hello")

        assert result.exit_code == 0
        assert result.stdout == "hello\n"
        assert exec_mock.call_args.args[-1] == "bash -s"
        proc.communicate.assert_awaited_once_with(b"echo hello")

    async def test_timeout_kills_process(self):
        proc = fake_process()
        proc.communicate = AsyncMock(side_effect=asyncio.TimeoutError)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await SSHClient("10.0.0.5").run_command("sleep 100", timeout=1)

        assert result.exit_code == -1
        assert "timed out" in result.stderr
        proc.kill.assert_called_once()

    async def test_missing_ssh_binary(self):
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError)):
            result = await SSHClient("10.0.0.5").run_command("true")

        assert result.exit_code == -1
        assert "not found" in result.stderr


@pytest.mark.asyncio
class TestSSHRemoteExecutor:
    """Tests for SSHRemoteExecutor error mapping."""

    async def test_returns_combined_output(self):
        proc = fake_process(stdout=b"BUILD SUCCESS\n", stderr=b"warning: x")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            output = await SSHRemoteExecutor().run("10.0.0.5", "mvn test")

        assert output == "BUILD SUCCESS\nwarning: x"

    async def test_stderr_alone_is_not_an_error(self):
        proc = fake_process(stderr=b"Picked up JAVA_TOOL_OPTIONS")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            output = await SSHRemoteExecutor().run("10.0.0.5", "mvn test")

        assert "JAVA_TOOL_OPTIONS" in output

    async def test_connection_failure(self):
        proc = fake_process(returncode=255, stderr=b"ssh: connect to host 10.0.0.5 port 22: Connection refused")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(ExecutionError) as exc_info:
                await SSHRemoteExecutor().run("10.0.0.5", "true")

        assert "Connection refused" in str(exc_info.value)
        assert exc_info.value.address == "10.0.0.5"

    async def test_nonzero_exit(self):
        proc = fake_process(returncode=2, stdout=b"step 1\n", stderr=b"apt: lock held\n")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(ExecutionError) as exc_info:
                await SSHRemoteExecutor().run("10.0.0.5", "apt install")

        assert "exited with 2" in str(exc_info.value)
        assert "apt: lock held" in str(exc_info.value)
        assert "step 1" in exc_info.value.output

    async def test_timeout_passed_through(self):
        executor = SSHRemoteExecutor(default_timeout=42)
        client = MagicMock()
        client.run_script = AsyncMock(return_value=SSHCommandResult(0, "ok", ""))

        with patch.object(executor, "client_for", return_value=client):
            await executor.run("10.0.0.5", "true")
            await executor.run("10.0.0.5", "true", timeout=7)

        timeouts = [c.kwargs["timeout"] for c in client.run_script.await_args_list]
        assert timeouts == [42, 7]

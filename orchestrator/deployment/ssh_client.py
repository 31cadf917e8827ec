"""SSH client for remote script execution."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

from common.exceptions import ExecutionError
from orchestrator.core.interfaces import RemoteExecutor

logger = logging.getLogger(__name__)

SSH_CONNECTION_ERROR = 255


@dataclass
class SSHCommandResult:
    """Result of an SSH command execution."""
    exit_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stdout followed by stderr."""
        if self.stderr and self.stdout:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


class SSHClient:
    """Async SSH client using subprocess."""

    def __init__(
        self,
        hostname: str,
        username: str = "root",
        private_key_path: Optional[str] = None,
        port: int = 22,
        connect_timeout: int = 10,
    ):
        self.hostname = hostname
        self.username = username
        self.private_key_path = private_key_path
        self.port = port
        self.connect_timeout = connect_timeout

    def _build_ssh_command(self, command: str) -> list[str]:
        """Build SSH command with proper options."""
        ssh_opts = [
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "LogLevel=ERROR",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", "BatchMode=yes",
            "-p", str(self.port),
        ]

        if self.private_key_path:
            key_path = os.path.expanduser(self.private_key_path)
            if os.path.exists(key_path):
                ssh_opts.extend(["-i", key_path])
            else:
                logger.warning(f"SSH key {key_path} not found, using agent/default keys")

        return [
            "ssh", *ssh_opts,
            f"{self.username}@{self.hostname}",
            command,
        ]

    async def run_command(
        self,
        command: str,
        timeout: float = 60,
        stdin: Optional[str] = None,
    ) -> SSHCommandResult:
        """Execute a command on the remote host, optionally feeding stdin."""
        ssh_cmd = self._build_ssh_command(command)

        try:
            proc = await asyncio.create_subprocess_exec(
                *ssh_cmd,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return SSHCommandResult(exit_code=-1, stdout="", stderr="ssh binary not found")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin.encode() if stdin is not None else None),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return SSHCommandResult(
                exit_code=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
            )

        return SSHCommandResult(
            exit_code=proc.returncode or 0,
            stdout=stdout.decode(errors='replace'),
            stderr=stderr.decode(errors='replace'),
        )

    async def run_script(self, script: str, timeout: float = 600) -> SSHCommandResult:
        """Pipe a bash script to the remote host."""
        return await self.run_command("bash -s", timeout=timeout, stdin=script)


class SSHRemoteExecutor(RemoteExecutor):
    """RemoteExecutor that runs scripts over ssh."""

    def __init__(
        self,
        username: str = "root",
        private_key_path: Optional[str] = None,
        port: int = 22,
        default_timeout: float = 600,
    ):
        self.username = username
        self.private_key_path = private_key_path
        self.port = port
        self.default_timeout = default_timeout

    def client_for(self, address: str) -> SSHClient:
        return SSHClient(
            address,
            username=self.username,
            private_key_path=self.private_key_path,
            port=self.port,
        )

    async def run(self, address: str, script: str, timeout: Optional[float] = None) -> str:
        """Run a script and return combined output; raise ExecutionError on failure."""
        client = self.client_for(address)
        result = await client.run_script(script, timeout=timeout or self.default_timeout)

        if result.exit_code == SSH_CONNECTION_ERROR:
            raise ExecutionError(
                f"SSH connection to {address} failed: {result.stderr.strip()}",
                address=address,
                output=result.output,
            )
        if not result.success:
            detail = (result.stderr or result.stdout).strip().splitlines()
            raise ExecutionError(
                f"Script on {address} exited with {result.exit_code}: "
                f"{detail[-1] if detail else 'no output'}",
                address=address,
                output=result.output,
            )

        return result.output

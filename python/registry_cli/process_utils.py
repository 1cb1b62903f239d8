"""Run external commands while echoing their output to an optional sink"""

import subprocess
from dataclasses import dataclass
from typing import List, Optional, TextIO

from registry_cli.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Captured output and exit code of a finished command"""

    output: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def run_command(cmd: List[str], stream: Optional[TextIO] = None, log_cmd: Optional[str] = None,
                timeout: Optional[float] = None) -> CommandResult:
    """Run a command with stderr merged into stdout.

    Every line is indented and written to `stream` as it arrives. Blank
    lines are not kept in the captured output.

    Raises:
        FileNotFoundError: If the executable does not exist
    """
    logger.debug(f"Running: {log_cmd or ' '.join(cmd)}")
    lines = []
    with subprocess.Popen(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        stdin=subprocess.DEVNULL,
        text=True,
        errors="replace",
    ) as process:
        for line in process.stdout:
            if line.strip():
                lines.append(line.rstrip("\n"))
            if stream is not None:
                stream.write(f"  {line}")
        exit_code = process.wait(timeout=timeout)

    return CommandResult(output="\n".join(lines), exit_code=exit_code)


def probe_command(cmd: List[str], timeout: Optional[float] = 30) -> bool:
    """Return True if the command runs and exits 0; never raises"""
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"{cmd[0]} not available: {e}")
        return False
    return result.returncode == 0

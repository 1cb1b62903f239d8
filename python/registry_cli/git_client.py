"""Clone remote repositories into scratch build contexts"""

import os
import shutil
from typing import List, Optional, TextIO
from urllib.parse import quote, urlsplit, urlunsplit

from registry_cli.error_utils import CloneFailed, create_command_failed_error
from registry_cli.logging_utils import get_logger
from registry_cli.process_utils import probe_command, run_command

logger = get_logger(__name__)


def inject_credentials(url: str, username: Optional[str], access_token: Optional[str]) -> str:
    """Add `username:token@` to an http(s) URL that carries no credentials"""
    if not username or not access_token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or "@" in parts.netloc:
        return url
    netloc = f"{quote(username, safe='')}:{quote(access_token, safe='')}@{parts.netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def redact_url(url: str) -> str:
    """Replace the password part of a URL with ****"""
    parts = urlsplit(url)
    if parts.password is None:
        return url
    userinfo, _, host = parts.netloc.rpartition("@")
    netloc = f"{userinfo.partition(':')[0]}:****@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class GitClient:
    """Wrapper around the git command"""

    def __init__(self, username: Optional[str] = None, access_token: Optional[str] = None,
                 command: str = "git", stream: Optional[TextIO] = None):
        self.username = username
        self.access_token = access_token
        self.command = command
        self.stream = stream

    @classmethod
    def from_config(cls, config_manager, stream: Optional[TextIO] = None) -> "GitClient":
        return cls(
            username=config_manager.get_git_username(),
            access_token=config_manager.get_git_access_token(),
            stream=stream,
        )

    def _clone_command(self, url: str, destination: str) -> List[str]:
        return [self.command, "clone", "--progress", url, destination]

    def clone(self, url: str, destination: str) -> None:
        """Clone `url` into `destination`.

        The destination must be empty or absent. On failure it is removed.

        Raises:
            CloneFailed: If git exits nonzero or is not installed
        """
        authenticated_url = inject_credentials(url, self.username, self.access_token)
        cmd = self._clone_command(authenticated_url, destination)
        log_cmd = " ".join(self._clone_command(redact_url(authenticated_url), destination))

        try:
            result = run_command(cmd, stream=self.stream, log_cmd=log_cmd)
        except FileNotFoundError:
            raise create_command_failed_error(CloneFailed, "clone", url, f"{self.command}: command not found", 127)

        if not result.ok:
            if os.path.exists(destination):
                shutil.rmtree(destination, ignore_errors=True)
            output = result.output
            if self.access_token:
                output = output.replace(self.access_token, "****")
            raise create_command_failed_error(CloneFailed, "clone", url, output, result.exit_code)

        logger.info(f"Cloned {redact_url(url)} into {destination}")

    def is_available(self) -> bool:
        """Return True if `git --version` succeeds"""
        return probe_command([self.command, "--version"])

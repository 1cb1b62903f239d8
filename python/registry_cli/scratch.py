"""
Scratch build contexts.

Each build gets its own uniquely named directory. The container engine can
keep handles open for a moment after it exits, so release retries the removal
before giving up with a warning.
"""

import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import Iterator, Optional

from registry_cli.logging_utils import get_logger
from registry_cli.retry_utils import retry_operation

logger = get_logger(__name__)


def _remove_tree(path: str) -> None:
    if os.path.exists(path):
        shutil.rmtree(path)


class ScratchSpace:
    """Creates and releases scratch directories.

    Args:
        base_dir: Parent directory (None for the system temporary directory)
        cleanup_retries: Extra removal attempts after the first one fails
        cleanup_retry_delay: Seconds between removal attempts
    """

    def __init__(self, base_dir: Optional[str] = None, cleanup_retries: int = 20,
                 cleanup_retry_delay: float = 0.1):
        self.base_dir = base_dir
        self.cleanup_retries = cleanup_retries
        self.cleanup_retry_delay = cleanup_retry_delay

    @classmethod
    def from_config(cls, config_manager) -> "ScratchSpace":
        return cls(
            base_dir=config_manager.get_scratch_base_dir(),
            cleanup_retries=config_manager.get_scratch_cleanup_retries(),
            cleanup_retry_delay=config_manager.get_scratch_cleanup_retry_delay(),
        )

    def acquire(self, purpose: str) -> str:
        """Create a new empty directory and return its path"""
        if self.base_dir:
            os.makedirs(self.base_dir, exist_ok=True)
        path = tempfile.mkdtemp(prefix=f"registry-cli-{purpose}-", dir=self.base_dir)
        logger.debug(f"Acquired scratch directory {path}")
        return path

    def release(self, path: str) -> bool:
        """Remove a scratch directory; returns False (and logs) if it could not be removed"""
        try:
            retry_operation(
                lambda: _remove_tree(path),
                max_retries=self.cleanup_retries,
                initial_delay=self.cleanup_retry_delay,
                max_delay=self.cleanup_retry_delay,
                exponential_base=1.0,
                jitter=False,
                operation_name=f"Removing {path}",
            )
        except OSError as e:
            logger.warning(f"Could not remove scratch directory {path}: {e}")
            return False

        logger.debug(f"Released scratch directory {path}")
        return True

    @contextmanager
    def directory(self, purpose: str) -> Iterator[str]:
        """Context manager yielding a fresh directory that is released on exit"""
        path = self.acquire(purpose)
        try:
            yield path
        finally:
            self.release(path)

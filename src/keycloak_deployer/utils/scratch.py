"""
Scoped scratch files for derived manifests.

Patched manifests live in temporary files that must be removed on every
exit path: normal completion, an early failure, or an interrupt. The shell
tooling this replaces trapped INT/TERM/EXIT; here SIGTERM is converted into
an exception so that ``finally`` blocks run, and SIGINT already raises
``KeyboardInterrupt``.
"""

import contextlib
import logging
import os
import signal
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


class TerminationRequested(BaseException):
    """Raised in the main thread when SIGTERM is received."""

    def __init__(self, signum: int):
        super().__init__(f"Terminated by signal {signum}")
        self.signum = signum


def _raise_termination(signum, frame):
    raise TerminationRequested(signum)


@contextlib.contextmanager
def termination_signals_raise() -> Iterator[None]:
    """
    Turn SIGTERM into ``TerminationRequested`` for the duration of the block.

    Signal handlers can only be installed from the main thread; elsewhere the
    block runs with the existing handlers.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.signal(signal.SIGTERM, _raise_termination)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


@contextlib.contextmanager
def scratch_file(
    suffix: str = ".yaml",
    prefix: str = "keycloak-deployer-",
    directory: str | Path | None = None,
) -> Iterator[Path]:
    """
    Create a temporary file and guarantee its removal.

    Args:
        suffix: File name suffix
        prefix: File name prefix
        directory: Directory to create the file in (default: system temp dir)

    Yields:
        Path of the created, empty file
    """
    fd, name = tempfile.mkstemp(
        suffix=suffix, prefix=prefix, dir=str(directory) if directory else None
    )
    os.close(fd)
    path = Path(name)
    logger.debug(f"Created scratch file {path}")
    try:
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            path.unlink()
            logger.debug(f"Removed scratch file {path}")


def write_text_atomic(path: str | Path, text: str) -> None:
    """
    Write text to ``path`` so that it either fully appears or is untouched.

    The content goes to a scratch file in the destination directory which is
    then moved into place.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with scratch_file(
        suffix=".tmp", prefix=f".{target.name}.", directory=target.parent
    ) as tmp:
        with open(tmp, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        os.replace(tmp, target)

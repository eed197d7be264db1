"""
External process execution with cancellation support.

Compilers, linkers and host tools all run through a ProcessRunner. The runner
keeps track of in-flight processes so that cancelling a build terminates
them instead of waiting for them to finish.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from qtbuildkit.core.exceptions import BuildCancelled

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """
    Outcome of an external process.

    Attributes:
        args: Command line that was executed
        returncode: Exit status
        stdout: Captured standard output
        stderr: Captured standard error
    """

    args: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """
    Runs external processes and terminates them on cancellation.

    Example:
        >>> runner = ProcessRunner()
        >>> result = runner.run(["cc", "--version"])
        >>> print(result.stdout)
    """

    def __init__(self, terminate_grace: float = 5.0):
        """
        Initialize process runner.

        Args:
            terminate_grace: Seconds to wait after SIGTERM before killing
        """
        self.terminate_grace = terminate_grace
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._processes: Dict[int, subprocess.Popen] = {}

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check_cancelled(self) -> None:
        """Raise BuildCancelled if cancel() has been called."""
        if self._cancelled.is_set():
            raise BuildCancelled("Build was cancelled")

    def run(
        self,
        args: Sequence[Union[str, Path]],
        cwd: Optional[Path] = None,
        input: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ProcessResult:
        """
        Run a command to completion, capturing its output.

        Args:
            args: Command line
            cwd: Working directory
            input: Text fed to standard input
            env: Environment for the child process (default: inherited)

        Returns:
            ProcessResult with exit status and output

        Raises:
            BuildCancelled: If the build is cancelled before or while running
            OSError: If the executable cannot be started
        """
        self.check_cancelled()
        cmd = [str(a) for a in args]
        logger.debug(f"Running: {' '.join(cmd)}")

        process = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd else None,
            env=env,
            stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        with self._lock:
            self._processes[process.pid] = process

        try:
            stdout, stderr = process.communicate(input=input)
        finally:
            with self._lock:
                self._processes.pop(process.pid, None)

        if self._cancelled.is_set():
            raise BuildCancelled(f"Build was cancelled while running {cmd[0]}")

        return ProcessResult(
            args=cmd, returncode=process.returncode, stdout=stdout, stderr=stderr
        )

    def cancel(self) -> None:
        """
        Cancel the build: refuse new processes and terminate running ones.
        """
        self._cancelled.set()
        with self._lock:
            processes = list(self._processes.values())

        for process in processes:
            if process.poll() is not None:
                continue
            logger.info(f"Terminating process {process.pid}")
            process.terminate()

        for process in processes:
            try:
                process.wait(timeout=self.terminate_grace)
            except subprocess.TimeoutExpired:
                logger.warning(f"Process {process.pid} did not exit, killing it")
                process.kill()


__all__ = ["ProcessRunner", "ProcessResult"]

#!/usr/bin/env python3

import os
import logging
import subprocess
from typing import List, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)

@dataclass
class CommandResult:
    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

class AptPackageManager:
    """Thin wrapper around apt-get/apt-cache; callers only look at success"""

    def __init__(self, timeout: int = 600, retries: int = 2,
                 apt_get: str = "apt-get", apt_cache: str = "apt-cache"):
        self.timeout = timeout
        self.retries = retries
        self.apt_get = apt_get
        self.apt_cache = apt_cache

    def _run(self, command: List[str], timeout: Optional[int] = None,
             cwd: Optional[str] = None) -> CommandResult:
        timeout = timeout or self.timeout
        logger.debug(f"Running: {' '.join(command)}")

        env = dict(os.environ, LC_ALL="C")
        try:
            result = subprocess.run(command, capture_output=True, text=True,
                                    timeout=timeout, cwd=cwd, env=env)
        except subprocess.TimeoutExpired:
            logger.error(f"{command[0]} timed out after {timeout}s")
            return CommandResult(command=command, returncode=-1, stderr="timeout")
        except OSError as e:
            logger.error(f"Failed to run {command[0]}: {e}")
            return CommandResult(command=command, returncode=-1, stderr=str(e))

        return CommandResult(command=command, returncode=result.returncode,
                             stdout=result.stdout or "", stderr=result.stderr or "")

    def clean(self) -> bool:
        return self._run([self.apt_get, "clean"]).ok

    def update(self) -> bool:
        result = self._run([self.apt_get, "update", "-y",
                            "-o", f"Acquire::Retries={self.retries}"])
        if not result.ok:
            logger.debug(f"apt-get update output:\n{result.stdout}{result.stderr}")
        return result.ok

    def download(self, package: str, directory: str, timeout: Optional[int] = None) -> bool:
        return self._run([self.apt_get, "download", package],
                         timeout=timeout, cwd=directory).ok

    def policy(self) -> str:
        result = self._run([self.apt_cache, "policy"])
        return result.stdout + result.stderr

    def update_debug_output(self) -> str:
        """Run an index refresh with HTTP acquire debugging and return its output"""
        result = self._run([self.apt_get, "update", "-o", "Debug::Acquire::http=true"])
        return result.stdout + result.stderr

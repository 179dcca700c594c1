"""
EXM Package Manager

Runs pip against a scope directory. Every extension of a scope lives in
`<scope_dir>/site-packages`, installed with `pip install --target`.

pip is an external, possibly slow command: calls run in the default
executor so the event loop keeps going.
"""

import asyncio
import json
import logging
import subprocess
import sys
from importlib.metadata import distributions
from pathlib import Path
from typing import Optional

from exm.core.errors import ExternalToolFailure
from exm.core.paths import site_packages

logger = logging.getLogger("exm.core.package_manager")

# Exit code some package managers use for "outdated packages exist"
OUTDATED_EXIT_CODE = 1


class PipPackageManager:
    """
    Install, update and query extensions with pip.

    Any object with the same three coroutines can stand in for it
    (see Host(package_manager=...)).
    """

    def __init__(self, python: Optional[str] = None, timeout: Optional[float] = None):
        self.python = python or sys.executable
        self.timeout = timeout

    def _pip(self, *args: str) -> list[str]:
        return [self.python, "-m", "pip", *args, "--disable-pip-version-check"]

    async def _run(self, command: list[str], cwd: Path) -> subprocess.CompletedProcess:
        logger.info(f"cd {cwd} ; {' '.join(command)}")
        loop = asyncio.get_running_loop()

        def _execute():
            return subprocess.run(
                command,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )

        try:
            return await loop.run_in_executor(None, _execute)
        except subprocess.TimeoutExpired as e:
            raise ExternalToolFailure(command, None, f"timed out after {e.timeout} seconds") from e
        except OSError as e:
            raise ExternalToolFailure(command, None, str(e)) from e

    async def install(self, module_name: str, cwd: Path) -> str:
        """Install `module_name` into `<cwd>/site-packages`. Returns pip's output."""
        command = self._pip("install", "--target", str(site_packages(cwd)), "--upgrade", module_name)
        result = await self._run(command, cwd)
        if result.returncode != 0:
            raise ExternalToolFailure(command, result.returncode, result.stderr or "")
        logger.debug(result.stdout)
        return result.stdout

    async def update(self, cwd: Path) -> str:
        """Upgrade every distribution installed in `<cwd>/site-packages`."""
        target = site_packages(cwd)
        names = installed_distributions(target)
        if not names:
            logger.info(f"Nothing to update in {target}")
            return ""

        command = self._pip("install", "--target", str(target), "--upgrade", *names)
        result = await self._run(command, cwd)
        if result.returncode != 0:
            raise ExternalToolFailure(command, result.returncode, result.stderr or "")
        return result.stdout

    async def list_outdated(self, cwd: Path) -> list:
        """
        Outdated distributions of `<cwd>/site-packages`, as pip reports them.

        Never raises: a failed command or unreadable output gives [].
        """
        command = self._pip("list", "--outdated", "--format=json", "--path", str(site_packages(cwd)))
        try:
            result = await self._run(command, cwd)
        except ExternalToolFailure as e:
            logger.warning(f"Outdated listing failed: {e}")
            return []

        if result.returncode not in (0, OUTDATED_EXIT_CODE):
            logger.warning(f"Outdated listing failed ({result.returncode}): {(result.stderr or '').strip()[:500]}")
            return []
        return parse_outdated(result.stdout)


def parse_outdated(output: str) -> list:
    """Parse pip's JSON outdated listing, [] when it isn't one."""
    try:
        data = json.loads(output or "")
    except json.JSONDecodeError as e:
        logger.warning(f"Unreadable outdated listing: {e}")
        return []
    if not isinstance(data, list):
        logger.warning("Unexpected outdated listing: not a JSON list")
        return []
    return data


def installed_distributions(target: Path) -> list[str]:
    """Names of the distributions installed in a --target directory."""
    if not Path(target).is_dir():
        return []
    names = []
    for dist in distributions(path=[str(target)]):
        name = dist.metadata["Name"]
        if name and name not in names:
            names.append(name)
    return sorted(names)

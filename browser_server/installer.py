"""Install Playwright browser binaries through the driver's own CLI."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Dict, List

from .errors import BrowserServerError, ErrorCodes
from .page_actions import mcp_tool
from .params import InstallBrowserParams

logger = logging.getLogger(__name__)

OUTPUT_LIMIT = 1000


def install_command(browser: str, with_deps: bool) -> List[str]:
    command = [sys.executable, "-m", "playwright", "install"]
    if browser != "all":
        command.append(browser)
    if with_deps:
        command.append("--with-deps")
    return command


class InstallerFeature:
    @mcp_tool(
        name="browser_install",
        params=InstallBrowserParams,
        examples=[
            "browser_install()",
            "browser_install(browser='firefox', with_deps=True)",
        ],
    )
    async def install(self, params: InstallBrowserParams) -> Dict[str, Any]:
        """
        Download browser binaries for Playwright.

        Run this when session creation fails because the browser executable
        is missing. `with_deps` also installs system packages on Linux.
        """
        command = install_command(params.browser, params.with_deps)
        logger.info("Installing Playwright %s: %s", params.browser, " ".join(command))
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout_b, stderr_b = await proc.communicate()
        except Exception as e:
            raise BrowserServerError(
                ErrorCodes.INSTALL_FAILED, str(e) or "Failed to install browser"
            ) from e

        stdout = (stdout_b or b"").decode("utf-8", errors="replace")
        stderr = (stderr_b or b"").decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise BrowserServerError(
                ErrorCodes.INSTALL_FAILED,
                f"Failed to install {params.browser} (exit code {proc.returncode})",
                details={"stdout": stdout[:OUTPUT_LIMIT], "stderr": stderr[:OUTPUT_LIMIT]},
            )
        return {
            "success": True,
            "browser": params.browser,
            "withDeps": params.with_deps,
            "message": f"Successfully installed {params.browser}",
            "output": (stdout + stderr)[:OUTPUT_LIMIT],
        }

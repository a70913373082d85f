"""Best-effort browser launch for the consent page."""

from __future__ import annotations

import logging
import os
import sys
import webbrowser

log = logging.getLogger(__name__)

CI_ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "JENKINS_URL",
    "CIRCLECI",
    "BUILDKITE",
    "TF_BUILD",
    "CODEBUILD_BUILD_ID",
)


def is_headless_environment() -> bool:
    """Detect whether there is no GUI to open a browser in.

    Checks for a missing X11 ``DISPLAY`` (Linux only; macOS and Windows do not
    use it), an SSH session, or a CI runner.
    """
    indicators = []

    if os.name != "nt" and sys.platform != "darwin":
        display = os.getenv("DISPLAY") or os.getenv("WAYLAND_DISPLAY")
        if not display or not display.strip():
            indicators.append("no DISPLAY")

    if os.getenv("SSH_CONNECTION") or os.getenv("SSH_CLIENT") or os.getenv("SSH_TTY"):
        indicators.append("SSH session")

    ci = [var for var in CI_ENV_VARS if os.getenv(var)]
    if ci:
        indicators.append(f"CI ({', '.join(ci)})")

    if indicators:
        log.debug("Headless environment detected: %s", "; ".join(indicators))
        return True
    return False


def launch_browser(url: str) -> bool:
    """Open ``url`` in the system browser without waiting for it.

    Returns False (and logs a warning) when no browser could be launched;
    the caller is expected to show the URL for manual use anyway.
    """
    try:
        opened = webbrowser.open(url)
    except (webbrowser.Error, OSError) as e:
        log.warning("Failed to open browser automatically: %s. Please open the URL manually.", e)
        return False

    if not opened:
        log.warning("No browser available. Please open the URL manually.")
        return False

    log.info("Browser opened for authorization")
    return True

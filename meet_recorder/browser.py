"""
Browser launch.

Starts Playwright and a Chromium instance configured for unattended meeting
capture: fake media UI (auto-approves mic/camera prompts), automation flags
hidden, camera/microphone permissions granted to the context.
"""

import logging

from playwright.async_api import async_playwright

from meet_recorder.config import BotConfig
from meet_recorder.session import SessionContext

logger = logging.getLogger(__name__)

CHROME_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-dev-shm-usage",
    "--disable-sync",
    "--password-store=basic",
    "--use-fake-ui-for-media-stream",
    "--auto-select-desktop-capture-source=Meet",
    "--autoplay-policy=no-user-gesture-required",
]

VIEWPORT = {"width": 1280, "height": 720}

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


async def launch_browser(config: BotConfig, session: SessionContext) -> None:
    """Launch Chromium and open the meeting page. Fills session.playwright/browser/page."""
    logger.info(f"Launching browser (headless={config.recording.headless})...")
    session.playwright = await async_playwright().start()
    session.browser = await session.playwright.chromium.launch(
        headless=config.recording.headless,
        args=CHROME_ARGS,
        ignore_default_args=["--enable-automation"],
    )
    context = await session.browser.new_context(
        permissions=["camera", "microphone"],
        viewport=VIEWPORT,
        user_agent=USER_AGENT,
    )
    session.page = await context.new_page()
    logger.info("Browser launched")

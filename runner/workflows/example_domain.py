"""
Example workflow: open the configured base URL and check it rendered.

Navigates to navigation.base_url, waits for the page heading, logs the
title and the window/screen size, and keeps a screenshot for debugging.
"""

from __future__ import annotations

from runner.workflows.driver import NavigationDriver

HEADING_SELECTOR = "h1"


async def example_domain_workflow(driver: NavigationDriver) -> None:
    events = driver.events

    events.info("Starting example navigation")
    await driver.goto(driver.settings.navigation.base_url)
    await driver.wait_for(HEADING_SELECTOR)

    title = await driver.title()
    events.info(f"Page loaded: {title}", title=title)

    size = await driver.window_size()
    screen = size.get("screen", {})
    events.info(f"Window size: {size.get('width')}x{size.get('height')}")
    events.info(f"Screen size: {screen.get('width')}x{screen.get('height')}")

    await driver.screenshot("example_domain")

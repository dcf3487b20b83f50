"""
Browser Runner - configured Playwright navigation workflows.

Packages:
- config: settings schema, loader and connection descriptor
- observability: severity-routed EventLogger
- browser: BrowserSessionManager (Playwright lifecycle)
- workflows: NavigationDriver, run_workflow and the example workflow
- testing: Playwright test doubles
"""

__version__ = "0.1.0"

"""
Workflows built on top of the browser session manager.

A workflow is any async callable taking a NavigationDriver. run_workflow()
gives it a fresh page and applies the scraping retry policy.
"""

from runner.workflows.driver import NavigationDriver, Workflow, run_workflow
from runner.workflows.example_domain import example_domain_workflow

__all__ = ["NavigationDriver", "Workflow", "example_domain_workflow", "run_workflow"]

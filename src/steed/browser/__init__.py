"""Browser subprocess management."""

from steed.browser.supervisor import ProcessSupervisor, build_argv

__all__ = ["ProcessSupervisor", "build_argv"]

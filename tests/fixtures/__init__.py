"""Test fixtures for qtbuildkit tests.

This package provides reusable pytest fixtures for testing qtbuildkit components.
Fixtures are organized by type:

- toolchains: Fake toolchains recording every compile, archive and link
- projects: Sample source trees (core/gui/declarative with a host tool)
  and their qtbuild.yaml declaration
- directories: Build roots (fresh, opened, created for another version)

Import fixtures in your tests using:
    from tests.fixtures.toolchains import fake_toolchain
    from tests.fixtures.projects import sample_project
    from tests.fixtures.directories import coordinator
"""

__all__ = [
    "toolchains",
    "projects",
    "directories",
]

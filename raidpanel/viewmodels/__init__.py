"""ViewModel package for UI state and command surfaces.

Call context:
    ``raidpanel/web_ui/main.py`` imports concrete viewmodels from this package
    and binds them to the coordinator hooks.

Dependencies:
    Modules in this package depend on domain types and formatting helpers
    only. I/O adapters and use-case orchestration remain outside.
"""

"""
Adapters — the boundary between the build pipeline and external tools.

Process execution, git, the OS package manager, and blob cache backends
live here. Core services never spawn processes or touch the cache store
except through these classes.
"""

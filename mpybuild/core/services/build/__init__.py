"""
Build services — isolated directories, make, the source workaround, and
artifact discovery.
"""

from mpybuild.core.services.build.artifacts import find_artifact, output_filename, sha256_file
from mpybuild.core.services.build.isolation import compose_build_env, isolated_build_dir
from mpybuild.core.services.build.make import compute_make_jobs, make_arguments, run_make
from mpybuild.core.services.build.workarounds import apply_static_const_workaround

__all__ = [
    "apply_static_const_workaround",
    "compose_build_env",
    "compute_make_jobs",
    "find_artifact",
    "isolated_build_dir",
    "make_arguments",
    "output_filename",
    "run_make",
    "sha256_file",
]

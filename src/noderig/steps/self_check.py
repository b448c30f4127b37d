# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/noderig/steps/self_check.py
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..version import __version__
from ..errors import internal_error
from ..workflow.step import StepBuilder

log = logging.getLogger("noderig")

PROGRAM = "noderig"


def _current_executable() -> Path:
    return Path(sys.argv[0]).resolve()


def check_installation(
    bin_dir: str,
    *,
    program: str = PROGRAM,
    locate: Callable[[], Path] = _current_executable,
    argv: Optional[Sequence[str]] = None,
) -> StepBuilder:
    """
    Fails unless the running program is ``<bin_dir>/<program>``.
    The failure carries a ``resolution`` property with the command to run.
    """

    def _execute(step, ctx):
        try:
            exe = locate()
        except OSError as e:
            return step.fail(internal_error("failed to locate current executable", e))

        expected = (Path(bin_dir) / program).resolve()
        if exe != expected:
            args = " ".join(argv if argv is not None else sys.argv[1:]).strip()
            resolution = (
                f"install or re-install {program}; run `sudo {exe} install` "
                f"and then run `{program}{' ' + args if args else ''}`."
            )
            log.error("installation check failed: running %s, expected %s", exe, expected)
            return step.fail(
                internal_error(
                    f"{program} is not running from {expected}",
                    resolution=resolution,
                    exe_path=str(exe),
                    expected_path=str(expected),
                )
            )

        return step.succeed(metadata={"path": str(exe), "installed_version": __version__})

    return StepBuilder(f"check-{program}-installation").on_execute(_execute)

"""Helm ``--post-renderer`` entry point that replays a post-rendered manifest.

Helm pipes its own rendering of the chart on stdin. The deploy engine has
already rendered and mutated the chart in-process, so this hook discards
stdin and writes the prepared manifest instead. Helm then applies exactly
what the engine produced.

Usage::

    python -m airgap_deployer.integrations.kubernetes.post_render_hook <manifest>
"""

from __future__ import annotations

import sys
from pathlib import Path

HOOK_MODULE = "airgap_deployer.integrations.kubernetes.post_render_hook"


def hook_command(manifest_path: Path) -> list[str]:
    """Build the post-renderer command line for a prepared manifest."""
    return [sys.executable, "-m", HOOK_MODULE, str(manifest_path)]


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        sys.stderr.write("usage: post_render_hook <manifest>\n")
        return 2

    # Drain stdin so helm never blocks writing to a closed pipe
    sys.stdin.read()

    try:
        manifest = Path(args[0]).read_text(encoding="utf-8")
    except OSError as e:
        sys.stderr.write(f"unable to read post-rendered manifest: {e}\n")
        return 1

    sys.stdout.write(manifest)
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())

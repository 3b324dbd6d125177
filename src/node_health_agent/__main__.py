"""Module entrypoint.

Allows:
    python -m node_health_agent --run-once
"""

from __future__ import annotations

from node_health_agent.cli import main

if __name__ == "__main__":
    main()

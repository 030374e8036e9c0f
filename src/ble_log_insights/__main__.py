"""Module entrypoint.

Allows:
    python -m ble_log_insights
"""

from __future__ import annotations

from ble_log_insights.server.log_server import main

if __name__ == "__main__":
    main()

"""Allow running the driver with ``python -m fbpilot.session_manager``."""

from .manager import main

main()

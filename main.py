"""
Booking admission service entry point.

Runs the HTTP API, or previews the booking-window verdict for a date
without touching any collaborator.

Usage:
    Serve API:     python main.py [serve]
    Preview date:  python main.py preview 2024-07-01
"""

import logging
import sys
from datetime import date

from booking_admission.config import settings

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the API under uvicorn on the configured host and port."""
    import uvicorn

    from booking_admission.api import create_app

    logger.info("Starting %s on %s:%d", settings.service_name, settings.server.host, settings.server.port)
    uvicorn.run(create_app(), host=settings.server.host, port=settings.server.port)


def _run_preview(raw_date: str) -> int:
    """Print the policy verdict for a date as seen today."""
    from booking_admission.admission.policy import evaluate, policy_window
    from booking_admission.utils import parse_iso_date

    requested = parse_iso_date(raw_date)
    if requested is None:
        print(f"Invalid date {raw_date!r}, expected YYYY-MM-DD.", file=sys.stderr)
        return 2

    today = date.today()
    window = policy_window(today)
    print(f"{requested.isoformat()}: {evaluate(requested, today).value}")
    print(f"Bookable window: {window.earliest.isoformat()} to {window.latest.isoformat()} (weekdays)")
    return 0


if __name__ == "__main__":
    if len(sys.argv) > 2 and sys.argv[1] == "preview":
        sys.exit(_run_preview(sys.argv[2]))
    elif len(sys.argv) > 1 and sys.argv[1] not in ("serve",):
        print(__doc__, file=sys.stderr)
        sys.exit(2)
    else:
        _run_server()

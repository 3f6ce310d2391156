"""
Convert a GCN Truncated Julian Date and centiseconds of day to a UTC date.

Usage:
    python -m gcn_alerts.tools.tjd 12640 360000
"""

import argparse
import sys
from typing import List, Optional

from gcn_alerts.parsers.time_codec import format_alert_date, tjd_to_datetime


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Convert TJD + SOD to a date",
        epilog="SOD is in centiseconds (seconds * 100). Output date format: yyyy-MM-ddTHH:mm:ss"
    )
    parser.add_argument("tjd", type=int, help="Truncated Julian Date")
    parser.add_argument("sod", type=int, help="Centiseconds of day")
    args = parser.parse_args(argv)

    print(f"TJD {args.tjd} SOD {args.sod}")
    print(f"Date: {format_alert_date(tjd_to_datetime(args.tjd, args.sod))}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

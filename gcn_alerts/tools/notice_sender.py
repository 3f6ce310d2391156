"""
GCN Notice Sender

Test client that builds one GCN notice packet and sends it to a running
daemon, either over TCP (imitating the GCN socket server and reading the
160 byte echo back) or as a multicast datagram.

Usage:
    python -m gcn_alerts.tools.notice_sender --host localhost --port 5000 \\
        --ra 05:34:30.0 --dec +22:00:52.0 --error 2.0 --trigger 100
    python -m gcn_alerts.tools.notice_sender --multicast 224.103.114.98 --port 2005 --imalive
"""

import argparse
import asyncio
import sys
import time
from typing import List, Optional

from gcn_alerts.generators.notice_generator import NoticePacketBuilder
from gcn_alerts.log import configure_logging
from gcn_alerts.parsers.angles import parse_dec, parse_ra
from gcn_alerts.parsers.layouts import PACKET_LENGTH
from gcn_alerts.parsers.notice_types import NoticeType, notice_label
from gcn_alerts.parsers.time_codec import parse_alert_date
from gcn_alerts.shared.multicast import send_multicast

# XRT misc word bit 0: point source found
XRT_MISC_POINT_SOURCE = 0x1


def build_packet(args: argparse.Namespace) -> bytes:
    """Build the packet described by the command line"""
    builder = NoticePacketBuilder(first_serial=args.serial)
    if args.imalive:
        return builder.imalive()

    burst_time = args.date
    ra_deg = float(args.ra.degree)
    dec_deg = float(args.dec.degree)
    if args.xrt:
        return builder.position_notice(
            NoticeType.SWIFT_XRT_POSITION, args.trigger, args.sequence, ra_deg, dec_deg, burst_time,
            error_radius_arcmin=args.error, misc=XRT_MISC_POINT_SOURCE
        )
    notice_type = NoticeType.SWIFT_BAT_GRB_POS_TEST if args.test else NoticeType.SWIFT_BAT_GRB_POSITION
    return builder.swift_bat_position(
        args.trigger, args.sequence, ra_deg, dec_deg,
        error_arcmin=args.error, burst_time=burst_time, notice_type=notice_type
    )


async def send_tcp(packet: bytes, host: str, port: int, read_reply: bool = True) -> Optional[float]:
    """
    Send a packet over TCP.

    Returns:
        Round trip time in milliseconds when the reply was read, else None
    """
    reader, writer = await asyncio.open_connection(host, port)
    try:
        start = time.monotonic()
        writer.write(packet)
        await writer.drain()
        if not read_reply:
            return None
        await reader.readexactly(len(packet))
        return (time.monotonic() - start) * 1000
    finally:
        writer.close()
        await writer.wait_closed()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Send one GCN notice packet to a daemon")
    parser.add_argument("--host", default="localhost", help="TCP destination host")
    parser.add_argument("--port", type=int, default=2005, help="TCP or multicast destination port")
    parser.add_argument("--multicast", metavar="GROUP", help="Send as a datagram to this multicast group")
    parser.add_argument("--imalive", action="store_true", help="Send an IMALIVE heartbeat")
    parser.add_argument("--xrt", action="store_true", help="Send a Swift XRT position (type 67)")
    parser.add_argument("--test", action="store_true", help="Send the Swift BAT test type (82)")
    parser.add_argument("--ra", type=parse_ra, default=parse_ra("00:00:00"), help="RA as HH:MM:SS.ss")
    parser.add_argument("--dec", type=parse_dec, default=parse_dec("+00:00:00"), help="Dec as +DD:MM:SS.ss")
    parser.add_argument("--error", type=float, default=3.0, help="Error radius in arcminutes")
    parser.add_argument("--trigger", type=int, default=0, help="Trigger number")
    parser.add_argument("--sequence", type=int, default=0, help="Sequence number")
    parser.add_argument("--serial", type=int, default=1, help="Packet serial number")
    parser.add_argument("--date", type=parse_alert_date, help="Burst date yyyy-MM-ddTHH:mm:ss (default now)")
    parser.add_argument("--no-reply", action="store_true", help="Do not wait for the TCP echo")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log = configure_logging("NOTICE_SENDER")

    packet = build_packet(args)
    notice_type = int.from_bytes(packet[:4], "big")
    log.info(f"Sending {notice_label(notice_type)} ({len(packet)} bytes)")
    if len(packet) != PACKET_LENGTH:
        log.error(f"Built packet has {len(packet)} bytes, expected {PACKET_LENGTH}")
        return 1

    try:
        if args.multicast:
            sent = send_multicast(packet, args.multicast, args.port)
            log.info(f"Sent {sent} bytes to {args.multicast}:{args.port}")
        else:
            rtt = await send_tcp(packet, args.host, args.port, read_reply=not args.no_reply)
            if rtt is not None:
                log.info(f"Reply received from {args.host}:{args.port}, round trip {rtt:.1f}ms")
            else:
                log.info(f"Sent to {args.host}:{args.port}")
    except (OSError, asyncio.IncompleteReadError) as e:
        log.error(f"Sending failed: {e}")
        return 1
    return 0


def run_main():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_main()

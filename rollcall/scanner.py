from __future__ import annotations

"""
Headless check-in desk.

    python -m rollcall.scanner [--config PATH] [--event ID] [--manual]

Runs the camera scan loop against the configured store. With --manual the
operator can also type registration numbers on stdin (one per line); both
paths share the same check-in tail. A heartbeat line with the loop counters
is logged every 10 seconds.
"""

import argparse
import asyncio
import logging
import sys

from . import config_loader as _config_module
from .checkin import CAMERA_ERROR, Signal
from .config_loader import get_log_level, load_config
from .errors import CheckInError, EventNotFound
from .manual import submit_manual
from .runtime import Runtime, build_runtime

log = logging.getLogger("scanner")

HEARTBEAT_S = 10.0


def _print_signal(signal: Signal) -> None:
    print(f"[{signal.kind}] {signal.message}", flush=True)


async def _heartbeat(rt: Runtime) -> None:
    """Periodic log line so ops can see counters move."""
    try:
        while True:
            await asyncio.sleep(HEARTBEAT_S)
            logging.getLogger("scanner.hb").info("heartbeat", extra=rt.controller.status()["counters"])
    except asyncio.CancelledError:
        return


async def _manual_input(rt: Runtime, stop_evt: asyncio.Event) -> None:
    while not stop_evt.is_set():
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            stop_evt.set()
            return
        text = line.strip()
        if not text:
            continue
        try:
            await submit_manual(rt.service, text, rt.actor)
        except CheckInError as e:
            log.info("manual_checkin_failed", extra={"kind": type(e).__name__, "err": str(e)})


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------


def _parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="RollCall headless scanner")
    ap.add_argument("--config", help="Path to config/config.yaml (optional)")
    ap.add_argument("--event", help="Event id to check in to (default: next upcoming)")
    ap.add_argument("--manual", action="store_true", help="Also accept typed ids on stdin")
    return ap.parse_args()


async def _amain() -> int:
    args = _parse_args()

    cfg_dict = load_config(args.config)
    _config_module.use_config(cfg_dict)  # accessors read the same config

    logging.basicConfig(
        level=getattr(logging, get_log_level("INFO"), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    rt = build_runtime()
    rt.service.signals.subscribe(_print_signal)

    if args.event:
        try:
            rt.service.select_event(args.event)
        except EventNotFound:
            log.error("unknown_event", extra={"event_id": args.event})
            await rt.aclose()
            return 2
    if not rt.service.selected_event_id:
        log.error("no_event_selected")
        await rt.aclose()
        return 2

    log.info("scanner_start", extra={"event_id": rt.service.selected_event_id, "manual": args.manual})

    stop_evt = asyncio.Event()
    hb_task = asyncio.create_task(_heartbeat(rt), name="scanner_heartbeat")
    tasks = [hb_task]
    if args.manual:
        tasks.append(asyncio.create_task(_manual_input(rt, stop_evt), name="manual_input"))
    else:
        # camera-only desk has nothing left to do once the camera is gone
        def _on_signal(signal: Signal) -> None:
            if signal.kind == CAMERA_ERROR:
                stop_evt.set()
        rt.service.signals.subscribe(_on_signal)

    rt.controller.start()
    try:
        await stop_evt.wait()
    except asyncio.CancelledError:
        log.info("scanner_run_cancelled")
    finally:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await rt.aclose()
        log.info("scanner_stop", extra=rt.controller.status()["counters"])
    return 0


def main() -> None:
    try:
        code = asyncio.run(_amain())
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()

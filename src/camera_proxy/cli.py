#!/usr/bin/env python3
"""
Camera Matrix Proxy trace replay
Feeds a recorded JSON-lines event trace through the engine and reports the
resulting matrix bank
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .core.config import EngineConfig, load_config
from .core.engine import CameraMatrixEngine
from .core.matrix_bank import MatrixSlot
from .core.profile_store import ProfileStore

logger = logging.getLogger(__name__)

EVENT_TYPES = ("bind", "write", "draw", "present")


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None):
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def read_trace(lines: Iterable[str]) -> Iterator[Dict[str, Any]]:
    """Parse trace lines, skipping blanks, comments and malformed events"""
    for number, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            event = json.loads(line)
        except ValueError as e:
            logger.warning(f"Trace line {number}: invalid JSON ({e})")
            continue
        if not isinstance(event, dict) or event.get("event") not in EVENT_TYPES:
            logger.warning(f"Trace line {number}: unknown event")
            continue
        yield event


def replay(engine: CameraMatrixEngine, events: Iterable[Dict[str, Any]]) -> int:
    """Dispatch events to the engine; returns the number applied"""
    applied = 0
    for event in events:
        kind = event["event"]
        try:
            shader = int(event.get("shader", 0))
            if kind == "bind":
                engine.on_shader_bind(shader, event.get("hash"))
            elif kind == "write":
                engine.on_constant_write(shader, int(event.get("start", 0)), event.get("floats", []))
            elif kind == "draw":
                engine.on_draw(shader)
            else:
                engine.end_frame()
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed {kind} event: {e}")
            continue
        applied += 1
    return applied


def bank_report(engine: CameraMatrixEngine) -> Dict[str, Any]:
    report = {}
    for slot in MatrixSlot:
        reading = engine.get_matrix(slot)
        report[slot.value] = {
            "valid": reading.valid,
            "matrix": reading.value.tolist(),
            "provenance": reading.provenance.to_dict() if reading.provenance else None,
        }
    return report


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Replay a shader-constant trace through the camera matrix engine")
    parser.add_argument("trace", type=Path, help="JSON-lines event trace")
    parser.add_argument("--config", type=Path, help="Configuration file path")
    parser.add_argument("--profiles", type=Path, help="Profile store path (memory only if omitted)")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--status", action="store_true", help="Include engine status in the report")

    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    config = load_config(args.config) if args.config else EngineConfig()
    engine = CameraMatrixEngine(config=config, profile_store=ProfileStore(args.profiles))

    try:
        with open(args.trace) as f:
            applied = replay(engine, read_trace(f))
    except OSError as e:
        logger.error(f"Could not read trace {args.trace}: {e}")
        return 1

    logger.info(f"Replayed {applied} events over {engine.frame} frames")

    report: Dict[str, Any] = {"matrices": bank_report(engine)}
    if args.status:
        report["status"] = engine.status()
    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())

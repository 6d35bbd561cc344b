#!/usr/bin/env python3
"""Ghost clip tool: inspect, list and demo-record pose recordings."""

import argparse
import logging
import math
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from ghostclip.modules.m4_serialization import FileStore
from ghostclip.sessions import SessionManager
from ghostclip.shared.constants import DEFAULT_SAVE_ROOT
from ghostclip.shared.models import SubPartKind, SubPartMeta, Transform
from ghostclip.shared.options import (
    CompressionMethod, FileOptions, PlaybackOptions, QuantizationMethod, RecordOptions,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)-8s  %(message)s", datefmt="%H:%M:%S")
log = logging.getLogger(__name__)

_COMPRESSION = {m.name.lower(): m for m in CompressionMethod}
_QUANTIZATION = {m.name.lower().replace("standard_", ""): m for m in QuantizationMethod}


def _args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Ghost clip recordings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py demo --quantization low --compression zstd\n"
            "  python main.py list --root saved/ghostclip --tags arena\n"
            "  python main.py info saved/ghostclip/demo/walk.bin\n"
        ),
    )
    sub = p.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="print a recording header without reading its payload")
    info.add_argument("path")

    ls = sub.add_parser("list", help="list saved recordings")
    ls.add_argument("--root", default=DEFAULT_SAVE_ROOT)
    ls.add_argument("--level", default=None)
    ls.add_argument("--tags", nargs="*", default=[])

    demo = sub.add_parser("demo", help="record, save and replay a synthetic walker")
    demo.add_argument("--root", default=DEFAULT_SAVE_ROOT)
    demo.add_argument("--name", default="walk")
    demo.add_argument("--duration", type=float, default=4.0)
    demo.add_argument("--max-record-time", type=float, default=3.0)
    demo.add_argument("--sampling-interval", type=float, default=0.1)
    demo.add_argument("--compression", default="zlib", choices=sorted(_COMPRESSION))
    demo.add_argument("--quantization", default="medium", choices=sorted(_QUANTIZATION))
    demo.add_argument("--rate", type=float, default=1.0)
    demo.add_argument("--loop", action="store_true")
    return p.parse_args()


def _cmd_info(args: argparse.Namespace) -> int:
    loaded = FileStore.load_header_from_path(args.path)
    if loaded is None:
        return 1
    fh, header = loaded
    print(f"file      : {header.file_name}  (level {header.level_name})")
    print(f"options   : {fh.options.compression.name} / {fh.options.quantization.name}")
    print(f"body size : {fh.uncompressed_size} bytes uncompressed")
    print(f"length    : {header.total_length:.2f}s  (max {header.max_record_time:.2f}s, "
          f"every {header.sampling_interval:.3f}s)")
    print(f"tags      : {header.tags}")
    print(f"entities  : {len(header.actor_user_data)}")
    print(f"spawn     : {header.spawn_transform}")
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    store = FileStore(args.root)
    headers = store.load_headers_with_tags(args.tags, args.level)
    for (level, name), header in sorted(headers.items()):
        print(f"{level:<20} {name:<40} {header.total_length:6.2f}s  {','.join(header.tags)}")
    print(f"\n{len(headers)} recording(s) under {args.root}")
    return 0


def _walker_pose(t: float):
    """Root walks along +X with a bobbing two-bone leg."""
    root = Transform.from_euler(location=(t * 1.5, 0.0, 0.9 + 0.05 * math.sin(t * 6.0)),
                                euler_deg=(0.0, 0.0, 10.0 * math.sin(t)))
    swing = 30.0 * math.sin(t * 6.0)
    bones = [
        Transform.from_euler(location=(0.0, 0.1, -0.45), euler_deg=(swing, 0.0, 0.0)),
        Transform.from_euler(location=(0.0, 0.0, -0.45), euler_deg=(max(0.0, -swing), 0.0, 0.0)),
    ]
    return {"Root": root, "Body": root}, {"Body": bones}


def _cmd_demo(args: argparse.Namespace) -> int:
    options = RecordOptions(
        group_name="demo",
        file_name=args.name,
        tags=["demo", "walker"],
        max_record_time=args.max_record_time,
        sampling_interval=args.sampling_interval,
    )
    file_options = FileOptions(_COMPRESSION[args.compression], _QUANTIZATION[args.quantization])

    with SessionManager(FileStore(args.root), file_options, level_name="demo") as sessions:
        recorder = sessions.start_recording("walker", options, now=0.0, is_main=True)
        recorder.attach(SubPartMeta("Root", SubPartKind.STATIC_MESH, asset_path="/Meshes/Capsule"))
        recorder.attach(SubPartMeta("Body", SubPartKind.SKELETAL_MESH, asset_path="/Meshes/Walker"))

        step = options.sampling_interval / 2.0
        t = 0.0
        while t <= args.duration:
            sessions.tick(t, {"walker": lambda t=t: _walker_pose(t)})
            t += step

        future = sessions.stop_recording("demo", now=args.duration)
        if future is None or future.result() is None:
            print("recording was not saved")
            return 1
        sessions.wait_for_saves()
        print(f"saved → {future.result()}")

        playback = PlaybackOptions(playback_rate=args.rate, looping=args.loop)
        playback_id = sessions.start_playback("demo", args.name, playback, now=0.0)
        if playback_id is None:
            return 1
        group = sessions.playback_group(playback_id)
        length = group.player.duration
        for i in range(5):
            now = length * i / 4
            frames = sessions.tick(now).get(playback_id, [])
            for frame in frames:
                root = frame.transforms.get("Root")
                if root is not None:
                    print(f"t={now:5.2f}s  root={root}  on={frame.activated} off={frame.deactivated}")
        sessions.stop_playback(playback_id)
    return 0


def main() -> None:
    args = _args()
    handlers = {"info": _cmd_info, "list": _cmd_list, "demo": _cmd_demo}
    sys.exit(handlers[args.command](args))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Run one mirror capture from an image file instead of the webcam.

Examples:
  python -m client.cli selfie.jpg
  python -m client.cli selfie.jpg --tone roast --intensity 3
  python -m client.cli selfie.png --mode avatar --audio-out line.mp3
"""

from __future__ import annotations
import argparse
import asyncio
import base64
import logging
import mimetypes
import sys
from pathlib import Path

from client.api import MirrorApi
from client.session import MAX_POLL_ATTEMPTS, POLL_INTERVAL_SECONDS, MirrorSession


def to_data_uri(path: Path) -> str:
    mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="mirror",
        description="Send a photo to the mirror backend and wait for its reaction clip.",
    )
    p.add_argument("image_path", type=Path, help="Path to a JPEG/PNG/WebP/GIF image.")
    p.add_argument("--base-url", default="http://localhost:8000", help="Backend base URL.")
    p.add_argument("--tone", choices=["compliment", "roast", "coach"], default="coach")
    p.add_argument("--intensity", type=int, choices=[0, 1, 2, 3], default=1)
    p.add_argument("--mode", default="seedance", help="seedance (image to video) or avatar (speech + talking video).")
    p.add_argument("--voice", default=None, help="Voice id for speech synthesis.")
    p.add_argument("--interval", type=float, default=POLL_INTERVAL_SECONDS, help="Seconds between status checks.")
    p.add_argument("--attempts", type=int, default=MAX_POLL_ATTEMPTS, help="Status checks before giving up.")
    p.add_argument("--audio-out", type=Path, default=None, help="Write the spoken line to this file.")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose console logs.")
    return p.parse_args()


async def run(args: argparse.Namespace) -> int:
    async with MirrorApi(args.base_url) as api:
        session = MirrorSession(
            api,
            intensity=args.intensity,
            tone=args.tone,
            mode=args.mode,
            voice=args.voice,
            poll_interval=args.interval,
            max_attempts=args.attempts,
        )
        ok = await session.handle_capture(to_data_uri(args.image_path))
        state = session.state
        if not ok:
            for notice in state.notices:
                print(f"[error] {notice}", file=sys.stderr)
            return 3

        print(f"[{state.mood}] {state.message}")
        await session.wait()

        if state.audio and args.audio_out:
            args.audio_out.write_bytes(state.audio)
            print(f"Wrote: {args.audio_out}")
        for notice in state.notices:
            print(f"[warn] {notice}", file=sys.stderr)
        if state.reaction_url:
            print(f"Reaction clip: {state.reaction_url}")
            return 0
        print("No reaction clip (still processing or failed).", file=sys.stderr)
        return 4


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.image_path.exists() or not args.image_path.is_file():
        print(f"[error] Input file not found: {args.image_path.resolve()}", file=sys.stderr)
        return 2
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())

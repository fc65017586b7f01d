#!/usr/bin/env python3
"""
Offline client for the cutoff API: plays the asset through the live lowpass, freezes the
cutoff on the server and renders the crossfade into a WAV file.

Usage:
    python crossfade_player.py <server_url> [--asset test-audio.mp3] [--cutoff 800]

Examples:
    python crossfade_player.py http://localhost:8000
    python crossfade_player.py http://localhost:8000 --cutoff 500 --before 3 --after 4 --output out.wav
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import soundfile as sf

from cutoff.client.session import PlayerSession
from cutoff.core import configure_logging


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Render a live-filter -> frozen crossfade session to WAV.")
    ap.add_argument("server_url", help='Server base URL, e.g. "http://127.0.0.1:8000".')
    ap.add_argument("--asset", default="test-audio.mp3", help="Bucket asset name (default: test-audio.mp3).")
    ap.add_argument("--cutoff", type=float, default=800.0, help="Cutoff to freeze, in Hz (default: 800).")
    ap.add_argument("--before", type=float, default=2.0, help="Seconds of live playback before freezing.")
    ap.add_argument("--after", type=float, default=3.0, help="Seconds rendered after the freeze.")
    ap.add_argument("--output", default="crossfade_session.wav", help="Output WAV path.")
    return ap.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging("INFO")

    with PlayerSession(args.server_url, asset_name=args.asset) as session:
        if not session.open():
            print(f"Could not load {args.asset} from {args.server_url}", file=sys.stderr)
            return 2
        session.play()
        session.set_frequency(args.cutoff)

        chunks = [session.render(args.before)]
        if not session.submit():
            print(session.response_message, file=sys.stderr)
            return 1
        chunks.append(session.render(args.after))

        frame = session.visualizer.frame()
        audio = np.concatenate(chunks, axis=0)
        out = Path(args.output).expanduser().resolve()
        sf.write(out, audio, session.context.sample_rate)

        print(f"[OK] {session.response_message}")
        print(f"[OK] Engine state: {session.engine.state.value} | frozen: {session.is_frozen}")
        if frame is not None:
            print(f"[OK] Spectrum bins: {len(frame.frequencies)} | marker x: {frame.marker_x:.1f}")
        print(f"[OK] Rendered session: {out} ({len(audio) / session.context.sample_rate:.2f}s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

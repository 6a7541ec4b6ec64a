#!/usr/bin/env python3
"""
Trainee call CLI

Plays a WAV recording into the relay as the trainee's utterance, waits for the
agent's spoken reply and plays it through the speakers.
"""

import argparse
import asyncio
import sys
import wave
from typing import Tuple

import numpy as np

from voicerelay.client.playback import NullSink, PlaybackScheduler, SoundDeviceSink
from voicerelay.client.polling_client import RelayClient
from voicerelay.client.session import CallSession
from voicerelay.config.env_loader import (
    load_client_config,
    load_endpointer_config,
    load_env_file,
)
from voicerelay.config.logging_config import configure_logging
from voicerelay.vad.audio_processor import to_float32_mono
from voicerelay.vad.endpointer import UtteranceEndpointer

logger = configure_logging()


def load_wav(path: str) -> Tuple[np.ndarray, int]:
    """Read a WAV file as float32 mono samples plus its sample rate."""
    with wave.open(path, "rb") as wav_file:
        channels = wav_file.getnchannels()
        sample_width = wav_file.getsampwidth()
        frame_rate = wav_file.getframerate()
        audio_data = wav_file.readframes(wav_file.getnframes())
    return to_float32_mono(audio_data, sample_width, channels), frame_rate


def parse_args(argv=None) -> argparse.Namespace:
    load_env_file()
    client_cfg = load_client_config()

    parser = argparse.ArgumentParser(
        description="Run one simulated hotel call against the voice relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Speak a recorded question and hear the reply
  python -m voicerelay.client --wav question.wav

  # Headless run against a remote relay
  python -m voicerelay.client --wav question.wav --relay-url http://relay:8000/api/ws --no-audio
        """,
    )
    parser.add_argument("--wav", required=True, help="WAV recording of the trainee's utterance")
    parser.add_argument(
        "--relay-url",
        default=client_cfg.relay_url,
        help="Relay endpoint (default: %(default)s)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=client_cfg.poll_interval,
        help="Seconds between polls (default: %(default)s)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=client_cfg.request_timeout,
        help="Per-request timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--frame-ms", type=int, default=100, help="Upload frame size in ms (default: %(default)s)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for the session and for the reply (default: %(default)s)",
    )
    parser.add_argument(
        "--no-audio", action="store_true", help="Do not play the reply through the speakers"
    )
    return parser.parse_args(argv)


async def run_call(args: argparse.Namespace) -> int:
    samples, sample_rate = load_wav(args.wav)
    logger.info(f"Loaded {args.wav}: {len(samples) / sample_rate:.2f}s at {sample_rate}Hz")

    sink = NullSink() if args.no_audio else SoundDeviceSink()
    endpointer = UtteranceEndpointer.from_config(load_endpointer_config())

    async with RelayClient(args.relay_url, args.request_timeout) as client:
        call = CallSession(
            client,
            PlaybackScheduler(sink),
            endpointer,
            poll_interval=args.poll_interval,
            sample_rate=sample_rate,
        )
        await call.start()
        try:
            if not await call.wait_until_ready(args.timeout):
                logger.error("Relay session was not ready in time")
                return 1
            await call.stream_utterance(samples, frame_ms=args.frame_ms)
            if not await call.wait_for_reply(args.timeout):
                logger.error("No complete reply received in time")
                return 1
            logger.info(f"Reply played ({call.playback.played_fragments} fragments)")
            return 0
        finally:
            await call.stop(hangup=True)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run_call(args))
    except KeyboardInterrupt:
        logger.info("Call interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())

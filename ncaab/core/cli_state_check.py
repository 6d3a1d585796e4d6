#!/usr/bin/env python3
"""
State Check CLI Tool
====================
Inspect saved checkpoints without loading the trainable models.

Usage:
    # Convergence / stability summary of a saved coordinator state
    python -m ncaab.core.cli_state_check --coordinator-state checkpoints/feedback_state.json

    # Verify a saved frozen encoder against its fingerprint
    python -m ncaab.core.cli_state_check --encoder-state checkpoints/frozen_encoder.json

    # Both, with a non-default stability window
    python -m ncaab.core.cli_state_check \\
        --coordinator-state checkpoints/feedback_state.json \\
        --encoder-state checkpoints/frozen_encoder.json --window 20

Exit codes:
    0  all checks passed
    1  a state file could not be read, or --window is invalid
    2  the frozen encoder failed its integrity check
"""

import argparse
import json
import logging
import sys

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNREADABLE = 1
EXIT_INTEGRITY = 2


def check_coordinator_state(path: str, window: int = None) -> int:
    """Print a convergence/stability summary of a saved feedback state."""
    from ncaab.config.thresholds import get_feedback_config
    from ncaab.core.exceptions import ConfigurationError
    from ncaab.core.schemas import FeedbackState
    from ncaab.models.feedback_coordinator import history_converged, stability_report

    try:
        with open(path) as f:
            state = FeedbackState.from_record(json.load(f))
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read coordinator state {path}: {e}")
        return EXIT_UNREADABLE

    overrides = {}
    if window is not None:
        overrides = {"stability_window": window, "max_history_length": max(2 * window, 1000)}
    try:
        config = get_feedback_config(**overrides)
    except ConfigurationError as e:
        logger.error(f"Invalid stability window {window}: {e}")
        return EXIT_UNREADABLE
    report = stability_report(state, config)

    print(f"\nCoordinator State: {path}")
    print("=" * 60)
    print(f"  Iteration:          {state.iteration}")
    print(f"  Coefficient:        {state.current_coefficient:.6f}")
    print(f"  Feedback triggers:  {state.total_feedback_triggers}")
    print(f"  History length:     {len(state.loss_history)}")
    print(f"  Converged:          {history_converged(state.loss_history, config)}")
    print(f"  Stable:             {report.stable} ({report.reason})")
    print(f"  Feedback rate:      {report.feedback_rate:.2%}")
    if report.previous_feedback_rate is not None:
        print(f"  Previous rate:      {report.previous_feedback_rate:.2%}")

    return EXIT_OK


def check_encoder_state(path: str) -> int:
    """Rebuild a saved frozen encoder; fails if its parameters do not match the fingerprint."""
    from ncaab.core.exceptions import IntegrityViolationError, ModelLoadError
    from ncaab.models.frozen_encoder import FrozenEncoder

    try:
        encoder = FrozenEncoder.load(path)
    except IntegrityViolationError as e:
        logger.error(str(e))
        print(f"\n❌ Frozen encoder {path}: INTEGRITY VIOLATION")
        return EXIT_INTEGRITY
    except ModelLoadError as e:
        logger.error(str(e))
        return EXIT_UNREADABLE

    stats = encoder.stats()
    print(f"\n✅ Frozen encoder {path}: fingerprint verified")
    print(f"  Dimensions:   {stats['input_dim']} -> {stats['latent_dim']}")
    print(f"  Parameters:   {stats['parameter_count']:,}")
    print(f"  Fingerprint:  {stats['fingerprint']}")

    return EXIT_OK


def main(argv=None) -> int:
    """Main entry point."""
    from ncaab.core.logging_config import add_logging_args, setup_logging

    parser = argparse.ArgumentParser(
        description="Checkpoint state check tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--coordinator-state", help="Saved feedback coordinator state (JSON)")
    parser.add_argument("--encoder-state", help="Saved frozen encoder state (JSON)")
    parser.add_argument("--window", type=int, help="Stability window override")
    add_logging_args(parser)

    args = parser.parse_args(argv)

    setup_logging(
        "state_check",
        level=logging.DEBUG if args.debug else None,
        console_format="json" if args.log_json else "text",
        quiet=args.quiet,
    )

    if not args.coordinator_state and not args.encoder_state:
        parser.print_help()
        return EXIT_OK

    exit_code = EXIT_OK
    if args.coordinator_state:
        exit_code = max(exit_code, check_coordinator_state(args.coordinator_state, args.window))
    if args.encoder_state:
        exit_code = max(exit_code, check_encoder_state(args.encoder_state))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())

"""
Interactive CLI adapter for the image arena.

Architectural role:
- Terminal interface over `arena.core.engine.ArenaEngine`.
- Prints provider availability at startup for operator visibility.

Request lifecycle (per line):
1. Read stdin.
2. Handle local commands (`exit`/`quit`, `status`, `stats`).
3. Treat any other text as a prompt and generate a pair.
4. Print the provider used and the two image URLs.

Error handling strategy:
- Generation and store errors are printed and the loop continues.
- EOF and keyboard interrupts terminate the loop without traceback output.
"""

import logging
import sys

from arena import config
from arena.core.engine import ArenaEngine, build_engine
from arena.core.errors import ArenaError


# =========================================================
# UTF-8 SAFE OUTPUT
# =========================================================

if hasattr(sys.stdout, "reconfigure"):
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="ignore")
    except (AttributeError, OSError, ValueError):
        pass


# =========================================================
# RENDERING
# =========================================================

def print_status(engine: ArenaEngine):
    print("PROVIDER STATUS:")
    for name, status in engine.provider_status().items():
        state = "available" if status["available"] else f"unavailable ({status['last_error'] or 'unknown'})"
        print(f"  {name:<15} {state}  errors={status['consecutive_error_count']}")


def print_stats(engine: ArenaEngine):
    stats = engine.statistics()
    print(f"Total votes: {stats['total_votes']}")
    print(f"Left wins:   {stats['side_wins']['left']}")
    print(f"Right wins:  {stats['side_wins']['right']}")
    for provider in engine.leaderboard():
        print(f"  {provider.provider:<15} {provider.win_rate:5.1f}%  ({provider.total_votes} votes)")


def handle_line(engine: ArenaEngine, line: str) -> bool:
    """Process one input line. Returns False when the session should end."""
    command = line.strip()
    if not command:
        return True

    lowered = command.lower()
    if lowered in ("exit", "quit"):
        print("Shutting down.")
        return False

    try:
        if lowered == "status":
            print_status(engine)
        elif lowered == "stats":
            print_stats(engine)
        else:
            print("\nGenerating...\n")
            result, pair = engine.generate_pair(command)
            print(f"Provider: {result.provider} ({result.duration:.1f}s)")
            if pair is not None:
                print(f"Pair:     {pair.pair_id}")
                print(f"Left:     {pair.left_url}")
                print(f"Right:    {pair.right_url}")
            else:
                for image in result.images:
                    print(f"Image:    {image.storage_location}")
    except ArenaError as exc:
        print(f"Error [{exc.code}]: {exc}")

    print("\n" + "-" * 60 + "\n")
    return True


# =========================================================
# MAIN APPLICATION LOOP
# =========================================================

def main(engine: ArenaEngine | None = None):
    """Run the interactive terminal session."""
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
    engine = engine or build_engine()

    print("Image Arena started. Type a prompt, 'status', 'stats' or 'exit'.\n")
    print("-" * 60)
    print_status(engine)
    print("-" * 60)

    while True:
        try:
            line = input("Prompt: ")
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print("\nInterrupted.")
            break

        if not handle_line(engine, line):
            break


if __name__ == "__main__":
    main()

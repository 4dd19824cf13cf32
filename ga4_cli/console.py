"""Terminal messages for ga4-cli.

Everything here writes to stderr, leaving stdout to the rendered report.
"""
import sys


def say(message=""):
    print(message, file=sys.stderr)


def ask(message):
    """Prompt on stderr and read one line from stdin. Returns "" at end of input."""
    sys.stderr.write(message)
    sys.stderr.flush()
    return sys.stdin.readline().rstrip("\n")

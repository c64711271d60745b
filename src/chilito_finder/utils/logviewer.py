import argparse
import json
from typing import Optional, Sequence

from colorama import init, Fore, Style

COLORS = {
    "DEBUG": Fore.BLUE,
    "INFO": Fore.GREEN,
    "WARNING": Fore.YELLOW,
    "ERROR": Fore.RED,
    "CRITICAL": Fore.RED + Style.BRIGHT
}

LEVEL_PRIORITIES = {
    "DEBUG": 0,
    "INFO": 1,
    "WARNING": 2,
    "ERROR": 3,
    "CRITICAL": 4
}

CONTEXT_FIELDS = ["operation", "search_id", "strategy", "store_id", "result", "status"]


def format_log_entry(entry: str, color: bool = True) -> str:
    try:
        data = json.loads(entry)
    except json.JSONDecodeError:
        return entry  # Return the original line if not valid JSON

    level = data.get("level", "INFO")
    start = COLORS.get(level, "") if color else ""
    reset = Style.RESET_ALL if color else ""

    timestamp = data.get("timestamp", "")
    message = data.get("message", "")

    context = [f"{field}={data[field]}" for field in CONTEXT_FIELDS if data.get(field) is not None]

    # Format request metrics if present
    if isinstance(data.get("metrics"), dict):
        metrics = data["metrics"]
        context.append(f"requests={metrics.get('total_requests', 0)}")
        context.append(f"failed={metrics.get('failed_requests', 0)}")

    context_str = " | ".join(context)
    return f"{timestamp} {start}{level.ljust(8)}{reset} {message} [{context_str}]"


def should_show(
        line: str,
        level: Optional[str] = None,
        text: Optional[str] = None,
        operation: Optional[str] = None
        ) -> bool:
    """Apply the level / text / operation filters to one raw log line."""
    if text and text.lower() not in line.lower():
        return False
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return not (level or operation)

    if level and LEVEL_PRIORITIES.get(data.get("level", ""), 0) < LEVEL_PRIORITIES[level]:
        return False
    if operation and data.get("operation", "") != operation:
        return False
    return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Pretty print chilito JSON log files")
    parser.add_argument("logfile", help="Path to the JSON log file")
    parser.add_argument("-l", "--level", choices=list(LEVEL_PRIORITIES),
                        help="Minimum log level to display")
    parser.add_argument("-f", "--filter", help="Only show logs containing this text")
    parser.add_argument("-o", "--operation", help="Filter by operation type (geocode, locate, verify_menu, ...)")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    args = parser.parse_args(argv)

    init()  # Initialize colorama

    with open(args.logfile, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if should_show(line, args.level, args.filter, args.operation):
                print(format_log_entry(line, color=not args.no_color))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

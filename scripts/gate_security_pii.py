#!/usr/bin/env python3
"""Gate: Security & PII check for runtime sources.

Webhook payloads carry phone numbers, WhatsApp JIDs, names, message text and
signed media URLs. This gate fails if:
- print( is found in runtime code (src/**)
- a logger call mentions a sensitive field without a redaction helper
- a logger call passes extra_fields not built by safe_log_context

Logger calls are checked as a whole, across every line up to the closing
parenthesis.

Usage:
    python scripts/gate_security_pii.py
"""

import re
import sys
from pathlib import Path

# Keywords that must not appear in logger calls without redaction
SENSITIVE_KEYWORDS = (
    "payload",
    "body",
    "request.json",
    "phone",
    "sender",
    "chatid",
    "jid",
    "text",
    "content",
    "media_url",
    "source_url",
    "image_preview",
)

# Pattern for print statements
PRINT_PATTERN = re.compile(r"\bprint\s*\(")

# Pattern for logger calls: logger.info/debug/warning/error/critical(...)
LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

# Patterns that indicate proper redaction usage
REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
    "phone_tail",
)


def _call_text(lines: list[str], start: int) -> str:
    """Join lines from a logger call until its parentheses balance."""
    depth = 0
    collected: list[str] = []
    for line in lines[start:]:
        code = line.split("#", 1)[0]
        collected.append(code)
        depth += code.count("(") - code.count(")")
        if depth <= 0:
            break
    return "\n".join(collected)


def _is_print_call(line: str) -> bool:
    code_part = line.split("#", 1)[0]
    return bool(PRINT_PATTERN.search(code_part))


def check_file(filepath: Path) -> list[str]:
    """Check a single file for violations. Returns list of error messages."""
    errors = []
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []  # Skip binary files

    lines = content.splitlines()

    for index, line in enumerate(lines):
        lineno = index + 1
        if line.lstrip().startswith("#"):
            continue

        if _is_print_call(line):
            errors.append(f"{filepath}:{lineno}: print() not allowed in runtime code")

        if not LOGGER_CALL_PATTERN.search(line):
            continue

        call = _call_text(lines, index)
        has_redaction = any(rp in call for rp in REDACTION_PATTERNS)

        if "extra_fields" in call and "safe_log_context" not in call:
            errors.append(
                f"{filepath}:{lineno}: extra_fields must be built with safe_log_context"
            )

        call_lower = call.lower()
        for keyword in SENSITIVE_KEYWORDS:
            if keyword in call_lower and not has_redaction:
                errors.append(
                    f"{filepath}:{lineno}: logger call with '{keyword}' "
                    "must use redaction (safe_log_context/phone_tail)"
                )

    return errors


def main() -> int:
    """Run gate check on src directory."""
    src_dir = Path("src")

    if not src_dir.exists():
        # Try from project root
        src_dir = Path(__file__).parent.parent / "src"

    if not src_dir.exists():
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors: list[str] = []

    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))

    if all_errors:
        sys.stderr.write("Security/PII gate FAILED:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("Security/PII gate PASSED\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""CLI for mapping a recording onto credential roles without the web UI.

Usage:
    # Show the candidate fields of a recording with their extraction index
    python -m app.rotator_cli recording.json --list-fields

    # Map fields by index and write the payload
    python -m app.rotator_cli recording.json --username 0 --password 1 --new-password 2 --output payload.json

    # Sweep any leftover fields into a bucket and override generation options
    python -m app.rotator_cli recording.json --username 0 --password 1 --new-password 2 \\
        --assign-rest passwordMappings --option length=24 --option symbols=false
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.recorder.field_extractor import decode_field_id, field_digest
from app.recorder.recording_loader import MalformedInputError
from app.services.field_partition import UNASSIGNED_BUCKET, MoveError
from app.services.payload_service import NotReady
from app.services.rotation_session import RotationSession

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_NOT_READY = 2

ROLE_FLAGS: Tuple[Tuple[str, str], ...] = (
    ("username", "usernameMappings"),
    ("password", "passwordMappings"),
    ("new_password", "newPasswordMappings"),
)


def parse_option(text: str) -> Tuple[str, Any]:
    """Split ``key=value``; the value is read as JSON when possible (true, 24), else kept as text."""
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"Expected key=value, got {text!r}")
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    return key.strip(), parsed


def assign_by_index(session: RotationSession, fields: Sequence[str], bucket: str, indexes: Sequence[int]) -> None:
    for index in indexes:
        if not 0 <= index < len(fields):
            raise MoveError(f"No field with extraction index {index}")
        field_id = fields[index]
        current = session.partition.bucket_of(field_id)
        if current != UNASSIGNED_BUCKET:
            raise MoveError(f"Field {index} is already mapped to {current}")
        source_index = session.partition.unassigned.index(field_id)
        session.move(field_id, UNASSIGNED_BUCKET, source_index, bucket, len(session.partition.bucket(bucket)))


def sweep_unassigned(session: RotationSession, bucket: str) -> None:
    for field_id in list(session.partition.unassigned):
        session.move(field_id, UNASSIGNED_BUCKET, 0, bucket, len(session.partition.bucket(bucket)))


def print_fields(fields: Sequence[str]) -> None:
    if not fields:
        print("No change steps with selectors found in this recording.")
        return
    for index, field_id in enumerate(fields):
        print(f"[{index}] {field_digest(field_id)}  {json.dumps(decode_field_id(field_id), ensure_ascii=False)}")


async def run(args: argparse.Namespace) -> int:
    session = RotationSession()
    try:
        await session.load_file(args.recording)
    except MalformedInputError as exc:
        logger.error("Cannot load recording: %s", exc)
        return EXIT_INVALID

    fields = list(session.partition.fields)
    if args.list_fields:
        print_fields(fields)
        return EXIT_OK

    options: Dict[str, Any] = dict(args.option or [])
    try:
        if options:
            session.update_options(options)
        for attr, bucket in ROLE_FLAGS:
            assign_by_index(session, fields, bucket, getattr(args, attr) or [])
        if args.assign_rest:
            sweep_unassigned(session, args.assign_rest)
    except ValidationError as exc:
        logger.error("Invalid generation options: %s", exc)
        return EXIT_INVALID
    except MoveError as exc:
        logger.error("Invalid mapping: %s", exc)
        return EXIT_INVALID

    try:
        payload = session.synthesize()
    except NotReady as exc:
        logger.error("%s", exc)
        return EXIT_NOT_READY

    text = payload.to_json()
    if args.output:
        args.output.write_text(text + "\n", encoding="utf-8")
        logger.info("Payload written to %s", args.output)
    else:
        print(text)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Map recorded input fields to credential roles and generate a rotation payload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("recording", type=Path, help="Recording JSON exported from the browser recorder")
    parser.add_argument("--list-fields", action="store_true", help="List candidate fields and exit")
    parser.add_argument("--username", type=int, action="append", metavar="INDEX", help="Field index for the username role")
    parser.add_argument("--password", type=int, action="append", metavar="INDEX", help="Field index for the current password role")
    parser.add_argument(
        "--new-password",
        dest="new_password",
        type=int,
        action="append",
        metavar="INDEX",
        help="Field index for the new password role",
    )
    parser.add_argument(
        "--assign-rest",
        choices=[bucket for _, bucket in ROLE_FLAGS],
        help="Bucket receiving every field not mapped explicitly",
    )
    parser.add_argument("--option", type=parse_option, action="append", metavar="KEY=VALUE", help="Generation option override")
    parser.add_argument("--output", type=Path, help="Write the payload here instead of stdout")
    parser.add_argument("--verbose", action="store_true", help="Verbose output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())

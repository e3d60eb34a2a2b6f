"""
Command line front end for FileOps.

Every sub-command maps to one FileOps operation and runs inside
``halt_on_failure``, so a failed filesystem call ends the process with
status 1 after the message is logged:

    fileops mkdir ./exports -p
    fileops write ./exports/report.csv "a,b"
    fileops zip reports.zip ./exports/report.csv --folder ./archives
    fileops serve --root ./exports --no-advertise
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from fileops.core.config import Settings, load_settings
from fileops.core.file_ops import FileOps, SortOrder
from fileops.core.halt import halt_on_failure
from fileops.frontend.cli.logging_config import configure_logging

SORT_CHOICES = {
    "asc": SortOrder.ASCENDING,
    "desc": SortOrder.DESCENDING,
    "none": SortOrder.NONE,
}


def _octal(value: str) -> int:
    try:
        return int(value, 8)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an octal mode: {value!r}")


def build_arg_parser(settings: Optional[Settings] = None) -> argparse.ArgumentParser:
    settings = settings or Settings()
    parser = argparse.ArgumentParser(
        prog="fileops", description="Fail-fast file and folder operations"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("mkdir", help="Create a folder")
    p.add_argument("path")
    p.add_argument("--mode", type=_octal, default=settings.folder_mode)
    p.add_argument("-p", "--parents", action="store_true")

    p = sub.add_parser("rmdir", help="Remove an empty folder")
    p.add_argument("path")

    p = sub.add_parser("rmtree", help="Remove a folder and its content")
    p.add_argument("path")

    p = sub.add_parser("rename", help="Rename a file")
    p.add_argument("old")
    p.add_argument("new")

    p = sub.add_parser("copy", help="Copy a file")
    p.add_argument("source")
    p.add_argument("destination")

    p = sub.add_parser("move", help="Move a file between folders")
    p.add_argument("name")
    p.add_argument("from_folder")
    p.add_argument("to_folder")

    p = sub.add_parser("ls", help="List a folder")
    p.add_argument("path")
    p.add_argument("--sort", choices=sorted(SORT_CHOICES), default="asc")

    p = sub.add_parser("ext", help="Print the extension of a path")
    p.add_argument("path")

    p = sub.add_parser("name", help="Print the file name without extension")
    p.add_argument("path")

    p = sub.add_parser("upload", help="Move an uploaded temp file into a folder")
    p.add_argument("tmp_path")
    p.add_argument("new_name")
    p.add_argument("folder")
    p.add_argument("--mode", type=_octal, default=settings.folder_mode)

    for name, help_text in (("write", "Overwrite a file"), ("append", "Append to a file")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("path")
        p.add_argument("content")
        p.add_argument("--little", action="store_true", help="Use the one-shot variant")

    p = sub.add_parser("cat", help="Print a file")
    p.add_argument("path")
    p.add_argument("--little", action="store_true", help="Use the one-shot variant")

    p = sub.add_parser("zip", help="Add files to a ZIP archive")
    p.add_argument("archive")
    p.add_argument("files", nargs="+")
    p.add_argument("--folder", default="")

    p = sub.add_parser("serve", help="Run the LAN download server")
    p.add_argument("--root", default=settings.serve_root)
    p.add_argument("--port", type=int, default=settings.port)
    p.add_argument("--name", default=None)
    p.add_argument("--no-advertise", action="store_true")

    sub.add_parser("version", help="Print the version")
    return parser


def run_command(ops: FileOps, args: argparse.Namespace, settings: Settings) -> None:
    """Dispatch one parsed command; HaltError propagates to the caller."""
    command = args.command
    out = sys.stdout

    if command == "mkdir":
        ops.create_folder(args.path, args.mode, args.parents)
    elif command == "rmdir":
        ops.delete_folder(args.path)
    elif command == "rmtree":
        ops.delete_tree(args.path)
    elif command == "rename":
        ops.rename_file(args.old, args.new)
    elif command == "copy":
        ops.copy_file(args.source, args.destination)
    elif command == "move":
        ops.move_file(args.name, args.from_folder, args.to_folder)
    elif command == "ls":
        ops.read_folder(args.path, SORT_CHOICES[args.sort])
        for entry in ops.last_listing:
            out.write(entry + "\n")
    elif command == "ext":
        out.write(ops.file_extension(args.path) + "\n")
    elif command == "name":
        out.write(ops.filename(args.path) + "\n")
    elif command == "upload":
        target = ops.move_uploaded_file(
            args.tmp_path, args.new_name, args.folder, args.mode
        )
        out.write(target + "\n")
    elif command == "write":
        if args.little:
            ops.write_little_file(args.path, args.content)
        else:
            ops.write_file(args.path, args.content)
    elif command == "append":
        if args.little:
            ops.append_little_file(args.path, args.content)
        else:
            ops.append_file(args.path, args.content)
    elif command == "cat":
        data = ops.read_little_file(args.path) if args.little else ops.read_file(args.path)
        out.flush()
        if hasattr(out, "buffer"):
            out.buffer.write(data)
            out.buffer.flush()
        else:
            out.write(data.decode("utf-8", "replace"))
    elif command == "zip":
        out.write(ops.create_zip(args.files, args.archive, args.folder) + "\n")
    elif command == "serve":
        from fileops.network.server import serve

        ok = serve(
            args.root,
            args.port,
            settings=settings,
            advertise=not args.no_advertise,
            name=args.name,
        )
        if not ok:
            raise SystemExit(1)
    elif command == "version":
        out.write(ops.version() + "\n")
    else:  # pragma: no cover - argparse rejects unknown commands
        raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    args = build_arg_parser(settings).parse_args(argv)
    ops = FileOps.from_settings(settings)
    with halt_on_failure():
        run_command(ops, args, settings)


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()

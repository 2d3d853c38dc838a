"""Command line entry point for the object inventory tools."""
import argparse
from dataclasses import asdict
import getpass
import json
import logging
import os
import sys

from .controller import InventoryController
from .cursor import StoreError
from .inventory import PersistenceFailed, load_snapshot
from .profiles import ConnectionProfile, ProfileStorage, profile_from_environ
from .settings import SettingsStorage, update_setting
from .ui_utils import (
    format_descriptor,
    format_partition,
    format_prefix_counts,
    format_report,
    load_package_info,
)

LOGGER = logging.getLogger(__name__)

STORE_COMMANDS = {"buckets", "ls", "recent", "snapshot", "count"}


def build_parser() -> argparse.ArgumentParser:
    info = load_package_info()
    parser = argparse.ArgumentParser(prog="pys3inv", description=info.summary)
    parser.add_argument("--version", action="version", version=f"%(prog)s {info.version or 'dev'}")
    parser.add_argument("--profile", help="saved connection profile (default: R2_* environment variables)")
    parser.add_argument("--bucket", help="bucket to inventory (overrides the profile's bucket)")
    parser.add_argument("--settings", help="path of the settings file")
    parser.add_argument("--profiles-file", help="path of the saved profiles file")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("buckets", help="list the buckets visible to the connection")

    ls_parser = commands.add_parser("ls", help="list subdirectories and files one level below a prefix")
    ls_parser.add_argument("prefix", nargs="?", default="")

    recent_parser = commands.add_parser("recent", help="show objects modified within a recent window")
    recent_parser.add_argument("prefix")
    recent_parser.add_argument("--window-ms", type=int, help="window size in milliseconds")
    recent_parser.add_argument("--limit", type=int, help="maximum number of objects to show")

    snapshot_parser = commands.add_parser("snapshot", help="write every file name under a prefix to a file")
    snapshot_parser.add_argument("prefix")
    snapshot_parser.add_argument("-o", "--output", help="destination file")

    count_parser = commands.add_parser("count", help="count objects under a prefix")
    count_parser.add_argument("prefix")
    count_parser.add_argument("--by-subdirectory", action="store_true")
    count_parser.add_argument("--skip-failed", action="store_true", help="report failing subdirectories and continue")

    reconcile_parser = commands.add_parser("reconcile", help="diff a snapshot against recorded file names")
    reconcile_parser.add_argument("snapshot", help="snapshot file written by 'snapshot'")
    reconcile_parser.add_argument("recorded", help="file with one recorded name per line")

    profiles_parser = commands.add_parser("profiles", help="manage saved connection profiles")
    profile_commands = profiles_parser.add_subparsers(dest="profiles_command", required=True)
    profile_commands.add_parser("list", help="show saved profiles")
    add_parser = profile_commands.add_parser("add", help="save a profile; the secret key is prompted for")
    add_parser.add_argument("name")
    add_parser.add_argument("--endpoint", required=True, help="S3 endpoint URL")
    add_parser.add_argument("--access-key", required=True)
    add_parser.add_argument("--bucket", dest="profile_bucket", default="")
    add_parser.add_argument("--region", default="auto")
    remove_parser = profile_commands.add_parser("remove", help="delete a saved profile and its secret")
    remove_parser.add_argument("name")

    config_parser = commands.add_parser("config", help="show or change settings")
    config_commands = config_parser.add_subparsers(dest="config_command", required=True)
    config_commands.add_parser("show", help="print the effective settings")
    set_parser = config_commands.add_parser("set", help="change one setting")
    set_parser.add_argument("name")
    set_parser.add_argument("value")
    return parser


def _connect(controller: InventoryController, args: argparse.Namespace) -> None:
    if args.profile:
        controller.connect_with_profile(args.profile, bucket_name=args.bucket)
    else:
        controller.connect(profile_from_environ(os.environ), bucket_name=args.bucket)


def _run_profiles(controller: InventoryController, args: argparse.Namespace) -> int:
    if args.profiles_command == "list":
        profiles = controller.list_profiles()
        for profile in profiles:
            print(f"{profile.name}\t{profile.endpoint_url}\t{profile.bucket or '-'}")
        if not profiles:
            print("(no saved profiles)")
    elif args.profiles_command == "add":
        secret_key = getpass.getpass("Secret access key: ")
        controller.save_profile(
            ConnectionProfile(
                name=args.name,
                endpoint_url=args.endpoint,
                access_key=args.access_key,
                secret_key=secret_key,
                bucket=args.profile_bucket,
                region=args.region,
            )
        )
        print(f"Saved profile '{args.name}'")
    elif args.profiles_command == "remove":
        controller.delete_profile(args.name)
        print(f"Removed profile '{args.name}'")
    return 0


def _run_config(storage: SettingsStorage, args: argparse.Namespace) -> int:
    settings = storage.load()
    if args.config_command == "set":
        settings = update_setting(settings, args.name, args.value)
        storage.save(settings)
    print(json.dumps(asdict(settings), indent=2))
    return 0


def run(args: argparse.Namespace) -> int:
    settings_storage = SettingsStorage(args.settings)
    if args.command == "config":
        return _run_config(settings_storage, args)

    settings = settings_storage.load()
    controller = InventoryController(settings=settings, storage=ProfileStorage(args.profiles_file))

    if args.command == "reconcile":
        report = controller.reconcile_snapshot(args.snapshot, load_snapshot(args.recorded))
        print("\n".join(format_report(report)))
        return 0
    if args.command == "profiles":
        return _run_profiles(controller, args)

    if args.command in STORE_COMMANDS:
        _connect(controller, args)

    if args.command == "buckets":
        for name in controller.list_buckets():
            print(name)
    elif args.command == "ls":
        print("\n".join(format_partition(controller.list_level(args.prefix))))
    elif args.command == "recent":
        limit = args.limit if args.limit is not None else settings.recent_limit
        recent = controller.recent(args.prefix, window_ms=args.window_ms, limit=limit)
        print(f"Found {len(recent)} recently modified file(s) under {args.prefix}")
        for descriptor in recent:
            print(f" - {format_descriptor(descriptor)}")
    elif args.command == "snapshot":
        output = args.output or settings.snapshot_path
        snapshot = controller.snapshot(args.prefix, output)
        print(f"Saved {len(snapshot.names)} filenames to {output}")
    elif args.command == "count":
        if args.by_subdirectory:
            counts = controller.count_subdirectories(args.prefix, skip_failed=args.skip_failed)
            print(f"Subdirectories under {args.prefix or '/'}:")
            print("\n".join(format_prefix_counts(counts)) or "  (none)")
        else:
            print(f"Total files in prefix '{args.prefix}': {controller.count(args.prefix)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run(args)
    except StoreError as exc:
        LOGGER.debug("Listing failed", exc_info=exc)
        print(
            f"error: listing '{exc.prefix}' failed after {exc.pages_completed} page(s): {exc.__cause__ or exc}",
            file=sys.stderr,
        )
        return 1
    except PersistenceFailed as exc:
        print(
            f"error: listed {len(exc.snapshot.names)} name(s) from '{exc.snapshot.source_prefix}' "
            f"but could not write them: {exc.__cause__ or exc}",
            file=sys.stderr,
        )
        return 1
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

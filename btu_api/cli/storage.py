# btu_api/cli/storage.py
"""
CLI commands for the image storage backend.

Usage:
    python -m btu_api.cli.storage check
    python -m btu_api.cli.storage delete /proxy-image/<token>
"""

import argparse
import asyncio
import sys

from btu_api.config import get_settings
from btu_api.logging_config import configure_logging


async def _check() -> int:
    from btu_api.routers.health import describe_storage
    from btu_api.storage.base import StorageError
    from btu_api.storage.factory import get_storage_provider

    storage = get_storage_provider()
    status = await describe_storage(storage)

    print("\n=== Storage Status ===\n")
    print(f"Backend:   {status.backend}")
    print(f"Available: {'yes' if status.available else 'no'}")
    print(f"Principal: {status.principal or '-'}")

    if not status.available:
        return 1

    try:
        container = await storage.ensure_container()
    except StorageError as e:
        print(f"Error: upload folder not ready: {e.message}")
        return 1
    print(f"Container: {container}")
    return 0


async def _delete(reference: str) -> int:
    from btu_api.storage.base import StorageError
    from btu_api.storage.factory import get_storage_provider
    from btu_api.storage.references import extract_blob_token, stored_blob_token

    token = stored_blob_token(reference) or extract_blob_token(reference)
    if not token:
        print(f"Error: cannot derive a blob token from {reference!r}")
        return 1

    storage = get_storage_provider()
    try:
        deleted = await storage.delete(token)
    except StorageError as e:
        print(f"Error: delete of {token} failed: {e.message}")
        return 1

    print(f"Deleted {token}" if deleted else f"Blob {token} not found (nothing to delete)")
    return 0


def cmd_check(args):
    """Resolve credentials, bootstrap the upload container and report."""
    sys.exit(asyncio.run(_check()))


def cmd_delete(args):
    """Delete a single blob by stored reference or token."""
    sys.exit(asyncio.run(_delete(args.reference)))


def main():
    parser = argparse.ArgumentParser(
        description="Image storage management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s check                          Verify the storage backend is reachable
  %(prog)s delete /proxy-image/<token>    Remove one image blob
""",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check", help="Check storage availability")
    check_parser.set_defaults(func=cmd_check)

    delete_parser = subparsers.add_parser("delete", help="Delete an image blob")
    delete_parser.add_argument("reference", help="Stored image_url, proxy path or bare token")
    delete_parser.set_defaults(func=cmd_delete)

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(json_format=False, level=settings.LOG_LEVEL)
    args.func(args)


if __name__ == "__main__":
    main()

"""Print a fresh 256-bit key for ONELINK_ENCRYPTION_KEY."""

from __future__ import annotations

import argparse

from scripts._path import add_root

add_root()

from services.onelink.codec import EncryptionKey  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--env",
        action="store_true",
        help="Print as an .env line instead of the bare value.",
    )
    args = parser.parse_args(argv)

    value = f"base64:{EncryptionKey.generate().to_base64()}"
    print(f"ONELINK_ENCRYPTION_KEY={value}" if args.env else value)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

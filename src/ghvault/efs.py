#!/usr/bin/env python3
"""
ghvault – encrypted file storage on a GitHub repository

Files are stored through the repository contents API. Every object has a
revision token (sha); overwrites and deletes must name the current one.
Optionally each file is sealed with a passphrase before it leaves the machine.

Sealed blob (big-endian):
    header_len : u32
    header     : UTF-8 JSON
                   fileName, fileType, fileSize, encryptedSize,
                   timestamp (ms), salt (16 ints), iv (12 ints)
    ciphertext : AES-256-GCM(content) || 16-byte tag

Repo layout:
  repo/
    metadata.json                          # index: name, type, size, hint -> path
    files/
      <millis>_<name>                      # plain upload
      <millis>_<name>.encrypted            # sealed blob

Commands:
  verify               Check the repository is reachable
  ls [dir]             List stored files with their index entries
  tree [dir]           Every object below a directory
  upload <paths...>    Upload files (--encrypt to seal them first)
  download <path> <out>  Fetch and, for sealed files, decrypt
  rm <path>            Delete a file and its index entry
  stats [dir]          File count, total size, encrypted count
  genpass              Random 32-character file password

Security choices:
  - AEAD: AES-256-GCM via cryptography.hazmat
  - KDF: PBKDF2-HMAC-SHA256, 100k iterations, fresh 16-byte salt per file
  - The index never holds passphrases or keys, only the optional hint
"""
from __future__ import annotations

import logging
import sys

from ghvault.ui.cli import build_parser
from ghvault.utils.errors import AuthorizationError, VaultError


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except AuthorizationError as e:
        print(f"[!] {e}\n[!] The token was rejected. Sign in again or supply a new --token.")
        sys.exit(1)
    except VaultError as e:
        print(f"[!] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

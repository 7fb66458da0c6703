import argparse

from ghvault.ui.commands import (
    cmd_download, cmd_genpass, cmd_ls, cmd_rm, cmd_stats, cmd_tree, cmd_upload, cmd_verify,
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Encrypted file storage on a GitHub repository")
    p.add_argument("--owner", help="Repository owner (env GHVAULT_OWNER)")
    p.add_argument("--repo", help="Repository name (env GHVAULT_REPO)")
    p.add_argument("--branch", help="Branch (env GHVAULT_BRANCH, default main)")
    p.add_argument("--base-url", help="API base URL (env GHVAULT_BASE_URL)")
    p.add_argument("--token", help="Bearer token (env GITHUB_TOKEN)")
    p.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    p.add_argument("-v", "--verbose", action="store_true", help="Log requests and retries")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_ver = sub.add_parser("verify", help="Check the repository is reachable")
    p_ver.set_defaults(func=cmd_verify)

    p_ls = sub.add_parser("ls", help="List stored files with their index entries")
    p_ls.add_argument("dir", nargs="?", help="Directory (default: files)")
    p_ls.set_defaults(func=cmd_ls)

    p_tree = sub.add_parser("tree", help="List every object below a directory")
    p_tree.add_argument("dir", nargs="?", default="", help="Directory (default: repository root)")
    p_tree.set_defaults(func=cmd_tree)

    p_up = sub.add_parser("upload", help="Upload files, optionally encrypted")
    p_up.add_argument("paths", nargs="+", help="Local files to upload")
    p_up.add_argument("--encrypt", action="store_true", help="Seal files with a passphrase before upload")
    p_up.add_argument("--passphrase", help="Passphrase (prompted if omitted)")
    p_up.add_argument("--hint", help="Password hint stored in the index")
    p_up.add_argument("--index-plain", action="store_true", help="Also index unencrypted uploads")
    p_up.set_defaults(func=cmd_upload)

    p_down = sub.add_parser("download", help="Download (and decrypt) a stored file")
    p_down.add_argument("path", help="Stored path, e.g. files/1700000000000_a.txt.encrypted")
    p_down.add_argument("out", help="Output file or directory")
    p_down.add_argument("--passphrase", help="Passphrase (prompted if needed)")
    p_down.set_defaults(func=cmd_download)

    p_rm = sub.add_parser("rm", help="Delete a stored file and its index entry")
    p_rm.add_argument("path", help="Stored path")
    p_rm.set_defaults(func=cmd_rm)

    p_stats = sub.add_parser("stats", help="File count, total size, encrypted count")
    p_stats.add_argument("dir", nargs="?", help="Directory (default: files)")
    p_stats.set_defaults(func=cmd_stats)

    p_gen = sub.add_parser("genpass", help="Generate a random file password")
    p_gen.add_argument("--length", type=int, default=32)
    p_gen.set_defaults(func=cmd_genpass)

    return p

import argparse
import asyncio
import getpass
import sys

from contextlib import asynccontextmanager
from pathlib import Path

from ghvault.storage.index import MetadataIndex
from ghvault.storage.remote import RemoteStore
from ghvault.utils.config import Session, StoreConfig
from ghvault.utils.core import TransferOrchestrator, UploadRequest
from ghvault.utils.dataModels import PlainFile
from ghvault.utils.helper import display_name, file_category, format_size, generate_file_password, guess_mime_type


def config_from_args(args: argparse.Namespace) -> tuple[StoreConfig, Session]:
    config = StoreConfig.from_env(
        owner=args.owner,
        repo_name=args.repo,
        branch=args.branch,
        base_url=args.base_url,
        timeout=args.timeout,
    )
    if not config.is_valid:
        print("[!] Repository not configured. Use --owner/--repo or GHVAULT_OWNER/GHVAULT_REPO.")
        sys.exit(1)
    session = Session.from_env(token=args.token)
    if not session.bearer_token:
        print("[!] No token. Use --token or GITHUB_TOKEN.")
        sys.exit(1)
    return config, session


@asynccontextmanager
async def open_vault(args: argparse.Namespace):
    config, session = config_from_args(args)
    async with RemoteStore(config, session) as store:
        orchestrator = TransferOrchestrator(
            store,
            MetadataIndex(store),
            session,
            index_plain_uploads=getattr(args, "index_plain", False),
        )
        await orchestrator.open()
        yield orchestrator


def _passphrase(args: argparse.Namespace, confirm: bool = False) -> str:
    if args.passphrase:
        return args.passphrase
    first = getpass.getpass("Passphrase: ")
    if confirm and getpass.getpass("Repeat passphrase: ") != first:
        print("[!] Passphrases do not match")
        sys.exit(1)
    return first


async def _verify(args: argparse.Namespace) -> None:
    config, session = config_from_args(args)
    async with RemoteStore(config, session) as store:
        info = await store.verify_repository()
    print(f"[+] {info.get('full_name', config.repo_name)} is reachable (default branch: {info.get('default_branch', '?')})")


async def _ls(args: argparse.Namespace) -> None:
    async with open_vault(args) as vault:
        listing = await vault.list_files(args.dir)
    if not listing:
        print("(empty)")
        return
    for entry in listing:
        obj, rec = entry.object, entry.record
        name = rec.file_name if rec else display_name(obj.path)
        lock = "enc" if obj.encrypted else "   "
        hint = f"\thint: {rec.password_hint}" if rec and rec.password_hint else ""
        print(f"{lock}\t{name}\t{format_size(obj.size)}\t{file_category(name)}\t{obj.path}{hint}")


async def _tree(args: argparse.Namespace) -> None:
    config, session = config_from_args(args)
    async with RemoteStore(config, session) as store:
        files = await store.tree(args.dir)
    for obj in files:
        print(f"{obj.path}\t{format_size(obj.size)}")


def _on_progress(pct: float) -> None:
    print(f"\r[.] {pct:5.1f}%", end="", flush=True)


async def _upload(args: argparse.Namespace) -> None:
    passphrase = _passphrase(args, confirm=True) if args.encrypt else None
    requests = []
    for p in map(Path, args.paths):
        if not p.is_file():
            print(f"[!] Not a file: {p}")
            sys.exit(1)
        requests.append(UploadRequest(
            file=PlainFile(name=p.name, mime_type=guess_mime_type(p.name), content=p.read_bytes()),
            encrypt=args.encrypt,
            passphrase=passphrase,
            password_hint=args.hint,
        ))
    async with open_vault(args) as vault:
        result = await vault.upload_batch(requests, on_progress=_on_progress)
    print()
    for item in result.succeeded:
        print(f"[+] {item.name} -> {item.stored_path}")
    for item in result.failed:
        print(f"[!] {item.name}: {item.reason}")
    if not result.ok:
        sys.exit(1)


async def _download(args: argparse.Namespace) -> None:
    async with open_vault(args) as vault:
        record = vault.index.find(args.path)
        passphrase = None
        if args.path.endswith(".encrypted") or (record and record.encrypted):
            if record and record.password_hint and not args.passphrase:
                print(f"[.] Hint: {record.password_hint}")
            passphrase = _passphrase(args)
        item = await vault.download_file(args.path, passphrase)
    out = Path(args.out)
    if out.is_dir():
        out = out / item.file.name
    out.write_bytes(item.file.content)
    print(f"[+] Downloaded {item.file.name} ({format_size(item.file.size)}) -> {out}")


async def _rm(args: argparse.Namespace) -> None:
    async with open_vault(args) as vault:
        await vault.delete_file(args.path)
    print(f"[+] Removed {args.path}")


async def _stats(args: argparse.Namespace) -> None:
    async with open_vault(args) as vault:
        stats = await vault.stats(args.dir)
    print(f"files: {stats.files}\nsize: {format_size(stats.total_bytes)}\nencrypted: {stats.encrypted}")


def cmd_verify(args: argparse.Namespace) -> None:
    asyncio.run(_verify(args))


def cmd_ls(args: argparse.Namespace) -> None:
    asyncio.run(_ls(args))


def cmd_tree(args: argparse.Namespace) -> None:
    asyncio.run(_tree(args))


def cmd_upload(args: argparse.Namespace) -> None:
    asyncio.run(_upload(args))


def cmd_download(args: argparse.Namespace) -> None:
    asyncio.run(_download(args))


def cmd_rm(args: argparse.Namespace) -> None:
    asyncio.run(_rm(args))


def cmd_stats(args: argparse.Namespace) -> None:
    asyncio.run(_stats(args))


def cmd_genpass(args: argparse.Namespace) -> None:
    print(generate_file_password(args.length))

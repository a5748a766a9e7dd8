#!/usr/bin/env python3
"""
Point APT at the Nexus Debian proxies.
The current sources.list is backed up with a timestamp before it is replaced, and can be restored with [--restore].
"""

import os
import sys
import shutil
import argparse
import datetime
import subprocess
from pathlib import Path
from dataclasses import dataclass

from rich.console import Console


console = Console()


NEXUS_BASE: str = 'https://artifacts.vm.kumpeapps.com/repository'
TARGET_FILE: str = '/etc/apt/sources.list'
BACKUP_DIRECTORY: str = '/etc/apt/backups'
BACKUP_GLOB: str = 'sources.list.*.bak'
BACKUP_TIMESTAMP_FORMAT: str = '%Y%m%d-%H%M%S'
OS_RELEASE_FILE: str = '/etc/os-release'

HOSTED_REPO: str = 'kumpeapps'
HOSTED_DIST: str = 'kumpeapps'
HOSTED_COMPONENT: str = 'main'
KEYRING_DIRECTORY: str = '/etc/apt/keyrings'
KEYRING_FILE: str = str(Path(KEYRING_DIRECTORY, 'kumpeapps-nexus.asc'))
# Installed by the nexus client package next to its hook scripts.
PUBLIC_KEY_SOURCE: str = '/usr/lib/kumpe-server-nexusclient/public.key.asc'

SUPPORTED_SUITES: tuple = ('bookworm', 'bullseye', 'trixie')
COMPONENTS: str = 'main non-free-firmware'


@dataclass
class ParserDefaults:
    SUITE: str = None
    RESTORE: bool = False
    FILE: str = None
    UPDATE: bool = False
    KEY_FILE: str = None


class ArgumentsError(Exception):
    """
    Exception raised when the command line options are invalid.
    """


class OsReleaseNotFoundError(Exception):
    def __init__(self, message: str = f"{OS_RELEASE_FILE} not found"):
        super().__init__(message)


class UnsupportedSuiteError(Exception):
    """
    Exception raised when there are no Nexus proxies for the Debian suite.
    """
    def __init__(self, suite: str):
        super().__init__(
            f"Unsupported suite: {suite}\n"
            f"Supported suites: {', '.join(SUPPORTED_SUITES)}")


class NoBackupsFoundError(Exception):
    def __init__(self, backup_dir: str = BACKUP_DIRECTORY):
        super().__init__(f"No backups found in {backup_dir}")


class BackupFileNotFoundError(Exception):
    def __init__(self, backup_file: str):
        super().__init__(f"Backup file not found: {backup_file}")


class SigningKeyNotFoundError(Exception):
    def __init__(self, key_file: str):
        super().__init__(f"public key file not found: {key_file}")


def read_os_codename(os_release_file: str = OS_RELEASE_FILE) -> str:
    """
    Read VERSION_CODENAME from the os-release file.
    :param os_release_file: str, path to the os-release file.
    :return: str, the codename, empty if the file doesn't define it.
    """

    if not os.access(os_release_file, os.R_OK):
        raise OsReleaseNotFoundError(f"{os_release_file} not found")

    with open(os_release_file, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            if key.strip() == 'VERSION_CODENAME':
                return value.strip().strip('"').strip("'")

    return ''


def check_suite(suite: str) -> str:
    if suite not in SUPPORTED_SUITES:
        raise UnsupportedSuiteError(suite)
    return suite


def render_sources_list(
        suite: str,
        nexus_base: str = NEXUS_BASE,
        keyring_file: str = KEYRING_FILE
) -> str:
    """
    Render sources.list for the suite. The main, security and updates archives each go through their own
    Nexus proxy repository, and the hosted repository is signed by the installed key.

    :param suite: str, Debian codename.
    :param nexus_base: str, base URL of the Nexus repositories.
    :param keyring_file: str, the signing key the hosted repository is checked against.
    :return: str, sources.list content.
    """

    main_repo = f"debian-{suite}-proxy"
    security_repo = f"debian-{suite}-security-proxy"
    updates_repo = f"debian-{suite}-updates-proxy"

    return f"""# Managed by nexus-set-apt-sources
# Suite: {suite}

deb {nexus_base}/{main_repo}/ {suite} {COMPONENTS}
deb-src {nexus_base}/{main_repo}/ {suite} {COMPONENTS}

deb {nexus_base}/{security_repo}/ {suite}-security {COMPONENTS}
deb-src {nexus_base}/{security_repo}/ {suite}-security {COMPONENTS}

deb {nexus_base}/{updates_repo}/ {suite}-updates {COMPONENTS}
deb-src {nexus_base}/{updates_repo}/ {suite}-updates {COMPONENTS}

deb [signed-by={keyring_file}] {nexus_base}/{HOSTED_REPO}/ {HOSTED_DIST} {HOSTED_COMPONENT}
"""


def install_signing_key(
        key_source: str = PUBLIC_KEY_SOURCE,
        keyring_file: str = KEYRING_FILE
):
    if not os.path.isfile(key_source):
        raise SigningKeyNotFoundError(key_source)

    os.makedirs(os.path.dirname(keyring_file), exist_ok=True)
    shutil.copyfile(key_source, keyring_file)
    os.chmod(keyring_file, 0o644)


def backup_sources_list(
        target_file: str = TARGET_FILE,
        backup_dir: str = BACKUP_DIRECTORY,
        now: datetime.datetime | None = None
) -> str | None:
    """
    Copy the current sources.list to the backups directory.
    :return: str, the backup file path, or None if there is no sources.list to back up.
    """

    os.makedirs(backup_dir, exist_ok=True)
    if not os.path.isfile(target_file):
        return None

    timestamp = (now or datetime.datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
    backup_file = str(Path(backup_dir, f"sources.list.{timestamp}.bak"))
    shutil.copy2(target_file, backup_file)
    return backup_file


def find_latest_backup(backup_dir: str = BACKUP_DIRECTORY) -> str:
    backups = list(Path(backup_dir).glob(BACKUP_GLOB))
    if not backups:
        raise NoBackupsFoundError(backup_dir)

    return str(max(backups, key=lambda p: p.stat().st_mtime))


def restore_sources_list(
        backup_file: str,
        target_file: str = TARGET_FILE
):
    if not os.path.isfile(backup_file):
        raise BackupFileNotFoundError(backup_file)

    shutil.copyfile(backup_file, target_file)


def write_sources_list(
        suite: str,
        target_file: str = TARGET_FILE,
        backup_dir: str = BACKUP_DIRECTORY,
        key_source: str = PUBLIC_KEY_SOURCE,
        keyring_file: str = KEYRING_FILE
) -> str | None:
    """
    Install the signing key, back up the current sources.list and write the Nexus one.

    :return: str, the backup file path, or None if there was no sources.list before.
    """

    install_signing_key(key_source, keyring_file)
    console.print(f"[+] Installed KumpeApps APT signing key: {keyring_file}", markup=False)

    backup_file = backup_sources_list(target_file, backup_dir)
    if backup_file:
        console.print(f"[+] Backup created: {backup_file}", markup=False)

    Path(target_file).write_text(render_sources_list(suite, keyring_file=keyring_file), encoding='utf-8')
    console.print(f"[+] Updated {target_file} to use Nexus APT proxies.", markup=False)

    return backup_file


def run_apt_update():
    console.print("[+] Running apt-get update...")
    subprocess.run(['apt-get', 'update'], check=True)


def check_arguments(suite: str, restore: bool, file: str):
    if restore and suite:
        raise ArgumentsError("--suite cannot be used with --restore")
    if file and not restore:
        raise ArgumentsError("--file can only be used with --restore")


def run_apt_sources_main(
        suite: str = ParserDefaults.SUITE,
        restore: bool = ParserDefaults.RESTORE,
        file: str = ParserDefaults.FILE,
        update: bool = ParserDefaults.UPDATE,
        key_file: str = ParserDefaults.KEY_FILE
) -> int:
    """
    Write the Nexus sources.list, or restore a backup of the previous one.
    :param suite: Debian codename override. Default: VERSION_CODENAME of the host.
    :param restore: restore sources.list from a backup instead.
    :param file: backup file to restore. Default: the latest backup.
    :param update: run apt-get update afterward.
    :param key_file: signing key of the hosted repository. Default: PUBLIC_KEY_SOURCE.

    :return: int, 0 on success, 1 on error.
    """

    try:
        check_arguments(suite, restore, file)

        if restore:
            backup_file = file or find_latest_backup(BACKUP_DIRECTORY)
            console.print(f"[+] Restoring from: {backup_file}", markup=False)
            restore_sources_list(backup_file, TARGET_FILE)
            console.print(f"[+] Restored {TARGET_FILE}", markup=False)
        else:
            suite = check_suite(suite or read_os_codename(OS_RELEASE_FILE))
            console.print(f"[+] Detected/selected suite: {suite}")
            write_sources_list(suite, TARGET_FILE, BACKUP_DIRECTORY, key_file or PUBLIC_KEY_SOURCE, KEYRING_FILE)

        if update:
            run_apt_update()
    except (ArgumentsError, OsReleaseNotFoundError, UnsupportedSuiteError,
            NoBackupsFoundError, BackupFileNotFoundError, SigningKeyNotFoundError) as e:
        console.print(f"[+] ERROR: {e}", style="red", markup=False)
        return 1
    except PermissionError as e:
        console.print(f"[+] ERROR: {e}. Execute as root.", style="red", markup=False)
        return 1
    except subprocess.CalledProcessError as e:
        console.print(f"[+] ERROR: apt-get update failed (exit code {e.returncode}).", style="red", markup=False)
        return 1

    console.print("[+] Done.", style="green")
    return 0


def _make_arg_parser():
    parser = argparse.ArgumentParser(
        description=(
            "Configure APT sources to use the Nexus Debian proxies.\n"
            "\n"
            "Usage:\n"
            f"  nexus-set-apt-sources [--suite {'|'.join(SUPPORTED_SUITES)}] [--update]\n"
            f"  nexus-set-apt-sources --restore [--file {BACKUP_DIRECTORY}/sources.list.TIMESTAMP.bak] [--update]\n"
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument(
        '--suite', type=str, default=ParserDefaults.SUITE,
        help="Override detected Debian codename.")
    parser.add_argument(
        '--restore', action='store_true',
        help=f"Restore {TARGET_FILE} from backup (latest by default).")
    parser.add_argument(
        '--file', type=str, default=ParserDefaults.FILE,
        help="Backup file path to restore (used with [--restore]).")
    parser.add_argument(
        '--update', action='store_true',
        help="Run apt-get update after writing sources.")
    parser.add_argument(
        '--key-file', type=str, default=ParserDefaults.KEY_FILE,
        help=f"APT signing key of the hosted repository. Default: {PUBLIC_KEY_SOURCE}")

    return parser


def main(argv: list | None = None) -> int:
    arg_parser = _make_arg_parser()
    exec_args = arg_parser.parse_args(argv)

    try:
        exit_result: int = run_apt_sources_main(**vars(exec_args))
    except KeyboardInterrupt:
        print("Exiting...")
        exit_result = 1

    return exit_result


if __name__ == '__main__':
    sys.exit(main())

#!/usr/bin/env python3
VERSION: str = '1.0.1'
# Client-only configuration. This script does NOT create/update Nexus repositories.


import os
import re
import sys
import json
import shutil
import argparse
import subprocess
import http.client
from pathlib import Path
from urllib.parse import urlparse
from dataclasses import dataclass

import psutil
from rich.console import Console

from docker_pull_wrapper import ProxyPrefixes, WRAPPER_MARKER, render_wrapper_script


console = Console()


PIP_CONFIG_FILE: str = '/etc/pip.conf'
PYTHON_PROFILE_FILE: str = '/etc/profile.d/nexus-python.sh'
DOCKER_DAEMON_CONFIG_FILE: str = '/etc/docker/daemon.json'
HOSTS_FILE: str = '/etc/hosts'

DOCKER_WRAPPER_FILE: str = '/usr/local/bin/docker'
DOCKER_WRAPPER_BACKUP_FILE: str = '/usr/local/bin/docker.original-pre-nexus-wrapper'
SYSTEM_DOCKER_FILE: str = '/usr/bin/docker'
SYSTEM_DOCKER_BACKUP_FILE: str = '/usr/bin/docker.original-pre-nexus-wrapper'
SYSTEM_DOCKER_SHIM_MARKER: str = '# nexus-docker-shim'

HOSTS_BLOCK_START: str = '# BEGIN nexus-client-registry-blocks'
HOSTS_BLOCK_END: str = '# END nexus-client-registry-blocks'
BLOCKED_REGISTRY_HOSTS: list = [
    'registry-1.docker.io',
    'auth.docker.io',
    'index.docker.io',
    'production.cloudflare.docker.com',
    'ghcr.io',
    'pkg-containers.githubusercontent.com',
]

PIP_TIMEOUT_SECONDS: int = 60
PROBE_TIMEOUT_SECONDS: int = 15
PROBE_OUTPUT_LINES: int = 8

HOST_PORT_PATTERN = re.compile(r'[a-zA-Z0-9._-]+(:[0-9]+)?')


@dataclass
class ParserDefaults:
    NEXUS_HOST: str = 'artifacts.vm.kumpeapps.com'
    PYPI_REPO: str = 'pypi'
    DOCKER_HUB_PROXY: str = 'artifacts.vm.kumpeapps.com/docker'
    DOCKER_GHCR_PROXY: str = 'artifacts.vm.kumpeapps.com/ghcr'
    BLOCK_DIRECT_REGISTRIES: bool = False
    UNBLOCK_DIRECT_REGISTRIES: bool = False
    INSTALL_DOCKER_WRAPPER: bool = False
    REMOVE_DOCKER_WRAPPER: bool = False
    UPDATE: bool = False
    SKIP_VALIDATION: bool = False
    UNINSTALL: bool = False


@dataclass
class DockerEndpoints:
    hub_url: str
    ghcr_url: str
    hub_prefix: str
    ghcr_prefix: str
    hub_mirror_supported: bool
    ghcr_pull_supported: bool
    hub_insecure: str | None = None
    ghcr_insecure: str | None = None

    @property
    def prefixes(self) -> ProxyPrefixes:
        return ProxyPrefixes(docker_hub=self.hub_prefix, ghcr=self.ghcr_prefix)


class ArgumentsError(Exception):
    """
    Exception raised when the command line options are invalid.
    """


class NotRootError(Exception):
    """
    Exception raised when the script isn't executed as root.
    """
    def __init__(self, message: str = "this script writes system-wide configuration and must be executed as root."):
        super().__init__(message)


def is_admin() -> bool:
    """
    Function checks if the script is executed as root.
    :return: True / False.
    """
    return os.geteuid() == 0


def normalize_endpoint_url(value: str) -> str:
    """
    Turn a proxy endpoint into a URL. Values without a scheme are treated as plain http.
    :param value: str, full URL (https://.../repository/docker) or host[:port].
    :return: str, endpoint URL.
    """
    if re.match(r'^https?://', value):
        return value.removesuffix('/')
    return f"http://{value}"


def strip_scheme(value: str) -> str:
    value = value.removeprefix('http://')
    value = value.removeprefix('https://')
    return value.removesuffix('/')


def is_host_port(value: str) -> bool:
    return HOST_PORT_PATTERN.fullmatch(value) is not None


def docker_mirror_supported(endpoint: str) -> bool:
    """
    Docker registry mirrors only work with registry-root endpoints, so the endpoint must not have a path component.
    """
    return '/' not in strip_scheme(endpoint)


def resolve_docker_endpoints(docker_hub_proxy: str, docker_ghcr_proxy: str) -> DockerEndpoints:
    """
    Resolve the operator supplied Docker proxy values into the endpoints used by the daemon and the wrapper.

    :param docker_hub_proxy: str, Docker Hub proxy endpoint URL or host:port.
    :param docker_ghcr_proxy: str, GHCR proxy endpoint URL or host:port.
    :return: DockerEndpoints.
    """

    hub_url = normalize_endpoint_url(docker_hub_proxy)
    ghcr_url = normalize_endpoint_url(docker_ghcr_proxy)

    return DockerEndpoints(
        hub_url=hub_url,
        ghcr_url=ghcr_url,
        hub_prefix=strip_scheme(hub_url),
        ghcr_prefix=strip_scheme(ghcr_url),
        hub_mirror_supported=docker_mirror_supported(hub_url),
        ghcr_pull_supported=docker_mirror_supported(ghcr_url),
        # Plain host:port values are reached over http, so the daemon has to allow them.
        hub_insecure=docker_hub_proxy if is_host_port(docker_hub_proxy) else None,
        ghcr_insecure=docker_ghcr_proxy if is_host_port(docker_ghcr_proxy) else None,
    )


def pypi_simple_url(nexus_host: str, pypi_repo: str) -> str:
    return f"https://{nexus_host}/repository/{pypi_repo}/simple"


def write_pip_config(
        index_url: str,
        trusted_host: str,
        pip_config_file: str = PIP_CONFIG_FILE
):
    content = f"""[global]
index-url = {index_url}
trusted-host = {trusted_host}
timeout = {PIP_TIMEOUT_SECONDS}
"""
    Path(pip_config_file).write_text(content, encoding='utf-8')


def write_python_profile(
        index_url: str,
        trusted_host: str,
        profile_file: str = PYTHON_PROFILE_FILE
):
    """
    Export the pip index for login shells, so virtual environments and user installs use Nexus as well.
    """
    content = f"""export PIP_INDEX_URL="{index_url}"
export PIP_TRUSTED_HOST="{trusted_host}"
"""
    profile_path = Path(profile_file)
    profile_path.parent.mkdir(parents=True, exist_ok=True)
    profile_path.write_text(content, encoding='utf-8')
    os.chmod(profile_path, 0o644)


def render_daemon_config(endpoints: DockerEndpoints) -> dict:
    config: dict = {}

    if endpoints.hub_mirror_supported:
        config['registry-mirrors'] = [endpoints.hub_url]

    insecure = [value for value in [endpoints.hub_insecure, endpoints.ghcr_insecure] if value]
    if insecure:
        config['insecure-registries'] = insecure

    return config


def write_daemon_config(
        endpoints: DockerEndpoints,
        daemon_config_file: str = DOCKER_DAEMON_CONFIG_FILE
):
    daemon_config_path = Path(daemon_config_file)
    daemon_config_path.parent.mkdir(parents=True, exist_ok=True)
    daemon_config_path.write_text(json.dumps(render_daemon_config(endpoints), indent=2) + "\n", encoding='utf-8')


def render_hosts_block() -> str:
    lines = [HOSTS_BLOCK_START]
    for host in BLOCKED_REGISTRY_HOSTS:
        lines.append(f"0.0.0.0 {host}")
        lines.append(f":: {host}")
    lines.append(HOSTS_BLOCK_END)
    return '\n'.join(lines)


def _split_around_hosts_block(content: str) -> tuple[str, str]:
    pre = content.split(HOSTS_BLOCK_START)[0].rstrip('\n')
    post = content.split(HOSTS_BLOCK_END, 1)[1].lstrip('\n')
    return pre, post


def add_hosts_block(content: str) -> str:
    """
    Add the registry blocks section to hosts file content. An existing section is replaced in place.

    :param content: str, current hosts file content.
    :return: str, new hosts file content.
    """

    block = render_hosts_block()
    if HOSTS_BLOCK_START in content and HOSTS_BLOCK_END in content:
        pre, post = _split_around_hosts_block(content)
        return (pre + '\n' + block + ('\n' + post if post else '\n')).lstrip('\n')

    if content and not content.endswith('\n'):
        content += '\n'
    return content + block + '\n'


def strip_hosts_block(content: str) -> str:
    """
    Remove the registry blocks section from hosts file content. Content without the section is returned as is.
    """

    if HOSTS_BLOCK_START not in content or HOSTS_BLOCK_END not in content:
        return content

    pre, post = _split_around_hosts_block(content)
    merged = '\n'.join([x for x in [pre, post] if x]).rstrip('\n')
    return (merged + '\n') if merged else ''


def apply_hosts_blocks(hosts_file: str = HOSTS_FILE):
    hosts_path = Path(hosts_file)
    content = hosts_path.read_text(encoding='utf-8') if hosts_path.exists() else ''
    hosts_path.write_text(add_hosts_block(content), encoding='utf-8')


def remove_hosts_blocks(hosts_file: str = HOSTS_FILE) -> bool:
    """
    Remove the registry blocks section from the hosts file.
    :return: bool, True if the section was found and removed.
    """

    hosts_path = Path(hosts_file)
    if not hosts_path.exists():
        return False

    content = hosts_path.read_text(encoding='utf-8')
    new_content = strip_hosts_block(content)
    if new_content == content:
        return False

    hosts_path.write_text(new_content, encoding='utf-8')
    return True


def install_pull_wrapper(
        prefixes: ProxyPrefixes,
        wrapper_file: str = DOCKER_WRAPPER_FILE,
        backup_file: str = DOCKER_WRAPPER_BACKUP_FILE,
        python: str = sys.executable
):
    """
    Install the docker pull wrapper. A docker executable that was there before, and is not a wrapper of ours,
    is kept once in the backup file so removal can restore it.

    :param prefixes: ProxyPrefixes, the proxy prefixes baked into the wrapper.
    :param wrapper_file: str, where to install the wrapper. It must come before the real docker in PATH.
    :param backup_file: str, backup location of the replaced executable.
    :param python: str, interpreter for the wrapper shebang.
    """

    wrapper_path = Path(wrapper_file)
    backup_path = Path(backup_file)
    content = render_wrapper_script(prefixes, python=python).encode('utf-8')

    if wrapper_path.is_symlink():
        wrapper_path.unlink()

    if wrapper_path.exists():
        existing = wrapper_path.read_bytes()
        if WRAPPER_MARKER.encode('utf-8') not in existing and not backup_path.exists():
            backup_path.write_bytes(existing)

    wrapper_path.parent.mkdir(parents=True, exist_ok=True)
    wrapper_path.write_bytes(content)
    wrapper_path.chmod(0o755)


def remove_pull_wrapper(
        wrapper_file: str = DOCKER_WRAPPER_FILE,
        backup_file: str = DOCKER_WRAPPER_BACKUP_FILE
) -> bool:
    """
    Remove the docker pull wrapper and restore the executable it replaced, if there was one.
    Files that don't carry the wrapper marker are never touched.

    :return: bool, True if a wrapper was removed.
    """

    wrapper_path = Path(wrapper_file)
    backup_path = Path(backup_file)

    if not wrapper_path.exists() or wrapper_path.is_symlink():
        return False

    if WRAPPER_MARKER.encode('utf-8') not in wrapper_path.read_bytes():
        return False

    if backup_path.exists():
        wrapper_path.write_bytes(backup_path.read_bytes())
        backup_path.unlink()
        wrapper_path.chmod(0o755)
    else:
        wrapper_path.unlink()

    return True


def restore_system_docker_shim(
        system_docker_file: str = SYSTEM_DOCKER_FILE,
        system_backup_file: str = SYSTEM_DOCKER_BACKUP_FILE
) -> bool:
    """
    Put back the distribution docker binary if a shim replaced it in /usr/bin.
    The backup is restored when the binary is missing, is a symlink, or is the shim itself.

    :return: bool, True if the binary was restored.
    """

    system_docker_path = Path(system_docker_file)
    system_backup_path = Path(system_backup_file)

    if not system_backup_path.exists():
        return False

    if system_docker_path.exists() and not system_docker_path.is_symlink():
        if SYSTEM_DOCKER_SHIM_MARKER.encode('utf-8') not in system_docker_path.read_bytes():
            return False

    if system_docker_path.is_symlink():
        system_docker_path.unlink()

    system_docker_path.write_bytes(system_backup_path.read_bytes())
    system_backup_path.unlink()
    system_docker_path.chmod(0o755)
    return True


def uninstall_client_config(
        wrapper_file: str = DOCKER_WRAPPER_FILE,
        wrapper_backup_file: str = DOCKER_WRAPPER_BACKUP_FILE,
        system_docker_file: str = SYSTEM_DOCKER_FILE,
        system_backup_file: str = SYSTEM_DOCKER_BACKUP_FILE,
        hosts_file: str = HOSTS_FILE
):
    """
    Undo the enforcement parts of the configuration: the docker wrapper, the system docker shim and the
    hosts file blocks. pip, profile and daemon configuration files are left in place.
    """

    if remove_pull_wrapper(wrapper_file, wrapper_backup_file):
        console.print(f"[+] Removed docker pull wrapper: {wrapper_file}", markup=False)
    if restore_system_docker_shim(system_docker_file, system_backup_file):
        console.print(f"[+] Restored system docker binary: {system_docker_file}", markup=False)
    if remove_hosts_blocks(hosts_file):
        console.print(f"[+] Removed direct registry hostname blocks from {hosts_file}", markup=False)


def is_docker_daemon_running() -> bool:
    for proc in psutil.process_iter(['name']):
        if proc.info['name'] == 'dockerd':
            return True
    return False


def restart_docker_service():
    """
    Restart docker, so the daemon configuration is applied. Without systemd, the operator is asked to do it.
    """

    if shutil.which('systemctl'):
        unit_files = subprocess.run(
            ['systemctl', 'list-unit-files'], capture_output=True, text=True, check=False).stdout
        if any(line.startswith('docker.service') for line in unit_files.splitlines()):
            console.print("[+] Restarting docker service...")
            subprocess.run(['systemctl', 'restart', 'docker'], check=True)
        return

    if is_docker_daemon_running():
        console.print(
            "[+] WARNING: dockerd is running but systemctl is not available. "
            f"Restart docker manually to apply {DOCKER_DAEMON_CONFIG_FILE}.",
            style="yellow", markup=False)


def probe_endpoint(url: str, timeout: int = PROBE_TIMEOUT_SECONDS) -> list[str]:
    """
    Send a HEAD request to the endpoint.

    :param url: str, URL to probe.
    :param timeout: int, connection timeout in seconds.
    :return: list of str, the status line followed by the response headers.
    """

    parsed = urlparse(url)
    if parsed.scheme == 'https':
        conn = http.client.HTTPSConnection(parsed.netloc, timeout=timeout)
    else:
        conn = http.client.HTTPConnection(parsed.netloc, timeout=timeout)

    try:
        conn.request('HEAD', parsed.path or '/')
        response = conn.getresponse()
        lines = [f"HTTP/{response.version / 10:.1f} {response.status} {response.reason}"]
        lines += [f"{name}: {value}" for name, value in response.getheaders()]
    finally:
        conn.close()

    return lines


def validate_endpoints(urls: list):
    for url in urls:
        try:
            lines = probe_endpoint(url)
        except (OSError, http.client.HTTPException) as e:
            console.print(f"[+] WARNING: {url} is not reachable: {e}", style="yellow", markup=False)
            continue

        console.print(f"[+] {url}", markup=False)
        for line in lines[:PROBE_OUTPUT_LINES]:
            console.print(f"    {line}", markup=False, highlight=False)


def run_metadata_refresh():
    """
    Refresh pip and apt metadata through the new configuration. Failures are not fatal.
    """
    subprocess.run([sys.executable, '-m', 'pip', 'index', 'versions', 'pip'],
                   stdout=subprocess.DEVNULL, check=False)
    subprocess.run(['apt-get', 'update'], stdout=subprocess.DEVNULL, check=False)


def _print_path_endpoint_warnings(
        docker_hub_proxy: str,
        docker_ghcr_proxy: str,
        endpoints: DockerEndpoints,
        install_docker_wrapper: bool
):
    if install_docker_wrapper and not (endpoints.hub_mirror_supported and endpoints.ghcr_pull_supported):
        console.print(
            "[+] WARNING: wrapper install is using path-based Docker endpoints.\n"
            "    This is non-standard and may fail unless your reverse proxy maps these paths to Docker registry roots:\n"
            f"      --docker-hub-proxy={docker_hub_proxy}\n"
            f"      --docker-ghcr-proxy={docker_ghcr_proxy}\n"
            "    Preferred dedicated Nexus Docker connector/vhost endpoints are:\n"
            "      --docker-hub-proxy=nexus-docker.example.com:5000\n"
            "      --docker-ghcr-proxy=nexus-ghcr.example.com:5001",
            style="yellow", markup=False)

    if not endpoints.hub_mirror_supported:
        console.print(
            f"[+] WARNING: {endpoints.hub_url} contains a path, so Docker cannot use it as a registry mirror.\n"
            "    Mirror for docker.io was not configured. To mirror transparently, "
            "use a dedicated Nexus Docker connector/vhost on host[:port].",
            style="yellow", markup=False)

    if not endpoints.ghcr_pull_supported:
        console.print(
            f"[+] WARNING: {endpoints.ghcr_url} contains a path, so Docker CLI cannot pull images through it directly.\n"
            "    Use a dedicated Nexus Docker connector/vhost for GHCR proxying "
            "(for example: nexus-ghcr.example.com[:port]).",
            style="yellow", markup=False)


def _print_summary(
        index_url: str,
        endpoints: DockerEndpoints,
        block_direct_registries: bool,
        unblock_direct_registries: bool,
        install_docker_wrapper: bool,
        remove_docker_wrapper: bool
):
    console.print(
        "\nDone.\n"
        "\n"
        "All-user configuration set:\n"
        f"  - {PIP_CONFIG_FILE} -> {index_url}\n"
        f"  - {DOCKER_DAEMON_CONFIG_FILE} -> docker hub mirror {endpoints.hub_url} "
        f"(supported: {str(endpoints.hub_mirror_supported).lower()})\n"
        f"  - ghcr pull-through endpoint support -> {str(endpoints.ghcr_pull_supported).lower()}\n"
        "\n"
        "Direct registry block mode:\n"
        f"  - enabled now: {str(block_direct_registries).lower()}\n"
        f"  - removed now: {str(unblock_direct_registries).lower()}\n"
        "\n"
        "Docker wrapper mode:\n"
        f"  - installed now: {str(install_docker_wrapper).lower()}\n"
        f"  - removed now: {str(remove_docker_wrapper).lower()}\n"
        "\n"
        "Usage examples:\n"
        "  pip install requests\n"
        "  docker pull alpine:latest\n"
        "  docker pull <nexus-ghcr-host[:port]>/OWNER/IMAGE:TAG\n"
        "  NEXUS_DOCKER_WRAPPER_DEBUG=1 docker pull ghcr.io/OWNER/IMAGE:TAG\n"
        "\n"
        "Enforcement notes:\n"
        "  - For hard enforcement across hosts, block egress to docker.io/ghcr.io at network firewall and allow Nexus only.",
        markup=False, highlight=False)


def check_arguments(
        nexus_host: str,
        pypi_repo: str,
        docker_hub_proxy: str,
        docker_ghcr_proxy: str,
        block_direct_registries: bool,
        unblock_direct_registries: bool,
        install_docker_wrapper: bool,
        remove_docker_wrapper: bool,
        uninstall: bool
):
    if not nexus_host or not pypi_repo or not docker_hub_proxy or not docker_ghcr_proxy:
        raise ArgumentsError("one or more required option values are empty")

    if block_direct_registries and unblock_direct_registries:
        raise ArgumentsError("--block-direct-registries and --unblock-direct-registries are mutually exclusive")

    if install_docker_wrapper and remove_docker_wrapper:
        raise ArgumentsError("--install-docker-wrapper and --remove-docker-wrapper are mutually exclusive")

    if uninstall and (block_direct_registries or install_docker_wrapper):
        raise ArgumentsError(
            "--uninstall can't be used with --block-direct-registries or --install-docker-wrapper")


def run_configure_main(
        nexus_host: str = ParserDefaults.NEXUS_HOST,
        pypi_repo: str = ParserDefaults.PYPI_REPO,
        docker_hub_proxy: str = ParserDefaults.DOCKER_HUB_PROXY,
        docker_ghcr_proxy: str = ParserDefaults.DOCKER_GHCR_PROXY,
        block_direct_registries: bool = ParserDefaults.BLOCK_DIRECT_REGISTRIES,
        unblock_direct_registries: bool = ParserDefaults.UNBLOCK_DIRECT_REGISTRIES,
        install_docker_wrapper: bool = ParserDefaults.INSTALL_DOCKER_WRAPPER,
        remove_docker_wrapper: bool = ParserDefaults.REMOVE_DOCKER_WRAPPER,
        update: bool = ParserDefaults.UPDATE,
        skip_validation: bool = ParserDefaults.SKIP_VALIDATION,
        uninstall: bool = ParserDefaults.UNINSTALL
) -> int:
    """
    Configure the host (system-wide) to use the Nexus proxies.
    :param nexus_host: Nexus public host.
    :param pypi_repo: Nexus PyPI proxy repo name.
    :param docker_hub_proxy: Docker Hub proxy endpoint URL or host:port.
    :param docker_ghcr_proxy: GHCR proxy endpoint URL or host:port.
    :param block_direct_registries: add /etc/hosts blocks for direct docker.io/ghcr.io registry hosts.
    :param unblock_direct_registries: remove the /etc/hosts blocks.
    :param install_docker_wrapper: install the docker pull wrapper.
    :param remove_docker_wrapper: remove the docker pull wrapper.
    :param update: run pip and apt metadata refresh checks.
    :param skip_validation: don't probe the configured endpoints.
    :param uninstall: only undo the wrapper, docker shim and hosts blocks.

    :return: int, 0 on success, 1 on error.
    """

    try:
        check_arguments(
            nexus_host, pypi_repo, docker_hub_proxy, docker_ghcr_proxy,
            block_direct_registries, unblock_direct_registries,
            install_docker_wrapper, remove_docker_wrapper, uninstall)
        if not is_admin():
            raise NotRootError
    except (ArgumentsError, NotRootError) as e:
        console.print(f"[+] ERROR: {e}", style="red", markup=False)
        return 1

    if uninstall:
        uninstall_client_config(
            DOCKER_WRAPPER_FILE, DOCKER_WRAPPER_BACKUP_FILE,
            SYSTEM_DOCKER_FILE, SYSTEM_DOCKER_BACKUP_FILE, HOSTS_FILE)
        console.print("[+] Done.", style="green")
        return 0

    index_url = pypi_simple_url(nexus_host, pypi_repo)
    endpoints = resolve_docker_endpoints(docker_hub_proxy, docker_ghcr_proxy)

    console.print("[+] Applying system-wide pip configuration...")
    write_pip_config(index_url, nexus_host, PIP_CONFIG_FILE)

    console.print("[+] Applying global Python env defaults...")
    write_python_profile(index_url, nexus_host, PYTHON_PROFILE_FILE)

    console.print("[+] Applying system-wide Docker daemon configuration...")
    write_daemon_config(endpoints, DOCKER_DAEMON_CONFIG_FILE)

    _print_path_endpoint_warnings(docker_hub_proxy, docker_ghcr_proxy, endpoints, install_docker_wrapper)

    if unblock_direct_registries:
        console.print(f"[+] Removing direct registry hostname blocks from {HOSTS_FILE}...", markup=False)
        remove_hosts_blocks(HOSTS_FILE)

    if block_direct_registries:
        console.print(f"[+] Adding direct registry hostname blocks to {HOSTS_FILE}...", markup=False)
        apply_hosts_blocks(HOSTS_FILE)

    if remove_docker_wrapper:
        console.print(f"[+] Removing docker pull wrapper from {DOCKER_WRAPPER_FILE}...", markup=False)
        remove_pull_wrapper(DOCKER_WRAPPER_FILE, DOCKER_WRAPPER_BACKUP_FILE)

    if install_docker_wrapper:
        console.print(f"[+] Installing docker pull wrapper to {DOCKER_WRAPPER_FILE}...", markup=False)
        install_pull_wrapper(endpoints.prefixes, DOCKER_WRAPPER_FILE, DOCKER_WRAPPER_BACKUP_FILE)

    try:
        restart_docker_service()
    except subprocess.CalledProcessError as e:
        console.print(f"[+] ERROR: docker restart failed (exit code {e.returncode}).", style="red", markup=False)
        return 1

    if not skip_validation:
        console.print("[+] Validating configured endpoints...")
        validate_endpoints([f"{index_url}/", f"{endpoints.hub_url}/v2/", f"{endpoints.ghcr_url}/v2/"])

    if update:
        console.print("[+] Running metadata refresh checks...")
        run_metadata_refresh()

    _print_summary(
        index_url, endpoints,
        block_direct_registries, unblock_direct_registries,
        install_docker_wrapper, remove_docker_wrapper)

    return 0


def _make_arg_parser():
    parser = argparse.ArgumentParser(
        description=(
            "Nexus client configuration (system-wide).\n"
            "\n"
            "What it configures:\n"
            f"  - {PIP_CONFIG_FILE}\n"
            f"  - {DOCKER_DAEMON_CONFIG_FILE}\n"
            f"  - {PYTHON_PROFILE_FILE}\n"
            "\n"
            "Notes:\n"
            "  - Docker endpoints can be full URLs (https://.../repository/docker) or host:port (http assumed).\n"
            "  - Docker registry mirrors only work with registry-root endpoints (no path component).\n"
            "  - Docker CLI cannot pull through Nexus path endpoints; use a dedicated Nexus Docker connector/vhost (host[:port]).\n"
            "  - Wrapper mode rewrites only [docker pull]; all other docker commands are passed through unchanged.\n"
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument(
        '--nexus-host', type=str, default=ParserDefaults.NEXUS_HOST,
        help=f"Nexus public host. Default: {ParserDefaults.NEXUS_HOST}")
    parser.add_argument(
        '--pypi-repo', type=str, default=ParserDefaults.PYPI_REPO,
        help=f"Nexus PyPI proxy repo name. Default: {ParserDefaults.PYPI_REPO}")
    parser.add_argument(
        '--docker-hub-proxy', type=str, default=ParserDefaults.DOCKER_HUB_PROXY,
        help=f"Docker Hub proxy endpoint URL or host:port. Default: {ParserDefaults.DOCKER_HUB_PROXY}")
    parser.add_argument(
        '--docker-ghcr-proxy', type=str, default=ParserDefaults.DOCKER_GHCR_PROXY,
        help=f"GHCR proxy endpoint URL or host:port. Default: {ParserDefaults.DOCKER_GHCR_PROXY}")
    parser.add_argument(
        '--block-direct-registries', action='store_true',
        help=f"Add {HOSTS_FILE} blocks for direct docker.io/ghcr.io registry hosts.")
    parser.add_argument(
        '--unblock-direct-registries', action='store_true',
        help=f"Remove {HOSTS_FILE} blocks added by this script.")
    parser.add_argument(
        '--install-docker-wrapper', action='store_true',
        help=f"Install {DOCKER_WRAPPER_FILE} wrapper to rewrite pull refs to Nexus.")
    parser.add_argument(
        '--remove-docker-wrapper', action='store_true',
        help="Remove wrapper installed by this script.")
    parser.add_argument(
        '--update', action='store_true',
        help="Run pip and apt metadata refresh checks.")
    parser.add_argument(
        '--skip-validation', action='store_true',
        help="Don't send HEAD requests to the configured endpoints.")
    parser.add_argument(
        '--uninstall', action='store_true',
        help="Only remove the docker wrapper, restore the system docker binary and remove the hosts blocks.\n"
             "This is what package removal runs.")

    return parser


def main(argv: list | None = None) -> int:
    arg_parser = _make_arg_parser()
    exec_args = arg_parser.parse_args(argv)

    try:
        exit_result: int = run_configure_main(**vars(exec_args))
    except KeyboardInterrupt:
        print("Exiting...")
        exit_result = 1

    return exit_result


if __name__ == '__main__':
    sys.exit(main())

#!/usr/bin/env python3
"""
Docker CLI pull wrapper.
Rewrites the image reference of [docker pull] so the pull goes through the Nexus docker proxies.
All the other docker commands are passed to the real docker binary unchanged.
"""

import os
import sys
import shutil
from dataclasses import dataclass

from rich.console import Console


err_console = Console(stderr=True)


WRAPPER_MARKER: str = '# nexus-docker-pull-wrapper'
DEBUG_ENV_VARIABLE: str = 'NEXUS_DOCKER_WRAPPER_DEBUG'

SYSTEM_DOCKER_BINARY: str = '/usr/bin/docker'
SYSTEM_DOCKER_IO_BINARY: str = '/usr/bin/docker.io'

GHCR_REGISTRY: str = 'ghcr.io'
DOCKER_HUB_REGISTRY: str = 'docker.io'
OFFICIAL_IMAGES_NAMESPACE: str = 'library'

# [docker pull] options that take their value as the next argument.
PULL_OPTIONS_WITH_VALUE: tuple = ('--platform',)

MODULE_DIRECTORY: str = os.path.dirname(os.path.realpath(__file__))

WRAPPER_SCRIPT_TEMPLATE: str = """#!{python}
{marker}
import sys

sys.path.insert(0, {module_directory!r})

from docker_pull_wrapper import ProxyPrefixes, main

PROXY_PREFIXES = ProxyPrefixes(docker_hub={docker_hub!r}, ghcr={ghcr!r})

if __name__ == '__main__':
    sys.exit(main(sys.argv[1:], PROXY_PREFIXES))
"""


@dataclass(frozen=True)
class ProxyPrefixes:
    """
    Registry prefixes (host[:port], no scheme and no path) that front the upstream registries.
    """
    docker_hub: str
    ghcr: str


class RealDockerNotFoundError(Exception):
    """
    Exception raised when the real docker binary can't be found.
    """
    def __init__(self, message: str = "unable to find real docker binary"):
        super().__init__(message)


def first_segment(image: str) -> str:
    """
    Return the part of the image reference up to the first '/', or the whole reference if there is no '/'.
    """
    return image.split('/', 1)[0]


def is_explicit_registry(segment: str) -> bool:
    """
    Check if the first segment of an image reference names a registry host and not a Docker Hub namespace.
    :param segment: str, first segment of the image reference.
    :return: bool, True if the segment contains '.' or ':' or is 'localhost'.
    """
    return '.' in segment or ':' in segment or segment == 'localhost'


def is_already_proxied(image: str, prefixes: ProxyPrefixes) -> bool:
    """
    Check if the image reference already starts with one of the proxy prefixes followed by '/'.
    """
    return image.startswith(prefixes.docker_hub + '/') or image.startswith(prefixes.ghcr + '/')


def rewrite_image_ref(image: str, prefixes: ProxyPrefixes) -> str:
    """
    Rewrite an image reference to be pulled through the proxies.
    The first matching rule wins:
        1. Already starts with one of the proxy prefixes: unchanged.
        2. 'ghcr.io/...': moved under the GHCR proxy prefix.
        3. 'docker.io/...': moved under the Docker Hub proxy prefix.
        4. No '/' at all ('alpine:latest'): official image, '<hub prefix>/library/alpine:latest'.
        5. First segment is a registry host ('quay.io/...', 'localhost:5000/...'): unchanged.
        6. Docker Hub namespace ('myorg/myimage'): '<hub prefix>/myorg/myimage'.

    The proxy prefixes can contain '.' and ':' themselves, so rule 1 has to come before the registry host check.
    Applying the function on its own result returns the same reference.

    :param image: str, requested image reference.
    :param prefixes: ProxyPrefixes, the proxy prefixes to route through.
    :return: str, the reference to pull.
    """

    if is_already_proxied(image, prefixes):
        return image

    if image.startswith(f'{GHCR_REGISTRY}/'):
        return f"{prefixes.ghcr}/{image[len(GHCR_REGISTRY) + 1:]}"

    if image.startswith(f'{DOCKER_HUB_REGISTRY}/'):
        return f"{prefixes.docker_hub}/{image[len(DOCKER_HUB_REGISTRY) + 1:]}"

    # A 'host:port' without a path lands here too and is treated as an official image name.
    if '/' not in image:
        return f"{prefixes.docker_hub}/{OFFICIAL_IMAGES_NAMESPACE}/{image}"

    if is_explicit_registry(first_segment(image)):
        return image

    return f"{prefixes.docker_hub}/{image}"


def split_pull_args(args: list) -> tuple[list, str | None, list]:
    """
    Split [docker pull] arguments into options, the image reference and the extra arguments after it.

    :param args: list, arguments that follow 'pull'.
    :return: tuple of (options before the image, image reference or None, arguments after the image).
    """

    pull_opts: list = []
    extra: list = []
    image_ref: str | None = None

    expect_value = False
    for arg in args:
        if image_ref is None and expect_value:
            pull_opts.append(arg)
            expect_value = False
            continue

        if image_ref is None and arg.startswith('-'):
            pull_opts.append(arg)
            expect_value = arg in PULL_OPTIONS_WITH_VALUE
            continue

        if image_ref is None:
            image_ref = arg
            continue

        extra.append(arg)

    return pull_opts, image_ref, extra


def build_pull_argv(args: list, prefixes: ProxyPrefixes) -> tuple[str | None, str | None, list]:
    """
    Build the arguments for the real docker binary for a [docker pull] invocation.

    :param args: list, arguments that follow 'pull'.
    :param prefixes: ProxyPrefixes, the proxy prefixes to route through.
    :return: tuple of (original image reference, rewritten image reference, argv starting with 'pull').
        If there is no image reference in the arguments, both references are None.
    """

    pull_opts, image_ref, extra = split_pull_args(args)
    if image_ref is None:
        return None, None, ['pull', *pull_opts]

    rewritten = rewrite_image_ref(image_ref, prefixes)
    return image_ref, rewritten, ['pull', *pull_opts, rewritten, *extra]


def find_real_docker(self_path: str) -> str:
    """
    Find the docker executable that isn't this wrapper.

    :param self_path: str, path of the running wrapper.
    :return: str, path to the real docker binary.
    """

    real_docker: str | None = None
    if os.access(SYSTEM_DOCKER_BINARY, os.X_OK):
        real_docker = SYSTEM_DOCKER_BINARY
    else:
        real_docker = shutil.which('docker')

    if not real_docker:
        raise RealDockerNotFoundError

    if os.path.realpath(real_docker) == os.path.realpath(self_path):
        for fallback in (SYSTEM_DOCKER_BINARY, SYSTEM_DOCKER_IO_BINARY):
            if os.access(fallback, os.X_OK):
                return fallback
        raise RealDockerNotFoundError("docker wrapper recursion detected and fallback docker binary not found")

    return real_docker


def render_wrapper_script(
        prefixes: ProxyPrefixes,
        python: str = sys.executable,
        module_directory: str = MODULE_DIRECTORY
) -> str:
    """
    Render the executable that is installed in place of the docker CLI.
    The wrapper imports this module from module_directory, so it works from a source checkout as well as
    from an installed package.

    :param prefixes: ProxyPrefixes, the proxy prefixes baked into the wrapper.
    :param python: str, interpreter for the shebang line. It must have rich installed.
    :param module_directory: str, directory that holds docker_pull_wrapper.py.
    :return: str, the wrapper script content.
    """
    return WRAPPER_SCRIPT_TEMPLATE.format(
        python=python,
        marker=WRAPPER_MARKER,
        module_directory=module_directory,
        docker_hub=prefixes.docker_hub,
        ghcr=prefixes.ghcr,
    )


def main(args: list, prefixes: ProxyPrefixes, self_path: str | None = None) -> int:
    """
    Wrapper entry point. Replaces the current process with the real docker binary.

    :param args: list, docker command line arguments, without the program name.
    :param prefixes: ProxyPrefixes, the proxy prefixes to route through.
    :param self_path: str, path of the running wrapper. Default: sys.argv[0].
    :return: int, 1 if the real docker binary can't be found. Otherwise, os.execv doesn't return.
    """

    try:
        real_docker = find_real_docker(self_path or sys.argv[0])
    except RealDockerNotFoundError as e:
        err_console.print(f"Error: {e}", markup=False, highlight=False, soft_wrap=True)
        return 1

    if args and args[0] == 'pull':
        image_ref, rewritten, docker_argv = build_pull_argv(args[1:], prefixes)
        if os.environ.get(DEBUG_ENV_VARIABLE, '0') == '1' and rewritten != image_ref:
            err_console.print(f"docker wrapper rewrite: {image_ref} -> {rewritten}", markup=False, highlight=False, soft_wrap=True)
    else:
        docker_argv = list(args)

    os.execv(real_docker, [real_docker, *docker_argv])
    return 0

import json
import os
import subprocess

import pytest

import nexus_client_config
from docker_pull_wrapper import ProxyPrefixes
from nexus_client_config import (
    HOSTS_BLOCK_END,
    HOSTS_BLOCK_START,
    add_hosts_block,
    apply_hosts_blocks,
    docker_mirror_supported,
    install_pull_wrapper,
    is_host_port,
    normalize_endpoint_url,
    remove_hosts_blocks,
    remove_pull_wrapper,
    render_daemon_config,
    render_hosts_block,
    resolve_docker_endpoints,
    restore_system_docker_shim,
    strip_hosts_block,
    strip_scheme,
    write_daemon_config,
    write_pip_config,
    write_python_profile,
)


PREFIXES = ProxyPrefixes(docker_hub="nexus-docker.example.com:5000", ghcr="nexus-ghcr.example.com:5001")
ORIGINAL_HOSTS = "127.0.0.1 localhost\n::1 localhost\n"


@pytest.mark.parametrize("value, expected", [
    ("nexus.example.com:5000", "http://nexus.example.com:5000"),
    ("https://nexus.example.com/repository/docker/", "https://nexus.example.com/repository/docker"),
    ("http://nexus.example.com", "http://nexus.example.com"),
])
def test_normalize_endpoint_url(value, expected):
    assert normalize_endpoint_url(value) == expected


def test_strip_scheme():
    assert strip_scheme("https://nexus.example.com:5000/") == "nexus.example.com:5000"
    assert strip_scheme("http://nexus.example.com/docker") == "nexus.example.com/docker"


@pytest.mark.parametrize("value, expected", [
    ("nexus.example.com", True),
    ("nexus.example.com:5000", True),
    ("nexus.example.com/docker", False),
    ("https://nexus.example.com", False),
    ("nexus.example.com:port", False),
])
def test_is_host_port(value, expected):
    assert is_host_port(value) is expected


def test_docker_mirror_supported():
    assert docker_mirror_supported("https://nexus.example.com:5000")
    assert not docker_mirror_supported("https://nexus.example.com/repository/docker")


def test_resolve_host_port_endpoints():
    endpoints = resolve_docker_endpoints("nexus-docker.example.com:5000", "nexus-ghcr.example.com:5001")

    assert endpoints.hub_url == "http://nexus-docker.example.com:5000"
    assert endpoints.prefixes == PREFIXES
    assert endpoints.hub_mirror_supported and endpoints.ghcr_pull_supported
    assert render_daemon_config(endpoints) == {
        "registry-mirrors": ["http://nexus-docker.example.com:5000"],
        "insecure-registries": ["nexus-docker.example.com:5000", "nexus-ghcr.example.com:5001"],
    }


def test_resolve_path_endpoints():
    endpoints = resolve_docker_endpoints(
        "https://nexus.example.com/repository/docker/", "nexus.example.com/ghcr")

    assert endpoints.hub_prefix == "nexus.example.com/repository/docker"
    assert endpoints.ghcr_prefix == "nexus.example.com/ghcr"
    assert not endpoints.hub_mirror_supported
    assert not endpoints.ghcr_pull_supported
    assert render_daemon_config(endpoints) == {}


def test_write_daemon_config(tmp_path):
    daemon_config = tmp_path / "docker" / "daemon.json"
    endpoints = resolve_docker_endpoints("https://nexus-docker.example.com", "nexus-ghcr.example.com:5001")

    write_daemon_config(endpoints, str(daemon_config))

    assert json.loads(daemon_config.read_text()) == {
        "registry-mirrors": ["https://nexus-docker.example.com"],
        "insecure-registries": ["nexus-ghcr.example.com:5001"],
    }
    assert daemon_config.read_text().endswith("}\n")


def test_write_pip_config_and_profile(tmp_path):
    index_url = "https://nexus.example.com/repository/pypi/simple"
    pip_conf = tmp_path / "pip.conf"
    profile = tmp_path / "profile.d" / "nexus-python.sh"

    write_pip_config(index_url, "nexus.example.com", str(pip_conf))
    write_python_profile(index_url, "nexus.example.com", str(profile))

    assert pip_conf.read_text() == (
        "[global]\n"
        f"index-url = {index_url}\n"
        "trusted-host = nexus.example.com\n"
        "timeout = 60\n"
    )
    assert f'export PIP_INDEX_URL="{index_url}"\n' in profile.read_text()
    assert os.stat(profile).st_mode & 0o777 == 0o644


def test_hosts_block_lists_every_host_for_both_families():
    block = render_hosts_block().splitlines()

    assert block[0] == HOSTS_BLOCK_START
    assert block[-1] == HOSTS_BLOCK_END
    assert "0.0.0.0 registry-1.docker.io" in block
    assert ":: ghcr.io" in block
    assert len(block) == 2 + 2 * len(nexus_client_config.BLOCKED_REGISTRY_HOSTS)


def test_add_hosts_block_appends():
    content = add_hosts_block(ORIGINAL_HOSTS.rstrip("\n"))

    assert content == ORIGINAL_HOSTS + render_hosts_block() + "\n"


def test_add_hosts_block_to_empty_file():
    assert add_hosts_block("") == render_hosts_block() + "\n"


def test_add_hosts_block_replaces_existing_block_in_place():
    stale = f"{HOSTS_BLOCK_START}\n0.0.0.0 old.example.com\n{HOSTS_BLOCK_END}\n"
    content = ORIGINAL_HOSTS + stale + "10.0.0.5 build-host\n"

    new_content = add_hosts_block(content)

    assert "old.example.com" not in new_content
    assert new_content == ORIGINAL_HOSTS + render_hosts_block() + "\n10.0.0.5 build-host\n"
    assert add_hosts_block(new_content) == new_content


def test_strip_hosts_block_round_trip():
    assert strip_hosts_block(add_hosts_block(ORIGINAL_HOSTS)) == ORIGINAL_HOSTS
    assert strip_hosts_block(ORIGINAL_HOSTS) == ORIGINAL_HOSTS
    assert strip_hosts_block(add_hosts_block("")) == ""


def test_strip_hosts_block_keeps_lines_after_block():
    content = ORIGINAL_HOSTS + render_hosts_block() + "\n\n10.0.0.5 build-host\n"

    assert strip_hosts_block(content) == ORIGINAL_HOSTS + "10.0.0.5 build-host\n"


def test_apply_and_remove_hosts_blocks(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(ORIGINAL_HOSTS)

    apply_hosts_blocks(str(hosts))
    assert HOSTS_BLOCK_START in hosts.read_text()

    assert remove_hosts_blocks(str(hosts))
    assert hosts.read_text() == ORIGINAL_HOSTS
    assert not remove_hosts_blocks(str(hosts))


def test_remove_hosts_blocks_without_hosts_file(tmp_path):
    assert not remove_hosts_blocks(str(tmp_path / "hosts"))


@pytest.fixture
def wrapper_paths(tmp_path):
    return tmp_path / "docker", tmp_path / "docker.original-pre-nexus-wrapper"


def test_install_and_remove_wrapper_restores_original(wrapper_paths):
    wrapper, backup = wrapper_paths
    wrapper.write_bytes(b"#!/bin/sh\necho original\n")

    install_pull_wrapper(PREFIXES, str(wrapper), str(backup), python="/usr/bin/python3")

    assert b"# nexus-docker-pull-wrapper" in wrapper.read_bytes()
    assert backup.read_bytes() == b"#!/bin/sh\necho original\n"
    assert os.stat(wrapper).st_mode & 0o777 == 0o755

    assert remove_pull_wrapper(str(wrapper), str(backup))
    assert wrapper.read_bytes() == b"#!/bin/sh\necho original\n"
    assert not backup.exists()


def test_reinstall_keeps_first_backup(wrapper_paths):
    wrapper, backup = wrapper_paths
    wrapper.write_bytes(b"original")

    install_pull_wrapper(PREFIXES, str(wrapper), str(backup))
    install_pull_wrapper(ProxyPrefixes(docker_hub="a.example.com", ghcr="b.example.com"), str(wrapper), str(backup))

    assert backup.read_bytes() == b"original"
    assert b"a.example.com" in wrapper.read_bytes()


def test_install_replaces_symlink_without_backup(wrapper_paths, tmp_path):
    wrapper, backup = wrapper_paths
    target = tmp_path / "real-docker"
    target.write_bytes(b"real")
    wrapper.symlink_to(target)

    install_pull_wrapper(PREFIXES, str(wrapper), str(backup))

    assert not wrapper.is_symlink()
    assert not backup.exists()
    assert target.read_bytes() == b"real"


def test_remove_wrapper_without_backup_deletes_it(wrapper_paths):
    wrapper, backup = wrapper_paths

    install_pull_wrapper(PREFIXES, str(wrapper), str(backup))

    assert remove_pull_wrapper(str(wrapper), str(backup))
    assert not wrapper.exists()


def test_remove_wrapper_leaves_foreign_docker_alone(wrapper_paths):
    wrapper, backup = wrapper_paths
    wrapper.write_bytes(b"#!/bin/sh\necho someone else's\n")

    assert not remove_pull_wrapper(str(wrapper), str(backup))
    assert wrapper.exists()


@pytest.mark.skipif(os.access("/usr/bin/docker", os.X_OK), reason="a real /usr/bin/docker would take precedence")
def test_installed_wrapper_runs_outside_the_source_tree(tmp_path):
    wrapper = tmp_path / "local-bin" / "docker"
    install_pull_wrapper(PREFIXES, str(wrapper), str(tmp_path / "local-bin" / "docker.bak"))

    fake_bin = tmp_path / "bin"
    fake_bin.mkdir()
    fake_docker = fake_bin / "docker"
    fake_docker.write_text('#!/bin/sh\necho "$@"\n')
    fake_docker.chmod(0o755)

    workdir = tmp_path / "elsewhere"
    workdir.mkdir()
    result = subprocess.run(
        [str(wrapper), "pull", "--quiet", "alpine:latest"],
        cwd=workdir,
        env={"PATH": f"{fake_bin}:/usr/bin:/bin"},
        capture_output=True,
        text=True,
    )

    assert result.returncode == 0, result.stderr
    assert result.stdout.strip() == "pull --quiet nexus-docker.example.com:5000/library/alpine:latest"


@pytest.fixture
def shim_paths(tmp_path):
    system_docker = tmp_path / "usr-bin-docker"
    system_backup = tmp_path / "usr-bin-docker.original-pre-nexus-wrapper"
    system_backup.write_bytes(b"real docker")
    return system_docker, system_backup


def test_restore_shim_when_binary_missing(shim_paths):
    system_docker, system_backup = shim_paths

    assert restore_system_docker_shim(str(system_docker), str(system_backup))
    assert system_docker.read_bytes() == b"real docker"
    assert not system_backup.exists()


def test_restore_shim_replaces_marked_shim(shim_paths):
    system_docker, system_backup = shim_paths
    system_docker.write_bytes(b"#!/bin/sh\n# nexus-docker-shim\n")

    assert restore_system_docker_shim(str(system_docker), str(system_backup))
    assert system_docker.read_bytes() == b"real docker"


def test_restore_shim_keeps_unmarked_binary(shim_paths):
    system_docker, system_backup = shim_paths
    system_docker.write_bytes(b"upgraded docker")

    assert not restore_system_docker_shim(str(system_docker), str(system_backup))
    assert system_docker.read_bytes() == b"upgraded docker"
    assert system_backup.exists()


@pytest.fixture
def system_files(tmp_path, monkeypatch):
    """Point every system path of the configurator into tmp_path."""
    paths = {
        'PIP_CONFIG_FILE': tmp_path / "etc" / "pip.conf",
        'PYTHON_PROFILE_FILE': tmp_path / "etc" / "profile.d" / "nexus-python.sh",
        'DOCKER_DAEMON_CONFIG_FILE': tmp_path / "etc" / "docker" / "daemon.json",
        'HOSTS_FILE': tmp_path / "etc" / "hosts",
        'DOCKER_WRAPPER_FILE': tmp_path / "usr" / "local" / "bin" / "docker",
        'DOCKER_WRAPPER_BACKUP_FILE': tmp_path / "usr" / "local" / "bin" / "docker.original-pre-nexus-wrapper",
        'SYSTEM_DOCKER_FILE': tmp_path / "usr" / "bin" / "docker",
        'SYSTEM_DOCKER_BACKUP_FILE': tmp_path / "usr" / "bin" / "docker.original-pre-nexus-wrapper",
    }
    (tmp_path / "etc").mkdir()
    paths['HOSTS_FILE'].write_text(ORIGINAL_HOSTS)

    for name, path in paths.items():
        monkeypatch.setattr(nexus_client_config, name, str(path))
    monkeypatch.setattr(nexus_client_config, "is_admin", lambda: True)
    monkeypatch.setattr(nexus_client_config, "restart_docker_service", lambda: None)
    return paths


def test_configure_main_writes_everything(system_files, monkeypatch):
    probed = []
    monkeypatch.setattr(nexus_client_config, "validate_endpoints", probed.extend)

    exit_code = nexus_client_config.main([
        "--nexus-host", "nexus.example.com",
        "--docker-hub-proxy", "nexus-docker.example.com:5000",
        "--docker-ghcr-proxy", "nexus-ghcr.example.com:5001",
        "--block-direct-registries",
        "--install-docker-wrapper",
    ])

    assert exit_code == 0
    assert "index-url = https://nexus.example.com/repository/pypi/simple" in system_files['PIP_CONFIG_FILE'].read_text()
    assert system_files['PYTHON_PROFILE_FILE'].exists()
    assert json.loads(system_files['DOCKER_DAEMON_CONFIG_FILE'].read_text())["registry-mirrors"] == [
        "http://nexus-docker.example.com:5000"]
    assert HOSTS_BLOCK_START in system_files['HOSTS_FILE'].read_text()
    assert "docker_hub='nexus-docker.example.com:5000'" in system_files['DOCKER_WRAPPER_FILE'].read_text()
    assert probed == [
        "https://nexus.example.com/repository/pypi/simple/",
        "http://nexus-docker.example.com:5000/v2/",
        "http://nexus-ghcr.example.com:5001/v2/",
    ]


def test_configure_main_uninstall(system_files):
    nexus_client_config.main(["--block-direct-registries", "--install-docker-wrapper", "--skip-validation"])

    assert nexus_client_config.main(["--uninstall"]) == 0
    assert system_files['HOSTS_FILE'].read_text() == ORIGINAL_HOSTS
    assert not system_files['DOCKER_WRAPPER_FILE'].exists()


@pytest.mark.parametrize("argv", [
    ["--block-direct-registries", "--unblock-direct-registries"],
    ["--install-docker-wrapper", "--remove-docker-wrapper"],
    ["--uninstall", "--install-docker-wrapper"],
    ["--nexus-host", ""],
])
def test_configure_main_rejects_bad_arguments(argv, monkeypatch, capsys):
    monkeypatch.setattr(nexus_client_config, "is_admin", lambda: True)

    assert nexus_client_config.main(argv) == 1
    assert "ERROR" in capsys.readouterr().out


def test_configure_main_requires_root(monkeypatch, capsys):
    monkeypatch.setattr(nexus_client_config, "is_admin", lambda: False)

    assert nexus_client_config.main(["--skip-validation"]) == 1
    assert "root" in capsys.readouterr().out


def test_restart_docker_service_with_systemd(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout="docker.service enabled enabled\nssh.service enabled\n")

    monkeypatch.setattr(nexus_client_config.shutil, "which", lambda name: "/usr/bin/systemctl")
    monkeypatch.setattr(nexus_client_config.subprocess, "run", fake_run)

    nexus_client_config.restart_docker_service()

    assert calls == [["systemctl", "list-unit-files"], ["systemctl", "restart", "docker"]]


def test_restart_docker_service_without_docker_unit(monkeypatch):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0, stdout="ssh.service enabled\n")

    monkeypatch.setattr(nexus_client_config.shutil, "which", lambda name: "/usr/bin/systemctl")
    monkeypatch.setattr(nexus_client_config.subprocess, "run", fake_run)

    nexus_client_config.restart_docker_service()

    assert calls == [["systemctl", "list-unit-files"]]


def test_restart_docker_service_without_systemd_warns(monkeypatch, capsys):
    monkeypatch.setattr(nexus_client_config.shutil, "which", lambda name: None)
    monkeypatch.setattr(nexus_client_config, "is_docker_daemon_running", lambda: True)

    nexus_client_config.restart_docker_service()

    assert "systemctl is not available" in capsys.readouterr().out


def test_validate_endpoints_reports_unreachable(monkeypatch, capsys):
    def fake_probe(url, timeout=15):
        if "down" in url:
            raise ConnectionRefusedError("Connection refused")
        return ["HTTP/1.1 401 Unauthorized", "Docker-Distribution-Api-Version: registry/2.0"]

    monkeypatch.setattr(nexus_client_config, "probe_endpoint", fake_probe)

    nexus_client_config.validate_endpoints(["http://up.example.com/v2/", "http://down.example.com/v2/"])

    out = capsys.readouterr().out
    assert "401 Unauthorized" in out
    assert "down.example.com" in out and "not reachable" in out


def test_arguments_error_is_documented():
    assert "command line options" in nexus_client_config.ArgumentsError.__doc__

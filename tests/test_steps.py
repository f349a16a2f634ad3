import shlex
from pathlib import Path

import pytest

from proxmox_vm_prep import apt
from proxmox_vm_prep.errors import (
    ConfigurationError,
    ExecutionError,
    FatalStepError,
    MissingInputError,
    ValidationError,
)
from proxmox_vm_prep.runner import StepOutcome, run_step
from proxmox_vm_prep.steps import (
    ChangeHostname,
    DockerPostinstall,
    EnsureSudo,
    InstallNvm,
    InstallPackages,
    InstallPipx,
    InstallTailscale,
    SecurityHardening,
    SetupFirewall,
    ShellCustomizations,
)


# ----------------------------------------------------------------
# Prep steps
# ----------------------------------------------------------------
def test_ensure_sudo_adds_user_through_su(host, system):
    step = EnsureSudo()
    assert not step.check(host)

    step.apply(host)

    su_call = system.calls_to("su")[-1]
    assert su_call[-1] == "root"
    assert "usermod -aG sudo alice" in su_call[2]
    assert "visudo -c -f" in su_call[2]
    assert step.check(host)


def test_ensure_sudo_installs_sudo_when_missing(host, system):
    system.commands.discard("sudo")

    EnsureSudo().apply(host)

    assert system.calls_to("su")[0] == ["su", "-c", "apt-get install -y sudo", "root"]


def test_ensure_sudo_sanitises_sudoers_file_name(host, system):
    host.user = "first.last"

    EnsureSudo().apply(host)

    assert "sudoers.d/first_last" in system.calls_to("su")[-1][2]


def test_install_packages_installs_exactly_the_missing(host, system):
    system.installed.update({"git"})

    message = InstallPackages().apply(host)

    assert system.calls_to("apt-get", "install") == [
        ["apt-get", "install", "-y", "curl", "htop"]
    ]
    assert message == "installed 2 packages"


def test_install_packages_nothing_missing(host, system):
    system.installed.update({"curl", "git", "htop"})

    assert InstallPackages().apply(host) == "nothing to install"
    assert not system.ran("apt-get", "install")


def test_install_packages_update_failure_is_fatal(host, system):
    system.fail("apt-get", "update")

    with pytest.raises(FatalStepError):
        InstallPackages().apply(host)
    assert not system.ran("apt-get", "install")


def test_install_packages_install_failure_is_soft(host, system):
    system.fail("apt-get", "install")

    result = run_step(InstallPackages(), host)

    assert result.outcome is StepOutcome.FAILED


def test_configure_apt_sources(host, system):
    config = system.config
    stale = Path(config.SOURCES_DIR, "old.list")
    stale.write_text("deb http://example.invalid stable main\n")
    Path(config.tailscale_list_path).write_text("deb tailscale\n")

    apt.configure_apt_sources(host)

    assert Path(config.SOURCES_LIST).read_text().startswith("#deb cdrom:")
    assert Path(config.official_sources_path).read_text() == apt.render_official_sources(config)
    assert not stale.exists()
    assert Path(config.tailscale_list_path).exists()


def test_configure_apt_sources_is_quiet_when_already_done(host, system):
    apt.configure_apt_sources(host)
    system.calls.clear()

    apt.configure_apt_sources(host)

    assert not system.ran("tee")
    assert not system.ran("rm")


def test_render_official_sources_mentions_all_suites(host):
    text = apt.render_official_sources(host.config)

    assert "Suites: bookworm bookworm-updates bookworm-backports" in text
    assert "Suites: bookworm-security" in text
    assert text.count("Signed-By: /usr/share/keyrings/debian-archive-keyring.gpg") == 2


def test_install_nvm(host, system):
    step = InstallNvm()
    assert not step.check(host)

    step.apply(host)

    assert step.check(host)
    scripts = [c[2] for c in system.calls_to("bash")]
    assert "curl -o-" in scripts[0]
    assert "nvm install --lts" in scripts[1]


def test_install_pipx_falls_back_to_apt(host, system):
    system.fail("python3", "-m", "pip")

    InstallPipx().apply(host)

    assert ["apt-get", "install", "-y", "pipx"] in system.calls
    assert ["python3", "-m", "pipx", "install", "--include-deps", "ansible"] in system.calls


def test_install_pipx_reports_failed_apps(host, system):
    system.fail("python3", "-m", "pipx", "install", "poetry")

    with pytest.raises(ExecutionError, match="poetry"):
        InstallPipx().apply(host)
    assert ["python3", "-m", "pipx", "install", "--include-deps", "ansible"] in system.calls


def test_docker_postinstall(host, system):
    step = DockerPostinstall()
    assert not step.check(host)

    step.apply(host)

    assert ["usermod", "-aG", "docker", "alice"] in system.calls
    assert step.check(host)


def test_shell_customizations_are_idempotent(host, system):
    rc = system.home / ".bashrc"
    rc.write_text("# existing\n" + system.config.ALIASES[0] + "\n")

    assert run_step(ShellCustomizations(), host).outcome is StepOutcome.APPLIED
    assert run_step(ShellCustomizations(), host).outcome is StepOutcome.SATISFIED

    lines = rc.read_text().splitlines()
    for alias in system.config.ALIASES:
        assert lines.count(alias) == 1
    assert lines[0] == "# existing"


def test_security_hardening(host, system):
    config = system.config
    step = SecurityHardening()
    assert not step.check(host)

    step.apply(host)

    text = Path(config.SSHD_CONFIG).read_text()
    assert "PasswordAuthentication no" in text
    assert "PermitRootLogin no" in text
    assert ["sshd", "-t"] in system.calls
    backups = list(Path(config.SSH_DIR).glob("sshd_config.bak.*"))
    assert len(backups) == 1
    assert "#PermitRootLogin prohibit-password" in backups[0].read_text()
    assert step.check(host)


def test_security_hardening_rejected_config(host, system):
    system.fail("sshd", "-t")

    with pytest.raises(ConfigurationError, match="backup"):
        SecurityHardening().apply(host)
    assert not system.ran("systemctl", "reload")


# ----------------------------------------------------------------
# Post-clone steps
# ----------------------------------------------------------------
def test_change_hostname(host, system):
    system.answers = {"hostname": "web-01"}

    assert ChangeHostname().apply(host) == "web-01"

    assert ["hostnamectl", "set-hostname", "web-01"] in system.calls
    assert "127.0.1.1 web-01" in Path(system.config.HOSTS_FILE).read_text()


def test_change_hostname_empty_input(host, system):
    with pytest.raises(MissingInputError):
        ChangeHostname().apply(host)
    assert not system.ran("hostnamectl")


def test_change_hostname_invalid(host, system):
    system.answers = {"hostname": "not_valid!"}

    with pytest.raises(ValidationError):
        ChangeHostname().apply(host)
    assert not system.ran("hostnamectl")


def test_change_hostname_unchanged(host, system):
    system.answers = {"hostname": "template"}

    assert ChangeHostname().apply(host) == "unchanged"
    assert not system.ran("hostnamectl")


def test_install_tailscale_without_auth_key(host, system):
    step = InstallTailscale()
    assert not step.check(host)

    assert step.apply(host) == "installed, not connected"

    assert ["apt-get", "install", "-y", "tailscale"] in system.calls
    assert not system.ran("tailscale", "up")
    assert step.check(host)


def test_install_tailscale_with_auth_key_is_redacted(host, system):
    system.secret = "tskey-auth-secret"

    assert InstallTailscale().apply(host) == "installed and connected"

    cmd, kwargs = next(c for c in system.raw_calls if "up" in c[0])
    assert cmd == ["sudo", "tailscale", "up", "--auth-key", "tskey-auth-secret"]
    assert kwargs["redact"] == ["tskey-auth-secret"]
    assert ["systemctl", "enable", "tailscaled"] in system.calls


def test_setup_firewall(host, system):
    step = SetupFirewall()
    assert not step.check(host)

    step.apply(host)

    ufw_calls = system.calls_to("ufw")
    assert ["ufw", "default", "deny", "incoming"] in ufw_calls
    assert ["ufw", "allow", "41641/udp"] in ufw_calls
    assert ufw_calls[-1] == ["ufw", "--force", "enable"]
    assert step.check(host)


# ----------------------------------------------------------------
# Started through sudo
# ----------------------------------------------------------------
def test_install_nvm_under_sudo_targets_the_user_home(root_host, system, tmp_path):
    system.process_home = tmp_path / "root"
    step = InstallNvm()

    step.apply(root_host)

    bash_calls = [cmd for cmd, _ in system.raw_calls if "bash" in cmd]
    assert all(cmd[:4] == ["sudo", "-u", "alice", "-H"] for cmd in bash_calls)
    assert step.check(root_host)
    assert not (tmp_path / "root" / ".nvm").exists()


def test_install_pipx_under_sudo_runs_as_the_user(root_host, system):
    InstallPipx().apply(root_host)

    pipx_calls = [cmd for cmd, _ in system.raw_calls if "python3" in cmd]
    assert pipx_calls
    assert all(cmd[:4] == ["sudo", "-u", "alice", "-H"] for cmd in pipx_calls)


def test_shell_customizations_under_sudo_hands_new_rc_to_user(root_host, system):
    ShellCustomizations().apply(root_host)

    rc = system.home / ".bashrc"
    assert ["chown", "alice:", str(rc)] in system.calls


def test_shell_customizations_keeps_owner_of_existing_rc(root_host, system):
    (system.home / ".bashrc").write_text("# mine\n")

    ShellCustomizations().apply(root_host)

    assert not system.ran("chown")


def test_ensure_sudo_quotes_the_sudoers_rule(host, system):
    host.user = "o'neil"

    EnsureSudo().apply(host)

    script = system.calls_to("su")[-1][2]
    assert f"echo {shlex.quote(host.user + ' ALL=(ALL) NOPASSWD:ALL')} >" in script
    assert "echo 'o'neil" not in script

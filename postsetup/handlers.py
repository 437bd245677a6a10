"""Host configuration handlers.

Each handler covers one configuration concern and is made of ordered
sub-steps that go through the confirmation gate one at a time. Sub-steps that
rewrite an existing file list it as a backup target.
"""
import os
import re
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from types import MappingProxyType
from typing import Callable, List, Mapping

import sh

from postsetup.config import Tier
from postsetup.errors import ActionFailed, MissingSetting
from postsetup.gate import RunContext, SubStep, apply_step
from postsetup.utils import command_exists, log_info
from postsetup.variables import Variables

HOME_ROOT = Path("/home")
SUDOERS_DIR = Path("/etc/sudoers.d")
SSHD_CONFIG = Path("/etc/ssh/sshd_config")
FAIL2BAN_JAIL = Path("/etc/fail2ban/jail.local")
WIREGUARD_DIR = Path("/etc/wireguard")
DOCKER_KEYRING = Path("/etc/apt/keyrings/docker.asc")
DOCKER_SOURCES = Path("/etc/apt/sources.list.d/docker.list")

DOCKER_REPO = "https://download.docker.com/linux/ubuntu"
TAILSCALE_INSTALL_URL = "https://tailscale.com/install.sh"
GITHUB_KEYS_URL = "https://github.com/{}.keys"

DEFAULT_WIREGUARD_ADDRESS = "10.0.0.1/24"
DEFAULT_SSH_SERVICE = "ssh"


class HandlerKind(str, Enum):
    ADMIN_ACCOUNT = "admin-account"
    FIREWALL = "firewall"
    FAIL2BAN = "fail2ban"
    SSH_HARDENING = "ssh-hardening"
    DOCKER = "docker"
    WIREGUARD = "wireguard"
    TAILSCALE = "tailscale"
    COMMON_TOOLS = "common-tools"


@dataclass(frozen=True)
class Handler:
    kind: HandlerKind
    title: str
    build_steps: Callable[[Variables], List[SubStep]]


def apt_install(*packages: str) -> None:
    """Install packages with apt-get without any debconf prompts."""
    env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")
    sh.apt_get("install", "-y", *packages, _env=env)


def enable_service(unit: str) -> None:
    sh.systemctl("enable", "--now", unit)


def write_private_file(path: Path, content: str, mode: int = 0o600) -> None:
    """Write ``content`` to ``path`` so it is never readable beyond ``mode``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)
    path.chmod(mode)


# Administrative account

def create_account(name: str, public_key: str, github_user: str) -> None:
    sh.adduser("--disabled-password", "--gecos", "", name)

    ssh_dir = HOME_ROOT / name / ".ssh"
    ssh_dir.mkdir(parents=True, exist_ok=True)
    if not public_key:
        public_key = str(sh.curl("-fsSL", GITHUB_KEYS_URL.format(github_user)))

    authorized_keys = ssh_dir / "authorized_keys"
    authorized_keys.write_text(public_key.strip() + "\n")
    ssh_dir.chmod(0o700)
    authorized_keys.chmod(0o600)
    sh.chown("-R", f"{name}:{name}", str(ssh_dir))


def lock_password(name: str) -> None:
    sh.passwd("-d", name)
    sh.passwd("-l", name)


def grant_passwordless_sudo(name: str) -> None:
    sudoers = SUDOERS_DIR / name
    write_private_file(sudoers, f"{name} ALL=(ALL) NOPASSWD:ALL\n", mode=0o440)
    try:
        sh.visudo("-cf", str(sudoers))
    except sh.ErrorReturnCode:
        # sudo refuses to run while an invalid drop-in is present
        sudoers.unlink()
        raise


def admin_account_steps(variables: Variables) -> List[SubStep]:
    name = variables.require("ANSIBLE_ACCOUNT_NAME")
    public_key = variables.get("ANSIBLE_PUBLIC_KEY", "")
    github_user = variables.get("ANSIBLE_GITHUB_USERNAME", "")
    if not public_key and not github_user:
        raise MissingSetting("ANSIBLE_PUBLIC_KEY")

    steps = [SubStep(f"creating {name} user", partial(create_account, name, public_key, github_user))]
    if variables.flag("ANSIBLE_PASSWORDLESS"):
        steps.append(SubStep(f"disabling password for {name} user", partial(lock_password, name)))
    if variables.flag("ANSIBLE_SUDO_PASSWORDLESS"):
        steps.append(SubStep(
            f"granting password-less sudo for {name} user",
            partial(grant_passwordless_sudo, name),
            backup=(SUDOERS_DIR / name,),
        ))
    return steps


# Firewall

def configure_firewall(port: str) -> None:
    apt_install("ufw")
    sh.ufw("default", "deny", "incoming")
    sh.ufw("default", "allow", "outgoing")
    sh.ufw("allow", port)
    sh.ufw("--force", "enable")


def firewall_steps(variables: Variables) -> List[SubStep]:
    port = variables.require("ALLOW_SSH_PORT")
    return [SubStep("setting up UFW firewall", partial(configure_firewall, port))]


# Fail2Ban

def render_jail(bantime: str, findtime: str, maxretry: str) -> str:
    return (
        "[DEFAULT]\n"
        f"bantime = {bantime}\n"
        f"findtime = {findtime}\n"
        f"maxretry = {maxretry}\n"
        "\n"
        "[sshd]\n"
        "enabled = true\n"
    )


def configure_fail2ban(jail: str) -> None:
    apt_install("fail2ban")
    FAIL2BAN_JAIL.parent.mkdir(parents=True, exist_ok=True)
    FAIL2BAN_JAIL.write_text(jail)
    sh.systemctl("restart", "fail2ban")


def fail2ban_steps(variables: Variables) -> List[SubStep]:
    jail = render_jail(
        variables.require("FAIL2BAN_BANTIME"),
        variables.require("FAIL2BAN_FINDTIME"),
        variables.require("FAIL2BAN_MAXRETRY"),
    )
    return [SubStep(
        "installing and configuring Fail2Ban",
        partial(configure_fail2ban, jail),
        backup=(FAIL2BAN_JAIL,),
    )]


# SSH hardening

def set_sshd_option(text: str, option: str, value: str) -> str:
    """Set ``option`` in sshd_config text, uncommenting it or appending it."""
    line = f"{option} {value}"
    pattern = re.compile(rf"^#?[ \t]*{re.escape(option)}[ \t].*$", re.MULTILINE)
    text, count = pattern.subn(lambda _: line, text)
    if count == 0:
        if text and not text.endswith("\n"):
            text += "\n"
        text += line + "\n"
    return text


def harden_sshd(options: Mapping[str, str], service: str) -> None:
    """Rewrite sshd_config, validate it and reload the daemon.

    The previous file is put back when `sshd -t` rejects the new one.
    """
    original = SSHD_CONFIG.read_text()
    text = original
    for option, value in options.items():
        text = set_sshd_option(text, option, value)
    SSHD_CONFIG.write_text(text)
    try:
        sh.sshd("-t")
    except sh.ErrorReturnCode:
        SSHD_CONFIG.write_text(original)
        raise
    sh.systemctl("reload", service)


def ssh_hardening_steps(variables: Variables) -> List[SubStep]:
    options = {
        "Port": variables.require("SSH_PORT"),
        "PermitRootLogin": variables.require("SSH_DISABLE_ROOT"),
        "PasswordAuthentication": variables.require("SSH_DISABLE_PASSWORD_AUTH"),
    }
    service = variables.get("SSH_SERVICE") or DEFAULT_SSH_SERVICE
    return [SubStep(
        "configuring SSH security settings",
        partial(harden_sshd, options, service),
        backup=(SSHD_CONFIG,),
    )]


# Docker

def add_docker_repository() -> None:
    apt_install("ca-certificates", "curl", "gnupg", "lsb-release")
    DOCKER_KEYRING.parent.mkdir(parents=True, exist_ok=True)
    sh.curl("-fsSL", f"{DOCKER_REPO}/gpg", "-o", str(DOCKER_KEYRING))
    DOCKER_KEYRING.chmod(0o644)

    arch = str(sh.dpkg("--print-architecture")).strip()
    codename = str(sh.lsb_release("-cs")).strip()
    DOCKER_SOURCES.write_text(
        f"deb [arch={arch} signed-by={DOCKER_KEYRING}] {DOCKER_REPO} {codename} stable\n"
    )
    sh.apt_get("update")


def install_docker() -> None:
    apt_install("docker-ce", "docker-ce-cli", "containerd.io", "docker-compose-plugin")


def docker_steps(variables: Variables) -> List[SubStep]:
    return [
        SubStep("adding the Docker package repository", add_docker_repository, backup=(DOCKER_SOURCES,)),
        SubStep("installing Docker and Docker Compose", install_docker),
    ]


# WireGuard

def render_wireguard_interface(address: str, port: str, private_key: str) -> str:
    return (
        "[Interface]\n"
        f"Address = {address}\n"
        f"ListenPort = {port}\n"
        f"PrivateKey = {private_key}\n"
        "SaveConfig = true\n"
    )


def generate_wireguard_keys() -> None:
    apt_install("wireguard", "qrencode")
    private_key = str(sh.wg("genkey")).strip()
    public_key = str(sh.wg("pubkey", _in=private_key)).strip()
    write_private_file(WIREGUARD_DIR / "privatekey", private_key + "\n")
    (WIREGUARD_DIR / "publickey").write_text(public_key + "\n")


def write_wireguard_interface(interface: str, address: str, port: str) -> None:
    private_key = (WIREGUARD_DIR / "privatekey").read_text().strip()
    write_private_file(
        WIREGUARD_DIR / f"{interface}.conf",
        render_wireguard_interface(address, port, private_key),
    )


def wireguard_steps(variables: Variables) -> List[SubStep]:
    interface = variables.require("WIREGUARD_INTERFACE")
    port = variables.require("WIREGUARD_PORT")
    address = variables.get("WIREGUARD_ADDRESS") or DEFAULT_WIREGUARD_ADDRESS
    return [
        SubStep(
            "installing WireGuard and generating its key pair",
            generate_wireguard_keys,
            backup=(WIREGUARD_DIR / "privatekey", WIREGUARD_DIR / "publickey"),
        ),
        SubStep(
            f"writing WireGuard interface {interface}",
            partial(write_wireguard_interface, interface, address, port),
            backup=(WIREGUARD_DIR / f"{interface}.conf",),
        ),
        SubStep(
            f"enabling wg-quick@{interface}",
            partial(enable_service, f"wg-quick@{interface}"),
        ),
    ]


# Tailscale

def install_tailscale() -> None:
    if command_exists("tailscale"):
        log_info("Tailscale is already installed.")
        return
    install_script = sh.curl("-fsSL", TAILSCALE_INSTALL_URL)
    sh.bash("-c", install_script)


def join_tailnet(auth_key: str, hostname: str, routes: str) -> None:
    args = ["up", "--authkey", auth_key]
    if hostname:
        args += ["--hostname", hostname]
    if routes:
        args += ["--advertise-routes", routes]
    sh.tailscale(*args)


def tailscale_steps(variables: Variables) -> List[SubStep]:
    auth_key = variables.require("TAILSCALE_AUTH_KEY")
    hostname = variables.get("TAILSCALE_HOSTNAME", "")
    routes = variables.get("TAILSCALE_ADVERTISE_ROUTES", "")
    return [
        SubStep("installing Tailscale", install_tailscale),
        SubStep("enabling tailscaled", partial(enable_service, "tailscaled")),
        SubStep("joining the Tailscale network", partial(join_tailnet, auth_key, hostname, routes)),
    ]


# Common tools

def common_tools_steps(variables: Variables) -> List[SubStep]:
    tools = variables.require("COMMON_TOOLS").split()
    return [SubStep("common tools installation", partial(apt_install, *tools))]


HANDLERS: Mapping[HandlerKind, Handler] = MappingProxyType({
    HandlerKind.ADMIN_ACCOUNT: Handler(HandlerKind.ADMIN_ACCOUNT, "Configuring Ansible user...", admin_account_steps),
    HandlerKind.FIREWALL: Handler(HandlerKind.FIREWALL, "Configuring firewall...", firewall_steps),
    HandlerKind.FAIL2BAN: Handler(HandlerKind.FAIL2BAN, "Configuring Fail2Ban...", fail2ban_steps),
    HandlerKind.SSH_HARDENING: Handler(HandlerKind.SSH_HARDENING, "Hardening SSH...", ssh_hardening_steps),
    HandlerKind.DOCKER: Handler(HandlerKind.DOCKER, "Installing Docker...", docker_steps),
    HandlerKind.WIREGUARD: Handler(HandlerKind.WIREGUARD, "Configuring WireGuard...", wireguard_steps),
    HandlerKind.TAILSCALE: Handler(HandlerKind.TAILSCALE, "Configuring Tailscale...", tailscale_steps),
    HandlerKind.COMMON_TOOLS: Handler(HandlerKind.COMMON_TOOLS, "Installing common tools...", common_tools_steps),
})


def run_handler(ctx: RunContext, handler: Handler, tier: Tier) -> int:
    """Run every sub-step of ``handler``; returns how many were applied."""
    log_info(handler.title)
    try:
        steps = handler.build_steps(ctx.variables)
    except MissingSetting as e:
        raise ActionFailed(f"configuring {handler.kind.value}", tier, e) from e

    applied = 0
    for step in steps:
        if apply_step(ctx, step, tier):
            applied += 1
    return applied

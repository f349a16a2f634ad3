"""The two provisioning phases and what to tell the user afterwards."""

from dataclasses import dataclass, field
from typing import Dict, List

from proxmox_vm_prep.steps import (
    ChangeHostname,
    DockerPostinstall,
    EnsureSudo,
    InstallNvm,
    InstallPackages,
    InstallPipx,
    InstallTailscale,
    RegenerateSystemIds,
    SecurityHardening,
    SetupFirewall,
    ShellCustomizations,
    Step,
)


@dataclass
class Phase:
    name: str
    title: str
    steps: List[Step]
    done_message: str
    recommendations: List[str] = field(default_factory=list)


def build_prep_pipeline() -> List[Step]:
    # InstallPackages provides curl, python3 and docker for the steps after it
    return [
        EnsureSudo(),
        InstallPackages(),
        InstallNvm(),
        InstallPipx(),
        DockerPostinstall(),
        ShellCustomizations(),
        SecurityHardening(),
    ]


def build_post_clone_pipeline() -> List[Step]:
    return [
        RegenerateSystemIds(),
        ChangeHostname(),
        InstallTailscale(),
        SetupFirewall(),
    ]


def build_phases() -> Dict[str, Phase]:
    return {
        "prep": Phase(
            name="prep",
            title="Preparation Phase",
            steps=build_prep_pipeline(),
            done_message="Preparation complete!",
            recommendations=[
                "Log out and back in to apply group changes",
                "Review security settings in /etc/ssh/sshd_config",
                "This VM can now be turned into a template",
            ],
        ),
        "post-clone": Phase(
            name="post-clone",
            title="Post-Clone Phase",
            steps=build_post_clone_pipeline(),
            done_message="Post-clone configuration complete!",
            recommendations=[
                "Verify network connectivity with 'tailscale status'",
                "Check firewall rules with 'sudo ufw status'",
                "Rotate any application-specific secrets",
            ],
        ),
    }

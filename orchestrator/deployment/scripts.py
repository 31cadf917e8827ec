"""Builders for the shell scripts run on grid units.

Each builder is a pure function of its parameters, so the generated
text can be asserted on directly.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field

import yaml

EVENT_BUS_PUBLISH_PORT = 4442
EVENT_BUS_SUBSCRIBE_PORT = 4443

TORTURE_REPO_URL = "https://github.com/jitsi/jitsi-meet-torture.git"
TORTURE_INSTALL_DIR = "/opt/jitsi-meet-torture"
RESOURCE_PATH = "/usr/share/jitsi-meet-torture"
VIDEO_SOURCE_URL = (
    "https://github.com/jitsi/jitsi-meet-torture/releases/download/"
    "example-video-source/FourPeople_1280x720_30.y4m"
)
VIDEO_FILE = "FourPeople_1280x720_30.y4m"
NODE_IMAGE_TAG = "jitsi-chrome-node"


@dataclass
class HubSetup:
    """Parameters for the grid hub container."""
    hub_image: str
    port: int = 4444
    max_sessions: int = 2000
    session_timeout: int = 600


@dataclass
class NodeSetup:
    """Parameters for a browser node joining a hub."""
    node_name: str
    hub_address: str
    node_image: str
    capacity: int
    replicas: int = 2


@dataclass
class TestRun:
    """Parameters for one run of the torture suite."""
    __test__ = False

    target_url: str
    hub_address: str
    load: int
    tests: list[str] = field(default_factory=list)
    port: int = 4444
    test_timeout: int = 300
    install_dir: str = TORTURE_INSTALL_DIR

    @property
    def outer_timeout(self) -> int:
        """Wall clock limit for the whole maven run."""
        return self.test_timeout + 100


def _compose(services: dict) -> str:
    return yaml.safe_dump({"version": "3", "services": services}, sort_keys=False)


def _heredoc(path: str, content: str) -> str:
    return f"cat > {path} << 'EOF'\n{content.rstrip()}\nEOF"


def build_hub_compose(setup: HubSetup) -> str:
    """docker-compose.yml for the hub."""
    return _compose({
        "selenium-hub": {
            "image": setup.hub_image,
            "container_name": "selenium-hub",
            "ports": [
                f"{setup.port}:4444",
                f"{EVENT_BUS_PUBLISH_PORT}:{EVENT_BUS_PUBLISH_PORT}",
                f"{EVENT_BUS_SUBSCRIBE_PORT}:{EVENT_BUS_SUBSCRIBE_PORT}",
            ],
            "environment": [
                f"GRID_MAX_SESSION={setup.max_sessions}",
                f"GRID_BROWSER_TIMEOUT={setup.session_timeout}",
                f"GRID_TIMEOUT={setup.session_timeout}",
                f"GRID_NEW_SESSION_WAIT_TIMEOUT={setup.session_timeout}",
            ],
        },
    })


def build_hub_setup_script(setup: HubSetup) -> str:
    """Install docker and start the hub."""
    return "\n".join([
        "#!/bin/bash",
        "set -e",
        "sudo apt update",
        "sudo apt install -y docker.io docker-compose",
        "sudo systemctl enable docker",
        "sudo systemctl start docker",
        "",
        _heredoc("docker-compose.yml", build_hub_compose(setup)),
        "",
        "sudo docker-compose up -d",
        "sleep 10",
        'echo "Hub setup complete"',
        "",
    ])


def build_node_dockerfile(node_image: str) -> str:
    """Chrome node image with the fake video source baked in."""
    return "\n".join([
        f"FROM {node_image}",
        f"RUN sudo mkdir -p {RESOURCE_PATH}",
        f"COPY {VIDEO_FILE} {RESOURCE_PATH}/",
        "RUN sudo apt-get update && sudo apt-get install -y pulseaudio",
    ])


def build_node_compose(setup: NodeSetup) -> str:
    """docker-compose.yml for the browser node replicas."""
    return _compose({
        "chrome-node": {
            "image": NODE_IMAGE_TAG,
            "shm_size": "2gb",
            "environment": [
                f"HUB_HOST={setup.hub_address}",
                f"NODE_MAX_INSTANCES={setup.capacity // 2}",
                f"NODE_MAX_SESSION={setup.capacity}",
                f"SE_EVENT_BUS_HOST={setup.hub_address}",
                f"SE_EVENT_BUS_PUBLISH_PORT={EVENT_BUS_PUBLISH_PORT}",
                f"SE_EVENT_BUS_SUBSCRIBE_PORT={EVENT_BUS_SUBSCRIBE_PORT}",
            ],
            "volumes": ["/dev/shm:/dev/shm"],
            "deploy": {"replicas": setup.replicas},
            "restart": "unless-stopped",
        },
    })


def build_node_setup_script(setup: NodeSetup) -> str:
    """Build the node image and start the browser containers."""
    return "\n".join([
        "#!/bin/bash",
        "set -e",
        "sudo apt update",
        "sudo apt install -y docker.io docker-compose htop iotop",
        "sudo systemctl enable docker",
        "sudo systemctl start docker",
        "",
        "mkdir -p /tmp/jitsi-resources",
        "cd /tmp/jitsi-resources",
        f"wget -q {VIDEO_SOURCE_URL}",
        "",
        _heredoc("Dockerfile", build_node_dockerfile(setup.node_image)),
        "",
        f"sudo docker build -t {NODE_IMAGE_TAG} .",
        "",
        _heredoc("docker-compose.yml", build_node_compose(setup)),
        "",
        "sudo docker-compose up -d",
        f'echo "Node {setup.node_name} setup complete"',
        "",
    ])


def build_test_suite_setup_script(install_dir: str = TORTURE_INSTALL_DIR) -> str:
    """Install java, maven and the torture suite on the hub."""
    return "\n".join([
        "#!/bin/bash",
        "set -e",
        "sudo apt update",
        "sudo apt install -y openjdk-11-jdk maven git",
        "",
        f'if [ ! -d "{install_dir}" ]; then',
        f"  sudo git clone {TORTURE_REPO_URL} {install_dir}",
        f"  sudo chown -R $(whoami) {install_dir}",
        "fi",
        "",
        f"cd {install_dir}",
        "mkdir -p resources",
        f"wget -q -N -P resources {VIDEO_SOURCE_URL}",
        "",
        'echo "Torture setup complete"',
        "",
    ])


def build_test_command(run: TestRun) -> list[str]:
    """Maven invocation for one run, one remote flag per participant."""
    command = [
        "mvn",
        "test",
        f"-Djitsi-meet.instance.url={run.target_url}",
        f"-Djitsi-meet.tests.toRun={','.join(run.tests)}",
        "-Denable.headless=true",
        f"-Dremote.address=http://{run.hub_address}:{run.port}/wd/hub",
        f"-Dremote.resource.path={RESOURCE_PATH}",
        f"-Dtest.timeout={run.test_timeout}",
    ]
    command.extend(f"-Dweb.participant{i}.isRemote=true" for i in range(1, run.load + 1))
    return command


def build_test_run_script(run: TestRun) -> str:
    """Run the suite on the hub and echo maven's exit code."""
    command = " ".join(shlex.quote(part) for part in build_test_command(run))
    return "\n".join([
        "#!/bin/bash",
        f"cd {run.install_dir}",
        f"timeout {run.outer_timeout} {command}",
        'echo "EXIT_CODE: $?"',
        "",
    ])

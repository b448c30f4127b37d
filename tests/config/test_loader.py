from pathlib import Path
import textwrap

import pytest
from pydantic import ValidationError

from noderig.config.loader import deep_merge, load_config

NODE = textwrap.dedent("""
    node_name: solo-1
    kube_context: kind-solo
    paths:
      bin_dir: ${NODERIG_TEST_BIN}
    software:
      - name: helm
        version: 3.14.2
        url: https://get.helm.sh/{name}-v{version}-linux-amd64.tar.gz
        binaries:
          - name: helm
            archive_path: linux-amd64/helm
    services:
      - name: block-node
        release: block-node
        chart: oci://example.test/block-node-server
        version: 0.14.0
        namespace: block-node
        values:
          replicas: 1
        storage:
          - name: live
            path: /mnt/block-node/live
          - name: archive
            path: /mnt/block-node/archive
            since_version: 0.15.0
""")


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch):
    monkeypatch.delenv("NODERIG_OVERRIDES_FILE", raising=False)
    monkeypatch.setenv("NODERIG_TEST_BIN", "/opt/noderig/bin")


def test_load_config_minimal_ok(tmp_path: Path):
    f = tmp_path / "node.yaml"
    f.write_text(NODE)

    cfg = load_config(f)

    assert cfg.node_name == "solo-1"
    assert cfg.paths.bin_dir == "/opt/noderig/bin"
    helm = cfg.software[0]
    assert helm.resolved_url == "https://get.helm.sh/helm-v3.14.2-linux-amd64.tar.gz"
    assert helm.artifact_name == "helm-v3.14.2-linux-amd64.tar.gz"
    assert helm.binaries[0].source == "linux-amd64/helm"
    svc = cfg.service("block-node")
    assert svc.service == "block-node"
    assert svc.selector == "app.kubernetes.io/instance=block-node"
    assert [v.since_version for v in svc.storage] == [None, "0.15.0"]


def test_overrides_beside_config_are_merged(tmp_path: Path):
    (tmp_path / "node.yaml").write_text(NODE)
    (tmp_path / "overrides.yaml").write_text("node_name: solo-2\npaths:\n  temp_dir: /scratch\n")

    cfg = load_config(tmp_path / "node.yaml")

    assert cfg.node_name == "solo-2"
    assert cfg.paths.temp_dir == "/scratch"
    assert cfg.paths.bin_dir == "/opt/noderig/bin"


def test_overrides_from_env(tmp_path: Path, monkeypatch):
    (tmp_path / "node.yaml").write_text(NODE)
    other = tmp_path / "elsewhere.yaml"
    other.write_text("kube_context: prod\n")
    monkeypatch.setenv("NODERIG_OVERRIDES_FILE", str(other))

    assert load_config(tmp_path / "node.yaml").kube_context == "prod"


def test_missing_env_override_is_ignored(tmp_path: Path, monkeypatch):
    (tmp_path / "node.yaml").write_text(NODE)
    monkeypatch.setenv("NODERIG_OVERRIDES_FILE", str(tmp_path / "nope.yaml"))

    assert load_config(tmp_path / "node.yaml").kube_context == "kind-solo"


def test_default_binary_is_software_name(tmp_path: Path):
    f = tmp_path / "node.yaml"
    f.write_text("software:\n  - name: k9s\n    version: 0.32.4\n    url: https://example.test/k9s.tgz\n")

    cfg = load_config(f)

    assert [b.name for b in cfg.software[0].binaries] == ["k9s"]
    assert cfg.software[0].binaries[0].source == "k9s"


def test_bad_checksum_rejected(tmp_path: Path):
    f = tmp_path / "node.yaml"
    f.write_text("software:\n  - name: k9s\n    version: '1'\n    url: u\n    sha256: abc\n")

    with pytest.raises(ValidationError):
        load_config(f)


def test_unknown_service(tmp_path: Path):
    f = tmp_path / "node.yaml"
    f.write_text(NODE)
    with pytest.raises(KeyError):
        load_config(f).service("mirror-node")


def test_deep_merge_keeps_base_on_empty_override():
    base = {"a": {"b": 1, "c": 2}, "d": "x"}
    deep_merge(base, {"a": {"c": 3}, "d": ""})
    assert base == {"a": {"b": 1, "c": 3}, "d": "x"}

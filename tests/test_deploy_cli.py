from __future__ import annotations

import json
from pathlib import Path

import pytest

from proxy_bootstrap.config import DeployConfig
from proxy_bootstrap.errors import NetworkUnavailable, StepFailed, TransactionRejected
from proxy_bootstrap.manifest import DeploymentManifest, ManifestEntry
from scripts import deploy_stack

CONFIG = DeployConfig(rpc_url="http://127.0.0.1:8545", private_key="0x" + "22" * 32, network="development")


def _manifest() -> DeploymentManifest:
    return DeploymentManifest(
        network="development",
        strategy="relayed",
        contracts={"Proxy": ManifestEntry(artifact="Proxy", address="0xProxy", tx_hash="0x03", block_number=3)},
    )


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list:
    recorded: list = []
    monkeypatch.setattr(deploy_stack, "load_config", lambda: CONFIG)

    def fake_deploy(config, strategy, **kwargs):
        recorded.append((config, strategy, kwargs))
        return _manifest()

    monkeypatch.setattr(deploy_stack, "deploy_from_config", fake_deploy)
    return recorded


def test_main_passes_options_through(calls: list, capsys: pytest.CaptureFixture[str]):
    exit_code = deploy_stack.main(
        [
            "--strategy",
            "direct",
            "--init-arg",
            '"0x70997970c51812dc3a010c7d01b50e0d17dc79c8"',
            "--init-arg",
            "250",
            "--proxy-arg",
            "0x70997970c51812dc3a010c7d01b50e0d17dc79c8",
            "--confirmations",
            "2",
            "--manifest",
            "out/run.json",
        ]
    )

    assert exit_code == 0
    config, strategy, kwargs = calls[0]
    assert strategy == "direct"
    assert config.confirmations == 2
    assert config.resolved_manifest_path == Path("out/run.json")
    assert kwargs["initializer"].args == ("0x70997970c51812dc3a010c7d01b50e0d17dc79c8", 250)
    assert kwargs["proxy_args"] == ["0x70997970c51812dc3a010c7d01b50e0d17dc79c8"]
    output = capsys.readouterr().out
    assert "[✅] Deployment confirmed" in output
    assert "📍 Address:   0xProxy" in output


def test_main_emits_json(calls: list, capsys: pytest.CaptureFixture[str]):
    assert deploy_stack.main(["--json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["contracts"]["Proxy"]["address"] == "0xProxy"
    assert payload["strategy"] == "relayed"


def test_main_reports_network_errors(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]):
    monkeypatch.setattr(deploy_stack, "load_config", lambda: CONFIG)

    def fake_deploy(config, strategy, **kwargs):
        raise NetworkUnavailable("connection refused")

    monkeypatch.setattr(deploy_stack, "deploy_from_config", fake_deploy)

    assert deploy_stack.main([]) == 2
    assert "Network error while contacting http://127.0.0.1:8545" in capsys.readouterr().out


def test_main_prints_partial_manifest_on_failure(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(deploy_stack, "load_config", lambda: CONFIG)

    def fake_deploy(config, strategy, **kwargs):
        error = TransactionRejected("execution reverted")
        error.manifest = _manifest()
        raise error

    monkeypatch.setattr(deploy_stack, "deploy_from_config", fake_deploy)

    assert deploy_stack.main([]) == 1
    output = capsys.readouterr().out
    assert "[❌] Transaction rejected: execution reverted" in output
    assert "deployments/development.json" in output


def test_main_requires_configuration(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]):
    def missing():
        raise RuntimeError("Set DEPLOY_RPC_URL (or RPC_URL) before deploying.")

    monkeypatch.setattr(deploy_stack, "load_config", missing)

    assert deploy_stack.main([]) == 1
    assert "DEPLOY_RPC_URL" in capsys.readouterr().out


def test_main_reports_wrapped_step_failures(monkeypatch, capsys):
    monkeypatch.setattr(deploy_stack, "load_config", lambda: CONFIG)

    def fake_deploy(config, strategy, **kwargs):
        error = StepFailed("DeployProxy(Proxy)", KeyError("gasPrice"))
        error.manifest = _manifest()
        raise error

    monkeypatch.setattr(deploy_stack, "deploy_from_config", fake_deploy)

    assert deploy_stack.main([]) == 1
    output = capsys.readouterr().out
    assert "[❌] DeployProxy(Proxy) failed: KeyError" in output
    assert "[💾] Partial manifest:" in output

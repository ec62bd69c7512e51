"""
Configuration loading, validation and wiring into module services.

Verifies:
- The packaged set loads and matches the in-code defaults
- get_active_config resolves explicit path, then SAF_CONFIG_PATH
- Every successful load emits a SAF_CONFIG_TRACE entry
- Out-of-range values are rejected at load time
- Module configs built with from_core carry the loaded settings
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import yaml

from saf_config import CONFIG_PATH_ENV, get_active_config
from saf_config.bridges import build_approval_policy, build_fit_thresholds
from saf_config.loader import compute_checksum, load_core_config, parse_core_config
from saf_config.schema import CoreConfig
from saf_kernel.domain.approval import ApprovalMode, RuleKind
from saf_modules.bids.config import BidsConfig
from saf_modules.compliance.config import ComplianceConfig
from saf_modules.contracts.config import ContractsConfig
from saf_modules.rfq.config import RfqConfig


def _minimal(**sections) -> dict:
    data = {"config_id": "test-set", "version": 3}
    data.update(sections)
    return data


@pytest.fixture
def write_set(tmp_path):
    """Write a YAML set to a temporary file and return its path."""

    def _write(data: dict, name: str = "set.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestPackagedSet:
    """The default YAML shipped with the package."""

    def test_loads_default_set(self):
        config = get_active_config()

        assert config.config_id == "saf-default"
        assert config.version == 1
        assert [r.name for r in config.approval.rules] == ["low_margin", "high_value"]
        assert [a.approver_id for a in config.approval.approvers] == ["sales-director", "cfo"]
        assert len(config.checksum) == 64

    def test_default_set_matches_in_code_defaults(self):
        loaded = get_active_config()
        defaults = CoreConfig.with_defaults()

        assert loaded.approval == defaults.approval
        assert loaded.fit == defaults.fit
        assert loaded.deliveries == defaults.deliveries
        assert loaded.certificates == defaults.certificates
        assert loaded.retry == defaults.retry

    def test_trace_logged(self, captured_logs):
        get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "SAF_CONFIG_TRACE"]
        assert traces[0]["config_id"] == "saf-default"
        assert traces[0]["approval_rule_count"] == 2
        assert traces[0]["source"].endswith("default.yaml")


class TestResolution:
    """Where the active set comes from."""

    def test_explicit_path(self, write_set):
        path = write_set(_minimal())

        assert get_active_config(path).config_id == "test-set"

    def test_environment_variable(self, write_set, monkeypatch):
        path = write_set(_minimal(config_id="from-env"))
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        assert get_active_config().config_id == "from-env"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_missing_config_id(self, write_set):
        with pytest.raises(KeyError):
            load_core_config(write_set({"version": 1}))


class TestValidation:
    """Values the engines depend on are checked at load time."""

    @pytest.mark.parametrize(
        "sections",
        [
            {"fit": {"good_volume_ratio": "1.5"}},
            {"fit": {"ghg_headroom": "-1"}},
            {"certificates": {"expiring_window_days": 0}},
            {"deliveries": {"anchor_month": 13}},
            {"deliveries": {"default_tolerance_percent": "-5"}},
            {"retry": {"max_attempts": 0}},
            {"approval": {"mode": "consensus"}},
            {"approval": {"rules": [{"name": "x", "kind": "price_above", "threshold": "1"}]}},
        ],
        ids=[
            "volume-ratio", "headroom", "window", "anchor", "tolerance",
            "retry", "mode", "rule-kind",
        ],
    )
    def test_rejected(self, sections):
        with pytest.raises(ValueError):
            parse_core_config(_minimal(**sections))

    def test_rule_role_without_approver(self):
        data = _minimal(approval={
            "rules": [{
                "name": "big",
                "kind": "volume_above",
                "threshold": "10000",
                "approver_roles": ["board"],
            }],
            "approvers": [{"id": "cfo", "name": "CFO", "role": "cfo"}],
        })

        with pytest.raises(ValueError, match="board"):
            parse_core_config(data)

    def test_thresholds_parsed_as_decimal(self):
        config = parse_core_config(_minimal(fit={"good_volume_ratio": "0.35"}))

        assert config.fit.good_volume_ratio == Decimal("0.35")

    def test_checksum_independent_of_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestBridges:
    """Config sections become engine and kernel inputs."""

    def test_approval_policy(self):
        policy = build_approval_policy(CoreConfig.with_defaults())

        assert policy.mode == ApprovalMode.SEQUENTIAL
        assert [r.kind for r in policy.rules] == [RuleKind.MARGIN_BELOW, RuleKind.VALUE_ABOVE]
        assert policy.rules[1].approver_roles == ("sales_director", "cfo")
        assert {p.approver_id for p in policy.directory} == {"sales-director", "cfo"}

    def test_fit_thresholds(self):
        config = parse_core_config(_minimal(fit={"good_volume_ratio": "0.8", "ghg_headroom": "2"}))

        thresholds = build_fit_thresholds(config)

        assert thresholds.good_volume_ratio == Decimal("0.8")
        assert thresholds.ghg_headroom == Decimal("2")


class TestModuleConfigs:
    """from_core wiring for every module."""

    @pytest.fixture
    def custom(self):
        return parse_core_config(_minimal(
            certificates={"expiring_window_days": 45, "expired_forces_not_certified": True},
            fit={"good_volume_ratio": "0.25"},
            approval={"mode": "parallel"},
            deliveries={
                "anchor_month": 6,
                "anchor_day": 30,
                "default_tolerance_percent": "5",
                "contract_number_prefix": "OFF",
            },
            retry={"max_attempts": 5},
        ))

    def test_bids(self, custom):
        config = BidsConfig.from_core(custom)

        assert config.approval_policy.mode == ApprovalMode.PARALLEL
        assert config.default_tolerance_percent == Decimal("5")
        assert config.max_attempts == 5

    def test_contracts(self, custom):
        config = ContractsConfig.from_core(custom)

        assert (config.anchor_month, config.anchor_day) == (6, 30)
        assert config.contract_number_prefix == "OFF"

    def test_compliance(self, custom):
        config = ComplianceConfig.from_core(custom)

        assert config.expiring_window == timedelta(days=45)
        assert config.expired_forces_not_certified

    def test_rfq(self, custom):
        assert RfqConfig.from_core(custom).fit_thresholds.good_volume_ratio == Decimal("0.25")

    def test_contracts_anchor_validated(self):
        with pytest.raises(ValueError):
            ContractsConfig(anchor_month=0)

"""Tests for the admin configuration schema and holder."""

import json
import os

import pytest
from pydantic import ValidationError

from dlmm_bot.schemas.admin_config import AdminConfig, MirrorSwap, Rebalance
from dlmm_bot.services import admin_config


@pytest.fixture(autouse=True)
def _reset_config():
    admin_config._config = None
    admin_config._loaded_mtime_ns = None
    yield
    admin_config._config = None
    admin_config._loaded_mtime_ns = None


# ---------------------------------------------------------------------------
# 1. Schema
# ---------------------------------------------------------------------------

def test_defaults():
    config = AdminConfig()
    assert config.price_corridor_percent.upper == 4.0
    assert config.stop_loss_percent == -2.0
    assert config.fee_check_percent == 50.0
    assert config.take_profit_percent == 2.0
    assert config.monitoring.check_interval_ms == 30_000
    assert config.monitoring.price_update_interval_ms == 10_000
    assert config.mirror_swap.enabled is True
    assert config.mirror_swap.hedge_amount_percent == 50.0
    assert config.mirror_swap.significant_change_threshold_percent == 2.0
    assert config.rebalance.balance_wait_attempts == 10


@pytest.mark.parametrize(
    "overrides",
    [
        {"stop_loss_percent": 1.0},
        {"fee_check_percent": 120},
        {"take_profit_percent": -1},
        {"monitoring": {"check_interval_ms": 10}},
        {"mirror_swap": {"hedge_amount_percent": 0}},
        {"mirror_swap": {"hedge_amount_percent": 101}},
        {"mirror_swap": {"min_price_change_percent": 0}},
        {"rebalance": {"balance_wait_attempts": 4}},
        {"rebalance": {"balance_wait_attempts": 31}},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        AdminConfig.model_validate(overrides)


def test_nested_models_validate():
    assert MirrorSwap(slippage_bps=50).slippage_bps == 50
    assert Rebalance(balance_wait_attempts=30).balance_wait_attempts == 30


# ---------------------------------------------------------------------------
# 2. Holder
# ---------------------------------------------------------------------------

def test_load_missing_file_uses_defaults(tmp_path):
    config = admin_config.load_admin_config(tmp_path / "missing.json")
    assert config == AdminConfig()
    assert admin_config.get_admin_config() is config


def test_load_from_file(tmp_path):
    path = tmp_path / "admin.json"
    path.write_text(json.dumps({"take_profit_percent": 3.5, "mirror_swap": {"enabled": False}}))
    config = admin_config.load_admin_config(path)
    assert config.take_profit_percent == 3.5
    assert config.mirror_swap.enabled is False
    assert config.mirror_swap.hedge_amount_percent == 50.0


def test_update_merges_and_persists(tmp_path):
    path = tmp_path / "admin.json"
    admin_config.load_admin_config(path)

    updated = admin_config.update_admin_config({"mirror_swap": {"slippage_bps": 250}}, path)

    assert updated.mirror_swap.slippage_bps == 250
    assert updated.mirror_swap.enabled is True
    assert admin_config.get_admin_config() is updated
    assert json.loads(path.read_text())["mirror_swap"]["slippage_bps"] == 250


def test_invalid_update_leaves_config_untouched(tmp_path):
    path = tmp_path / "admin.json"
    original = admin_config.load_admin_config(path)

    with pytest.raises(ValidationError):
        admin_config.update_admin_config({"stop_loss_percent": 5}, path)

    assert admin_config.get_admin_config() is original
    assert not path.exists()


# ---------------------------------------------------------------------------
# 3. Reload from disk
# ---------------------------------------------------------------------------

def _rewrite(path, document, mtime_ns):
    path.write_text(json.dumps(document))
    os.utime(path, ns=(mtime_ns, mtime_ns))


def test_reload_picks_up_external_rewrite(tmp_path):
    path = tmp_path / "admin.json"
    _rewrite(path, {"take_profit_percent": 3.0}, 1_000_000_000)
    admin_config.load_admin_config(path)

    assert admin_config.reload_admin_config_if_changed(path) is None

    _rewrite(path, {"take_profit_percent": 4.0}, 2_000_000_000)
    reloaded = admin_config.reload_admin_config_if_changed(path)

    assert reloaded.take_profit_percent == 4.0
    assert admin_config.get_admin_config() is reloaded
    assert admin_config.reload_admin_config_if_changed(path) is None


def test_reload_ignores_own_save(tmp_path):
    path = tmp_path / "admin.json"
    admin_config.load_admin_config(path)
    admin_config.update_admin_config({"take_profit_percent": 3.0}, path)
    assert admin_config.reload_admin_config_if_changed(path) is None


def test_reload_keeps_current_on_invalid_document(tmp_path):
    path = tmp_path / "admin.json"
    _rewrite(path, {}, 1_000_000_000)
    original = admin_config.load_admin_config(path)

    _rewrite(path, {"stop_loss_percent": 5}, 2_000_000_000)
    assert admin_config.reload_admin_config_if_changed(path) is None
    assert admin_config.get_admin_config() is original

    path.write_text("{not json")
    os.utime(path, ns=(3_000_000_000, 3_000_000_000))
    assert admin_config.reload_admin_config_if_changed(path) is None
    assert admin_config.get_admin_config() is original


def test_reload_without_document_is_noop(tmp_path):
    admin_config.load_admin_config(tmp_path / "missing.json")
    assert admin_config.reload_admin_config_if_changed(tmp_path / "missing.json") is None

"""Tests for fleet/store.py: FleetStore state, persistence, import/export."""

import copy

import pytest
from fleet.models import (
    BotStatus,
    DecisionCategory,
    MarketQuote,
    TradeRecord,
    TradeSide,
)
from fleet.store import MAX_DECISIONS, MAX_TRADE_HISTORY, FleetStore

pytestmark = pytest.mark.asyncio


# =========================================================================
# Load / save
# =========================================================================

class TestLoad:
    async def test_empty_storage_installs_defaults(self, fleet_store, test_db):
        assert len(fleet_store.bots) == 5
        assert all(b.status == BotStatus.INACTIVE for b in fleet_store.bots)
        assert len(fleet_store.trading_history) == 0
        assert fleet_store.save_count == 1
        stored = await test_db.load_snapshot("fleet_test")
        assert [b["id"] for b in stored["bots"]] == [1, 2, 3, 4, 5]

    async def test_reload_restores_saved_state(self, fleet_store):
        await fleet_store.update_bot(2, profit=12.5, risk_level=0.8)
        await fleet_store.add_decision(DecisionCategory.SYSTEM, "hello", 90)

        again = FleetStore("fleet_test")
        await again.load()
        assert again.bot(2).profit == 12.5
        assert again.bot(2).risk_level == 0.8
        assert again.ai_decisions[0].message == "hello"
        assert again.save_count == 0

    async def test_corrupt_snapshot_falls_back_and_resaves(self, test_db):
        await test_db.write_raw_snapshot("fleet_test", "{{{ definitely not json")
        store = FleetStore("fleet_test")
        await store.load()
        assert [b.id for b in store.bots] == [1, 2, 3, 4, 5]
        assert store.save_count == 1
        stored = await test_db.load_snapshot("fleet_test")
        assert len(stored["bots"]) == 5

    async def test_malformed_records_fall_back(self, test_db):
        await test_db.save_snapshot("fleet_test", {"bots": [{"name": "no id"}]})
        store = FleetStore("fleet_test")
        await store.load()
        assert len(store.bots) == 5

    @pytest.mark.parametrize("document", [
        {"bots": ["x"]},
        {"bots": [], "tradingHistory": [3]},
        {"bots": [], "aiDecisions": [None]},
        {"bots": [], "marketData": [1, 2]},
        {"bots": [], "marketData": {"BTC/USD": "42"}},
        {"bots": [], "settings": "oops"},
        {"bots": 5},
    ])
    async def test_non_object_sections_fall_back_and_resave(self, test_db, document):
        await test_db.save_snapshot("fleet_test", document)
        store = FleetStore("fleet_test")
        await store.load()
        assert [b.id for b in store.bots] == [1, 2, 3, 4, 5]
        assert store.save_count == 1
        stored = await test_db.load_snapshot("fleet_test")
        assert len(stored["bots"]) == 5

    async def test_next_ids_follow_loaded_records(self, test_db, sample_snapshot):
        await test_db.save_snapshot("fleet_test", sample_snapshot)
        store = FleetStore("fleet_test")
        await store.load()
        decision = await store.add_decision(DecisionCategory.SYSTEM, "x", 1)
        assert decision.id > 1700000000002


# =========================================================================
# Bots
# =========================================================================

class TestUpdateBot:
    async def test_unknown_id_returns_false_without_saving(self, fleet_store):
        before = fleet_store.save_count
        assert await fleet_store.update_bot(99, profit=1.0) is False
        assert fleet_store.save_count == before

    async def test_unknown_field_raises(self, fleet_store):
        with pytest.raises(ValueError):
            await fleet_store.update_bot(1, colour="red")

    async def test_success_rate_is_not_writable(self, fleet_store):
        with pytest.raises(ValueError):
            await fleet_store.update_bot(1, success_rate=99.0)

    async def test_counter_update_recomputes_success_rate(self, fleet_store):
        await fleet_store.update_bot(2, trades=10, profitable_trades=3)
        assert fleet_store.bot(2).success_rate == 30.0
        assert fleet_store.bot_performance(2).success_rate == pytest.approx(30.0)
        await fleet_store.update_bot(2, trades=12)
        assert fleet_store.bot(2).success_rate == 25.0

    async def test_updates_only_target_bot(self, fleet_store):
        assert await fleet_store.update_bot(3, status="active") is True
        assert fleet_store.bot(3).status == BotStatus.ACTIVE
        assert [b.id for b in fleet_store.active_bots()] == [3]

    async def test_risk_clamped(self, fleet_store):
        await fleet_store.update_bot(1, risk_level=2.0)
        assert fleet_store.bot(1).risk_level == 0.9
        await fleet_store.update_bot(1, risk_level=0.0)
        assert fleet_store.bot(1).risk_level == 0.1

    async def test_each_update_persists(self, fleet_store):
        before = fleet_store.save_count
        await fleet_store.set_all_statuses(BotStatus.ACTIVE)
        assert fleet_store.save_count == before + 5


class TestTradeOutcome:
    async def test_success_rate_tracks_profitable_share(self, fleet_store):
        for profit in (1.0, -0.5, 2.0, 0.0):
            await fleet_store.record_trade_outcome(4, profit)
        bot = fleet_store.bot(4)
        assert bot.trades == 4
        assert bot.profitable_trades == 2
        assert bot.success_rate == 50.0
        assert bot.profit == pytest.approx(2.5)

    async def test_performance_written_when_given(self, fleet_store):
        await fleet_store.record_trade_outcome(1, 0.5, performance=42.0)
        assert fleet_store.bot(1).performance == 42.0

    async def test_single_save_per_outcome(self, fleet_store):
        before = fleet_store.save_count
        await fleet_store.record_trade_outcome(1, 0.5)
        assert fleet_store.save_count == before + 1

    async def test_unknown_bot(self, fleet_store):
        assert await fleet_store.record_trade_outcome(42, 1.0) is False
        assert fleet_store.bot_performance(42) is None

    async def test_bot_performance(self, fleet_store):
        await fleet_store.record_trade_outcome(2, 3.0)
        await fleet_store.record_trade_outcome(2, -1.0)
        perf = fleet_store.bot_performance(2)
        assert perf.total_trades == 2
        assert perf.profitable_trades == 1
        assert perf.success_rate == 50.0
        assert perf.total_profit == pytest.approx(2.0)


# =========================================================================
# Logs
# =========================================================================

class TestLogs:
    async def test_trades_newest_first(self, fleet_store):
        bot = fleet_store.bot(1)
        first = await fleet_store.add_trade(bot, "BTC/USD", TradeSide.BUY, 100.0, 0.2)
        second = await fleet_store.add_trade(bot, "ETH/USD", TradeSide.SELL, 200.0, -0.1)
        assert fleet_store.trading_history[0] is second
        assert second.id > first.id
        assert second.bot_name == "Alpha Arbitrage"

    async def test_trade_history_capped(self, fleet_store):
        fleet_store.trading_history.extend(
            TradeRecord(i, 1, "Alpha Arbitrage", "BTC/USD", TradeSide.BUY, 10.0, 0.1)
            for i in range(1, MAX_TRADE_HISTORY + 1)
        )
        newest = await fleet_store.add_trade(
            fleet_store.bot(2), "ADA/USD", TradeSide.SELL, 50.0, 0.3,
        )
        assert len(fleet_store.trading_history) == MAX_TRADE_HISTORY
        assert fleet_store.trading_history[0] is newest

    async def test_decisions_capped(self, fleet_store):
        for i in range(MAX_DECISIONS + 5):
            await fleet_store.add_decision(DecisionCategory.STRATEGY, f"d{i}", 70)
        assert len(fleet_store.ai_decisions) == MAX_DECISIONS
        assert fleet_store.ai_decisions[0].message == f"d{MAX_DECISIONS + 4}"

    async def test_ids_unique_across_logs(self, fleet_store):
        ids = []
        for _ in range(5):
            ids.append((await fleet_store.add_decision(DecisionCategory.SYSTEM, "s", 95)).id)
            ids.append((await fleet_store.add_trade(
                fleet_store.bot(1), "BTC/USD", TradeSide.BUY, 1.0, 0.1,
            )).id)
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)

    async def test_market_data_replaced_wholesale(self, fleet_store, make_quote):
        await fleet_store.replace_market_data({"BTC/USD": make_quote("BTC/USD", 1.0)})
        await fleet_store.replace_market_data({"ETH/USD": make_quote("ETH/USD", -1.0)})
        assert list(fleet_store.market_data) == ["ETH/USD"]

    async def test_overall_stats_from_trade_log(self, fleet_store):
        await fleet_store.update_bot(1, status=BotStatus.ACTIVE)
        bot = fleet_store.bot(1)
        await fleet_store.add_trade(bot, "BTC/USD", TradeSide.BUY, 100.0, 2.0)
        await fleet_store.add_trade(bot, "BTC/USD", TradeSide.SELL, 100.0, -0.5)
        stats = fleet_store.overall_stats()
        assert stats.total_profit == pytest.approx(1.5)
        assert stats.active_bots == 1
        assert stats.total_bots == 5
        assert stats.success_rate == 50.0
        assert stats.total_trades == 2

    async def test_overall_stats_empty(self, fleet_store):
        stats = fleet_store.overall_stats()
        assert stats.success_rate == 0.0
        assert stats.total_profit == 0.0


# =========================================================================
# Import / export / reset
# =========================================================================

class TestImportExport:
    async def test_export_shape(self, fleet_store):
        data = fleet_store.export_snapshot()
        assert set(data) >= {"bots", "tradingHistory", "aiDecisions", "marketData", "settings", "exportDate"}
        assert len(data["bots"]) == 5

    async def test_import_missing_section_changes_nothing(self, fleet_store, sample_snapshot):
        await fleet_store.add_decision(DecisionCategory.SYSTEM, "before", 95)
        before = copy.deepcopy(fleet_store.to_snapshot())
        saves = fleet_store.save_count

        del sample_snapshot["aiDecisions"]
        ok, error = await fleet_store.import_snapshot(sample_snapshot)

        assert ok is False
        assert "aiDecisions" in error
        assert fleet_store.to_snapshot() == before
        assert fleet_store.save_count == saves

    async def test_import_bad_record_changes_nothing(self, fleet_store, sample_snapshot):
        before = copy.deepcopy(fleet_store.to_snapshot())
        sample_snapshot["tradingHistory"].append({"id": 5, "botId": 7, "symbol": "X", "type": "hold", "profit": 1})
        ok, error = await fleet_store.import_snapshot(sample_snapshot)
        assert ok is False
        assert error.startswith("Error importing data")
        assert fleet_store.to_snapshot() == before

    @pytest.mark.parametrize("section,value", [
        ("bots", [1]),
        ("tradingHistory", ["trade"]),
        ("aiDecisions", [None]),
        ("settings", "oops"),
    ])
    async def test_import_non_object_records_rejected(self, fleet_store, sample_snapshot, section, value):
        before = copy.deepcopy(fleet_store.to_snapshot())
        saves = fleet_store.save_count
        sample_snapshot[section] = value

        ok, error = await fleet_store.import_snapshot(sample_snapshot)

        assert ok is False
        assert error.startswith("Error importing data")
        assert fleet_store.to_snapshot() == before
        assert fleet_store.save_count == saves

    async def test_import_recomputes_success_rate(self, fleet_store, sample_snapshot):
        sample_snapshot["bots"][0]["successRate"] = 10.0
        ok, _ = await fleet_store.import_snapshot(sample_snapshot)
        assert ok is True
        assert fleet_store.bot(7).success_rate == 75.0
        assert fleet_store.bot_performance(7).success_rate == pytest.approx(75.0)
        assert fleet_store.export_snapshot()["bots"][0]["successRate"] == 75.0

    async def test_import_non_object(self, fleet_store):
        ok, error = await fleet_store.import_snapshot(["bots"])
        assert ok is False
        assert "Invalid data format" in error

    async def test_import_replaces_bots_logs_and_settings(self, fleet_store, sample_snapshot, make_quote):
        await fleet_store.replace_market_data({"BTC/USD": make_quote("BTC/USD", 0.5)})
        ok, error = await fleet_store.import_snapshot(sample_snapshot)

        assert ok is True and error is None
        assert [b.id for b in fleet_store.bots] == [7]
        assert fleet_store.bot(7).success_rate == 75.0
        assert len(fleet_store.trading_history) == 1
        assert fleet_store.ai_decisions[0].category == DecisionCategory.SYSTEM
        assert fleet_store.settings.risk_management is False
        assert fleet_store.settings.max_drawdown == 0.2
        assert "BTC/USD" in fleet_store.market_data

    async def test_import_without_settings_keeps_current(self, fleet_store, sample_snapshot):
        fleet_store.settings.daily_target = 0.09
        del sample_snapshot["settings"]
        ok, _ = await fleet_store.import_snapshot(sample_snapshot)
        assert ok is True
        assert fleet_store.settings.daily_target == 0.09

    async def test_export_import_restores_state(self, fleet_store, sample_snapshot):
        await fleet_store.import_snapshot(sample_snapshot)
        exported = fleet_store.export_snapshot()

        other = FleetStore("fleet_other")
        await other.load()
        ok, _ = await other.import_snapshot(exported)
        assert ok is True
        assert [b.to_dict() for b in other.bots] == exported["bots"]
        assert [t.to_dict() for t in other.trading_history] == exported["tradingHistory"]


class TestReset:
    async def test_reset_restores_defaults_and_persists(self, fleet_store, sample_snapshot, test_db):
        await fleet_store.import_snapshot(sample_snapshot)
        await fleet_store.replace_market_data({"X/USD": MarketQuote("X/USD", 1.0, 0.0, 1.0)})
        await fleet_store.reset()

        assert [b.id for b in fleet_store.bots] == [1, 2, 3, 4, 5]
        assert len(fleet_store.trading_history) == 0
        assert len(fleet_store.ai_decisions) == 0
        assert fleet_store.market_data == {}
        assert fleet_store.settings.risk_management is True
        stored = await test_db.load_snapshot("fleet_test")
        assert stored["tradingHistory"] == []

"""
Tests for ReferralDataController: snapshot refresh, stale-result guard,
polling lifecycle and the backend/contract side-by-side merge.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from web3.exceptions import ContractLogicError

from chainshop.app.schemas import CommissionStatus, CommissionTransaction, ReferralRelationship, ReferralStats
from chainshop.app.services.reconciliation import ReferralDataController
from chainshop.app.services.referrals import FetchResult

from conftest import OTHER_WALLET, USER_WALLET, commission_payload, relationship_payload, stats_payload


def make_service(stats: dict = None) -> MagicMock:
    service = MagicMock()
    service.fetch_referral_relationships = AsyncMock(
        side_effect=lambda wallet: FetchResult([ReferralRelationship.model_validate(relationship_payload())])
    )
    service.fetch_commission_history = AsyncMock(
        side_effect=lambda wallet: FetchResult([CommissionTransaction.model_validate(commission_payload())])
    )
    service.fetch_referral_stats = AsyncMock(
        side_effect=lambda wallet: FetchResult(ReferralStats.model_validate(stats or stats_payload()))
    )
    return service


# ============================================
# REFRESH
# ============================================

@pytest.mark.asyncio
async def test_refresh_applies_all_three_reads():
    controller = ReferralDataController(make_service(), poll_interval=60)
    controller.wallet = USER_WALLET

    assert await controller.refresh() is True

    assert len(controller.relationships) == 1
    assert len(controller.history) == 1
    assert controller.stats.total_referrals == 4
    assert controller.error is None
    assert controller.is_loading is False


@pytest.mark.asyncio
async def test_refresh_without_wallet_is_noop():
    service = make_service()
    controller = ReferralDataController(service)

    assert await controller.refresh() is False
    service.fetch_referral_stats.assert_not_called()


@pytest.mark.asyncio
async def test_degraded_read_surfaces_error_and_keeps_others():
    service = make_service()
    service.fetch_commission_history = AsyncMock(return_value=FetchResult([], "Failed to fetch referral commissions"))
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET

    await controller.refresh()

    assert controller.history == []
    assert len(controller.relationships) == 1
    assert controller.error == "Failed to fetch referral commissions"


@pytest.mark.asyncio
async def test_stale_refresh_is_discarded_when_wallet_changes():
    gate = asyncio.Event()
    service = make_service()

    async def slow_relationships(wallet):
        await gate.wait()
        return FetchResult([ReferralRelationship.model_validate(relationship_payload())])

    service.fetch_referral_relationships = AsyncMock(side_effect=slow_relationships)
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET

    in_flight = asyncio.create_task(controller.refresh())
    await asyncio.sleep(0)
    controller.wallet = OTHER_WALLET
    gate.set()

    assert await in_flight is False
    assert controller.relationships == []
    assert controller.stats.total_referrals == 0


@pytest.mark.asyncio
async def test_refreshes_are_serialized():
    active = 0
    peak = 0
    service = make_service()

    async def tracked(wallet):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return FetchResult(ReferralStats.zero())

    service.fetch_referral_stats = AsyncMock(side_effect=tracked)
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET

    await asyncio.gather(controller.refresh(), controller.refresh(), controller.refresh())

    assert peak == 1
    assert service.fetch_referral_stats.await_count == 3


@pytest.mark.asyncio
async def test_stats_aggregated_locally_when_only_stats_fetch_fails():
    service = make_service()
    service.fetch_referral_stats = AsyncMock(
        return_value=FetchResult(ReferralStats.zero(), "Failed to fetch referral stats")
    )
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET

    await controller.refresh()

    assert controller.stats.total_referrals == 1
    assert controller.stats.active_referrals == 1
    assert controller.stats.total_commissions == pytest.approx(0.005)
    assert controller.error == "Failed to fetch referral stats"


@pytest.mark.asyncio
async def test_completed_commission_never_reverts_to_pending():
    service = make_service()
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET
    await controller.refresh()

    service.fetch_commission_history = AsyncMock(
        return_value=FetchResult([CommissionTransaction.model_validate(commission_payload(status="pending"))])
    )
    await controller.refresh()

    assert controller.history[0].status is CommissionStatus.COMPLETED


@pytest.mark.asyncio
async def test_pending_commission_moves_to_completed():
    service = make_service()
    service.fetch_commission_history = AsyncMock(
        return_value=FetchResult([CommissionTransaction.model_validate(commission_payload(status="pending"))])
    )
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET
    await controller.refresh()

    service.fetch_commission_history = AsyncMock(
        return_value=FetchResult([CommissionTransaction.model_validate(commission_payload(status="completed"))])
    )
    await controller.refresh()

    assert controller.history[0].status is CommissionStatus.COMPLETED


# ============================================
# WALLET / POLLING
# ============================================

@pytest.mark.asyncio
async def test_set_wallet_refreshes_and_starts_polling():
    service = make_service()
    controller = ReferralDataController(service, poll_interval=60)

    await controller.set_wallet(USER_WALLET)

    assert controller.is_polling
    service.fetch_referral_stats.assert_awaited_once_with(USER_WALLET)
    await controller.close()
    assert not controller.is_polling


@pytest.mark.asyncio
async def test_set_same_wallet_does_not_refetch():
    service = make_service()
    controller = ReferralDataController(service, poll_interval=60)

    await controller.set_wallet(USER_WALLET)
    await controller.set_wallet(USER_WALLET.upper().replace("0X", "0x"))

    assert service.fetch_referral_stats.await_count == 1
    await controller.close()


@pytest.mark.asyncio
async def test_set_wallet_none_stops_polling_and_clears():
    controller = ReferralDataController(make_service(), poll_interval=60)
    await controller.set_wallet(USER_WALLET)

    await controller.set_wallet(None)

    assert not controller.is_polling
    assert controller.relationships == []
    assert controller.stats.total_referrals == 0


@pytest.mark.asyncio
async def test_polling_refreshes_periodically():
    service = make_service()
    controller = ReferralDataController(service, poll_interval=0.01)

    await controller.set_wallet(USER_WALLET)
    await asyncio.sleep(0.05)
    await controller.close()

    assert service.fetch_referral_stats.await_count >= 2
    count = service.fetch_referral_stats.await_count
    await asyncio.sleep(0.03)
    assert service.fetch_referral_stats.await_count == count


@pytest.mark.asyncio
async def test_remount_restarts_polling_for_same_wallet():
    controller = ReferralDataController(make_service(), poll_interval=60)
    await controller.set_wallet(USER_WALLET)
    await controller.close()

    await controller.set_wallet(USER_WALLET)

    assert controller.is_polling
    await controller.close()


# ============================================
# MERGE
# ============================================

@pytest.mark.asyncio
async def test_dashboard_stats_without_contract_data():
    controller = ReferralDataController(make_service())
    controller.wallet = USER_WALLET
    await controller.refresh()

    merged = controller.dashboard_stats

    assert merged.total_commissions == 0.02
    assert merged.contract_total_commissions == 0.0
    assert merged.contract_purchase_count == 0
    assert merged.contract_eligible_for_draw is False


@pytest.mark.asyncio
async def test_dashboard_stats_shows_contract_totals_side_by_side(gateway, connected_wallet, fake_contract):
    controller = ReferralDataController(make_service(), gateway=gateway)
    controller.wallet = USER_WALLET

    await controller.refresh()
    merged = controller.dashboard_stats

    assert fake_contract.called("getUserInfo") == 1
    # Backend and contract ledgers are never added together
    assert merged.total_commissions == 0.02
    assert merged.contract_total_commissions == pytest.approx(0.02)
    assert merged.contract_total_purchases == pytest.approx(0.05)
    assert merged.contract_purchase_count == 1
    assert merged.contract_eligible_for_draw is True
    assert merged.conversion_rate == pytest.approx(75.0)


@pytest.mark.asyncio
async def test_dashboard_stats_drop_contract_totals_after_disconnect(gateway, connected_wallet):
    controller = ReferralDataController(make_service(), gateway=gateway, poll_interval=60)
    await controller.set_wallet(USER_WALLET)
    assert controller.dashboard_stats.contract_purchase_count == 1

    await connected_wallet.disconnect()
    await controller.set_wallet(None)

    merged = controller.dashboard_stats
    assert gateway.user_info.data is None
    assert merged.contract_total_purchases == 0.0
    assert merged.contract_purchase_count == 0
    assert merged.contract_eligible_for_draw is False


@pytest.mark.asyncio
async def test_dashboard_stats_after_account_switch_with_failed_contract_read(
    gateway, connected_wallet, provider, fake_contract
):
    controller = ReferralDataController(make_service(), gateway=gateway, poll_interval=60)
    await controller.set_wallet(USER_WALLET)
    fake_contract.results["getUserInfo"] = ContractLogicError("execution reverted")

    provider.accounts = [OTHER_WALLET]
    await connected_wallet.sync()
    await controller.set_wallet(OTHER_WALLET)

    merged = controller.dashboard_stats
    assert gateway.user_info.error == "execution reverted"
    assert merged.contract_total_purchases == 0.0
    assert merged.contract_total_commissions == 0.0
    assert merged.contract_purchase_count == 0
    await controller.close()


@pytest.mark.asyncio
async def test_dashboard_stats_ignore_totals_of_another_wallet(gateway, connected_wallet):
    controller = ReferralDataController(make_service(), gateway=gateway)
    await gateway.user_info.refetch()

    controller.wallet = OTHER_WALLET

    assert controller.dashboard_stats.contract_purchase_count == 0


@pytest.mark.asyncio
async def test_dashboard_stats_hide_contract_totals_on_wrong_chain(gateway, connected_wallet, provider, fake_contract):
    controller = ReferralDataController(make_service(), gateway=gateway, poll_interval=60)
    await controller.set_wallet(USER_WALLET)

    provider.chain_id = 1
    await connected_wallet.sync()
    await controller.refresh()

    assert fake_contract.called("getUserInfo") == 1
    assert controller.dashboard_stats.contract_purchase_count == 0
    assert controller.dashboard_stats.total_referrals == 4
    await controller.close()


@pytest.mark.asyncio
async def test_returning_to_required_chain_refetches_user_info(gateway, connected_wallet, provider, fake_contract):
    controller = ReferralDataController(make_service(), gateway=gateway, poll_interval=60)
    connected_wallet.on_chain_changed(controller.on_chain_changed)
    await controller.set_wallet(USER_WALLET)
    provider.chain_id = 1
    await connected_wallet.sync()
    fake_contract.results["getUserInfo"] = (USER_WALLET, 10**17, 3 * 10**16, 2, True, 1714521600)

    provider.chain_id = 97
    await connected_wallet.sync()

    assert fake_contract.called("getUserInfo") == 2
    assert controller.dashboard_stats.contract_purchase_count == 2
    await controller.close()


# ============================================
# WRITES
# ============================================

@pytest.mark.asyncio
async def test_process_commission_refreshes_after_write():
    service = make_service()
    service.process_commission = AsyncMock(return_value="commission")
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET

    result = await controller.process_commission(USER_WALLET, OTHER_WALLET, 0.1, "1", "0xdead")

    assert result == "commission"
    service.process_commission.assert_awaited_once_with(USER_WALLET, OTHER_WALLET, 0.1, "1", "0xdead")
    service.fetch_referral_stats.assert_awaited_once()


@pytest.mark.asyncio
async def test_register_referral_failure_propagates_without_refresh():
    service = make_service()
    service.register_referral = AsyncMock(side_effect=RuntimeError("boom"))
    controller = ReferralDataController(service)
    controller.wallet = USER_WALLET

    with pytest.raises(RuntimeError):
        await controller.register_referral(USER_WALLET, OTHER_WALLET, "bob@example.com", "Bob")

    service.fetch_referral_stats.assert_not_called()

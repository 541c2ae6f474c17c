from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from rizqdaan.extensions import db
from rizqdaan.integrations.assets.factory import build_asset_provider
from rizqdaan.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from rizqdaan.store.channel import ChangeChannel
from rizqdaan.store.documents import AccessPolicy, DocumentStore
from rizqdaan.store.mirror import build_mirror
from rizqdaan.services.campaign_service import CampaignLifecycle
from rizqdaan.services.finance_service import FinanceDesk
from rizqdaan.services.ledger import WalletLedger
from rizqdaan.services.notification_service import NotificationEmitter
from rizqdaan.services.profile_service import ProfileViews
from rizqdaan.services.referral_service import ReferralProgram
from rizqdaan.services.settings_service import PlatformSettings


@dataclass
class Services:
    channel: ChangeChannel
    store: DocumentStore
    mirror: object
    ledger: WalletLedger
    notifier: NotificationEmitter
    settings: PlatformSettings
    campaigns: CampaignLifecycle
    finance: FinanceDesk
    referrals: ReferralProgram
    profiles: ProfileViews
    assets: object = None


def build_services(app) -> Services:
    config = app.config
    channel = ChangeChannel()
    store = DocumentStore(db, AccessPolicy.from_config(config))
    mirror = build_mirror(config, channel)
    ledger = WalletLedger(store, mirror, config.get("LEDGER_FALLBACK_POLICY") or "always_fallback")
    notifier = NotificationEmitter(store)
    settings = PlatformSettings(store, mirror)
    try:
        assets = build_asset_provider(config)
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        app.logger.warning("asset_provider_unavailable err=%s", e)
        assets = None
    return Services(
        channel=channel,
        store=store,
        mirror=mirror,
        ledger=ledger,
        notifier=notifier,
        settings=settings,
        campaigns=CampaignLifecycle(store, mirror, ledger, notifier, settings),
        finance=FinanceDesk(store, mirror, ledger, notifier, assets),
        referrals=ReferralProgram(store, ledger, settings, notifier),
        profiles=ProfileViews(store, mirror, channel),
        assets=assets,
    )


def get_services() -> Services:
    return current_app.extensions["rizqdaan"]
